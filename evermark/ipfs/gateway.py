"""
Gateway Resolver
================

Resolves an ipfs:// content-address to canonical Metadata through an ordered
list of equivalent HTTP gateways.

- The address is validated before any network access.
- Gateways are tried in order, each with its own timeout. The first 2xx
  response carrying a JSON object wins.
- When every gateway fails, a GatewayExhausted condition is logged and empty
  metadata is returned. Gateway failures never raise.
- Image URIs of the form ipfs://<hash> are rewritten onto the primary
  gateway, so the result does not depend on which gateway served it.
"""

import asyncio
import re
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Sequence

import httpx

from evermark import config
from evermark.errors import GatewayExhausted, InvalidAddress
from evermark.ipfs.cache import MetadataCache, NullMetadataCache
from evermark.ipfs.schema import migrate
from evermark.models import IPFS_SCHEME, Metadata, ipfs_to_gateway
from evermark.utils.log import get_logger
from evermark.utils.metrics import GATEWAY_REQUESTS_TOTAL

# CIDv0: "Qm" + 44 base58 characters. CIDv1: "b" + base32 (lowercase).
CID_V0_PATTERN = re.compile(r"^Qm[1-9A-HJ-NP-Za-km-z]{44}$")
CID_V1_PATTERN = re.compile(r"^b[a-z2-7]{58,}$")


@dataclass(frozen=True)
class ContentAddress:
    hash: str
    path: str = ""

    @property
    def relative_url(self) -> str:
        return f"{self.hash}/{self.path}" if self.path else self.hash


def is_plausible_cid(value: str) -> bool:
    return bool(CID_V0_PATTERN.match(value) or CID_V1_PATTERN.match(value))


def parse_content_address(address: Any) -> ContentAddress:
    """
    Parse and validate an ipfs:// URI.

    Raises:
        InvalidAddress: Not an ipfs:// URI, the hash is not a plausible CID,
            or the path holds whitespace or control characters
    """
    if not isinstance(address, str) or not address.startswith(IPFS_SCHEME):
        raise InvalidAddress(f"Not an ipfs:// URI: {address!r}", address=address)

    remainder = address[len(IPFS_SCHEME):]
    if remainder.startswith("ipfs/"):
        remainder = remainder[len("ipfs/"):]

    content_hash, _, path = remainder.partition("/")
    if not is_plausible_cid(content_hash):
        raise InvalidAddress(f"Implausible content hash: {content_hash!r}", address=address)
    if any(char.isspace() or not char.isprintable() for char in path):
        raise InvalidAddress(f"Invalid character in content path: {path!r}", address=address)

    return ContentAddress(hash=content_hash, path=path.strip("/"))


class GatewayResolver:
    def __init__(
        self,
        gateways: Optional[Sequence[str]] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        cache: Optional[MetadataCache] = None,
        logger=None,
    ):
        self.gateways: List[str] = list(gateways if gateways is not None else config.IPFS_GATEWAYS)
        if not self.gateways:
            raise ValueError("At least one gateway is required")
        self.timeout = timeout if timeout is not None else config.IPFS_TIMEOUT_SECONDS
        self.cache = cache or NullMetadataCache()
        self.logger = logger or get_logger(__name__)

        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            headers={"Accept": "application/json"},
            follow_redirects=True,
        )

    @property
    def primary_gateway(self) -> str:
        return self.gateways[0]

    def to_gateway_url(self, uri: Optional[str]) -> str:
        return ipfs_to_gateway(uri, self.primary_gateway)

    async def resolve(self, content_address: str, strict: bool = False) -> Metadata:
        """
        Resolve a content-address to Metadata.

        Args:
            content_address: ipfs://<hash>[/path]
            strict: Re-raise InvalidAddress instead of returning empty metadata

        Returns:
            Normalized Metadata, or Metadata.empty() when nothing could be fetched
        """
        try:
            address = parse_content_address(content_address)
        except InvalidAddress as e:
            self.logger.warning("invalid_content_address", address=content_address, error=e.message)
            if strict:
                raise
            return Metadata.empty()

        cached = await self.cache.get(address.relative_url)
        if cached is not None:
            self.logger.debug("metadata_cache_hit", hash=address.relative_url)
            return self._normalize(cached)

        try:
            document = await self._fetch_json(address)
        except GatewayExhausted as e:
            self.logger.error(
                "gateway_exhausted",
                hash=e.content_hash,
                failures=e.failures,
                error_code=e.error_code,
            )
            return Metadata.empty()

        await self.cache.put(address.relative_url, document)
        return self._normalize(document)

    def _normalize(self, document: Dict[str, Any]) -> Metadata:
        metadata = migrate(document)
        if metadata.image.startswith(IPFS_SCHEME):
            metadata = replace(metadata, image=self.to_gateway_url(metadata.image))
        return metadata

    async def _fetch_json(self, address: ContentAddress) -> Dict[str, Any]:
        failures = []

        for gateway in self.gateways:
            url = f"{gateway.rstrip('/')}/{address.relative_url}"
            try:
                response = await asyncio.wait_for(
                    self._client.get(url, timeout=self.timeout),
                    timeout=self.timeout,
                )
                response.raise_for_status()
                document = response.json()
                if not isinstance(document, dict):
                    raise ValueError(f"expected a JSON object, got {type(document).__name__}")
            except (httpx.HTTPError, httpx.InvalidURL, asyncio.TimeoutError, ValueError) as e:
                reason = f"{gateway}: {type(e).__name__}: {e}"
                failures.append(reason)
                GATEWAY_REQUESTS_TOTAL.labels(gateway=gateway, outcome="failure").inc()
                self.logger.warning("gateway_request_failed", gateway=gateway, url=url, error=str(e))
                continue

            GATEWAY_REQUESTS_TOTAL.labels(gateway=gateway, outcome="success").inc()
            self.logger.debug("gateway_request_succeeded", gateway=gateway, url=url)
            return document

        raise GatewayExhausted(address.relative_url, failures)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
