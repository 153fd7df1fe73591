"""
Pinata upload sink.

Pins a file or a JSON document and returns its ipfs:// URI. Uploads are not
retried: a failure raises EvermarkError with the UPLOAD error code.
"""

import json
from typing import Any, Dict, Optional

import httpx

from evermark import config
from evermark.errors import ConfigurationError, EvermarkError
from evermark.models import IPFS_SCHEME
from evermark.utils.log import get_logger


class PinataUploader:
    def __init__(
        self,
        jwt: Optional[str] = None,
        api_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 60.0,
        logger=None,
    ):
        self.jwt = jwt if jwt is not None else config.PINATA_JWT
        self.api_url = (api_url or config.PINATA_API_URL).rstrip("/")
        self.timeout = timeout
        self.logger = logger or get_logger(__name__)
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient()

    def _headers(self) -> Dict[str, str]:
        if not self.jwt:
            raise ConfigurationError("PINATA_JWT not configured")
        return {"Authorization": f"Bearer {self.jwt}"}

    async def upload_file(
        self,
        content: bytes,
        filename: str,
        content_type: str = "application/octet-stream",
    ) -> str:
        """Pin raw bytes. Returns ipfs://<hash>."""
        files = {"file": (filename, content, content_type)}
        data = {
            "pinataMetadata": json.dumps({"name": filename}),
            "pinataOptions": json.dumps({"cidVersion": 0}),
        }
        return await self._pin("/pinning/pinFileToIPFS", name=filename, files=files, data=data)

    async def upload_json(self, payload: Dict[str, Any], name: Optional[str] = None) -> str:
        """Pin a JSON document (typically record metadata). Returns ipfs://<hash>."""
        body: Dict[str, Any] = {"pinataContent": payload}
        if name:
            body["pinataMetadata"] = {"name": name}
        return await self._pin("/pinning/pinJSONToIPFS", name=name or "json", json=body)

    async def _pin(self, endpoint: str, name: str, **request: Any) -> str:
        headers = self._headers()
        url = f"{self.api_url}{endpoint}"

        try:
            response = await self._client.post(url, headers=headers, timeout=self.timeout, **request)
            response.raise_for_status()
            content_hash = response.json().get("IpfsHash")
        except (httpx.HTTPError, ValueError) as e:
            self.logger.error("pinata_upload_failed", endpoint=endpoint, name=name, error=str(e))
            raise EvermarkError(f"Pinata upload failed: {e}", error_code="UPLOAD") from e

        if not content_hash:
            self.logger.error("pinata_upload_failed", endpoint=endpoint, name=name, error="missing IpfsHash")
            raise EvermarkError("Pinata response did not include IpfsHash", error_code="UPLOAD")

        self.logger.info("pinata_upload_succeeded", endpoint=endpoint, name=name, hash=content_hash)
        return f"{IPFS_SCHEME}{content_hash}"

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
