"""
Metadata cache capability.

The Gateway Resolver consults an injected MetadataCache before going to the
gateways and fills it after a successful fetch. The cache stores the raw JSON
document so that every read goes through the same schema migration.

NullMetadataCache is used when no fast store is configured; it never hits.
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Optional

from evermark.utils.log import get_logger

IPFS_CACHE_TABLE = "ipfs_cache"


class MetadataCache(ABC):
    @abstractmethod
    async def get(self, content_hash: str) -> Optional[Dict[str, Any]]:
        """Return the cached JSON document for a hash, or None."""

    @abstractmethod
    async def put(self, content_hash: str, content: Dict[str, Any]) -> None:
        """Store a JSON document fetched for a hash."""


class NullMetadataCache(MetadataCache):
    async def get(self, content_hash: str) -> Optional[Dict[str, Any]]:
        return None

    async def put(self, content_hash: str, content: Dict[str, Any]) -> None:
        return None


class SupabaseMetadataCache(MetadataCache):
    """
    Metadata cache backed by the `ipfs_cache` table.

    Cache failures are never fatal: a failed read is a miss and a failed
    write is dropped, both logged as warnings.
    """

    def __init__(
        self,
        read_client_factory: Callable[[], Awaitable[Any]],
        write_client_factory: Optional[Callable[[], Awaitable[Any]]] = None,
        logger=None,
    ):
        self._read_client_factory = read_client_factory
        self._write_client_factory = write_client_factory or read_client_factory
        self.logger = logger or get_logger(__name__)

    async def get(self, content_hash: str) -> Optional[Dict[str, Any]]:
        try:
            client = await self._read_client_factory()
            result = await (
                client.table(IPFS_CACHE_TABLE)
                .select("content")
                .eq("hash", content_hash)
                .limit(1)
                .execute()
            )
        except Exception as e:
            self.logger.warning("metadata_cache_read_failed", hash=content_hash, error=str(e))
            return None

        if not result.data:
            return None
        content = result.data[0].get("content")
        return content if isinstance(content, dict) else None

    async def put(self, content_hash: str, content: Dict[str, Any]) -> None:
        try:
            client = await self._write_client_factory()
            await (
                client.table(IPFS_CACHE_TABLE)
                .upsert(
                    {"hash": content_hash, "content": content, "content_type": "metadata"},
                    on_conflict="hash",
                )
                .execute()
            )
        except Exception as e:
            self.logger.warning("metadata_cache_write_failed", hash=content_hash, error=str(e))
