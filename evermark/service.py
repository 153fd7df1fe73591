"""
Service wiring.

build_service() resolves every optional collaborator once at startup:
Supabase-backed fast store and metadata cache when Supabase is configured,
their Null implementations otherwise. Components receive their collaborators
through constructors and never import them lazily.
"""

from dataclasses import dataclass
from typing import Optional

import httpx

from evermark import config
from evermark.core.batch_fetcher import BatchFetcher
from evermark.core.leaderboard import LeaderboardAggregator
from evermark.core.orchestrator import TieredResolver
from evermark.core.record_fetcher import RecordFetcher
from evermark.db import client as db_client
from evermark.db.fast_store import FastStore, NullFastStore, SupabaseFastStore
from evermark.ipfs.cache import MetadataCache, NullMetadataCache, SupabaseMetadataCache
from evermark.ipfs.gateway import GatewayResolver
from evermark.ipfs.upload import PinataUploader
from evermark.ledger.client import LedgerReader, Web3Ledger
from evermark.tasks.ledger_sync import LedgerSync
from evermark.utils.log import get_logger


@dataclass
class EvermarkService:
    resolver: GatewayResolver
    ledger: LedgerReader
    fast_store: FastStore
    record_fetcher: RecordFetcher
    batch_fetcher: BatchFetcher
    orchestrator: TieredResolver
    leaderboard: LeaderboardAggregator
    sync: LedgerSync
    uploader: Optional[PinataUploader] = None

    async def aclose(self) -> None:
        await self.resolver.aclose()
        if self.uploader is not None:
            await self.uploader.aclose()


def _default_fast_store(logger) -> FastStore:
    if not db_client.is_configured():
        logger.info("fast_store_disabled", reason="supabase_not_configured")
        return NullFastStore()
    write_factory = (
        db_client.get_async_write_client if config.SUPABASE_SERVICE_ROLE_KEY else None
    )
    return SupabaseFastStore(db_client.get_async_read_client, write_factory)


def _default_cache() -> MetadataCache:
    if not db_client.is_configured():
        return NullMetadataCache()
    write_factory = (
        db_client.get_async_write_client if config.SUPABASE_SERVICE_ROLE_KEY else None
    )
    return SupabaseMetadataCache(db_client.get_async_read_client, write_factory)


def build_service(
    ledger: Optional[LedgerReader] = None,
    fast_store: Optional[FastStore] = None,
    cache: Optional[MetadataCache] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    logger=None,
) -> EvermarkService:
    """
    Assemble the resolution core.

    Every argument overrides the configured default; tests pass fakes here.

    Raises:
        ConfigurationError: No ledger given and contract addresses are missing
    """
    logger = logger or get_logger("evermark")

    fast_store = fast_store if fast_store is not None else _default_fast_store(logger)
    cache = cache if cache is not None else _default_cache()
    ledger = ledger if ledger is not None else Web3Ledger()

    resolver = GatewayResolver(http_client=http_client, cache=cache)
    record_fetcher = RecordFetcher(ledger, resolver)
    batch_fetcher = BatchFetcher(record_fetcher)

    return EvermarkService(
        resolver=resolver,
        ledger=ledger,
        fast_store=fast_store,
        record_fetcher=record_fetcher,
        batch_fetcher=batch_fetcher,
        orchestrator=TieredResolver(fast_store, ledger, batch_fetcher, resolver),
        leaderboard=LeaderboardAggregator(fast_store, ledger, batch_fetcher, resolver),
        sync=LedgerSync(ledger, fast_store, batch_fetcher),
        uploader=PinataUploader(http_client=http_client) if config.PINATA_JWT else None,
    )
