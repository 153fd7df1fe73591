"""
Ledger -> Fast Store Sync Task

Background task that copies ledger records missing from the fast store:
- Reads total supply from the ledger
- Compares token ids 1..supply with ids already in the fast store
- Fetches at most SYNC_MAX_PER_RUN missing records (Batch Fetcher) and upserts them

Runs every SYNC_INTERVAL_SECONDS. A run is guarded: starting a second run
while one is in flight raises OperationInFlight.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from evermark import config
from evermark.core.batch_fetcher import BatchFetcher
from evermark.db.fast_store import FastStore
from evermark.errors import EvermarkError, OperationInFlight
from evermark.ledger.client import LedgerReader
from evermark.utils.guard import InFlightGuard
from evermark.utils.log import get_logger


@dataclass
class SyncStats:
    total_supply: int
    synced: int
    skipped: int
    errors: List[str]


class LedgerSync:
    def __init__(
        self,
        ledger: LedgerReader,
        fast_store: FastStore,
        batch_fetcher: BatchFetcher,
        max_per_run: Optional[int] = None,
        concurrency: Optional[int] = None,
        logger=None,
    ):
        self.ledger = ledger
        self.fast_store = fast_store
        self.batch_fetcher = batch_fetcher
        self.max_per_run = max_per_run if max_per_run is not None else config.SYNC_MAX_PER_RUN
        self.concurrency = concurrency if concurrency is not None else config.BATCH_CONCURRENCY
        self.guard = InFlightGuard("ledger_sync")
        self.logger = logger or get_logger(__name__)

    async def run_once(self) -> SyncStats:
        """
        Sync one batch of missing records.

        Raises:
            OperationInFlight: A previous run has not finished
            LedgerReadError / FastStoreError: Supply or existing ids unreadable
        """
        async with self.guard.hold():
            total_supply = await self.ledger.total_supply()
            existing = await self.fast_store.existing_ids()

            missing = [
                str(token_id)
                for token_id in range(1, total_supply + 1)
                if str(token_id) not in existing
            ]
            to_sync = missing[: self.max_per_run]
            self.logger.info(
                "ledger_sync_started",
                total_supply=total_supply,
                existing=len(existing),
                missing=len(missing),
                batch=len(to_sync),
            )

            records = await self.batch_fetcher.fetch_batch(to_sync, self.concurrency)

            synced = 0
            skipped = 0
            errors: List[str] = []
            for record_id, record in zip(to_sync, records):
                if record is None:
                    skipped += 1
                    continue
                try:
                    await self.fast_store.upsert_record(record)
                    synced += 1
                except EvermarkError as e:
                    errors.append(f"{record_id}: {e.message}")

            stats = SyncStats(total_supply=total_supply, synced=synced, skipped=skipped, errors=errors)
            self.logger.info(
                "ledger_sync_finished",
                total_supply=total_supply,
                synced=synced,
                skipped=skipped,
                errors=len(errors),
            )
            return stats

    async def health(self) -> Dict[str, Any]:
        """Compare ledger supply with the number of rows in the fast store."""
        total_supply = await self.ledger.total_supply()
        stored = await self.fast_store.count()
        missing = max(0, total_supply - stored)
        return {
            "total_supply": total_supply,
            "fast_store_count": stored,
            "missing": missing,
            "healthy": missing == 0,
            "sync_in_flight": self.guard.in_flight,
        }


async def ledger_sync_task(sync: LedgerSync, interval: Optional[float] = None):
    """
    Background loop around LedgerSync.run_once().

    Errors are logged and the loop keeps going; cancellation stops it.
    """
    interval = interval if interval is not None else config.SYNC_INTERVAL_SECONDS
    logger = sync.logger
    logger.info("ledger_sync_task_started", interval=interval)

    while True:
        try:
            await sync.run_once()
        except OperationInFlight:
            logger.warning("ledger_sync_skipped", reason="in_flight")
        except Exception as e:
            logger.error("ledger_sync_failed", error=str(e), exc_info=True)

        await asyncio.sleep(interval)
