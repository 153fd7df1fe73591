"""
Tiered Resolution Orchestrator
==============================

Lists records from the fast store first and falls back to the ledger.

Two tiers, re-evaluated on every call:
- Primary:  fast_store.query() under FAST_STORE_TIMEOUT_SECONDS
- Fallback: total_supply -> id range for the requested page -> batch fetch

Fallback is entered when the primary is empty, erroring or stale and
ENABLE_LEDGER_FALLBACK is on. With fallback off, an empty primary gives an
empty page, an erroring primary raises FastStoreError and a stale primary is
served as-is.
"""

import asyncio
from datetime import datetime, timezone
from typing import Callable, List, Optional

from evermark import config
from evermark.core.batch_fetcher import BatchFetcher
from evermark.db.fast_store import FastStore
from evermark.errors import FastStoreError, LedgerReadError
from evermark.ipfs.gateway import GatewayResolver
from evermark.ledger.client import LedgerReader
from evermark.models import ContentRecord, FastStorePage, PageParams, RecordPage
from evermark.utils.log import get_logger
from evermark.utils.metrics import TIER_RESOLUTIONS_TOTAL

# Sort keys the ledger tier can honour; both follow token id order
LEDGER_SORT_KEYS = ("created_at", "id")


def ledger_page_ids(total_supply: int, params: PageParams) -> List[str]:
    """
    Token ids for one page when listing straight from the ledger.

    Newest first (desc): S-(p-1)n down to max(1, S-pn+1).
    Oldest first (asc): (p-1)n+1 up to min(S, pn).
    """
    page, size = params.page, params.page_size
    if params.sort_order == "asc":
        low = (page - 1) * size + 1
        high = min(total_supply, page * size)
        return [str(token_id) for token_id in range(low, high + 1)]

    high = total_supply - (page - 1) * size
    low = max(1, total_supply - page * size + 1)
    return [str(token_id) for token_id in range(high, low - 1, -1)]


def _matches(record: ContentRecord, params: PageParams) -> bool:
    if params.author and record.author != params.author:
        return False
    if params.search:
        term = params.search.lower()
        haystack = (record.title, record.author, record.description)
        if not any(term in value.lower() for value in haystack):
            return False
    return True


class TieredResolver:
    def __init__(
        self,
        fast_store: FastStore,
        ledger: LedgerReader,
        batch_fetcher: BatchFetcher,
        resolver: GatewayResolver,
        enable_fallback: Optional[bool] = None,
        stale_after: Optional[float] = None,
        fast_store_timeout: Optional[float] = None,
        concurrency: Optional[int] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        logger=None,
    ):
        self.fast_store = fast_store
        self.ledger = ledger
        self.batch_fetcher = batch_fetcher
        self.resolver = resolver
        self.enable_fallback = (
            enable_fallback if enable_fallback is not None else config.ENABLE_LEDGER_FALLBACK
        )
        self.stale_after = (
            stale_after if stale_after is not None else config.FAST_STORE_STALE_AFTER_SECONDS
        )
        self.fast_store_timeout = (
            fast_store_timeout if fast_store_timeout is not None else config.FAST_STORE_TIMEOUT_SECONDS
        )
        self.concurrency = concurrency if concurrency is not None else config.BATCH_CONCURRENCY
        self.clock = clock
        self.logger = logger or get_logger(__name__)

    def is_stale(self, page: FastStorePage) -> bool:
        if self.stale_after is None or page.synced_at is None:
            return False
        age = (self.clock() - page.synced_at).total_seconds()
        return age > self.stale_after

    async def _query_fast_store(self, params: PageParams) -> FastStorePage:
        try:
            return await asyncio.wait_for(self.fast_store.query(params), timeout=self.fast_store_timeout)
        except FastStoreError:
            raise
        except asyncio.TimeoutError as e:
            raise FastStoreError(f"Fast store timed out after {self.fast_store_timeout}s") from e
        except Exception as e:
            raise FastStoreError(f"Fast store query failed: {e}") from e

    def _project(self, page: FastStorePage, log) -> List[ContentRecord]:
        """Project cached rows to records, skipping rows that cannot be read."""
        gateway = self.resolver.primary_gateway
        records = []
        for row in page.rows:
            try:
                records.append(row.to_content_record(gateway))
            except (AttributeError, TypeError, ValueError) as e:
                log.warning("fast_store_row_skipped", record_id=row.id, error=str(e))
        return records

    def _fast_store_page(self, records: List[ContentRecord], page: FastStorePage, params: PageParams) -> RecordPage:
        return RecordPage(
            records=records,
            total_count=page.total_count,
            source="fast_store",
            page=params.page,
            page_size=params.page_size,
        )

    async def list_records(self, params: Optional[PageParams] = None) -> RecordPage:
        params = params or PageParams()
        log = self.logger.bind(page=params.page, page_size=params.page_size)

        primary: Optional[FastStorePage] = None
        primary_error: Optional[FastStoreError] = None
        records: List[ContentRecord] = []
        try:
            primary = await self._query_fast_store(params)
        except FastStoreError as e:
            primary_error = e
        else:
            records = self._project(primary, log)
            if primary.rows and not records:
                primary_error = FastStoreError(f"None of {len(primary.rows)} fast store rows could be read")

        if primary_error is not None:
            reason = "error"
            log.warning("fast_store_unavailable", error=primary_error.message)
        elif not primary.rows:
            reason = "empty"
        elif self.is_stale(primary):
            reason = "stale"
            log.warning("fast_store_stale", synced_at=primary.synced_at.isoformat())
        else:
            TIER_RESOLUTIONS_TOTAL.labels(operation="list_records", tier="fast_store").inc()
            log.debug("records_served", source="fast_store", count=len(records))
            return self._fast_store_page(records, primary, params)

        if not self.enable_fallback:
            log.info("ledger_fallback_disabled", reason=reason)
            if primary_error is not None:
                raise primary_error
            if reason == "stale":
                TIER_RESOLUTIONS_TOTAL.labels(operation="list_records", tier="fast_store").inc()
                return self._fast_store_page(records, primary, params)
            TIER_RESOLUTIONS_TOTAL.labels(operation="list_records", tier="none").inc()
            return RecordPage(records=[], total_count=0, source="none", page=params.page, page_size=params.page_size)

        log.info("ledger_fallback", reason=reason)
        try:
            page = await self._list_from_ledger(params)
        except LedgerReadError:
            if reason == "stale":
                log.warning("ledger_fallback_failed_serving_stale")
                return self._fast_store_page(records, primary, params)
            raise

        TIER_RESOLUTIONS_TOTAL.labels(operation="list_records", tier="ledger").inc()
        return page

    async def _list_from_ledger(self, params: PageParams) -> RecordPage:
        if params.sort_by not in LEDGER_SORT_KEYS:
            self.logger.warning("unsupported_fallback_sort", sort_by=params.sort_by)
        if params.verified is not None or params.filters:
            self.logger.warning("unsupported_fallback_filter", verified=params.verified, filters=params.filters)

        total_supply = await self.ledger.total_supply()
        ids = ledger_page_ids(total_supply, params)
        if not ids:
            return RecordPage(records=[], total_count=total_supply, source="ledger", page=params.page, page_size=params.page_size)

        fetched = await self.batch_fetcher.fetch_batch(ids, self.concurrency)
        records = [record for record in fetched if record is not None and _matches(record, params)]

        self.logger.info(
            "records_served",
            source="ledger",
            requested=len(ids),
            count=len(records),
            total_supply=total_supply,
        )
        return RecordPage(
            records=records,
            total_count=total_supply,
            source="ledger",
            page=params.page,
            page_size=params.page_size,
        )
