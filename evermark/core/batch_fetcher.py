"""
Batch Fetcher
=============

Fetches many records with bounded parallelism.

Ids are split into consecutive chunks of `concurrency`. Each chunk runs
concurrently and is awaited until every item settles; a short delay separates
chunks to stay under provider rate limits. A failed item becomes None at its
position; the batch itself never fails on item errors.
"""

import asyncio
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar

from evermark import config
from evermark.core.record_fetcher import RecordFetcher
from evermark.errors import PartialBatchFailure
from evermark.models import ContentRecord
from evermark.utils.log import get_logger
from evermark.utils.metrics import BATCH_ITEMS_TOTAL

T = TypeVar("T")
R = TypeVar("R")


async def gather_in_chunks(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    concurrency: int,
    delay: float = 0.0,
) -> List[object]:
    """
    Run `worker` over `items`, at most `concurrency` at a time.

    Returns one entry per item in input order: the worker's result, or the
    exception it raised.

    Raises:
        ValueError: concurrency < 1
    """
    if concurrency < 1:
        raise ValueError(f"concurrency must be >= 1, got {concurrency}")

    results: List[object] = []
    for start in range(0, len(items), concurrency):
        if start > 0 and delay > 0:
            await asyncio.sleep(delay)
        chunk = items[start:start + concurrency]
        settled = await asyncio.gather(*(worker(item) for item in chunk), return_exceptions=True)
        results.extend(settled)
    return results


class BatchFetcher:
    def __init__(
        self,
        record_fetcher: RecordFetcher,
        delay: Optional[float] = None,
        logger=None,
    ):
        self.record_fetcher = record_fetcher
        self.delay = delay if delay is not None else config.BATCH_DELAY_SECONDS
        self.logger = logger or get_logger(__name__)

    async def fetch_batch(
        self,
        ids: Sequence[str],
        concurrency: Optional[int] = None,
    ) -> List[Optional[ContentRecord]]:
        """
        Fetch records for `ids`, one result per id in the same order.

        Args:
            ids: Record ids to fetch
            concurrency: Max fetches in flight (defaults to BATCH_CONCURRENCY)

        Returns:
            ContentRecord or None (absent, malformed or failed) per id
        """
        concurrency = concurrency if concurrency is not None else config.BATCH_CONCURRENCY
        ids = list(ids)

        settled = await gather_in_chunks(
            ids, self.record_fetcher.fetch_record, concurrency, self.delay
        )

        records: List[Optional[ContentRecord]] = []
        failed_ids = []
        for record_id, outcome in zip(ids, settled):
            if isinstance(outcome, BaseException):
                failed_ids.append(record_id)
                self.logger.warning("batch_item_failed", record_id=record_id, error=str(outcome))
                records.append(None)
                BATCH_ITEMS_TOTAL.labels(outcome="failed").inc()
            elif outcome is None:
                records.append(None)
                BATCH_ITEMS_TOTAL.labels(outcome="missing").inc()
            else:
                records.append(outcome)
                BATCH_ITEMS_TOTAL.labels(outcome="fetched").inc()

        if failed_ids:
            condition = PartialBatchFailure(failed_ids, len(ids))
            self.logger.warning(
                "partial_batch_failure",
                failed_ids=condition.failed_ids,
                total=condition.total,
                error_code=condition.error_code,
            )

        return records
