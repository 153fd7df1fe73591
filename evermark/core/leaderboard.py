"""
Leaderboard Aggregator
======================

Produces a ranked, deduplicated, tie-broken leaderboard for a voting cycle.

Tally sources, each tried only when the previous one errors or is empty:
1. fast store:        precomputed leaderboard rows with their cached record
2. ledger finalized:  published ranking of a finalized cycle
3. ledger live:       active record ids, then one tally read per id

Ranking keeps the first occurrence of each record id (with the highest vote
count seen), sorts by votes descending and truncates to the limit. Ranks are
contiguous from 1. Ledger tiers are hydrated through the Batch Fetcher;
entries whose record cannot be hydrated are dropped and the rest re-ranked.
"""

import asyncio
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from evermark import config
from evermark.core.batch_fetcher import BatchFetcher, gather_in_chunks
from evermark.db.fast_store import FastStore
from evermark.errors import LedgerReadError
from evermark.ipfs.gateway import GatewayResolver
from evermark.ledger.client import LedgerReader
from evermark.models import Leaderboard, LeaderboardEntry, VoteTally
from evermark.utils.log import get_logger
from evermark.utils.metrics import TIER_RESOLUTIONS_TOTAL


class TieBreak(Enum):
    ENUMERATION = "enumeration"  # equal votes keep source order
    RECORD_ID = "record_id"  # equal votes ordered by ascending numeric id


def _id_key(record_id: str):
    return (0, int(record_id), "") if record_id.isdigit() else (1, 0, record_id)


def rank_tallies(
    tallies: Sequence[VoteTally],
    limit: int,
    tie_break: TieBreak = TieBreak.ENUMERATION,
) -> List[Tuple[VoteTally, int]]:
    """
    Deduplicate, sort and truncate tallies.

    Returns (tally, rank) pairs with rank = position + 1.
    """
    if limit < 0:
        raise ValueError(f"limit must be >= 0, got {limit}")

    deduped: Dict[str, VoteTally] = {}
    for tally in tallies:
        seen = deduped.get(tally.record_id)
        if seen is None or tally.votes > seen.votes:
            # dict keeps the first insertion position on reassignment
            deduped[tally.record_id] = tally

    if tie_break is TieBreak.RECORD_ID:
        ordered = sorted(deduped.values(), key=lambda t: (-t.votes, _id_key(t.record_id)))
    else:
        ordered = sorted(deduped.values(), key=lambda t: -t.votes)

    return [(tally, index + 1) for index, tally in enumerate(ordered[:limit])]


class LeaderboardAggregator:
    def __init__(
        self,
        fast_store: FastStore,
        ledger: LedgerReader,
        batch_fetcher: BatchFetcher,
        resolver: GatewayResolver,
        tie_break: Optional[TieBreak] = None,
        concurrency: Optional[int] = None,
        fast_store_timeout: Optional[float] = None,
        logger=None,
    ):
        self.fast_store = fast_store
        self.ledger = ledger
        self.batch_fetcher = batch_fetcher
        self.resolver = resolver
        self.tie_break = tie_break or TieBreak(config.LEADERBOARD_TIE_BREAK)
        self.concurrency = concurrency if concurrency is not None else config.BATCH_CONCURRENCY
        self.fast_store_timeout = (
            fast_store_timeout if fast_store_timeout is not None else config.FAST_STORE_TIMEOUT_SECONDS
        )
        self.logger = logger or get_logger(__name__)

    async def get_leaderboard(
        self, cycle_id: Optional[int] = None, limit: Optional[int] = None
    ) -> List[LeaderboardEntry]:
        leaderboard = await self.build_leaderboard(cycle_id, limit)
        return leaderboard.entries

    async def build_leaderboard(
        self, cycle_id: Optional[int] = None, limit: Optional[int] = None
    ) -> Leaderboard:
        """
        Build the leaderboard for a cycle (current cycle when None).

        Raises:
            LedgerReadError: No tier produced data and the live ledger tally failed
        """
        limit = limit if limit is not None else config.LEADERBOARD_DEFAULT_LIMIT
        if cycle_id is None:
            cycle_id = await self.ledger.get_current_cycle()
        log = self.logger.bind(cycle_id=cycle_id, limit=limit)

        leaderboard = await self._from_fast_store(cycle_id, limit, log)
        if leaderboard is not None:
            return self._served(leaderboard, log)

        try:
            leaderboard = await self._from_finalized(cycle_id, limit)
        except LedgerReadError as e:
            log.warning("leaderboard_tier_failed", tier="ledger_finalized", error=e.message)
        if leaderboard is not None:
            return self._served(leaderboard, log)

        try:
            leaderboard = await self._from_live_tally(cycle_id, limit, log)
        except LedgerReadError as e:
            log.error("leaderboard_unavailable", tier="ledger_live", error=e.message)
            raise LedgerReadError("leaderboard", e) from e
        if leaderboard is not None:
            return self._served(leaderboard, log)

        return self._served(Leaderboard(cycle_id=cycle_id, entries=[], source="none"), log)

    def _served(self, leaderboard: Leaderboard, log) -> Leaderboard:
        TIER_RESOLUTIONS_TOTAL.labels(operation="leaderboard", tier=leaderboard.source).inc()
        log.info(
            "leaderboard_served",
            source=leaderboard.source,
            entries=len(leaderboard.entries),
            finalized=leaderboard.finalized,
        )
        return leaderboard

    async def _from_fast_store(self, cycle_id: int, limit: int, log) -> Optional[Leaderboard]:
        try:
            rows = await asyncio.wait_for(
                self.fast_store.get_leaderboard(cycle_id, limit), timeout=self.fast_store_timeout
            )
        except Exception as e:
            log.warning("leaderboard_tier_failed", tier="fast_store", error=str(e))
            return None
        if not rows:
            return None

        gateway = self.resolver.primary_gateway
        records = {}
        tallies = []
        for cached, votes in rows:
            try:
                if cached.id not in records:
                    records[cached.id] = cached.to_content_record(gateway)
                tallies.append(VoteTally(record_id=cached.id, cycle_id=cycle_id, votes=votes))
            except (AttributeError, TypeError, ValueError) as e:
                log.warning("fast_store_row_skipped", record_id=cached.id, error=str(e))
        if not tallies:
            log.warning("leaderboard_tier_failed", tier="fast_store", error="no readable rows")
            return None

        entries = [
            LeaderboardEntry(record=records[tally.record_id], votes=tally.votes, rank=rank)
            for tally, rank in rank_tallies(tallies, limit, self.tie_break)
        ]
        return Leaderboard(cycle_id=cycle_id, entries=entries, source="fast_store")

    async def _from_finalized(self, cycle_id: int, limit: int) -> Optional[Leaderboard]:
        if not await self.ledger.is_cycle_finalized(cycle_id):
            return None
        tallies = await self.ledger.get_finalized_leaderboard(cycle_id, limit)
        if not tallies:
            return None
        entries = await self._hydrate(tallies, limit)
        return Leaderboard(cycle_id=cycle_id, entries=entries, source="ledger_finalized", finalized=True)

    async def _from_live_tally(self, cycle_id: int, limit: int, log) -> Optional[Leaderboard]:
        record_ids = await self.ledger.get_active_record_ids(cycle_id)
        if not record_ids:
            return None

        async def read_votes(record_id: str) -> int:
            return await self.ledger.get_votes(cycle_id, record_id)

        outcomes = await gather_in_chunks(
            record_ids, read_votes, self.concurrency, self.batch_fetcher.delay
        )

        tallies = []
        failed = []
        for record_id, outcome in zip(record_ids, outcomes):
            if isinstance(outcome, BaseException):
                failed.append(record_id)
                continue
            tallies.append(VoteTally(record_id=record_id, cycle_id=cycle_id, votes=outcome))

        if failed:
            log.warning("tally_reads_failed", failed_ids=failed, total=len(record_ids))
        if not tallies:
            raise LedgerReadError("getEvermarkVotesInCycle")

        entries = await self._hydrate(tallies, limit)
        return Leaderboard(cycle_id=cycle_id, entries=entries, source="ledger_live")

    async def _hydrate(self, tallies: Sequence[VoteTally], limit: int) -> List[LeaderboardEntry]:
        ranked = rank_tallies(tallies, limit, self.tie_break)
        records = await self.batch_fetcher.fetch_batch(
            [tally.record_id for tally, _ in ranked], self.concurrency
        )

        entries = []
        dropped = []
        for (tally, _), record in zip(ranked, records):
            if record is None:
                dropped.append(tally.record_id)
                continue
            entries.append(LeaderboardEntry(record=record, votes=tally.votes, rank=len(entries) + 1))

        if dropped:
            self.logger.warning("leaderboard_entries_dropped", record_ids=dropped)
        return entries
