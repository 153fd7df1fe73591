"""
Resolution core: record fetch, batch fetch, tiered listing and leaderboard
aggregation.
"""

from evermark.core.batch_fetcher import BatchFetcher, gather_in_chunks
from evermark.core.leaderboard import LeaderboardAggregator, TieBreak, rank_tallies
from evermark.core.orchestrator import TieredResolver, ledger_page_ids
from evermark.core.record_fetcher import RecordFetcher

__all__ = [
    "BatchFetcher",
    "LeaderboardAggregator",
    "RecordFetcher",
    "TieBreak",
    "TieredResolver",
    "gather_in_chunks",
    "ledger_page_ids",
    "rank_tallies",
]
