"""
Fast store
==========

Eventually-consistent secondary datastore (Supabase) holding a denormalized
projection of ledger records. It is the primary read path; the ledger stays
the source of truth.

Tables:
- evermarks:   one row per record (see ContentRecord.to_row)
- leaderboard: precomputed per-cycle ranking (evermark_id, total_votes, rank, cycle_id)

"No data" is an empty page, never an error. Any failure to reach or query the
store raises FastStoreError.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from evermark.errors import FastStoreError
from evermark.models import CacheRecord, ContentRecord, FastStorePage, PageParams
from evermark.utils.log import get_logger

EVERMARKS_TABLE = "evermarks"
LEADERBOARD_TABLE = "leaderboard"

# PostgREST caps a single response; id scans page through in chunks of this size
ID_SCAN_PAGE_SIZE = 1000

SORTABLE_COLUMNS = ("created_at", "updated_at", "title", "author", "id")


class FastStore(ABC):
    # Read API

    @abstractmethod
    async def query(self, params: PageParams) -> FastStorePage:
        ...

    @abstractmethod
    async def get_leaderboard(self, cycle_id: int, limit: int) -> List[Tuple[CacheRecord, int]]:
        """Precomputed (record, votes) pairs for a cycle, best first."""

    # Write API (ledger sync only)

    @abstractmethod
    async def existing_ids(self) -> Set[str]:
        ...

    @abstractmethod
    async def count(self) -> int:
        ...

    @abstractmethod
    async def upsert_record(self, record: ContentRecord) -> None:
        ...


class NullFastStore(FastStore):
    """Used when Supabase is not configured. Always reports "no data"."""

    async def query(self, params: PageParams) -> FastStorePage:
        return FastStorePage(rows=[], total_count=0)

    async def get_leaderboard(self, cycle_id: int, limit: int) -> List[Tuple[CacheRecord, int]]:
        return []

    async def existing_ids(self) -> Set[str]:
        return set()

    async def count(self) -> int:
        return 0

    async def upsert_record(self, record: ContentRecord) -> None:
        raise FastStoreError("No fast store configured")


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _escape_search(term: str) -> str:
    # Commas and parentheses delimit PostgREST or-filters
    return "".join(ch for ch in term if ch not in ",()").strip()


class SupabaseFastStore(FastStore):
    def __init__(
        self,
        read_client_factory: Callable[[], Awaitable[Any]],
        write_client_factory: Optional[Callable[[], Awaitable[Any]]] = None,
        logger=None,
    ):
        self._read_client_factory = read_client_factory
        self._write_client_factory = write_client_factory
        self.logger = logger or get_logger(__name__)

    async def _read_client(self):
        try:
            return await self._read_client_factory()
        except Exception as e:
            raise FastStoreError(f"Fast store unavailable: {e}") from e

    async def _write_client(self):
        if self._write_client_factory is None:
            raise FastStoreError("Fast store is read-only")
        try:
            return await self._write_client_factory()
        except Exception as e:
            raise FastStoreError(f"Fast store unavailable: {e}") from e

    async def query(self, params: PageParams) -> FastStorePage:
        client = await self._read_client()

        sort_by = params.sort_by if params.sort_by in SORTABLE_COLUMNS else "created_at"
        start = (params.page - 1) * params.page_size
        end = start + params.page_size - 1

        try:
            query = client.table(EVERMARKS_TABLE).select("*", count="exact")

            if params.search:
                term = _escape_search(params.search)
                if term:
                    query = query.or_(
                        f"title.ilike.%{term}%,author.ilike.%{term}%,description.ilike.%{term}%"
                    )
            if params.author:
                query = query.eq("author", params.author)
            if params.verified is not None:
                query = query.eq("verified", params.verified)
            for column, value in params.filters.items():
                query = query.eq(column, value)

            result = await (
                query.order(sort_by, desc=params.sort_order == "desc")
                .range(start, end)
                .execute()
            )
        except Exception as e:
            self.logger.warning("fast_store_query_failed", error=str(e))
            raise FastStoreError(f"Failed to fetch evermarks: {e}") from e

        raw_rows: List[Dict[str, Any]] = result.data or []
        synced = [_parse_timestamp(row.get("last_synced_at")) for row in raw_rows]
        synced = [ts for ts in synced if ts is not None]

        return FastStorePage(
            rows=[CacheRecord.from_row(row) for row in raw_rows],
            total_count=result.count or 0,
            synced_at=max(synced) if synced else None,
        )

    async def get_leaderboard(self, cycle_id: int, limit: int) -> List[Tuple[CacheRecord, int]]:
        client = await self._read_client()
        try:
            result = await (
                client.table(LEADERBOARD_TABLE)
                .select("evermark_id, total_votes, rank, cycle_id, evermarks!inner(*)")
                .eq("cycle_id", cycle_id)
                .order("rank")
                .limit(limit)
                .execute()
            )
        except Exception as e:
            self.logger.warning("fast_store_leaderboard_failed", cycle_id=cycle_id, error=str(e))
            raise FastStoreError(f"Failed to fetch leaderboard: {e}") from e

        entries = []
        for row in result.data or []:
            joined = row.get("evermarks")
            if not joined:
                continue
            entries.append((CacheRecord.from_row(joined), int(row.get("total_votes") or 0)))
        return entries

    async def existing_ids(self) -> Set[str]:
        client = await self._read_client()
        ids: Set[str] = set()
        start = 0
        try:
            while True:
                result = await (
                    client.table(EVERMARKS_TABLE)
                    .select("id")
                    .range(start, start + ID_SCAN_PAGE_SIZE - 1)
                    .execute()
                )
                rows = result.data or []
                ids.update(str(row["id"]) for row in rows)
                if len(rows) < ID_SCAN_PAGE_SIZE:
                    break
                start += ID_SCAN_PAGE_SIZE
        except Exception as e:
            raise FastStoreError(f"Failed to list evermark ids: {e}") from e
        return ids

    async def count(self) -> int:
        client = await self._read_client()
        try:
            result = await client.table(EVERMARKS_TABLE).select("id", count="exact").limit(1).execute()
        except Exception as e:
            raise FastStoreError(f"Failed to count evermarks: {e}") from e
        return result.count or 0

    async def upsert_record(self, record: ContentRecord) -> None:
        client = await self._write_client()
        try:
            await client.table(EVERMARKS_TABLE).upsert(record.to_row(), on_conflict="id").execute()
        except Exception as e:
            self.logger.error("fast_store_upsert_failed", record_id=record.id, error=str(e))
            raise FastStoreError(f"Failed to upsert evermark {record.id}: {e}") from e
