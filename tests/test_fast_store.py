"""
Tests for SupabaseFastStore query building and row projection (mocked client).
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from evermark.db.fast_store import NullFastStore, SupabaseFastStore
from evermark.errors import FastStoreError
from evermark.models import ContentRecord, PageParams

from tests.conftest import fast_store_row

BUILDER_METHODS = ("select", "or_", "eq", "order", "range", "limit", "upsert")


def mock_client(*results):
    """Supabase client whose query builder chains and whose execute() returns `results` in turn."""
    query = MagicMock()
    for name in BUILDER_METHODS:
        getattr(query, name).return_value = query
    query.execute = AsyncMock(side_effect=[SimpleNamespace(data=data, count=count) for data, count in results])
    client = MagicMock()
    client.table.return_value = query
    return client, query


def store_for(client):
    return SupabaseFastStore(AsyncMock(return_value=client), AsyncMock(return_value=client))


class TestQuery:
    @pytest.mark.asyncio
    async def test_builds_filtered_paginated_query(self):
        rows = [fast_store_row(9, last_synced_at="2025-01-01T00:00:00Z"), fast_store_row(8)]
        client, query = mock_client((rows, 42))

        page = await store_for(client).query(
            PageParams(page=2, page_size=12, search="protocol", author="Ada", verified=True)
        )

        client.table.assert_called_with("evermarks")
        query.select.assert_called_once_with("*", count="exact")
        query.or_.assert_called_once_with(
            "title.ilike.%protocol%,author.ilike.%protocol%,description.ilike.%protocol%"
        )
        query.eq.assert_any_call("author", "Ada")
        query.eq.assert_any_call("verified", True)
        query.order.assert_called_once_with("created_at", desc=True)
        query.range.assert_called_once_with(12, 23)

        assert page.total_count == 42
        assert [row.id for row in page.rows] == ["9", "8"]
        assert page.synced_at.year == 2025

    @pytest.mark.asyncio
    async def test_unknown_sort_column_falls_back_to_created_at(self):
        client, query = mock_client(([], 0))

        await store_for(client).query(PageParams(sort_by="votes; drop table", sort_order="asc"))

        query.order.assert_called_once_with("created_at", desc=False)

    @pytest.mark.asyncio
    async def test_search_term_is_sanitized(self):
        client, query = mock_client(([], 0))

        await store_for(client).query(PageParams(search="a,b(c)"))

        query.or_.assert_called_once_with("title.ilike.%abc%,author.ilike.%abc%,description.ilike.%abc%")

    @pytest.mark.asyncio
    async def test_errors_become_fast_store_error(self):
        client, query = mock_client()
        query.execute = AsyncMock(side_effect=RuntimeError("503"))

        with pytest.raises(FastStoreError):
            await store_for(client).query(PageParams())

    @pytest.mark.asyncio
    async def test_client_unavailable(self):
        store = SupabaseFastStore(AsyncMock(side_effect=RuntimeError("SUPABASE_URL not configured")))

        with pytest.raises(FastStoreError):
            await store.query(PageParams())


class TestLeaderboard:
    @pytest.mark.asyncio
    async def test_joins_cached_records(self):
        data = [
            {"evermark_id": "5", "total_votes": "300", "rank": 1, "cycle_id": 3, "evermarks": fast_store_row(5)},
            {"evermark_id": "6", "total_votes": "100", "rank": 2, "cycle_id": 3, "evermarks": None},
        ]
        client, query = mock_client((data, None))

        entries = await store_for(client).get_leaderboard(3, 10)

        client.table.assert_called_with("leaderboard")
        query.eq.assert_called_once_with("cycle_id", 3)
        query.limit.assert_called_once_with(10)
        assert [(record.id, votes) for record, votes in entries] == [("5", 300)]


class TestWrites:
    @pytest.mark.asyncio
    async def test_existing_ids_pages_through(self, mocker):
        mocker.patch("evermark.db.fast_store.ID_SCAN_PAGE_SIZE", 2)
        client, query = mock_client(([{"id": 1}, {"id": 2}], None), ([{"id": 3}], None))

        ids = await store_for(client).existing_ids()

        assert ids == {"1", "2", "3"}
        assert query.range.call_args_list[0].args == (0, 1)
        assert query.range.call_args_list[1].args == (2, 3)

    @pytest.mark.asyncio
    async def test_count(self):
        client, _ = mock_client(([{"id": 1}], 17))

        assert await store_for(client).count() == 17

    @pytest.mark.asyncio
    async def test_upsert_record_row_shape(self):
        client, query = mock_client(([], None))
        record = ContentRecord(
            id="4",
            title="T",
            author="A",
            creator="0xabc",
            description="D",
            source_url="https://s",
            image_url="https://i",
            metadata_uri="ipfs://Qm",
            creation_time=1_700_000_000,
        )

        await store_for(client).upsert_record(record)

        row = query.upsert.call_args.args[0]
        assert query.upsert.call_args.kwargs == {"on_conflict": "id"}
        assert row["id"] == "4"
        assert row["metadata"]["creator"] == "0xabc"
        assert row["metadata"]["metadataURI"] == "ipfs://Qm"
        assert row["created_at"].startswith("2023-11-14")

    @pytest.mark.asyncio
    async def test_read_only_store_rejects_writes(self):
        client, _ = mock_client()
        store = SupabaseFastStore(AsyncMock(return_value=client))

        with pytest.raises(FastStoreError):
            await store.upsert_record(MagicMock(id="1"))


@pytest.mark.asyncio
async def test_null_fast_store_has_no_data():
    store = NullFastStore()

    page = await store.query(PageParams())

    assert page.rows == [] and page.total_count == 0
    assert await store.get_leaderboard(1, 10) == []
    assert await store.existing_ids() == set()
