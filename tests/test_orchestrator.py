"""
Tests for TieredResolver: fast store first, ledger fallback.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from structlog.testing import capture_logs

from evermark.core.orchestrator import TieredResolver, ledger_page_ids
from evermark.errors import FastStoreError, LedgerReadError
from evermark.models import PageParams

from tests.conftest import GATEWAYS, fast_store_row

NOW = datetime(2025, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def make_orchestrator(fast_store, ledger, batch_fetcher, resolver):
    def factory(**kwargs):
        kwargs.setdefault("enable_fallback", True)
        kwargs.setdefault("stale_after", None)
        kwargs.setdefault("fast_store_timeout", 1.0)
        kwargs.setdefault("concurrency", 3)
        kwargs.setdefault("clock", lambda: NOW)
        return TieredResolver(fast_store, ledger, batch_fetcher, resolver, **kwargs)

    return factory


class TestLedgerPageIds:
    def test_newest_first_first_page(self):
        assert ledger_page_ids(25, PageParams(page=1, page_size=10)) == [str(n) for n in range(25, 15, -1)]

    def test_newest_first_last_partial_page(self):
        assert ledger_page_ids(25, PageParams(page=3, page_size=10)) == ["5", "4", "3", "2", "1"]

    def test_page_past_the_end_is_empty(self):
        assert ledger_page_ids(25, PageParams(page=4, page_size=10)) == []

    def test_oldest_first(self):
        assert ledger_page_ids(25, PageParams(page=3, page_size=10, sort_order="asc")) == [
            str(n) for n in range(21, 26)
        ]

    def test_empty_ledger(self):
        assert ledger_page_ids(0, PageParams()) == []


class TestPrimaryTier:
    @pytest.mark.asyncio
    async def test_serves_fast_store_rows(self, make_orchestrator, fast_store, ledger):
        fast_store.rows = [fast_store_row(n) for n in (3, 2, 1)]

        page = await make_orchestrator().list_records(PageParams(page_size=10))

        assert page.source == "fast_store"
        assert [record.id for record in page.records] == ["3", "2", "1"]
        assert page.total_count == 3
        assert page.records[0].verified is True
        assert page.records[0].image_url.startswith(GATEWAYS[0])
        assert ("totalSupply", None) not in ledger.calls

    @pytest.mark.asyncio
    async def test_processed_image_wins(self, make_orchestrator, fast_store):
        fast_store.rows = [fast_store_row(1, processed_image_url="https://cdn/1.png")]

        page = await make_orchestrator().list_records()

        assert page.records[0].image_url == "https://cdn/1.png"

    @pytest.mark.asyncio
    async def test_legacy_creation_time_formats(self, make_orchestrator, fast_store):
        fast_store.rows = [
            fast_store_row(2, metadata={"creationTime": "2024-05-01T12:00:00Z"}),
            fast_store_row(1, metadata={"creationTime": 1_714_564_800_000}),
        ]

        page = await make_orchestrator().list_records()

        assert page.source == "fast_store"
        assert [record.creation_time for record in page.records] == [1_714_564_800, 1_714_564_800]

    @pytest.mark.asyncio
    async def test_unreadable_row_is_skipped(self, make_orchestrator, fast_store, ledger):
        fast_store.rows = [fast_store_row(3), fast_store_row(2, metadata={"image": 42})]

        with capture_logs() as logs:
            page = await make_orchestrator().list_records()

        assert page.source == "fast_store"
        assert [record.id for record in page.records] == ["3"]
        assert any(log["event"] == "fast_store_row_skipped" and log["record_id"] == "2" for log in logs)
        assert ("totalSupply", None) not in ledger.calls


class TestFallback:
    @pytest.mark.asyncio
    async def test_empty_fast_store_falls_back_to_ledger(self, make_orchestrator, mocker):
        sleep = mocker.patch("evermark.core.batch_fetcher.asyncio.sleep", new=AsyncMock())
        orchestrator = make_orchestrator()
        orchestrator.batch_fetcher.delay = 0.2
        fetch_batch = mocker.spy(orchestrator.batch_fetcher, "fetch_batch")

        page = await orchestrator.list_records(PageParams(page=1, page_size=10))

        assert page.source == "ledger"
        assert page.total_count == 25
        assert [record.id for record in page.records] == [str(n) for n in range(25, 15, -1)]
        fetch_batch.assert_called_once_with([str(n) for n in range(25, 15, -1)], 3)
        assert [call.args for call in sleep.await_args_list] == [(0.2,), (0.2,), (0.2,)]

    @pytest.mark.asyncio
    async def test_fast_store_error_falls_back(self, make_orchestrator, fast_store):
        fast_store.error = RuntimeError("connection refused")

        page = await make_orchestrator().list_records(PageParams(page_size=5))

        assert page.source == "ledger"
        assert len(page.records) == 5

    @pytest.mark.asyncio
    async def test_unreadable_page_falls_back(self, make_orchestrator, fast_store):
        fast_store.rows = [fast_store_row(n, metadata={"image": 42}) for n in (2, 1)]

        page = await make_orchestrator().list_records(PageParams(page_size=5))

        assert page.source == "ledger"
        assert [record.id for record in page.records] == ["25", "24", "23", "22", "21"]

    @pytest.mark.asyncio
    async def test_fast_store_timeout_falls_back(self, make_orchestrator, fast_store):
        async def hang(params):
            await asyncio.sleep(10)

        fast_store.query = hang

        page = await make_orchestrator(fast_store_timeout=0.01).list_records(PageParams(page_size=2))

        assert page.source == "ledger"

    @pytest.mark.asyncio
    async def test_stale_fast_store_falls_back(self, make_orchestrator, fast_store):
        fast_store.rows = [fast_store_row(1)]
        fast_store.synced_at = NOW - timedelta(hours=2)

        page = await make_orchestrator(stale_after=3600).list_records(PageParams(page_size=3))

        assert page.source == "ledger"
        assert [record.id for record in page.records] == ["25", "24", "23"]

    @pytest.mark.asyncio
    async def test_fresh_fast_store_is_served(self, make_orchestrator, fast_store):
        fast_store.rows = [fast_store_row(1)]
        fast_store.synced_at = NOW - timedelta(minutes=5)

        page = await make_orchestrator(stale_after=3600).list_records()

        assert page.source == "fast_store"

    @pytest.mark.asyncio
    async def test_invalid_ledger_records_are_dropped(self, make_orchestrator, ledger):
        ledger.add_record(24, title="")
        ledger.failing.add("23")

        page = await make_orchestrator().list_records(PageParams(page_size=4))

        assert [record.id for record in page.records] == ["25", "22"]

    @pytest.mark.asyncio
    async def test_empty_ledger_gives_empty_page(self, make_orchestrator, ledger):
        ledger.records.clear()

        page = await make_orchestrator().list_records()

        assert page.source == "ledger"
        assert page.records == []
        assert page.total_count == 0

    @pytest.mark.asyncio
    async def test_search_filter_applied_to_ledger_page(self, make_orchestrator):
        page = await make_orchestrator().list_records(PageParams(page_size=10, search="evermark 2"))

        assert [record.id for record in page.records] == ["25", "24", "23", "22", "21", "20"]

    @pytest.mark.asyncio
    async def test_ledger_failure_propagates(self, make_orchestrator, ledger):
        ledger.failing_methods.add("totalSupply")

        with pytest.raises(LedgerReadError):
            await make_orchestrator().list_records()

    @pytest.mark.asyncio
    async def test_stale_page_served_when_ledger_fails(self, make_orchestrator, fast_store, ledger):
        fast_store.rows = [fast_store_row(1)]
        fast_store.synced_at = NOW - timedelta(hours=2)
        ledger.failing_methods.add("totalSupply")

        page = await make_orchestrator(stale_after=60).list_records()

        assert page.source == "fast_store"


class TestFallbackDisabled:
    @pytest.mark.asyncio
    async def test_empty_primary_gives_empty_page(self, make_orchestrator, ledger):
        page = await make_orchestrator(enable_fallback=False).list_records()

        assert page.source == "none"
        assert page.records == []
        assert ledger.calls == []

    @pytest.mark.asyncio
    async def test_primary_error_surfaces(self, make_orchestrator, fast_store):
        fast_store.error = RuntimeError("down")

        with pytest.raises(FastStoreError):
            await make_orchestrator(enable_fallback=False).list_records()

    @pytest.mark.asyncio
    async def test_stale_primary_served_as_is(self, make_orchestrator, fast_store):
        fast_store.rows = [fast_store_row(1)]
        fast_store.synced_at = NOW - timedelta(days=1)

        page = await make_orchestrator(enable_fallback=False, stale_after=60).list_records()

        assert page.source == "fast_store"
        assert [record.id for record in page.records] == ["1"]
