import json
from typing import Dict, List, Optional, Set, Tuple

import httpx
import pytest
import structlog

from evermark.core.batch_fetcher import BatchFetcher
from evermark.core.record_fetcher import RecordFetcher
from evermark.db.fast_store import FastStore
from evermark.errors import FastStoreError, LedgerReadError
from evermark.ipfs.cache import NullMetadataCache
from evermark.ipfs.gateway import GatewayResolver
from evermark.ledger.client import LedgerReader
from evermark.models import CacheRecord, ContentRecord, FastStorePage, LedgerRecord, PageParams, VoteTally

GATEWAYS = [
    "https://gateway.test-a/ipfs/",
    "https://gateway.test-b/ipfs/",
    "https://gateway.test-c/ipfs/",
]


def cid_for(n: int) -> str:
    """A plausible CIDv0 derived from an integer (base58 alphabet only)."""
    suffix = "".join("abcdefghij"[int(d)] for d in f"{n:04d}")
    return "Qm" + "X" * 40 + suffix


def metadata_doc(n: int) -> dict:
    return {
        "name": f"Evermark {n}",
        "description": f"Description {n}",
        "external_url": f"https://example.com/{n}",
        "image": f"ipfs://{cid_for(n + 1000)}",
        "attributes": [{"trait_type": "Author", "value": f"Author {n}"}],
    }


@pytest.fixture(autouse=True)
def reset_structlog():
    yield
    structlog.reset_defaults()


class FakeLedger(LedgerReader):
    """In-memory ledger. Ids listed in `failing` raise LedgerReadError."""

    def __init__(self, supply: int = 0, cycle: int = 1):
        self.records: Dict[str, LedgerRecord] = {}
        self.cycle = cycle
        self.finalized: Set[int] = set()
        self.finalized_boards: Dict[int, List[VoteTally]] = {}
        self.active_ids: Dict[int, List[str]] = {}
        self.votes: Dict[Tuple[int, str], int] = {}
        self.failing: Set[str] = set()
        self.failing_methods: Set[str] = set()
        self.calls: List[Tuple[str, object]] = []
        for n in range(1, supply + 1):
            self.add_record(n)

    def add_record(self, n: int, title: Optional[str] = None, metadata_uri: Optional[str] = None):
        self.records[str(n)] = LedgerRecord(
            title=f"Evermark {n}" if title is None else title,
            creator=f"Author {n}",
            metadata_uri=f"ipfs://{cid_for(n)}" if metadata_uri is None else metadata_uri,
            creation_time=1_700_000_000 + n,
            minter=f"0x{n:040x}",
        )

    def _check(self, method: str, key: object = None):
        self.calls.append((method, key))
        if method in self.failing_methods or (key is not None and str(key) in self.failing):
            raise LedgerReadError(method, RuntimeError("rpc unavailable"))

    async def exists(self, record_id: str) -> bool:
        self._check("exists", record_id)
        return str(record_id) in self.records

    async def get_record(self, record_id: str) -> LedgerRecord:
        self._check("evermarkData", record_id)
        return self.records[str(record_id)]

    async def total_supply(self) -> int:
        self._check("totalSupply")
        return len(self.records)

    async def get_current_cycle(self) -> int:
        self._check("getCurrentCycle")
        return self.cycle

    async def is_cycle_finalized(self, cycle_id: int) -> bool:
        self._check("getCycleInfo")
        return cycle_id in self.finalized

    async def get_finalized_leaderboard(self, cycle_id: int, limit: int) -> List[VoteTally]:
        self._check("getTopEvermarksInCycle")
        return self.finalized_boards.get(cycle_id, [])[:limit]

    async def get_active_record_ids(self, cycle_id: int) -> List[str]:
        self._check("getActiveEvermarksInCycle")
        return list(self.active_ids.get(cycle_id, []))

    async def get_votes(self, cycle_id: int, record_id: str) -> int:
        self._check("getEvermarkVotesInCycle", record_id)
        return self.votes.get((cycle_id, record_id), 0)


class FakeFastStore(FastStore):
    def __init__(self, rows: Optional[List[dict]] = None):
        self.rows = rows or []
        self.leaderboard_rows: Dict[int, List[Tuple[CacheRecord, int]]] = {}
        self.synced_at = None
        self.error: Optional[Exception] = None
        self.upserted: List[ContentRecord] = []
        self.upsert_failures: Set[str] = set()
        self.queries: List[PageParams] = []

    async def query(self, params: PageParams) -> FastStorePage:
        self.queries.append(params)
        if self.error is not None:
            raise self.error
        start = (params.page - 1) * params.page_size
        page_rows = self.rows[start:start + params.page_size]
        return FastStorePage(
            rows=[CacheRecord.from_row(row) for row in page_rows],
            total_count=len(self.rows),
            synced_at=self.synced_at,
        )

    async def get_leaderboard(self, cycle_id: int, limit: int):
        if self.error is not None:
            raise self.error
        return self.leaderboard_rows.get(cycle_id, [])[:limit]

    async def existing_ids(self) -> Set[str]:
        return {str(row["id"]) for row in self.rows} | {record.id for record in self.upserted}

    async def count(self) -> int:
        return len(self.rows) + len(self.upserted)

    async def upsert_record(self, record: ContentRecord) -> None:
        if record.id in self.upsert_failures:
            raise FastStoreError(f"upsert rejected for {record.id}")
        self.upserted.append(record)


def fast_store_row(n: int, **overrides) -> dict:
    row = {
        "id": str(n),
        "title": f"Cached {n}",
        "author": f"Author {n}",
        "description": f"Cached description {n}",
        "verified": True,
        "created_at": "2024-05-01T12:00:00+00:00",
        "metadata": {
            "creator": f"0x{n:040x}",
            "sourceUrl": f"https://example.com/{n}",
            "image": f"ipfs://{cid_for(n)}",
            "metadataURI": f"ipfs://{cid_for(n)}",
            "creationTime": 1_700_000_000 + n,
        },
    }
    row.update(overrides)
    return row


def gateway_handler(documents: Dict[str, dict], requests: Optional[List[str]] = None):
    """httpx.MockTransport handler serving JSON documents by CID from every gateway."""

    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(str(request.url))
        content_hash = request.url.path.rstrip("/").split("/")[-1]
        if content_hash in documents:
            return httpx.Response(200, content=json.dumps(documents[content_hash]))
        return httpx.Response(404)

    return handler


def gateway_documents_for(numbers) -> Dict[str, dict]:
    return {cid_for(n): metadata_doc(n) for n in numbers}


@pytest.fixture
def gateway_documents():
    return gateway_documents_for(range(1, 51))


@pytest.fixture
def gateway_requests():
    return []


@pytest.fixture
def http_client(gateway_documents, gateway_requests):
    return httpx.AsyncClient(transport=httpx.MockTransport(gateway_handler(gateway_documents, gateway_requests)))


@pytest.fixture
def resolver(http_client):
    return GatewayResolver(gateways=GATEWAYS, timeout=1.0, http_client=http_client, cache=NullMetadataCache())


@pytest.fixture
def ledger():
    return FakeLedger(supply=25, cycle=4)


@pytest.fixture
def fast_store():
    return FakeFastStore()


@pytest.fixture
def record_fetcher(ledger, resolver):
    return RecordFetcher(ledger, resolver)


@pytest.fixture
def batch_fetcher(record_fetcher):
    return BatchFetcher(record_fetcher, delay=0)
