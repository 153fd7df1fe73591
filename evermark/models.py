"""
Domain data structures.

Standardized shapes shared by the fast store, the ledger reader and the
resolution core. Ledger-derived structures are frozen: a record only changes
when a newer projection replaces it.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

IPFS_SCHEME = "ipfs://"
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def ipfs_to_gateway(uri: Optional[str], gateway: str) -> str:
    """Rewrite an ipfs:// URI onto an HTTP gateway. Other values pass through."""
    if not uri:
        return ""
    if not uri.startswith(IPFS_SCHEME):
        return uri
    path = uri[len(IPFS_SCHEME):]
    if path.startswith("ipfs/"):
        path = path[len("ipfs/"):]
    return f"{gateway.rstrip('/')}/{path}"


# Epoch values above this are milliseconds (Date.now() style)
_MILLISECONDS_THRESHOLD = 10 ** 12


def _to_epoch_seconds(value: Any) -> Optional[int]:
    """
    Best-effort conversion of a stored timestamp to epoch seconds.

    Accepts epoch seconds or milliseconds (int, float or numeric string) and
    ISO-8601 strings. Returns None for anything else.
    """
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        timestamp = int(float(value))
    except (TypeError, ValueError, OverflowError):
        timestamp = None
    if timestamp is not None:
        if timestamp <= 0:
            return None
        return timestamp // 1000 if timestamp >= _MILLISECONDS_THRESHOLD else timestamp

    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp())


@dataclass(frozen=True)
class Metadata:
    """Canonical content-address metadata."""

    name: str = ""
    description: str = ""
    source_url: str = ""
    image: str = ""
    author: str = ""
    schema_version: str = "unknown"

    @classmethod
    def empty(cls) -> "Metadata":
        return cls()

    @property
    def is_empty(self) -> bool:
        return not (self.name or self.description or self.source_url or self.image or self.author)


@dataclass(frozen=True)
class LedgerRecord:
    """Core tuple stored on the ledger for one token."""

    title: str
    creator: str
    metadata_uri: str
    creation_time: int
    minter: str
    referrer: Optional[str] = None


@dataclass(frozen=True)
class ContentRecord:
    """A fully hydrated Evermark."""

    id: str
    title: str
    author: str
    creator: str
    description: str
    source_url: str
    image_url: str
    metadata_uri: str
    creation_time: int
    referrer: Optional[str] = None
    verified: Optional[bool] = None

    def to_row(self) -> Dict[str, Any]:
        """Shape of an `evermarks` row, used by the sync task."""
        created_at = datetime.fromtimestamp(self.creation_time, tz=timezone.utc).isoformat()
        now = datetime.now(timezone.utc).isoformat()
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "description": self.description,
            "verified": True,
            "metadata": {
                "creator": self.creator,
                "sourceUrl": self.source_url,
                "image": self.image_url,
                "metadataURI": self.metadata_uri,
                "creationTime": self.creation_time,
                "referrer": self.referrer,
                "syncedAt": now,
            },
            "created_at": created_at,
            "updated_at": now,
            "last_synced_at": now,
        }


@dataclass(frozen=True)
class CacheRecord:
    """Denormalized, possibly stale projection of a record from the fast store."""

    id: str
    title: str
    author: str
    description: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)
    verified: bool = False
    created_at: Optional[str] = None
    processed_image_url: Optional[str] = None
    image_processing_status: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "CacheRecord":
        return cls(
            id=str(row["id"]),
            title=row.get("title") or "",
            author=row.get("author") or "",
            description=row.get("description") or "",
            metadata=row.get("metadata") or {},
            verified=bool(row.get("verified", False)),
            created_at=row.get("created_at"),
            processed_image_url=row.get("processed_image_url"),
            image_processing_status=row.get("image_processing_status"),
        )

    def resolve_image(self, gateway: str) -> str:
        # Priority: processed image, original metadata image, flat metadata image
        if self.processed_image_url:
            return self.processed_image_url
        original = self.metadata.get("originalMetadata") or {}
        if isinstance(original, dict) and original.get("image"):
            return ipfs_to_gateway(original["image"], gateway)
        if self.metadata.get("image"):
            return ipfs_to_gateway(self.metadata["image"], gateway)
        return ""

    def resolve_creation_time(self) -> int:
        # Priority: metadata creationTime, row created_at, 0
        for value in (self.metadata.get("creationTime"), self.created_at):
            timestamp = _to_epoch_seconds(value)
            if timestamp is not None:
                return timestamp
        return 0

    def to_content_record(self, gateway: str) -> ContentRecord:
        return ContentRecord(
            id=self.id,
            title=self.title,
            author=self.author,
            creator=self.metadata.get("creator") or self.author,
            description=self.description,
            source_url=self.metadata.get("sourceUrl") or "",
            image_url=self.resolve_image(gateway),
            metadata_uri=self.metadata.get("metadataURI") or "",
            creation_time=self.resolve_creation_time(),
            referrer=self.metadata.get("referrer"),
            verified=self.verified,
        )


@dataclass(frozen=True)
class VoteTally:
    """Votes for one record within one cycle."""

    record_id: str
    cycle_id: int
    votes: int

    def __post_init__(self):
        if self.votes < 0:
            raise ValueError(f"votes must be unsigned, got {self.votes} for {self.record_id}")


@dataclass(frozen=True)
class LeaderboardEntry:
    record: ContentRecord
    votes: int
    rank: int


@dataclass
class Leaderboard:
    cycle_id: int
    entries: List[LeaderboardEntry]
    source: str
    finalized: bool = False


@dataclass(frozen=True)
class PageParams:
    """Page, sort and filter parameters for listing records."""

    page: int = 1
    page_size: int = 12
    sort_by: str = "created_at"
    sort_order: str = "desc"
    search: Optional[str] = None
    author: Optional[str] = None
    verified: Optional[bool] = None
    filters: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.page < 1:
            raise ValueError("page must be >= 1")
        if self.page_size < 1:
            raise ValueError("page_size must be >= 1")
        if self.sort_order not in ("asc", "desc"):
            raise ValueError("sort_order must be 'asc' or 'desc'")


@dataclass
class FastStorePage:
    rows: List[CacheRecord]
    total_count: int
    synced_at: Optional[datetime] = None


@dataclass
class RecordPage:
    records: List[ContentRecord]
    total_count: int
    source: str
    page: int = 1
    page_size: int = 12

    @property
    def total_pages(self) -> int:
        if self.total_count <= 0:
            return 0
        return -(-self.total_count // self.page_size)
