"""Pydantic models for memory records, cursors and result pages."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .exceptions import ValidationError

SNIPPET_MAX_CHARS = 200
QUEUED_TITLE_MAX_CHARS = 60


def coerce_datetime(v):
    """Parse ISO format strings to timezone-aware datetimes (naive means UTC)."""
    if v is None:
        return None
    if isinstance(v, str):
        v = datetime.fromisoformat(v.replace("Z", "+00:00"))
    if isinstance(v, datetime) and v.tzinfo is None:
        v = v.replace(tzinfo=timezone.utc)
    return v


class MemoryType(str, Enum):
    """Closed set of memory kinds shown in the feed."""

    MOMENT = "moment"
    STORY = "story"
    MEMENTO = "memento"

    @property
    def api_value(self) -> str:
        return self.value

    @property
    def default_title(self) -> str:
        return _DEFAULT_TITLES[self]

    @classmethod
    def parse(cls, value: Any) -> "MemoryType":
        """Parse an API value, rejecting anything outside the closed set."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(f"Invalid memory_type: {value!r} (must be moment, story or memento)") from None


_DEFAULT_TITLES = {
    MemoryType.MOMENT: "Untitled Moment",
    MemoryType.STORY: "Untitled Story",
    MemoryType.MEMENTO: "Untitled Memento",
}


class OfflineSyncStatus(str, Enum):
    """Sync state of a memory relative to the server."""

    SYNCED = "synced"
    QUEUED = "queued"
    SYNCING = "syncing"
    FAILED = "failed"


class MediaKind(str, Enum):
    PHOTO = "photo"
    VIDEO = "video"


class MediaSource(str, Enum):
    STORAGE = "supabaseStorage"
    LOCAL = "localFile"


def season_for_month(month: int) -> str:
    """Map a calendar month to its (northern hemisphere) season name."""
    if month in (12, 1, 2):
        return "Winter"
    if month in (3, 4, 5):
        return "Spring"
    if month in (6, 7, 8):
        return "Summer"
    if month in (9, 10, 11):
        return "Fall"
    raise ValueError(f"Month out of range: {month}")


def effective_date_of(
    memory_date: Optional[datetime],
    device_timestamp: Optional[datetime],
    created_at: datetime,
) -> datetime:
    """User-set date, else device capture timestamp, else server receipt time."""
    return memory_date or device_timestamp or created_at


def make_snippet(text: Optional[str], limit: int = SNIPPET_MAX_CHARS) -> Optional[str]:
    """Trim text to a preview snippet, marking truncation with an ellipsis."""
    if text is None or not text.strip():
        return None
    trimmed = text.strip()
    if len(trimmed) <= limit:
        return trimmed
    return f"{trimmed[:limit]}..."


class PrimaryMedia(BaseModel):
    """First photo (or else first video) of a memory."""

    kind: MediaKind
    path: str = Field(..., description="Storage object path or local file path")
    index: int = 0
    poster_path: Optional[str] = None
    source: MediaSource = MediaSource.STORAGE

    @property
    def is_local(self) -> bool:
        return self.source == MediaSource.LOCAL

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "PrimaryMedia":
        return cls(
            kind=row["type"],
            path=row["url"],
            index=row.get("index") or 0,
            poster_path=row.get("poster_url") or None,
            source=MediaSource.LOCAL if row.get("source") == MediaSource.LOCAL.value else MediaSource.STORAGE,
        )


class MemoryLocation(BaseModel):
    """Where a memory happened."""

    model_config = ConfigDict(extra="allow")

    display_name: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @property
    def formatted(self) -> Optional[str]:
        if self.display_name:
            return self.display_name
        parts = [p for p in (self.city, self.state, self.country) if p]
        return ", ".join(parts) or None


class MemoryRecord(BaseModel):
    """Normalized moment/story/memento as shown in the feed.

    Server rows and locally queued writes both become MemoryRecords. Offline
    flags are set by the feed from the sync tracker, not by the server.
    """

    id: str
    memory_type: MemoryType
    title: str = ""
    generated_title: Optional[str] = None
    input_text: Optional[str] = None
    processed_text: Optional[str] = None
    snippet_text: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    memory_date: Optional[datetime] = None
    device_timestamp: Optional[datetime] = None
    created_at: datetime
    primary_media: Optional[PrimaryMedia] = None
    location: Optional[MemoryLocation] = None
    user_id: Optional[str] = None

    local_id: Optional[str] = None
    server_id: Optional[str] = None
    is_offline_queued: bool = False
    offline_sync_status: OfflineSyncStatus = OfflineSyncStatus.SYNCED
    is_preview_only: bool = False
    is_detail_cached_locally: bool = False

    media_url: Optional[str] = None
    poster_url: Optional[str] = None
    media_unavailable: bool = False

    @field_validator("memory_type", mode="before")
    @classmethod
    def parse_memory_type(cls, v):
        return MemoryType.parse(v)

    @field_validator("memory_date", "device_timestamp", "created_at", mode="before")
    @classmethod
    def parse_datetime(cls, v):
        return coerce_datetime(v)

    @property
    def effective_date(self) -> datetime:
        return effective_date_of(self.memory_date, self.device_timestamp, self.created_at)

    @property
    def effective_id(self) -> str:
        return self.server_id or self.local_id or self.id

    @property
    def display_title(self) -> str:
        if self.generated_title and self.generated_title.strip():
            return self.generated_title.strip()
        if self.title and self.title.strip():
            return self.title.strip()
        return self.memory_type.default_title

    @property
    def display_text(self) -> Optional[str]:
        for text in (self.processed_text, self.input_text):
            if text and text.strip():
                return text.strip()
        return None

    @property
    def year(self) -> int:
        return self.effective_date.year

    @property
    def season(self) -> str:
        return season_for_month(self.effective_date.month)

    @property
    def month(self) -> int:
        return self.effective_date.month

    @property
    def day(self) -> int:
        return self.effective_date.day

    @property
    def is_available_offline(self) -> bool:
        return self.is_offline_queued or self.is_detail_cached_locally

    def sort_key(self) -> tuple:
        """Key for (effective_date, id); feeds sort on it descending."""
        return (self.effective_date, self.id)

    def apply_sync_status(self, status: OfflineSyncStatus, server_id: Optional[str] = None) -> None:
        self.offline_sync_status = status
        if server_id:
            self.server_id = server_id

    def apply_generated_title(self, generated_title: str) -> None:
        self.generated_title = generated_title

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "MemoryRecord":
        """Build a record from a unified timeline feed row.

        ``captured_at`` in feed rows is already the server-side effective date,
        so it stands in for the device timestamp.
        """
        media = row.get("primary_media")
        location = row.get("memory_location_data")
        snippet = row.get("snippet_text")
        if snippet is None:
            snippet = make_snippet(row.get("processed_text")) or make_snippet(row.get("input_text"))
        return cls(
            id=row["id"],
            user_id=row.get("user_id"),
            memory_type=MemoryType.parse(row.get("memory_type")),
            title=row.get("title") or "",
            generated_title=row.get("generated_title"),
            input_text=row.get("input_text"),
            processed_text=row.get("processed_text"),
            snippet_text=snippet,
            tags=[str(t) for t in row.get("tags") or []],
            memory_date=row.get("memory_date"),
            device_timestamp=row.get("device_timestamp") or row.get("captured_at"),
            created_at=row["created_at"],
            primary_media=PrimaryMedia.from_row(media) if media else None,
            location=MemoryLocation.model_validate(location) if location else None,
            server_id=row["id"],
        )


class FeedCursor(BaseModel):
    """Exclusive pagination boundary: (effective_date, id)."""

    model_config = ConfigDict(frozen=True)

    effective_date: datetime
    id: str

    @field_validator("effective_date", mode="before")
    @classmethod
    def parse_datetime(cls, v):
        return coerce_datetime(v)

    @classmethod
    def from_record(cls, record: MemoryRecord) -> "FeedCursor":
        return cls(effective_date=record.effective_date, id=record.id)

    def admits(self, record: MemoryRecord) -> bool:
        """True if the record sorts strictly after this cursor in feed order."""
        date = record.effective_date
        return date < self.effective_date or (date == self.effective_date and record.id < self.id)

    def to_params(self) -> Dict[str, str]:
        return {
            "p_cursor_created_at": self.effective_date.isoformat(),
            "p_cursor_id": self.id,
        }


class FeedPage(BaseModel):
    """One page of feed output."""

    records: List[MemoryRecord] = Field(default_factory=list)
    next_cursor: Optional[FeedCursor] = None
    has_more: bool = False


class SearchResult(BaseModel):
    """A ranked full-text search hit."""

    model_config = ConfigDict(extra="ignore")

    id: str
    memory_type: MemoryType
    title: str = ""
    generated_title: Optional[str] = None
    snippet_text: Optional[str] = None
    created_at: datetime
    memory_date: Optional[datetime] = None

    @field_validator("memory_type", mode="before")
    @classmethod
    def parse_memory_type(cls, v):
        return MemoryType.parse(v)

    @field_validator("created_at", "memory_date", mode="before")
    @classmethod
    def parse_datetime(cls, v):
        return coerce_datetime(v)

    @property
    def display_title(self) -> str:
        if self.generated_title and self.generated_title.strip():
            return self.generated_title.strip()
        if self.title and self.title.strip():
            return self.title.strip()
        return self.memory_type.default_title


class SearchResultsPage(BaseModel):
    """Paginated search results."""

    items: List[SearchResult] = Field(default_factory=list)
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1)
    has_more: bool = False


class RecentSearch(BaseModel):
    """A remembered search query."""

    query: str
    searched_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("searched_at", mode="before")
    @classmethod
    def parse_datetime(cls, v):
        return coerce_datetime(v)
