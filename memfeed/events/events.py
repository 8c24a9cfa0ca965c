"""Event classes emitted by the feed, cache and sync components."""

from typing import Optional

from pydantic import Field

from ..models import MemoryType, OfflineSyncStatus
from .base import BaseEvent, EventType


class PageLoadedEvent(BaseEvent):
    """A feed page was fetched and applied.

    Args:
        page_number: 1 for the initial page
        count: Records in the page after merging local writes
        duration_ms: Time spent on the remote call
    """

    event_type: EventType = Field(default=EventType.PAGE_LOADED, frozen=True)
    feed: str
    page_number: int = Field(ge=1)
    count: int = Field(ge=0)
    duration_ms: int = Field(default=0, ge=0)


class PageFailedEvent(BaseEvent):
    """A feed page fetch failed. Earlier pages stay visible."""

    event_type: EventType = Field(default=EventType.PAGE_FAILED, frozen=True)
    feed: str
    page_number: int = Field(ge=1)
    error: str
    error_type: str
    retryable: bool = False


class MediaUnavailableEvent(BaseEvent):
    """Signing a record's primary media failed; the record shows a placeholder."""

    event_type: EventType = Field(default=EventType.MEDIA_UNAVAILABLE, frozen=True)
    record_id: str
    bucket: str
    path: str
    error: str


class SyncStatusChangedEvent(BaseEvent):
    """A queued record took a valid sync transition."""

    event_type: EventType = Field(default=EventType.SYNC_STATUS_CHANGED, frozen=True)
    local_id: str
    previous: Optional[OfflineSyncStatus] = None
    status: OfflineSyncStatus
    server_id: Optional[str] = None


class SyncCompletedEvent(BaseEvent):
    """A queued memory reached the server."""

    event_type: EventType = Field(default=EventType.SYNC_COMPLETED, frozen=True)
    local_id: str
    server_id: str
    memory_type: MemoryType


class ConnectivityChangedEvent(BaseEvent):
    event_type: EventType = Field(default=EventType.CONNECTIVITY_CHANGED, frozen=True)
    online: bool
