"""Base event model and event type enum."""

from datetime import datetime, timezone
from enum import IntEnum

from pydantic import BaseModel, Field


class EventType(IntEnum):
    """Event type enumeration."""

    # Feed events
    PAGE_LOADED = 1
    PAGE_FAILED = 2
    MEDIA_UNAVAILABLE = 3

    # Sync events
    SYNC_STATUS_CHANGED = 10
    SYNC_COMPLETED = 11
    CONNECTIVITY_CHANGED = 12


class BaseEvent(BaseModel):
    """Base class for all feed and sync events."""

    model_config = {"frozen": True, "use_enum_values": False}

    event_type: EventType = Field(frozen=True)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
