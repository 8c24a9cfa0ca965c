"""Event system for feed and sync notifications."""

from .base import BaseEvent, EventType
from .bus import EventBus
from .events import (
    ConnectivityChangedEvent,
    MediaUnavailableEvent,
    PageFailedEvent,
    PageLoadedEvent,
    SyncCompletedEvent,
    SyncStatusChangedEvent,
)

__all__ = [
    "BaseEvent",
    "EventType",
    "EventBus",
    "ConnectivityChangedEvent",
    "MediaUnavailableEvent",
    "PageFailedEvent",
    "PageLoadedEvent",
    "SyncCompletedEvent",
    "SyncStatusChangedEvent",
]
