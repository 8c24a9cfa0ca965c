"""Offline write queue and sync state tracking."""

from .queue import LocalWriteQueue, QueuedMemory, generate_local_id
from .runner import SyncRunner, SyncSummary
from .tracker import ALLOWED_TRANSITIONS, OfflineSyncTracker

__all__ = [
    "ALLOWED_TRANSITIONS",
    "LocalWriteQueue",
    "OfflineSyncTracker",
    "QueuedMemory",
    "SyncRunner",
    "SyncSummary",
    "generate_local_id",
]
