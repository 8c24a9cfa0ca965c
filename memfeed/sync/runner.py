"""Drains the offline write queue and drives the sync state machine."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, Tuple

from ..events import EventBus, SyncCompletedEvent
from ..exceptions import NetworkUnavailableError, NotFoundError
from ..models import OfflineSyncStatus
from .queue import LocalWriteQueue, QueuedMemory
from .tracker import OfflineSyncTracker

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3

SaveCallback = Callable[[QueuedMemory], Awaitable[str]]


@dataclass
class SyncSummary:
    synced: int = 0
    requeued: int = 0
    failed: int = 0
    skipped: bool = False


class SyncRunner:
    """Pushes queued memories to the server through an injected save call.

    ``save`` receives the queued memory and returns the server id. Any
    exception it raises counts as a failed attempt.
    """

    def __init__(
        self,
        queue: LocalWriteQueue,
        tracker: OfflineSyncTracker,
        save: SaveCallback,
        event_bus: Optional[EventBus] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ):
        self._queue = queue
        self._tracker = tracker
        self._save = save
        self._event_bus = event_bus
        self._max_retries = max_retries
        self._lock = asyncio.Lock()

    def restore(self) -> int:
        """Register persisted queue entries with the tracker.

        An entry persisted mid-upload (``syncing``) goes back to ``queued``.

        Returns:
            Number of entries registered
        """
        registered = 0
        for memory in self._queue.all():
            if memory.status == OfflineSyncStatus.SYNCED or self._tracker.is_tracked(memory.local_id):
                continue
            if memory.status == OfflineSyncStatus.SYNCING:
                memory = self._queue.update(memory.model_copy(update={"status": OfflineSyncStatus.QUEUED}))
            self._tracker.register(memory.local_id, memory.status)
            registered += 1
        return registered

    async def sync_all(self) -> SyncSummary:
        """Sync every queued entry once.

        Skips when offline or when a pass is already running. Entries that
        used up their retries stay failed until retry() is called.
        """
        if self._lock.locked():
            logger.info("Sync already running, skipping")
            return SyncSummary(skipped=True)
        if not self._tracker.is_online:
            return SyncSummary(skipped=True)

        async with self._lock:
            self.restore()
            summary = SyncSummary()
            for memory in self._queue.by_status(OfflineSyncStatus.QUEUED):
                result, _ = await self._sync_entry(memory)
                if result == OfflineSyncStatus.SYNCED:
                    summary.synced += 1
                elif result == OfflineSyncStatus.QUEUED:
                    summary.requeued += 1
                else:
                    summary.failed += 1
            if summary.synced or summary.failed:
                logger.info(
                    "Sync pass: %d synced, %d requeued, %d failed", summary.synced, summary.requeued, summary.failed
                )
            return summary

    async def sync_one(self, local_id: str) -> str:
        """Sync a specific queued memory now.

        Returns:
            The server id

        Raises:
            NetworkUnavailableError: If the device is offline
            NotFoundError: If the memory is not queued
            Exception: Whatever the save call raised
        """
        if not self._tracker.is_online:
            raise NetworkUnavailableError("Device is offline")

        memory = self._queue.get(local_id)
        if memory is None or memory.status != OfflineSyncStatus.QUEUED:
            raise NotFoundError(f"Memory not queued for sync: {local_id}")
        if not self._tracker.is_tracked(local_id):
            self._tracker.register(local_id, memory.status)

        async with self._lock:
            _, error = await self._sync_entry(memory)
        if error is not None:
            raise error
        return self._tracker.server_id_for(local_id)

    async def retry(self, local_id: str) -> None:
        """User-initiated retry of a failed memory (failed -> queued)."""
        memory = self._queue.get(local_id)
        if memory is None:
            raise NotFoundError(f"Memory not found in queue: {local_id}")
        if not self._tracker.is_tracked(local_id):
            self._tracker.register(local_id, memory.status)
        await self._tracker.advance(local_id, OfflineSyncStatus.QUEUED)
        self._queue.update(memory.model_copy(update={"status": OfflineSyncStatus.QUEUED, "retry_count": 0}))

    async def _sync_entry(self, memory: QueuedMemory) -> Tuple[OfflineSyncStatus, Optional[Exception]]:
        local_id = memory.local_id
        await self._tracker.advance(local_id, OfflineSyncStatus.SYNCING)
        memory = self._queue.update(
            memory.model_copy(
                update={"status": OfflineSyncStatus.SYNCING, "last_retry_at": datetime.now(timezone.utc)}
            )
        )

        try:
            server_id = await self._save(memory)
        except Exception as e:
            return await self._record_failure(memory, e), e

        await self._tracker.advance(local_id, OfflineSyncStatus.SYNCED, server_id=server_id)
        self._queue.remove(local_id)
        self._tracker.forget(local_id)
        logger.info("Synced %s %s -> %s", memory.memory_type.value, local_id, server_id)
        if self._event_bus is not None:
            self._event_bus.emit(
                SyncCompletedEvent(local_id=local_id, server_id=server_id, memory_type=memory.memory_type)
            )
        return OfflineSyncStatus.SYNCED, None

    async def _record_failure(self, memory: QueuedMemory, error: Exception) -> OfflineSyncStatus:
        local_id = memory.local_id
        retry_count = memory.retry_count + 1
        logger.warning("Sync attempt %d for %s failed: %s", retry_count, local_id, error)

        await self._tracker.advance(local_id, OfflineSyncStatus.FAILED)
        status = OfflineSyncStatus.FAILED
        if retry_count < self._max_retries:
            await self._tracker.advance(local_id, OfflineSyncStatus.QUEUED)
            status = OfflineSyncStatus.QUEUED

        self._queue.update(
            memory.model_copy(
                update={
                    "status": status,
                    "retry_count": retry_count,
                    "error_message": str(error),
                    "last_retry_at": datetime.now(timezone.utc),
                }
            )
        )
        return status
