"""Per-record offline sync state machine.

Allowed edges::

    queued -> syncing -> synced
                      -> failed -> queued   (user retry)

Any id the tracker has never seen is ``synced``.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Set

from ..events import ConnectivityChangedEvent, EventBus, SyncStatusChangedEvent
from ..exceptions import InvalidStateTransitionError
from ..models import MemoryRecord, OfflineSyncStatus

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = frozenset(
    {
        (OfflineSyncStatus.QUEUED, OfflineSyncStatus.SYNCING),
        (OfflineSyncStatus.SYNCING, OfflineSyncStatus.SYNCED),
        (OfflineSyncStatus.SYNCING, OfflineSyncStatus.FAILED),
        (OfflineSyncStatus.FAILED, OfflineSyncStatus.QUEUED),
    }
)

PENDING_STATUSES = frozenset({OfflineSyncStatus.QUEUED, OfflineSyncStatus.SYNCING, OfflineSyncStatus.FAILED})


class OfflineSyncTracker:
    """Tracks sync status of locally queued writes and device connectivity."""

    def __init__(self, event_bus: Optional[EventBus] = None, online: bool = True):
        self._event_bus = event_bus
        self._online = online
        self._status: Dict[str, OfflineSyncStatus] = {}
        self._server_ids: Dict[str, str] = {}
        self._local_ids: Dict[str, str] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._detail_cached: Set[str] = set()

    # Connectivity

    @property
    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        if online == self._online:
            return
        self._online = online
        logger.info("Connectivity changed: %s", "online" if online else "offline")
        self._emit(ConnectivityChangedEvent(online=online))

    # State machine

    def is_tracked(self, local_id: str) -> bool:
        return local_id in self._status

    def register(self, local_id: str, initial_status: OfflineSyncStatus = OfflineSyncStatus.QUEUED) -> None:
        """Insert a locally queued record before the server has an id for it.

        Args:
            local_id: Provisional id generated on the device
            initial_status: queued for new writes; syncing/failed when restoring a persisted queue

        Raises:
            InvalidStateTransitionError: If the id is already tracked or the status is synced
        """
        if local_id in self._status:
            raise InvalidStateTransitionError(
                local_id, self._status[local_id].value, initial_status.value, reason="already registered"
            )
        if initial_status not in PENDING_STATUSES:
            raise InvalidStateTransitionError(
                local_id, "unregistered", initial_status.value, reason="a queued record cannot start synced"
            )
        self._status[local_id] = initial_status
        logger.debug("Registered %s as %s", local_id, initial_status.value)
        self._emit(SyncStatusChangedEvent(local_id=local_id, previous=None, status=initial_status))

    async def advance(
        self,
        local_id: str,
        new_status: OfflineSyncStatus,
        server_id: Optional[str] = None,
    ) -> OfflineSyncStatus:
        """Move a record along an allowed edge.

        On ``syncing -> synced`` the local id is mapped to the authoritative
        server id so the feed can drop the local copy once the server row shows up.

        Args:
            local_id: Local id passed to register()
            new_status: Target status
            server_id: Required on the synced edge

        Returns:
            The new status

        Raises:
            InvalidStateTransitionError: For any edge not in ALLOWED_TRANSITIONS
        """
        lock = self._locks.setdefault(local_id, asyncio.Lock())
        async with lock:
            current = self.status_of(local_id)
            if (current, new_status) not in ALLOWED_TRANSITIONS:
                raise InvalidStateTransitionError(local_id, current.value, new_status.value)
            if new_status == OfflineSyncStatus.SYNCED:
                if not server_id:
                    raise InvalidStateTransitionError(
                        local_id, current.value, new_status.value, reason="server_id is required"
                    )
                self._server_ids[local_id] = server_id
                self._local_ids[server_id] = local_id

            self._status[local_id] = new_status
            logger.debug("Sync %s: %s -> %s", local_id, current.value, new_status.value)
            self._emit(
                SyncStatusChangedEvent(
                    local_id=local_id,
                    previous=current,
                    status=new_status,
                    server_id=self._server_ids.get(local_id),
                )
            )
            return new_status

    def status_of(self, record_id: str) -> OfflineSyncStatus:
        """Status for a local or server id; unknown ids are synced."""
        return self._status.get(record_id, OfflineSyncStatus.SYNCED)

    def server_id_for(self, local_id: str) -> Optional[str]:
        return self._server_ids.get(local_id)

    def local_id_for(self, server_id: str) -> Optional[str]:
        return self._local_ids.get(server_id)

    def queued_ids(self) -> List[str]:
        """Local ids that are not yet synced."""
        return [lid for lid, status in self._status.items() if status in PENDING_STATUSES]

    def forget(self, local_id: str) -> None:
        """Drop the queue entry for a record. The local/server id mapping is kept."""
        self._status.pop(local_id, None)
        self._locks.pop(local_id, None)

    # Offline availability

    def mark_detail_cached(self, record_id: str) -> None:
        self._detail_cached.add(record_id)

    def unmark_detail_cached(self, record_id: str) -> None:
        self._detail_cached.discard(record_id)

    def is_detail_cached_locally(self, record_id: str) -> bool:
        return record_id in self._detail_cached

    def is_queued_write(self, record_id: str) -> bool:
        return self.status_of(record_id) in PENDING_STATUSES

    def is_preview_only(self, record_id: str) -> bool:
        """Offline, never fully downloaded, and not one of our own queued writes."""
        return (
            not self._online
            and not self.is_detail_cached_locally(record_id)
            and not self.is_queued_write(record_id)
        )

    def decorate(self, record: MemoryRecord) -> MemoryRecord:
        """Apply derived sync and offline flags to a record in place."""
        local_id = record.local_id
        if local_id and local_id in self._status:
            record.apply_sync_status(self._status[local_id], self._server_ids.get(local_id))

        if record.is_offline_queued:
            record.is_detail_cached_locally = True
            record.is_preview_only = False
            return record

        record_id = record.server_id or record.id
        record.is_detail_cached_locally = self.is_detail_cached_locally(record_id)
        record.is_preview_only = self.is_preview_only(record_id)
        return record

    def _emit(self, event) -> None:
        if self._event_bus is not None:
            self._event_bus.emit(event)
