"""JSON-file backed queue of memories captured while offline."""

import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..exceptions import NotFoundError
from ..models import (
    QUEUED_TITLE_MAX_CHARS,
    MediaKind,
    MediaSource,
    MemoryLocation,
    MemoryRecord,
    MemoryType,
    OfflineSyncStatus,
    PrimaryMedia,
    coerce_datetime,
    make_snippet,
)

logger = logging.getLogger(__name__)


def generate_local_id() -> str:
    """Provisional id for a memory that has not reached the server."""
    return str(uuid.uuid4())


class QueuedMemory(BaseModel):
    """A memory written on the device and not yet acknowledged by the server."""

    model_config = ConfigDict(extra="allow")

    local_id: str = Field(default_factory=generate_local_id)
    memory_type: MemoryType
    title: Optional[str] = None
    input_text: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    photo_paths: List[str] = Field(default_factory=list)
    video_paths: List[str] = Field(default_factory=list)
    video_poster_paths: List[Optional[str]] = Field(default_factory=list)
    audio_path: Optional[str] = None
    location: Optional[MemoryLocation] = None
    captured_at: Optional[datetime] = None
    memory_date: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: OfflineSyncStatus = OfflineSyncStatus.QUEUED
    retry_count: int = 0
    error_message: Optional[str] = None
    last_retry_at: Optional[datetime] = None
    server_memory_id: Optional[str] = None

    @field_validator("memory_type", mode="before")
    @classmethod
    def parse_memory_type(cls, v):
        return MemoryType.parse(v)

    @field_validator("status", mode="before")
    @classmethod
    def parse_status(cls, v):
        # Older queue files used "completed" for acknowledged writes
        if v == "completed":
            return OfflineSyncStatus.SYNCED
        return v

    @field_validator("captured_at", "memory_date", "created_at", "last_retry_at", mode="before")
    @classmethod
    def parse_datetime(cls, v):
        return coerce_datetime(v)

    def _queued_title(self) -> str:
        if self.title and self.title.strip():
            return self.title.strip()
        text = (self.input_text or "").strip()
        if len(text) > QUEUED_TITLE_MAX_CHARS:
            return f"{text[:QUEUED_TITLE_MAX_CHARS]}..."
        return text

    def _primary_media(self) -> Optional[PrimaryMedia]:
        if self.photo_paths:
            return PrimaryMedia(kind=MediaKind.PHOTO, path=self.photo_paths[0], source=MediaSource.LOCAL)
        if self.video_paths:
            poster = self.video_poster_paths[0] if self.video_poster_paths else None
            if poster and not poster.startswith("file://"):
                poster = f"file://{poster}"
            return PrimaryMedia(
                kind=MediaKind.VIDEO,
                path=self.video_paths[0],
                poster_path=poster or None,
                source=MediaSource.LOCAL,
            )
        return None

    def to_record(self) -> MemoryRecord:
        """Adapt to a feed record keyed by the local id.

        Queued writes hold their full payload on the device, so they are
        detail-cached and never preview-only.
        """
        return MemoryRecord(
            id=self.local_id,
            local_id=self.local_id,
            server_id=self.server_memory_id,
            memory_type=self.memory_type,
            title=self._queued_title(),
            input_text=self.input_text,
            snippet_text=make_snippet(self.input_text),
            tags=list(self.tags),
            memory_date=self.memory_date,
            device_timestamp=self.captured_at,
            created_at=self.created_at,
            primary_media=self._primary_media(),
            location=self.location,
            is_offline_queued=True,
            is_detail_cached_locally=True,
            is_preview_only=False,
            offline_sync_status=self.status,
        )


class LocalWriteQueue:
    """Persists queued memories as a JSON list, keyed by local id."""

    def __init__(self, path: Path):
        self.path = path

    def _load(self) -> List[QueuedMemory]:
        if not self.path.exists():
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return [QueuedMemory.model_validate(item) for item in data]
        except (json.JSONDecodeError, ValueError, TypeError) as e:
            logger.warning("Ignoring corrupt offline queue at %s: %s", self.path, e)
            return []

    def _save(self, memories: List[QueuedMemory]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data: List[Dict[str, Any]] = [m.model_dump(mode="json") for m in memories]
        tmp_path = self.path.with_suffix(".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        tmp_path.replace(self.path)

    def enqueue(self, memory: QueuedMemory) -> QueuedMemory:
        """Add a memory, replacing any entry with the same local id."""
        memories = [m for m in self._load() if m.local_id != memory.local_id]
        memories.append(memory)
        self._save(memories)
        logger.debug("Queued %s %s", memory.memory_type.value, memory.local_id)
        return memory

    def update(self, memory: QueuedMemory) -> QueuedMemory:
        return self.enqueue(memory)

    def get(self, local_id: str) -> Optional[QueuedMemory]:
        for memory in self._load():
            if memory.local_id == local_id:
                return memory
        return None

    def all(self) -> List[QueuedMemory]:
        return self._load()

    def by_status(self, status: OfflineSyncStatus) -> List[QueuedMemory]:
        return [m for m in self._load() if m.status == status]

    def remove(self, local_id: str) -> QueuedMemory:
        """Remove a memory after it synced.

        Raises:
            NotFoundError: If no entry has this local id
        """
        memories = self._load()
        for i, memory in enumerate(memories):
            if memory.local_id == local_id:
                del memories[i]
                self._save(memories)
                return memory
        raise NotFoundError(f"Memory not found in queue: {local_id}")

    def count(self, status: Optional[OfflineSyncStatus] = None) -> int:
        if status is None:
            return len(self._load())
        return len(self.by_status(status))

    def records(self) -> List[MemoryRecord]:
        """Feed records for every entry not yet acknowledged by the server."""
        return [m.to_record() for m in self._load() if m.status != OfflineSyncStatus.SYNCED]
