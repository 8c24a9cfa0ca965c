"""Tests for the JSON-backed offline write queue."""

import json
from datetime import datetime, timezone

import pytest

from memfeed.exceptions import NotFoundError
from memfeed.models import MediaSource, MemoryType, OfflineSyncStatus
from memfeed.sync import LocalWriteQueue, QueuedMemory


@pytest.fixture
def queue(tmp_path):
    return LocalWriteQueue(tmp_path / "queue" / "queued_memories.json")


class TestLocalWriteQueue:
    def test_empty_when_file_missing(self, queue):
        assert queue.all() == []
        assert queue.count() == 0

    def test_enqueue_persists(self, queue):
        memory = QueuedMemory(memory_type="moment", input_text="Coffee with Sam")
        queue.enqueue(memory)

        reloaded = LocalWriteQueue(queue.path).get(memory.local_id)
        assert reloaded is not None
        assert reloaded.input_text == "Coffee with Sam"
        assert reloaded.memory_type == MemoryType.MOMENT

    def test_enqueue_upserts_by_local_id(self, queue):
        memory = queue.enqueue(QueuedMemory(memory_type="story", input_text="v1"))
        queue.update(memory.model_copy(update={"input_text": "v2"}))

        assert queue.count() == 1
        assert queue.get(memory.local_id).input_text == "v2"

    def test_by_status_and_count(self, queue):
        queue.enqueue(QueuedMemory(memory_type="moment", input_text="a"))
        queue.enqueue(QueuedMemory(memory_type="moment", input_text="b", status=OfflineSyncStatus.FAILED))

        assert queue.count(OfflineSyncStatus.QUEUED) == 1
        assert [m.input_text for m in queue.by_status(OfflineSyncStatus.FAILED)] == ["b"]

    def test_remove_unknown_raises(self, queue):
        with pytest.raises(NotFoundError):
            queue.remove("missing")

    def test_corrupt_file_loads_empty(self, queue):
        queue.path.parent.mkdir(parents=True)
        queue.path.write_text("{not json")

        assert queue.all() == []

    def test_legacy_completed_status(self, queue):
        queue.path.parent.mkdir(parents=True)
        queue.path.write_text(
            json.dumps([{"local_id": "l1", "memory_type": "moment", "status": "completed", "input_text": "x"}])
        )

        assert queue.get("l1").status == OfflineSyncStatus.SYNCED
        assert queue.records() == []


class TestQueuedMemoryRecord:
    def test_to_record_flags(self):
        memory = QueuedMemory(
            local_id="l1",
            memory_type="moment",
            input_text="A long walk by the river",
            photo_paths=["/tmp/a.jpg"],
            captured_at=datetime(2025, 7, 4, tzinfo=timezone.utc),
        )
        record = memory.to_record()

        assert record.id == "l1"
        assert record.local_id == "l1"
        assert record.is_offline_queued
        assert record.is_detail_cached_locally
        assert not record.is_preview_only
        assert record.offline_sync_status == OfflineSyncStatus.QUEUED
        assert record.primary_media.source == MediaSource.LOCAL
        assert record.effective_date == datetime(2025, 7, 4, tzinfo=timezone.utc)

    def test_title_derived_from_text(self):
        memory = QueuedMemory(memory_type="story", input_text="w" * 80)
        assert memory.to_record().title == "w" * 60 + "..."

    def test_memory_date_wins_over_capture(self):
        memory = QueuedMemory(
            memory_type="memento",
            memory_date="2020-05-01T00:00:00Z",
            captured_at="2025-01-01T00:00:00Z",
        )
        assert memory.to_record().year == 2020

    def test_video_poster_becomes_file_url(self):
        memory = QueuedMemory(
            memory_type="moment",
            video_paths=["/tmp/v.mp4"],
            video_poster_paths=["/tmp/v.jpg"],
        )
        media = memory.to_record().primary_media
        assert media.path == "/tmp/v.mp4"
        assert media.poster_path == "file:///tmp/v.jpg"
