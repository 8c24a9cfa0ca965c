"""Cursor-paginated unified feed of moments, stories and mementos."""

import asyncio
import logging
import time
from enum import Enum
from typing import List, Optional, Set, Tuple

from ..config import PHOTO_BUCKET, VIDEO_BUCKET
from ..events import EventBus, MediaUnavailableEvent, PageFailedEvent, PageLoadedEvent
from ..exceptions import (
    AuthRequiredError,
    MemfeedError,
    NetworkUnavailableError,
    ValidationError,
    user_message,
)
from ..media.signed_urls import SignedUrlCache
from ..models import FeedCursor, FeedPage, MediaKind, MemoryRecord, MemoryType
from ..remote.protocols import FeedSource
from ..sync.queue import LocalWriteQueue
from ..sync.tracker import OfflineSyncTracker
from .grouping import FeedSection, Grouped, group_records, iter_sections

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class FeedState(str, Enum):
    INITIAL = "initial"
    LOADING = "loading"
    READY = "ready"
    APPENDING = "appending"
    ERROR = "error"
    PAGINATION_ERROR = "pagination_error"
    EMPTY = "empty"


class FeedPager:
    """Pages through the remote feed and merges in locally queued writes.

    One pager serves one logical reader. Independent pagers (e.g. an "All"
    feed and a "Stories" feed) share nothing and can load concurrently.
    Every load captures the current generation; teardown(), set_filter() and
    refresh() bump it, and results from an older generation are dropped on
    arrival.
    """

    def __init__(
        self,
        source: FeedSource,
        tracker: OfflineSyncTracker,
        url_cache: Optional[SignedUrlCache] = None,
        queue: Optional[LocalWriteQueue] = None,
        event_bus: Optional[EventBus] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        memory_type: Optional[MemoryType] = None,
        photo_bucket: str = PHOTO_BUCKET,
        video_bucket: str = VIDEO_BUCKET,
        name: str = "unified",
    ):
        self._source = source
        self._tracker = tracker
        self._url_cache = url_cache
        self._queue = queue
        self._event_bus = event_bus
        self._page_size = self._check_page_size(page_size)
        self._memory_type = memory_type
        self.photo_bucket = photo_bucket
        self.video_bucket = video_bucket
        self.name = name

        self._generation = 0
        self._inflight_generation: Optional[int] = None
        self._reset(FeedState.INITIAL)

    def _reset(self, state: FeedState) -> None:
        self._records: List[MemoryRecord] = []
        self._seen_ids: Set[str] = set()
        self._cursor: Optional[FeedCursor] = None
        self._has_more = False
        self._page_number = 0
        self.state = state
        self.error_message: Optional[str] = None
        self.last_error: Optional[BaseException] = None

    # Read-only views

    @property
    def records(self) -> List[MemoryRecord]:
        """Loaded records with sync and offline flags re-derived from the tracker."""
        return self._current()

    @property
    def next_cursor(self) -> Optional[FeedCursor]:
        return self._cursor

    @property
    def has_more(self) -> bool:
        return self._has_more

    @property
    def memory_type(self) -> Optional[MemoryType]:
        return self._memory_type

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_offline(self) -> bool:
        return not self._tracker.is_online

    def group(self) -> Grouped:
        """Year -> Season -> Month grouping of everything loaded so far."""
        return group_records(self._current())

    def sections(self) -> List[FeedSection]:
        return list(iter_sections(self._current()))

    # Lifecycle

    def teardown(self) -> None:
        """Drop loaded pages; any fetch still in flight is discarded on arrival."""
        self._generation += 1
        self._inflight_generation = None
        self._reset(FeedState.INITIAL)

    def set_filter(self, memory_type: Optional[MemoryType]) -> None:
        """Switch the memory type filter. Loaded pages are dropped."""
        if memory_type == self._memory_type:
            return
        self.teardown()
        self._memory_type = memory_type

    async def refresh(self) -> FeedPage:
        """Reload the first page. Ignored while offline."""
        if self.is_offline:
            logger.info("Feed %s: refresh ignored while offline", self.name)
            return FeedPage(records=self.records, next_cursor=self._cursor, has_more=self._has_more)
        return await self.load_initial(self._memory_type, self._page_size)

    # Loading

    async def load_initial(
        self,
        memory_type: Optional[MemoryType] = None,
        page_size: Optional[int] = None,
    ) -> FeedPage:
        """Load the first page, replacing anything loaded before.

        Offline, only locally queued writes are shown. A failed first page
        puts the feed in the ``error`` state until retried.

        Args:
            memory_type: Filter (None for all types)
            page_size: Rows per remote page

        Returns:
            The first page

        Raises:
            AuthRequiredError: No usable session
            ValidationError: Invalid page size or filter
        """
        size = self._check_page_size(page_size) if page_size is not None else self._page_size

        self._generation += 1
        generation = self._generation
        self._memory_type = memory_type
        self._page_size = size
        self._reset(FeedState.LOADING)

        if self.is_offline:
            records = [self._tracker.decorate(r) for r in self._queued_records(upper=None, lower=None)]
            self._apply(records, cursor=None, has_more=False)
            logger.info("Feed %s: offline, showing %d queued memories", self.name, len(records))
            return FeedPage(records=records, has_more=False)

        self._inflight_generation = generation
        try:
            return await self._load_page(generation, cursor=None, page_number=1)
        finally:
            if self._inflight_generation == generation:
                self._inflight_generation = None

    async def load_more(
        self,
        cursor: Optional[FeedCursor] = None,
        memory_type: Optional[MemoryType] = None,
        page_size: Optional[int] = None,
    ) -> FeedPage:
        """Load the page after ``cursor`` (default: after the last loaded row).

        A failure keeps earlier pages, sets ``pagination_error`` and leaves the
        cursor in place so the next call retries the same page.

        Raises:
            AuthRequiredError: No usable session
            ValidationError: The filter differs from the loaded feed's
        """
        if self.state in (FeedState.INITIAL, FeedState.ERROR) and cursor is None:
            return await self.load_initial(memory_type if memory_type is not None else self._memory_type, page_size)
        if memory_type is not None and memory_type != self._memory_type:
            raise ValidationError(
                f"Feed is filtered by {self._memory_type.value if self._memory_type else 'all'}; "
                "call load_initial() to change the filter"
            )
        if page_size is not None:
            self._page_size = self._check_page_size(page_size)

        if self._inflight_generation == self._generation:
            logger.warning("Feed %s: load_more called while a page is loading, ignoring", self.name)
            return FeedPage(next_cursor=self._cursor, has_more=self._has_more)

        if cursor is not None:
            self._cursor = cursor
            self._has_more = True
        if not self._has_more:
            return FeedPage(next_cursor=self._cursor, has_more=False)

        generation = self._generation
        page_number = self._page_number + 1
        self.state = FeedState.APPENDING

        if self.is_offline:
            error = NetworkUnavailableError("Device is offline")
            self._fail(error, page_number)
            return FeedPage(next_cursor=self._cursor, has_more=self._has_more)

        self._inflight_generation = generation
        try:
            return await self._load_page(generation, cursor=self._cursor, page_number=page_number)
        finally:
            if self._inflight_generation == generation:
                self._inflight_generation = None

    async def fetch_available_years(self, memory_type: Optional[MemoryType] = None) -> List[int]:
        """Years that have at least one memory, newest first."""
        years = await self._source.get_years(memory_type if memory_type is not None else self._memory_type)
        return sorted(set(years), reverse=True)

    def reconcile(self) -> int:
        """Re-apply sync status to loaded records and drop local copies the server now has.

        Returns:
            Number of local copies removed
        """
        remote_ids = {r.id for r in self._records if not r.is_offline_queued}
        kept = []
        removed = 0
        for record in self._records:
            if record.is_offline_queued and record.local_id:
                server_id = self._tracker.server_id_for(record.local_id)
                if server_id and server_id in remote_ids:
                    removed += 1
                    continue
            kept.append(self._tracker.decorate(record))
        self._records = kept
        if removed:
            logger.debug("Feed %s: reconciled %d synced local memories", self.name, removed)
        return removed

    # Internals

    async def _load_page(self, generation: int, cursor: Optional[FeedCursor], page_number: int) -> FeedPage:
        started = time.monotonic()
        try:
            rows = await self._source.get_page(
                cursor.effective_date if cursor else None,
                cursor.id if cursor else None,
                self._page_size,
                self._memory_type,
            )
            remote = [MemoryRecord.from_row(row) for row in rows]
        except (AuthRequiredError, ValidationError) as e:
            if generation == self._generation:
                self._fail(e, page_number)
            raise
        except MemfeedError as e:
            if generation != self._generation:
                logger.debug("Feed %s: dropping failure from stale generation %d", self.name, generation)
                return FeedPage()
            self._fail(e, page_number)
            records = self.records if page_number == 1 else []
            return FeedPage(records=records, next_cursor=self._cursor, has_more=self._has_more)
        duration_ms = int((time.monotonic() - started) * 1000)

        if generation != self._generation:
            logger.debug("Feed %s: dropping page from stale generation %d", self.name, generation)
            return FeedPage()

        has_more = len(remote) == self._page_size
        next_cursor = FeedCursor.from_record(remote[-1]) if remote else cursor
        records = self._merge(remote, cursor, remote[-1] if has_more and remote else None)

        await self._hydrate(records)
        if generation != self._generation:
            logger.debug("Feed %s: dropping hydrated page from stale generation %d", self.name, generation)
            return FeedPage()

        self._apply(records, next_cursor, has_more)
        self._page_number = page_number
        logger.debug(
            "Feed %s: page %d loaded (%d remote, %d total) in %dms",
            self.name,
            page_number,
            len(remote),
            len(records),
            duration_ms,
        )
        self._emit(PageLoadedEvent(feed=self.name, page_number=page_number, count=len(records), duration_ms=duration_ms))
        return FeedPage(records=records, next_cursor=next_cursor, has_more=has_more)

    def _merge(
        self,
        remote: List[MemoryRecord],
        cursor: Optional[FeedCursor],
        lower: Optional[MemoryRecord],
    ) -> List[MemoryRecord]:
        page_ids = {r.id for r in remote}
        merged = []
        for record in remote:
            if record.id in self._seen_ids:
                logger.debug("Feed %s: dropping duplicate %s", self.name, record.id)
                continue
            merged.append(record)

        upper = (cursor.effective_date, cursor.id) if cursor else None
        for record in self._queued_records(upper, lower.sort_key() if lower else None):
            server_id = self._tracker.server_id_for(record.id)
            if server_id and (server_id in page_ids or server_id in self._seen_ids):
                continue
            merged.append(record)

        merged.sort(key=lambda r: r.sort_key(), reverse=True)
        return [self._tracker.decorate(r) for r in merged]

    def _queued_records(self, upper: Optional[Tuple], lower: Optional[Tuple]) -> List[MemoryRecord]:
        """Locally queued writes inside the window ``lower < key < upper``."""
        if self._queue is None:
            return []
        records = []
        for record in self._queue.records():
            if self._memory_type is not None and record.memory_type != self._memory_type:
                continue
            if record.id in self._seen_ids:
                continue
            key = record.sort_key()
            if upper is not None and not key < upper:
                continue
            if lower is not None and not key > lower:
                continue
            records.append(record)
        records.sort(key=lambda r: r.sort_key(), reverse=True)
        return records

    async def _hydrate(self, records: List[MemoryRecord]) -> None:
        await asyncio.gather(*(self._hydrate_one(r) for r in records if r.primary_media is not None))

    async def _hydrate_one(self, record: MemoryRecord) -> None:
        media = record.primary_media
        if media.is_local:
            record.media_url = media.path
            record.poster_url = media.poster_path
            return
        if self._url_cache is None:
            return
        try:
            record.media_url, record.poster_url = await self._url_cache.resolve_media(
                media, self.photo_bucket, self.video_bucket
            )
        except MemfeedError as e:
            bucket = self.photo_bucket if media.kind == MediaKind.PHOTO else self.video_bucket
            logger.warning("Media unavailable for %s: %s", record.id, e)
            record.media_unavailable = True
            self._emit(MediaUnavailableEvent(record_id=record.id, bucket=bucket, path=media.path, error=str(e)))

    def _current(self) -> List[MemoryRecord]:
        return [self._tracker.decorate(r) for r in self._records]

    def _apply(self, records: List[MemoryRecord], cursor: Optional[FeedCursor], has_more: bool) -> None:
        # A server row replaces its local copy loaded on an earlier page
        replaced = {self._tracker.local_id_for(r.id) for r in records if not r.is_offline_queued}
        replaced.discard(None)
        if replaced:
            kept = [r for r in self._records if not (r.is_offline_queued and r.local_id in replaced)]
            if len(kept) != len(self._records):
                logger.debug("Feed %s: replaced %d local copies with synced rows", self.name, len(self._records) - len(kept))
            self._records = kept
        self._records.extend(records)
        self._seen_ids.update(r.id for r in records)
        self._cursor = cursor
        self._has_more = has_more
        self.error_message = None
        self.last_error = None
        self.state = FeedState.READY if self._records else FeedState.EMPTY

    def _fail(self, error: BaseException, page_number: int) -> None:
        self.last_error = error
        self.error_message = user_message(error)
        if page_number == 1:
            self.state = FeedState.ERROR
            self._records = [self._tracker.decorate(r) for r in self._queued_records(None, None)]
            self._seen_ids = {r.id for r in self._records}
        else:
            self.state = FeedState.PAGINATION_ERROR
        logger.warning("Feed %s: page %d failed: %s", self.name, page_number, error)
        self._emit(
            PageFailedEvent(
                feed=self.name,
                page_number=page_number,
                error=str(error),
                error_type=type(error).__name__,
                retryable=getattr(error, "retryable", False),
            )
        )

    def _emit(self, event) -> None:
        if self._event_bus is not None:
            self._event_bus.emit(event)

    @staticmethod
    def _check_page_size(page_size: int) -> int:
        if page_size < 1 or page_size > MAX_PAGE_SIZE:
            raise ValidationError(f"page_size must be between 1 and {MAX_PAGE_SIZE}, got {page_size}")
        return page_size
