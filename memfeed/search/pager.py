"""Ranked full-text search with page/offset pagination."""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple, Union

from ..exceptions import MemfeedError, ValidationError, user_message
from ..models import MemoryType, RecentSearch, SearchResult, SearchResultsPage
from ..remote.protocols import SearchSource
from .recent import RecentSearches

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 50
DEFAULT_DEBOUNCE_SECONDS = 0.25


def clamp_page_size(page_size: int) -> int:
    return max(1, min(page_size, MAX_PAGE_SIZE))


def split_rows(response: Union[List[Dict[str, Any]], Dict[str, Any]], page_size: int) -> Tuple[List[Dict[str, Any]], bool]:
    """Trim a search response to one page and work out ``has_more``.

    A plain list holds up to ``page_size + 1`` rows; the extra row only
    signals that another page exists. An ``{"items", "has_more"}`` envelope
    carries the flag itself.
    """
    if isinstance(response, dict):
        rows = list(response.get("items") or [])
        return rows[:page_size], bool(response.get("has_more")) or len(rows) > page_size
    rows = list(response or [])
    return rows[:page_size], len(rows) > page_size


class SearchPager:
    """Runs searches for one search box.

    Page 1 of a new query supersedes any search still in flight; its results
    are dropped on arrival. ``next_page()`` continues the current query and
    accumulates results.
    """

    def __init__(
        self,
        source: SearchSource,
        recent: Optional[RecentSearches] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
    ):
        self._source = source
        self.recent = recent if recent is not None else RecentSearches()
        self.page_size = clamp_page_size(page_size)
        self.debounce_seconds = debounce_seconds

        self._token = 0
        self.query: Optional[str] = None
        self.memory_type: Optional[MemoryType] = None
        self.items: List[SearchResult] = []
        self.page = 0
        self.has_more = False
        self.is_loading = False
        self.error_message: Optional[str] = None

    async def search(
        self,
        query: str,
        page: int = 1,
        page_size: Optional[int] = None,
        memory_type: Optional[MemoryType] = None,
    ) -> SearchResultsPage:
        """Search memories.

        Args:
            query: Search text; trimmed before use
            page: 1-based page number
            page_size: Results per page, clamped to [1, 50]
            memory_type: Optional type filter

        Returns:
            The requested page. Empty if a newer query superseded this one.

        Raises:
            ValidationError: Empty query or page < 1 (raised before any network call)
            MemfeedError: The search call failed
        """
        normalized = (query or "").strip()
        if not normalized:
            raise ValidationError("Search query cannot be empty")
        if page < 1:
            raise ValidationError(f"page must be at least 1, got {page}")
        size = clamp_page_size(page_size if page_size is not None else self.page_size)

        if page == 1 or normalized != self.query or memory_type != self.memory_type:
            self._token += 1
            self.query = normalized
            self.memory_type = memory_type
            self.items = []
            self.page = 0
            self.has_more = False
        token = self._token

        self.is_loading = True
        self.error_message = None
        try:
            response = await self._source.search(normalized, page, size, memory_type)
            if token != self._token:
                logger.debug("Dropping results for superseded query %r", normalized)
                return SearchResultsPage(page=page, page_size=size)

            rows, has_more = split_rows(response, size)
            results = [SearchResult.model_validate(row) for row in rows]
        except MemfeedError as e:
            if token == self._token:
                self.error_message = user_message(e)
            logger.warning("Search for %r (page %d) failed: %s", normalized, page, e)
            raise
        finally:
            if token == self._token:
                self.is_loading = False

        self.items = results if page == 1 else self.items + results
        self.page = page
        self.page_size = size
        self.has_more = has_more

        if page == 1 and results:
            await self._remember(normalized)

        logger.debug("Search %r page %d: %d results, has_more=%s", normalized, page, len(results), has_more)
        return SearchResultsPage(items=results, page=page, page_size=size, has_more=has_more)

    async def search_debounced(self, query: str, memory_type: Optional[MemoryType] = None) -> Optional[SearchResultsPage]:
        """Search after the debounce delay unless a newer keystroke arrived.

        Returns:
            The first page, or None if superseded or the query is empty
        """
        self._token += 1
        token = self._token
        if not (query or "").strip():
            self.clear()
            return None
        await asyncio.sleep(self.debounce_seconds)
        if token != self._token:
            return None
        return await self.search(query, 1, memory_type=memory_type)

    async def next_page(self) -> SearchResultsPage:
        """Fetch the page after the last one loaded for the current query."""
        if self.query is None or not self.has_more or self.is_loading:
            return SearchResultsPage(page=max(self.page, 1), page_size=self.page_size)
        return await self.search(self.query, self.page + 1, self.page_size, self.memory_type)

    async def refresh(self) -> Optional[SearchResultsPage]:
        if self.query is None:
            return None
        return await self.search(self.query, 1, self.page_size, self.memory_type)

    def clear(self) -> None:
        self._token += 1
        self.query = None
        self.memory_type = None
        self.items = []
        self.page = 0
        self.has_more = False
        self.is_loading = False
        self.error_message = None

    # Recent searches

    async def recent_searches(self) -> List[RecentSearch]:
        """Recent searches from the server, falling back to the local list."""
        try:
            rows = await self._source.get_recent_searches()
        except MemfeedError as e:
            logger.warning("Failed to load recent searches: %s", e)
            return self.recent.items()
        self.recent.replace(RecentSearch.model_validate(row) for row in rows)
        return self.recent.items()

    async def clear_recent_searches(self) -> None:
        self.recent.clear()
        await self._source.clear_recent_searches()

    async def _remember(self, query: str) -> None:
        try:
            self.recent.upsert(query)
        except OSError as e:
            logger.warning("Failed to save recent search locally: %s", e)
        try:
            await self._source.upsert_recent_search(query)
        except MemfeedError as e:
            logger.warning("Failed to save recent search: %s", e)
