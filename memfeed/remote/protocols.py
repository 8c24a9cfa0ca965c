"""Contracts for the remote collaborators consumed by the feed layer."""

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Tuple, Union

from ..models import MemoryType


class FeedSource(Protocol):
    """Remote unified timeline feed.

    Rows come back ordered by (effective date DESC, id DESC) and only include
    rows strictly beyond the cursor when one is given.
    """

    async def get_page(
        self,
        cursor_effective_date: Optional[datetime],
        cursor_id: Optional[str],
        page_size: int,
        memory_type: Optional[MemoryType],
    ) -> List[Dict[str, Any]]: ...

    async def get_years(self, memory_type: Optional[MemoryType]) -> List[int]: ...


class SearchSource(Protocol):
    """Ranked full-text search plus the server-side recent searches list."""

    async def search(
        self,
        query: str,
        page: int,
        page_size: int,
        memory_type: Optional[MemoryType],
    ) -> Union[List[Dict[str, Any]], Dict[str, Any]]:
        """Return up to page_size + 1 ranked rows for the page.

        An envelope ``{"items": [...], "has_more": bool}`` with at most
        page_size items is accepted too.
        """
        ...

    async def get_recent_searches(self) -> List[Dict[str, Any]]: ...

    async def upsert_recent_search(self, query: str) -> None: ...

    async def clear_recent_searches(self) -> None: ...


class UrlSigner(Protocol):
    """Issues time-limited URLs for private storage objects."""

    async def sign(
        self,
        bucket: str,
        path: str,
        expires_in: int,
        access_token: Optional[str] = None,
    ) -> Tuple[str, int]:
        """Return (url, ttl_seconds)."""
        ...
