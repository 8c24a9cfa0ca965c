"""Bounded most-recent-first list of distinct search queries."""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional

from ..exceptions import ValidationError
from ..models import RecentSearch

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 5


class RecentSearches:
    """Small LRU of search queries.

    Queries are trimmed before comparison and storage; comparison is
    case-sensitive. Re-adding a query moves it to the front instead of
    adding a second entry, and the oldest entry is evicted past ``limit``.
    """

    def __init__(self, limit: int = DEFAULT_LIMIT, path: Optional[Path] = None):
        if limit < 1:
            raise ValidationError(f"limit must be at least 1, got {limit}")
        self.limit = limit
        self.path = path
        self._items: List[RecentSearch] = self._load() if path else []

    def _load(self) -> List[RecentSearch]:
        if not self.path.exists():
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            items = [RecentSearch.model_validate(item) for item in data]
        except (json.JSONDecodeError, ValueError, TypeError) as e:
            logger.warning("Ignoring corrupt recent searches at %s: %s", self.path, e)
            return []
        return items[: self.limit]

    def _save(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump([item.model_dump(mode="json") for item in self._items], f, indent=2, ensure_ascii=False)

    def upsert(self, query: str) -> RecentSearch:
        """Record a query as the most recent search.

        Raises:
            ValidationError: If the query is empty after trimming
        """
        normalized = (query or "").strip()
        if not normalized:
            raise ValidationError("Search query cannot be empty")

        entry = RecentSearch(query=normalized, searched_at=datetime.now(timezone.utc))
        self._items = [entry] + [item for item in self._items if item.query != normalized]
        del self._items[self.limit :]
        self._save()
        return entry

    def replace(self, items: Iterable[RecentSearch]) -> None:
        """Replace the list with server-side entries, newest first."""
        ordered = sorted(items, key=lambda item: item.searched_at, reverse=True)
        seen = set()
        self._items = []
        for item in ordered:
            query = item.query.strip()
            if not query or query in seen:
                continue
            seen.add(query)
            self._items.append(item.model_copy(update={"query": query}))
        del self._items[self.limit :]
        self._save()

    def items(self) -> List[RecentSearch]:
        return list(self._items)

    def queries(self) -> List[str]:
        return [item.query for item in self._items]

    def clear(self) -> None:
        self._items = []
        self._save()

    def __len__(self) -> int:
        return len(self._items)
