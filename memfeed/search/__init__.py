"""Full-text search and recent searches."""

from .pager import SearchPager
from .recent import RecentSearches

__all__ = ["RecentSearches", "SearchPager"]
