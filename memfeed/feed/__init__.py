"""Unified memory feed: pagination, merging and grouping."""

from .grouping import FeedSection, group_records, iter_sections
from .pager import FeedPager, FeedState

__all__ = ["FeedPager", "FeedSection", "FeedState", "group_records", "iter_sections"]
