"""Year -> Season -> Month grouping for feed section headers."""

import calendar
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List

from ..models import MemoryRecord

# year -> season -> month -> records, each level in first-seen order
Grouped = Dict[int, Dict[str, Dict[int, List[MemoryRecord]]]]


@dataclass
class FeedSection:
    """One month header and the records under it."""

    year: int
    season: str
    month: int
    records: List[MemoryRecord] = field(default_factory=list)

    @property
    def month_name(self) -> str:
        return calendar.month_name[self.month]

    @property
    def label(self) -> str:
        return f"{self.month_name} {self.year} ({self.season})"


def group_records(records: Iterable[MemoryRecord]) -> Grouped:
    """Group already-ordered records by the year, season and month of their effective date.

    Input order is preserved inside every bucket, so a feed sorted newest first
    yields newest years, seasons and months first.
    """
    grouped: Grouped = {}
    for record in records:
        months = grouped.setdefault(record.year, {}).setdefault(record.season, {})
        months.setdefault(record.month, []).append(record)
    return grouped


def iter_sections(records: Iterable[MemoryRecord]) -> Iterator[FeedSection]:
    """Flatten the grouping into month sections for display."""
    for year, seasons in group_records(records).items():
        for season, months in seasons.items():
            for month, items in months.items():
                yield FeedSection(year=year, season=season, month=month, records=items)
