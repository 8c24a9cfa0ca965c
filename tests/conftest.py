"""Test configuration and fixtures."""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

from memfeed.exceptions import NetworkUnavailableError
from memfeed.models import coerce_datetime, effective_date_of


def make_row(
    row_id: str,
    date: str,
    memory_type: str = "moment",
    title: str = "",
    created_at: Optional[str] = None,
    memory_date: Optional[str] = None,
    primary_media: Optional[Dict[str, Any]] = None,
    **extra,
) -> Dict[str, Any]:
    """Build a unified timeline feed row; ``date`` is the captured_at (effective) timestamp."""
    row = {
        "id": row_id,
        "user_id": "user-1",
        "title": title,
        "input_text": f"Text for {row_id}",
        "processed_text": None,
        "generated_title": None,
        "tags": [],
        "memory_type": memory_type,
        "captured_at": date,
        "created_at": created_at or date,
        "memory_date": memory_date,
        "primary_media": primary_media,
        "snippet_text": f"Text for {row_id}",
        "memory_location_data": None,
    }
    row.update(extra)
    return row


def _row_key(row: Dict[str, Any]):
    date = effective_date_of(
        coerce_datetime(row.get("memory_date")),
        coerce_datetime(row.get("captured_at")),
        coerce_datetime(row["created_at"]),
    )
    return (date, row["id"])


class FakeFeedSource:
    """In-memory feed that honors the strict (effective_date, id) cursor predicate."""

    def __init__(self, rows: Optional[List[Dict[str, Any]]] = None):
        self.rows = list(rows or [])
        self.calls: List[Dict[str, Any]] = []
        self.errors: List[Optional[BaseException]] = []
        self.years: List[int] = []
        self.gate: Optional[asyncio.Event] = None

    def fail_next(self, error: BaseException) -> None:
        self.errors.append(error)

    async def get_page(self, cursor_effective_date, cursor_id, page_size, memory_type):
        self.calls.append(
            {"cursor": (cursor_effective_date, cursor_id), "page_size": page_size, "memory_type": memory_type}
        )
        if self.gate is not None:
            await self.gate.wait()
        if self.errors:
            error = self.errors.pop(0)
            if error is not None:
                raise error

        rows = [r for r in self.rows if memory_type is None or r["memory_type"] == memory_type.value]
        rows.sort(key=_row_key, reverse=True)
        if cursor_effective_date is not None:
            bound = (cursor_effective_date, cursor_id)
            rows = [r for r in rows if _row_key(r) < bound]
        return [dict(r) for r in rows[:page_size]]

    async def get_years(self, memory_type):
        return list(self.years)


class FakeSigner:
    """Counts signing calls; optionally blocks until released or fails."""

    def __init__(self, ttl: int = 3600):
        self.ttl = ttl
        self.calls: List[tuple] = []
        self.failing_paths = set()
        self.gate: Optional[asyncio.Event] = None

    async def sign(self, bucket, path, expires_in, access_token=None):
        self.calls.append((bucket, path, expires_in, access_token))
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        if path in self.failing_paths:
            raise NetworkUnavailableError(f"Signing {bucket}/{path} timed out")
        return f"https://cdn.example/{bucket}/{path}?token={len(self.calls)}", self.ttl


class FakeSearchSource:
    """Ranked search over a fixed list, returning page_size + 1 rows like the server."""

    def __init__(self, rows: Optional[List[Dict[str, Any]]] = None):
        self.rows = list(rows or [])
        self.calls: List[tuple] = []
        self.recent: List[Dict[str, Any]] = []
        self.upserts: List[str] = []
        self.upsert_error: Optional[BaseException] = None

    async def search(self, query, page, page_size, memory_type):
        self.calls.append((query, page, page_size, memory_type))
        offset = (page - 1) * page_size
        return [dict(r) for r in self.rows[offset : offset + page_size + 1]]

    async def get_recent_searches(self):
        return list(self.recent)

    async def upsert_recent_search(self, query):
        if self.upsert_error is not None:
            raise self.upsert_error
        self.upserts.append(query)

    async def clear_recent_searches(self):
        self.recent = []


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def search_row(row_id: str, title: str = "", memory_type: str = "moment") -> Dict[str, Any]:
    return {
        "id": row_id,
        "memory_type": memory_type,
        "title": title or f"Memory {row_id}",
        "snippet_text": f"Snippet {row_id}",
        "created_at": datetime(2025, 1, 1, tzinfo=timezone.utc).isoformat(),
    }


@pytest.fixture
def feed_source() -> FakeFeedSource:
    return FakeFeedSource()


@pytest.fixture
def signer() -> FakeSigner:
    return FakeSigner()


@pytest.fixture
def search_source() -> FakeSearchSource:
    return FakeSearchSource()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(autouse=True)
def isolated_xdg(tmp_path, monkeypatch):
    """Keep config and data files inside the test's temp dir."""
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    return tmp_path
