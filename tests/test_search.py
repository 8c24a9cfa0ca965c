"""Tests for search pagination and recent searches."""

import asyncio
import json

import pytest
from pydantic import ValidationError as PydanticValidationError

from conftest import FakeSearchSource, search_row
from memfeed.exceptions import NetworkUnavailableError, ValidationError
from memfeed.models import MemoryType
from memfeed.search import RecentSearches, SearchPager
from memfeed.search.pager import split_rows


def _source(count: int) -> FakeSearchSource:
    return FakeSearchSource([search_row(f"r{i:02d}") for i in range(count)])


class TestSearchPager:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", ["", "   ", "\t\n"])
    async def test_empty_query_fails_before_network(self, query):
        source = _source(3)
        pager = SearchPager(source)

        with pytest.raises(ValidationError):
            await pager.search(query)
        assert source.calls == []

    @pytest.mark.asyncio
    async def test_extra_row_signals_has_more(self):
        source = _source(25)
        pager = SearchPager(source, page_size=10)

        page = await pager.search("  cats ")

        assert len(page.items) == 10
        assert page.has_more is True
        assert source.calls[0] == ("cats", 1, 10, None)

    @pytest.mark.asyncio
    async def test_last_page_has_no_more(self):
        pager = SearchPager(_source(25), page_size=10)

        page = await pager.search("cats", page=3)

        assert [r.id for r in page.items] == ["r20", "r21", "r22", "r23", "r24"]
        assert page.has_more is False

    @pytest.mark.asyncio
    async def test_exact_page_has_no_more(self):
        page = await SearchPager(_source(10), page_size=10).search("cats")
        assert len(page.items) == 10
        assert page.has_more is False

    @pytest.mark.asyncio
    async def test_page_size_is_clamped(self):
        source = _source(3)
        pager = SearchPager(source)

        await pager.search("cats", page_size=500)
        await pager.search("cats", page_size=0)

        assert source.calls[0][2] == 50
        assert source.calls[1][2] == 1

    @pytest.mark.asyncio
    async def test_page_must_be_positive(self):
        with pytest.raises(ValidationError):
            await SearchPager(_source(3)).search("cats", page=0)

    @pytest.mark.asyncio
    async def test_next_page_accumulates(self):
        pager = SearchPager(_source(25), page_size=10)

        await pager.search("cats", memory_type=MemoryType.STORY)
        second = await pager.next_page()
        third = await pager.next_page()
        done = await pager.next_page()

        assert [len(p.items) for p in (second, third, done)] == [10, 5, 0]
        assert len(pager.items) == 25
        assert pager.page == 3
        assert pager._source.calls[1] == ("cats", 2, 10, MemoryType.STORY)

    @pytest.mark.asyncio
    async def test_superseded_query_is_discarded(self):
        source = _source(5)
        gate = asyncio.Event()
        original_search = source.search

        async def slow_search(query, page, page_size, memory_type):
            if query == "slow":
                await gate.wait()
            return await original_search(query, page, page_size, memory_type)

        source.search = slow_search
        pager = SearchPager(source)

        slow = asyncio.create_task(pager.search("slow"))
        await asyncio.sleep(0)
        await pager.search("fast")
        gate.set()
        stale = await slow

        assert stale.items == []
        assert pager.query == "fast"
        assert len(pager.items) == 5

    @pytest.mark.asyncio
    async def test_first_page_with_results_is_remembered(self):
        source = _source(3)
        pager = SearchPager(source)

        await pager.search(" cats ")

        assert pager.recent.queries() == ["cats"]
        assert source.upserts == ["cats"]

    @pytest.mark.asyncio
    async def test_no_results_not_remembered(self):
        source = _source(0)
        pager = SearchPager(source)

        await pager.search("cats")

        assert pager.recent.queries() == []
        assert source.upserts == []

    @pytest.mark.asyncio
    async def test_recent_save_failure_does_not_fail_search(self):
        source = _source(3)
        source.upsert_error = NetworkUnavailableError("offline")
        pager = SearchPager(source)

        page = await pager.search("cats")

        assert len(page.items) == 3

    @pytest.mark.asyncio
    async def test_search_failure_sets_message(self):
        source = _source(3)

        async def failing(*args):
            raise NetworkUnavailableError("Unable to connect")

        source.search = failing
        pager = SearchPager(source)

        with pytest.raises(NetworkUnavailableError):
            await pager.search("cats")
        assert pager.error_message.startswith("Unable to connect")

    @pytest.mark.asyncio
    async def test_malformed_row_does_not_leave_pager_loading(self):
        source = FakeSearchSource([{"memory_type": "moment", "title": "no id"}])
        pager = SearchPager(source)

        with pytest.raises(PydanticValidationError):
            await pager.search("cats")

        assert pager.is_loading is False
        source.rows = [search_row(f"r{i}") for i in range(3)]
        page = await pager.search("cats")
        assert len(page.items) == 3

    @pytest.mark.asyncio
    async def test_debounced_search_only_runs_latest(self):
        source = _source(3)
        pager = SearchPager(source, debounce_seconds=0.01)

        results = await asyncio.gather(pager.search_debounced("ca"), pager.search_debounced("cats"))

        assert results[0] is None
        assert len(results[1].items) == 3
        assert [c[0] for c in source.calls] == ["cats"]

    @pytest.mark.asyncio
    async def test_recent_searches_from_server(self):
        source = _source(0)
        source.recent = [
            {"query": "dogs", "searched_at": "2025-01-01T00:00:00Z"},
            {"query": "cats", "searched_at": "2025-01-02T00:00:00Z"},
        ]
        pager = SearchPager(source)

        items = await pager.recent_searches()

        assert [i.query for i in items] == ["cats", "dogs"]


class TestSplitRows:
    def test_envelope(self):
        rows, has_more = split_rows({"items": [{"id": 1}], "page": 1, "has_more": True}, 10)
        assert rows == [{"id": 1}]
        assert has_more is True

    def test_list(self):
        rows, has_more = split_rows([{"id": i} for i in range(3)], 2)
        assert len(rows) == 2
        assert has_more is True


class TestRecentSearches:
    def test_duplicate_moves_to_front(self):
        recent = RecentSearches()

        recent.upsert("cats")
        recent.upsert("dogs")
        recent.upsert("cats")

        assert recent.queries() == ["cats", "dogs"]

    def test_trimmed_before_compare(self):
        recent = RecentSearches()
        recent.upsert("cats")
        recent.upsert("  cats  ")
        assert recent.queries() == ["cats"]

    def test_case_sensitive(self):
        recent = RecentSearches()
        recent.upsert("cats")
        recent.upsert("Cats")
        assert recent.queries() == ["Cats", "cats"]

    def test_evicts_oldest_beyond_limit(self):
        recent = RecentSearches(limit=5)
        for query in ["a", "b", "c", "d", "e", "f"]:
            recent.upsert(query)
        assert recent.queries() == ["f", "e", "d", "c", "b"]

    @pytest.mark.parametrize("query", ["", "   "])
    def test_rejects_blank(self, query):
        with pytest.raises(ValidationError):
            RecentSearches().upsert(query)

    def test_persistence(self, tmp_path):
        path = tmp_path / "recent.json"
        recent = RecentSearches(path=path)
        recent.upsert("cats")
        recent.upsert("dogs")

        reloaded = RecentSearches(path=path)

        assert reloaded.queries() == ["dogs", "cats"]
        assert json.loads(path.read_text())[0]["query"] == "dogs"

    def test_clear(self, tmp_path):
        recent = RecentSearches(path=tmp_path / "recent.json")
        recent.upsert("cats")
        recent.clear()
        assert len(RecentSearches(path=tmp_path / "recent.json")) == 0
