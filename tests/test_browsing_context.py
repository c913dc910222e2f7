"""Tests for core/browsing_context.py: generation tokens and stale results."""
import asyncio

import pytest

from conftest import CountingSource, make_records
from corpusview.core.browsing_context import STALE, BrowsingContext
from corpusview.core.event_system import EventType
from corpusview.core.interval import Interval
from corpusview.core.record_source import RecordSourceError
from corpusview.core.records import FileFilter
from corpusview.core.view import View


class TestSetView:
    def test_new_identity_bumps_generation(self, source):
        ctx = BrowsingContext(View(source))
        assert ctx.set_view(View(source, [FileFilter("split", "train")])) is True
        assert ctx.generation == 1

    def test_same_identity_keeps_generation(self, source):
        ctx = BrowsingContext(View(source))
        assert ctx.set_view(View(source)) is False
        assert ctx.generation == 0

    def test_publishes_view_changed(self, source, fresh_event_system):
        received = []
        fresh_event_system.subscribe(EventType.VIEW_CHANGED, received.append)
        first = View(source)
        ctx = BrowsingContext(first, name="grid")
        second = View(source, [FileFilter("split", "test")])
        ctx.set_view(second)
        assert len(received) == 1
        assert received[0].previous_key == first.key()
        assert received[0].view_key == second.key()
        assert received[0].source == "grid"


class TestReads:
    def test_current_read_returns_result(self, source):
        async def scenario():
            ctx = BrowsingContext(View(source, page_size=10))
            assert await ctx.load_total_count() == 250
            assert (await ctx.load_record(3)).file_id == "f0003"
            records = await ctx.load_records([Interval(0, 1)])
            assert [r.file_id for r in records] == ["f0000", "f0001"]

        asyncio.run(scenario())

    def test_result_after_view_change_is_stale(self):
        async def scenario():
            src = CountingSource(make_records(20))
            src.gate.clear()
            ctx = BrowsingContext(View(src, page_size=10))
            pending = asyncio.ensure_future(ctx.load_record(2))
            await asyncio.sleep(0)
            ctx.set_view(View(src, [FileFilter("split", "train")], page_size=10))
            src.gate.set()
            return await pending

        assert asyncio.run(scenario()) is STALE

    def test_error_after_view_change_is_stale(self):
        async def scenario():
            src = CountingSource(make_records(20), fail_fetches=1)
            src.gate.clear()
            ctx = BrowsingContext(View(src, page_size=10))
            pending = asyncio.ensure_future(ctx.load_record(2))
            await asyncio.sleep(0)
            ctx.close()
            src.gate.set()
            return await pending

        assert asyncio.run(scenario()) is STALE

    def test_error_for_current_view_propagates(self):
        async def scenario():
            ctx = BrowsingContext(View(CountingSource(make_records(20), fail_fetches=1)))
            with pytest.raises(RecordSourceError):
                await ctx.load_record(2)

        asyncio.run(scenario())

    def test_no_view_is_stale(self):
        assert asyncio.run(BrowsingContext().load_total_count()) is STALE
        assert not STALE
