"""Tests for core/event_system.py: delivery, isolation and history."""
import time

from corpusview.core.event_system import EventData, EventSystem, EventType, PageLoadedEventData


def _event(event_type=EventType.SELECTION_CHANGED):
    return EventData(event_type=event_type, source="test", timestamp=time.time())


class TestEventSystem:
    def test_delivers_to_subscribers(self):
        events = EventSystem()
        received = []
        events.subscribe(EventType.SELECTION_CHANGED, received.append)
        events.publish(_event())
        assert len(received) == 1

    def test_unsubscribe(self):
        events = EventSystem()
        received = []
        events.subscribe(EventType.SELECTION_CHANGED, received.append)
        events.unsubscribe(EventType.SELECTION_CHANGED, received.append)
        events.publish(_event())
        assert received == []

    def test_failing_callback_does_not_block_others(self):
        events = EventSystem()
        received = []

        def broken(event):
            raise RuntimeError("boom")

        events.subscribe(EventType.SELECTION_CHANGED, broken)
        events.subscribe(EventType.SELECTION_CHANGED, received.append)
        events.publish(_event())
        assert len(received) == 1

    def test_page_loaded_is_not_kept_in_history(self):
        events = EventSystem()
        events.publish(PageLoadedEventData(
            event_type=EventType.PAGE_LOADED, source="View", timestamp=time.time(),
            view_key="k", start=0, end=9,
        ))
        events.publish(_event())
        assert [e.event_type for e in events.get_event_history()] == [EventType.SELECTION_CHANGED]
        events.clear_history()
        assert events.get_event_history() == []
