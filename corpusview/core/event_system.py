from typing import Any, Dict, List, Callable, Optional
from dataclasses import dataclass
from collections import deque
from enum import Enum
import logging
import threading


class EventType(Enum):
    # Selection events
    EXECUTE_SELECTION_COMMAND = "execute_selection_command" # A component wants to change the selection
    SELECTION_CHANGED = "selection_changed" # The selection state has officially changed
    UNDO_SELECTION = "undo_selection"
    REDO_SELECTION = "redo_selection"

    # View events
    PAGE_LOADED = "page_loaded" # Rows landed in a view's cache; renderers should re-poll
    VIEW_CHANGED = "view_changed" # A browsing context switched to a different view


@dataclass
class EventData:
    event_type: EventType
    source: str  # Source component name
    timestamp: float


@dataclass
class SelectionChangedEventData(EventData):
    # core.selection.Selection values; typed loosely to avoid a circular import
    selection: Any
    previous: Any = None


@dataclass
class PageLoadedEventData(EventData):
    view_key: str
    start: int
    end: int  # inclusive; end < start when the page came back empty


@dataclass
class ViewChangedEventData(EventData):
    previous_key: Optional[str]
    view_key: Optional[str]
    generation: int


# High-frequency events that are not appended to history to avoid evicting
# genuinely useful events.
_EPHEMERAL_EVENT_TYPES: frozenset = frozenset({EventType.PAGE_LOADED})


class EventSystem:
    def __init__(self):
        self._subscribers: Dict[EventType, List[Callable]] = {}
        self._event_history: deque[EventData] = deque(maxlen=500)
        self._lock = threading.Lock()

    def subscribe(self, event_type: EventType, callback: Callable[[EventData], None]):
        with self._lock:
            if event_type not in self._subscribers:
                self._subscribers[event_type] = []
            self._subscribers[event_type].append(callback)
        logging.debug(f"Subscribed to {event_type.value}: {getattr(callback, '__name__', callback)}")

    def unsubscribe(self, event_type: EventType, callback: Callable[[EventData], None]):
        with self._lock:
            if event_type in self._subscribers:
                try:
                    self._subscribers[event_type].remove(callback)
                    logging.debug(f"Unsubscribed from {event_type.value}: {getattr(callback, '__name__', callback)}")
                except ValueError:
                    logging.warning(f"Callback not found for {event_type.value}")

    def publish(self, event_data: EventData):
        with self._lock:
            event_type = event_data.event_type
            if event_type not in _EPHEMERAL_EVENT_TYPES:
                self._event_history.append(event_data)
            # Snapshot the subscriber list so callbacks can safely call subscribe/unsubscribe.
            callbacks = list(self._subscribers.get(event_type, []))

        for callback in callbacks:
            try:
                callback(event_data)
            except Exception as e:
                # why: isolate handler crashes so one broken subscriber can't block others
                logging.error(f"Error in event callback for {event_type.value}: {e}", exc_info=True)

        logging.debug("Published event: %s from %s", event_type.value, event_data.source)

    def get_event_history(self, event_type: Optional[EventType] = None) -> List[EventData]:
        if event_type:
            return [e for e in self._event_history if e.event_type == event_type]
        return list(self._event_history)

    def clear_history(self):
        self._event_history.clear()


event_system = EventSystem()
