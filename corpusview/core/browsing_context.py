# core/browsing_context.py
"""Consumer-side guard against results that arrive after the view changed.

The transport cannot cancel a request, so a component bound to one browsing
context tags each read with the generation current at issue time and drops
the result if the generation moved on before it resolved.
"""
import logging
import time
from typing import Awaitable, Callable, Iterable, List, Optional, TypeVar, Union

from .event_system import EventType, ViewChangedEventData, event_system
from .interval import Interval
from .records import FileRecord
from .view import View

T = TypeVar("T")


class _Stale:
    """Returned in place of a result that belongs to a superseded view."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "STALE"


STALE = _Stale()


class BrowsingContext:
    """The view a component currently displays, plus a generation token."""

    def __init__(self, view: Optional[View] = None, name: str = "BrowsingContext"):
        self.name = name
        self._view = view
        self._generation = 0

    @property
    def view(self) -> Optional[View]:
        return self._view

    @property
    def generation(self) -> int:
        return self._generation

    def set_view(self, view: Optional[View]) -> bool:
        """Switch to *view*. Returns False (and keeps the generation) if the identity is unchanged."""
        previous = self._view
        if previous is not None and view is not None and previous.equals(view):
            self._view = view
            return False
        self._view = view
        self._generation += 1
        event_system.publish(ViewChangedEventData(
            event_type=EventType.VIEW_CHANGED,
            source=self.name,
            timestamp=time.time(),
            previous_key=previous.key() if previous is not None else None,
            view_key=view.key() if view is not None else None,
            generation=self._generation,
        ))
        logging.debug(f"{self.name}: now at generation {self._generation}")
        return True

    def close(self) -> None:
        """Tear down the context; every outstanding read becomes stale."""
        self.set_view(None)

    def is_current(self, generation: int) -> bool:
        return generation == self._generation

    async def run(self, read: Callable[[View], Awaitable[T]]) -> Union[T, _Stale]:
        """Run *read* against the current view; STALE if the view changed meanwhile."""
        if self._view is None:
            return STALE
        generation = self._generation
        view = self._view
        try:
            result = await read(view)
        except Exception as e:  # why: failures of a superseded read are not the caller's concern anymore
            if not self.is_current(generation):
                logging.debug(f"{self.name}: discarding error from stale generation {generation}: {e}")
                return STALE
            raise
        if not self.is_current(generation):
            logging.debug(f"{self.name}: discarding result from stale generation {generation}")
            return STALE
        return result

    async def load_total_count(self) -> Union[int, _Stale]:
        return await self.run(lambda view: view.total_count())

    async def load_records(self, ranges: Iterable[Interval]) -> Union[List[FileRecord], _Stale]:
        ranges = list(ranges)
        return await self.run(lambda view: view.records_for(ranges))

    async def load_record(self, index: int) -> Union[Optional[FileRecord], _Stale]:
        return await self.run(lambda view: view.ensure_record(index))
