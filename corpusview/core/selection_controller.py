# core/selection_controller.py
"""Turns click and keyboard gestures into new Selections.

Gestures are typed commands; ``reduce(selection, command)`` is the pure
reducer. ``SelectionProcessor`` and ``SelectionHistory`` wire the reducer to
the event bus and keep undo/redo stacks.
"""
import logging
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Optional

from .event_system import EventData, EventType, SelectionChangedEventData, event_system
from .interval import Interval
from .selection import Selection
from .view import View


class SelectionCommand(ABC):
    """A user intent that maps one Selection to the next."""

    @abstractmethod
    def apply(self, selection: Selection) -> Selection:
        """Return the Selection that results from this command."""


@dataclass(frozen=True)
class Click(SelectionCommand):
    """A click on row *index* of *view*, with modifier keys.

    * plain: replace the selection with the row
    * ctrl: toggle the row, keeping everything else
    * shift: select from the anchor to the row (replacing, or adding with ctrl)
    """
    view: View
    index: int
    ctrl: bool = False
    shift: bool = False

    def apply(self, selection: Selection) -> Selection:
        if not self.shift:
            return selection.select(self.view, self.index, update_existing=self.ctrl)

        # An anchor in another view (or none at all) collapses the range onto the clicked row.
        anchor = selection.anchor
        if anchor is not None and anchor.view_key == self.view.key():
            anchor_index = anchor.index
        else:
            anchor_index = self.index
        covering = Interval(min(anchor_index, self.index), max(anchor_index, self.index))
        return selection.select(
            self.view,
            covering,
            update_existing=self.ctrl,
            focus_index=self.index,
            anchor_index=anchor_index,
        )


@dataclass(frozen=True)
class Step(SelectionCommand):
    """Keyboard navigation: move focus by *delta* rows.

    With *extend* the focused range grows one row at a time toward the new
    position; otherwise the new row replaces the selection.
    """
    view: View
    delta: int
    extend: bool = False
    total_count: Optional[int] = None

    def apply(self, selection: Selection) -> Selection:
        if self.total_count is not None and self.total_count <= 0:
            return selection

        focus = selection.focus
        has_focus = focus is not None and focus.view_key == self.view.key()
        target = max(0, focus.index + self.delta) if has_focus else 0
        if self.total_count is not None:
            target = min(target, self.total_count - 1)

        if not (self.extend and has_focus):
            return selection.select(self.view, target)
        if target == focus.index:
            return selection

        current = focus.index
        grown = next(
            (r for r in selection.ranges_for(self.view) if r.contains(current)),
            Interval(current),
        )
        step = 1 if target > current else -1
        for i in range(current + step, target + step, step):
            grown = grown.expand_to(i)
        return selection.select(self.view, grown, update_existing=True, focus_index=target)


@dataclass(frozen=True)
class SelectAll(SelectionCommand):
    view: View
    total_count: int

    def apply(self, selection: Selection) -> Selection:
        if self.total_count <= 0:
            return selection
        return selection.select(
            self.view,
            Interval(0, self.total_count - 1),
            focus_index=0,
            anchor_index=0,
        )


@dataclass(frozen=True)
class ClearSelection(SelectionCommand):
    def apply(self, selection: Selection) -> Selection:
        return selection.clear()


@dataclass(frozen=True)
class ReplaceSelection(SelectionCommand):
    """Install a precomputed Selection, e.g. after a context change."""
    selection: Selection

    def apply(self, selection: Selection) -> Selection:
        return self.selection


def reduce(selection: Selection, command: SelectionCommand) -> Selection:
    result = command.apply(selection)
    logging.debug(f"Reduced {type(command).__name__}: {selection.count()} -> {result.count()} selected")
    return result


@dataclass
class SelectionCommandEventData(EventData):
    command: SelectionCommand


class SelectionProcessor:
    """Holds the current Selection, applies commands, and publishes changes."""

    def __init__(self, selection: Optional[Selection] = None):
        self.selection = selection if selection is not None else Selection()
        event_system.subscribe(EventType.EXECUTE_SELECTION_COMMAND, self.on_new_command)

    def on_new_command(self, event: EventData):
        """Handler for commands arriving over the event bus."""
        if isinstance(event, SelectionCommandEventData):
            self.process_command(event.command)

    def process_command(self, command: SelectionCommand) -> Selection:
        """Applies a command and publishes the result."""
        previous = self.selection
        self.selection = reduce(previous, command)

        change_event = SelectionChangedEventData(
            event_type=EventType.SELECTION_CHANGED,
            source="SelectionProcessor",
            timestamp=time.time(),
            selection=self.selection,
            previous=previous,
        )
        event_system.publish(change_event)
        logging.debug(f"Published SELECTION_CHANGED with {self.selection.count()} items.")
        return self.selection


class SelectionHistory:
    """Undo/redo stacks of prior Selections.

    Selections are immutable, so a history entry is just the previous value.
    """

    def __init__(self, processor: SelectionProcessor, limit: int = 100):
        self.processor = processor
        self.undo_stack: Deque[Selection] = deque(maxlen=limit)
        self.redo_stack: List[Selection] = []
        self._restoring = False
        event_system.subscribe(EventType.SELECTION_CHANGED, self.on_selection_changed)
        event_system.subscribe(EventType.UNDO_SELECTION, self._on_undo_requested)
        event_system.subscribe(EventType.REDO_SELECTION, self._on_redo_requested)

    def on_selection_changed(self, event: SelectionChangedEventData):
        """Records the replaced Selection and clears the redo stack."""
        if self._restoring or event.previous is None or event.previous == event.selection:
            return
        self.undo_stack.append(event.previous)
        self.redo_stack.clear()
        logging.debug(f"Pushed to undo stack. Size: {len(self.undo_stack)}")

    def undo(self):
        """Restores the previous Selection; the current one moves to the redo stack."""
        if self.undo_stack:
            previous = self.undo_stack.pop()
            self.redo_stack.append(self.processor.selection)
            self._restore(previous)
            logging.info(f"Undo: restored selection of {previous.count()} items")

    def redo(self):
        """Re-applies the most recently undone Selection."""
        if self.redo_stack:
            following = self.redo_stack.pop()
            self.undo_stack.append(self.processor.selection)
            self._restore(following)
            logging.info(f"Redo: restored selection of {following.count()} items")

    def _restore(self, selection: Selection):
        self._restoring = True
        try:
            self.processor.process_command(ReplaceSelection(selection))
        finally:
            self._restoring = False

    def _on_undo_requested(self, event: EventData):
        self.undo()

    def _on_redo_requested(self, event: EventData):
        self.redo()
