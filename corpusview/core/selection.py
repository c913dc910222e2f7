# core/selection.py
"""Immutable multi-view selection stored as compact index ranges."""
import asyncio
import bisect
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from .interval import Interval
from .record_source import summarize
from .records import FileRecord
from .view import View

IndexOrInterval = Union[int, Interval]

# Marks a focus/anchor argument that should keep the current value.
_KEEP = object()


@dataclass(frozen=True)
class Focus:
    """A single (view, row) position."""
    view_key: str
    index: int


def _as_interval(selection: IndexOrInterval) -> Tuple[Interval, bool]:
    """Normalize to an Interval; the flag tells whether a single index was given."""
    if isinstance(selection, Interval):
        return selection, False
    if isinstance(selection, bool) or not isinstance(selection, int):
        raise TypeError(f"Expected a row index or Interval, got {type(selection).__name__}")
    return Interval(selection), True


def _subtract(existing: Interval, removed: Interval) -> List[Interval]:
    if not existing.overlaps(removed):
        return [existing]
    parts = []
    if existing.start < removed.start:
        parts.append(Interval(existing.start, removed.start - 1))
    if existing.end > removed.end:
        parts.append(Interval(removed.end + 1, existing.end))
    return parts


@dataclass(frozen=True)
class Selection:
    """Selected row ranges per view, plus focus and shift-click anchor.

    Every "mutation" returns a new Selection. Range lists are always stored
    compacted: sorted, with no two intervals overlapping or touching.
    """
    ranges_by_view: Mapping[str, Tuple[Interval, ...]] = field(default_factory=dict)
    views: Mapping[str, View] = field(default_factory=dict, compare=False)
    focus: Optional[Focus] = None
    anchor: Optional[Focus] = None
    insertion_order: Mapping[str, int] = field(default_factory=dict, compare=False)
    next_order: int = field(default=0, compare=False)

    def __post_init__(self):
        for name in ("ranges_by_view", "views", "insertion_order"):
            value = getattr(self, name)
            if not isinstance(value, MappingProxyType):
                object.__setattr__(self, name, MappingProxyType(dict(value)))

    # ------------------------------------------------------------------
    # Mutations (return new selections)
    # ------------------------------------------------------------------

    def select(
        self,
        view: View,
        selection: IndexOrInterval,
        update_existing: bool = False,
        focus_index: Optional[int] = None,
        anchor_index: Optional[int] = None,
    ) -> "Selection":
        """Select an index or interval in *view*.

        Without *update_existing* the result holds only the new selection.
        With it, the view's existing ranges are kept: a single index that is
        already selected is toggled off, anything else is merged in.

        Selecting a single index moves focus and anchor onto it; toggling one
        off leaves both untouched. Selecting an interval focuses
        *focus_index* (default: the interval's end) and moves the anchor only
        when *anchor_index* is given.
        """
        interval, is_point = _as_interval(selection)
        key = view.key()

        if not update_existing:
            base = Selection()
            ranges = [interval]
        else:
            base = self
            existing = self.ranges_by_view.get(key, ())
            if is_point and any(r.contains(interval.start) for r in existing):
                ranges = []
                for r in existing:
                    ranges.extend(r.partition_at(interval.start) if r.contains(interval.start) else (r,))
                return self._with_ranges(view, ranges)
            ranges = [*existing, interval]

        if is_point:
            focus = anchor = Focus(key, interval.start)
        else:
            focus = Focus(key, interval.end if focus_index is None else focus_index)
            anchor = self.anchor if anchor_index is None else Focus(key, anchor_index)
        return base._with_ranges(view, ranges, focus=focus, anchor=anchor)

    def deselect(self, view: View, selection: IndexOrInterval) -> "Selection":
        interval, _ = _as_interval(selection)
        remaining: List[Interval] = []
        for r in self.ranges_by_view.get(view.key(), ()):
            remaining.extend(_subtract(r, interval))
        return self._with_ranges(view, remaining)

    def clear(self) -> "Selection":
        return Selection()

    def retain_views(self, views: Iterable[View]) -> "Selection":
        """Drop everything that belongs to a view not in *views*."""
        keep = {v.key() for v in views}
        focus = self.focus if self.focus and self.focus.view_key in keep else None
        anchor = self.anchor if self.anchor and self.anchor.view_key in keep else None
        return replace(
            self,
            ranges_by_view={k: r for k, r in self.ranges_by_view.items() if k in keep},
            views={k: v for k, v in self.views.items() if k in keep},
            insertion_order={k: o for k, o in self.insertion_order.items() if k in keep},
            focus=focus,
            anchor=anchor,
        )

    def clamp(self, view: View, total_count: int) -> "Selection":
        """Drop indices at or past *total_count* in *view*."""
        key = view.key()
        if total_count <= 0:
            result = self._with_ranges(view, [])
        else:
            result = self.deselect(view, Interval(total_count, max(total_count, self._max_index(key))))
        focus = result.focus
        if focus and focus.view_key == key and focus.index >= total_count:
            focus = None
        anchor = result.anchor
        if anchor and anchor.view_key == key and anchor.index >= total_count:
            anchor = None
        return replace(result, focus=focus, anchor=anchor)

    def _max_index(self, key: str) -> int:
        ranges = self.ranges_by_view.get(key, ())
        return ranges[-1].end if ranges else 0

    def _with_ranges(
        self,
        view: View,
        ranges: Iterable[Interval],
        focus: Any = _KEEP,
        anchor: Any = _KEEP,
    ) -> "Selection":
        key = view.key()
        compacted = Interval.compact(ranges)
        ranges_by_view = dict(self.ranges_by_view)
        insertion_order = dict(self.insertion_order)
        next_order = self.next_order
        if compacted:
            ranges_by_view[key] = compacted
            if key not in insertion_order:
                insertion_order[key] = next_order
                next_order += 1
        else:
            ranges_by_view.pop(key, None)
            insertion_order.pop(key, None)

        focus = self.focus if focus is _KEEP else focus
        anchor = self.anchor if anchor is _KEEP else anchor
        views = dict(self.views)
        views[key] = view
        referenced = set(ranges_by_view)
        referenced.update(f.view_key for f in (focus, anchor) if f is not None)
        views = {k: v for k, v in views.items() if k in referenced}

        return Selection(
            ranges_by_view=ranges_by_view,
            views=views,
            focus=focus,
            anchor=anchor,
            insertion_order=insertion_order,
            next_order=next_order,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_selected(self, view: View, index: int) -> bool:
        ranges = self.ranges_by_view.get(view.key(), ())
        pos = bisect.bisect_right(ranges, index, key=lambda r: r.start)
        return pos > 0 and ranges[pos - 1].contains(index)

    def is_focused(self, view: View, index: int) -> bool:
        return self.focus == Focus(view.key(), index)

    @property
    def focused(self) -> Optional[Focus]:
        return self.focus

    def ranges_for(self, view: View) -> Tuple[Interval, ...]:
        return self.ranges_by_view.get(view.key(), ())

    def count(self) -> int:
        return sum(len(r) for ranges in self.ranges_by_view.values() for r in ranges)

    def count_for(self, view: View) -> int:
        return sum(len(r) for r in self.ranges_for(view))

    def is_empty(self) -> bool:
        return not self.ranges_by_view

    def selected_views(self) -> List[View]:
        """Views holding selected rows, in the order they were first selected into."""
        keys = sorted(self.ranges_by_view, key=lambda k: self.insertion_order[k])
        return [self.views[k] for k in keys]

    def to_compact_ranges(self) -> List[Dict[str, Any]]:
        """Serializable description of the selection for server-side bulk operations."""
        return [
            {
                "filters": [f.to_dict() for f in view.filters],
                "sort": view.sort.to_dict() if view.sort else None,
                "ranges": [r.to_dict() for r in self.ranges_by_view[view.key()]],
            }
            for view in self.selected_views()
        ]

    # ------------------------------------------------------------------
    # Record resolution
    # ------------------------------------------------------------------

    async def fetch_all_records(self) -> List[FileRecord]:
        views = self.selected_views()
        per_view = await asyncio.gather(
            *(view.records_for(self.ranges_by_view[view.key()]) for view in views)
        )
        return [record for records in per_view for record in records]

    async def fetch_focused_record(self) -> Optional[FileRecord]:
        if self.focus is None:
            return None
        view = self.views[self.focus.view_key]
        return await view.ensure_record(self.focus.index)

    async def aggregate(self) -> Dict[str, Optional[int]]:
        """Unique record count and total size of the selection."""
        if self.is_empty():
            return {"count": 0, "size": 0}
        sources = {id(v.source): v.source for v in self.selected_views()}
        if len(sources) == 1:
            source = next(iter(sources.values()))
            try:
                return await source.aggregate(self.to_compact_ranges())
            except NotImplementedError:
                pass
        return summarize(await self.fetch_all_records())
