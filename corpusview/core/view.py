# core/view.py
"""Lazily paged, cached projections of the remote corpus.

A View is a filtered and sorted window onto a RecordSource. Reads are served
from a per-view cache; misses schedule a page fetch on the running asyncio
loop. ``record_at`` never awaits: it returns ``PENDING`` and the caller
re-polls once a ``PAGE_LOADED`` event for the view arrives.
"""
import asyncio
import logging
import time
import weakref
from typing import Dict, Iterable, List, Optional

from .event_system import EventType, PageLoadedEventData, event_system
from .interval import Interval
from .record_source import RecordSource
from .records import FileFilter, FileRecord, FileSort, ViewIdentity

DEFAULT_PAGE_SIZE = 100

# Upper bound on page requests issued at once by records_for().
_MAX_PARALLEL_PAGES = 8


class _Pending:
    """Placeholder returned by record_at() while a row is still loading."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "PENDING"


PENDING = _Pending()


def _log_failed_fetch(task: asyncio.Task) -> None:
    """Done-callback: report failures nobody may be awaiting."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logging.warning(f"{task.get_name()} failed: {exc}")


class ViewCache:
    """The only mutable state of a view. Owned by exactly one View."""

    def __init__(self):
        self.records: Dict[int, FileRecord] = {}
        self.total_count: Optional[int] = None
        # Upper bound learned from an empty page; total_count supersedes it.
        self.end_bound: Optional[int] = None
        self.pending_pages: Dict[int, asyncio.Task] = {}
        self.count_task: Optional[asyncio.Task] = None


class View:
    """One filtered/sorted projection of a RecordSource.

    Identity (and therefore equality and hashing) is the filter set plus the
    sort; the cache is runtime state and never participates in it.
    """

    def __init__(
        self,
        source: RecordSource,
        filters: Iterable[FileFilter] = (),
        sort: Optional[FileSort] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        if page_size <= 0:
            raise ValueError(f"page_size must be positive, got {page_size}")
        self._source = source
        self._identity = ViewIdentity(filters, sort)
        self._page_size = page_size
        self._cache = ViewCache()

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def key(self) -> str:
        return self._identity.key()

    @property
    def identity(self) -> ViewIdentity:
        return self._identity

    @property
    def filters(self) -> List[FileFilter]:
        return self._identity.sorted_filters()

    @property
    def sort(self) -> Optional[FileSort]:
        return self._identity.sort

    @property
    def source(self) -> RecordSource:
        return self._source

    @property
    def page_size(self) -> int:
        return self._page_size

    def equals(self, other: "View") -> bool:
        return isinstance(other, View) and self.key() == other.key()

    def __eq__(self, other) -> bool:
        if not isinstance(other, View):
            return NotImplemented
        return self.equals(other)

    def __hash__(self) -> int:
        return hash(self.key())

    def __repr__(self) -> str:
        return f"View({self.key()[:8]}, filters={self.filters!r}, sort={self.sort!r})"

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def cached_count(self) -> int:
        return len(self._cache.records)

    def page_start(self, index: int) -> int:
        return index - index % self._page_size

    def cached_record(self, index: int) -> Optional[FileRecord]:
        return self._cache.records.get(index)

    async def total_count(self) -> int:
        """Memoized total; concurrent callers share a single count request."""
        cache = self._cache
        if cache.total_count is not None:
            return cache.total_count
        if cache.count_task is None:
            task = asyncio.get_running_loop().create_task(
                self._load_count(), name=f"count[{self.key()[:8]}]"
            )
            task.add_done_callback(_log_failed_fetch)
            cache.count_task = task
        # shield: one caller being cancelled must not cancel the shared request
        return await asyncio.shield(cache.count_task)

    async def _load_count(self) -> int:
        try:
            count = await self._source.count(self._identity)
            self._cache.total_count = count
            logging.debug(f"View {self.key()[:8]}: total count {count}")
            return count
        finally:
            self._cache.count_task = None

    def record_at(self, index: int):
        """Cached record at *index*, or PENDING after scheduling its page.

        Must be called from within a running event loop.
        """
        self._check_index(index)
        record = self._cache.records.get(index)
        if record is not None:
            return record
        self._schedule_page(self.page_start(index))
        return PENDING

    async def ensure_record(self, index: int) -> Optional[FileRecord]:
        """Awaitable record_at(); None when *index* is past the end of the view."""
        self._check_index(index)
        record = self._cache.records.get(index)
        if record is not None:
            return record
        await asyncio.shield(self._schedule_page(self.page_start(index)))
        return self._cache.records.get(index)

    async def records_for(self, ranges: Iterable[Interval]) -> List[FileRecord]:
        """Records for every index in *ranges*, in ascending index order.

        Only pages holding uncached indices are requested; in-flight page
        fetches are shared. Indices past the end of the view are skipped.
        """
        intervals = Interval.compact(ranges)
        records = self._cache.records
        known_end = self._known_end()

        missing_pages = sorted({
            self.page_start(i)
            for interval in intervals
            for i in interval
            if i not in records and (known_end is None or i < known_end)
        })
        for batch_start in range(0, len(missing_pages), _MAX_PARALLEL_PAGES):
            end = self._known_end()
            batch = [p for p in missing_pages[batch_start:batch_start + _MAX_PARALLEL_PAGES] if end is None or p < end]
            await asyncio.gather(*(asyncio.shield(self._schedule_page(p)) for p in batch))

        return [records[i] for interval in intervals for i in interval if i in records]

    # ------------------------------------------------------------------
    # Paging internals
    # ------------------------------------------------------------------

    def _check_index(self, index: int) -> None:
        if isinstance(index, bool) or not isinstance(index, int) or index < 0:
            raise ValueError(f"Row index must be a non-negative int, got {index!r}")
        end = self._known_end()
        if end is not None and index >= end:
            raise IndexError(f"Row {index} is out of range for view of {end} records")

    def _known_end(self) -> Optional[int]:
        cache = self._cache
        return cache.total_count if cache.total_count is not None else cache.end_bound

    def _note_end(self, start: int, loaded: int) -> None:
        """A short page marks the end of the view; an empty one only bounds it."""
        if loaded >= self._page_size:
            return
        cache = self._cache
        if loaded > 0:
            if cache.total_count is None:
                cache.total_count = start + loaded
        elif cache.end_bound is None or start < cache.end_bound:
            cache.end_bound = start

    def _schedule_page(self, start: int) -> asyncio.Task:
        task = self._cache.pending_pages.get(start)
        if task is None:
            task = asyncio.get_running_loop().create_task(
                self._load_page(start), name=f"page[{self.key()[:8]}@{start}]"
            )
            task.add_done_callback(_log_failed_fetch)
            self._cache.pending_pages[start] = task
        return task

    async def _load_page(self, start: int) -> List[FileRecord]:
        try:
            page = await self._source.fetch(self._identity, start, self._page_size)
            # Nothing is written until the whole page arrived.
            page = page[:self._page_size]
            for offset, record in enumerate(page):
                self._cache.records[start + offset] = record
            self._note_end(start, len(page))
        finally:
            self._cache.pending_pages.pop(start, None)

        logging.debug(f"View {self.key()[:8]}: loaded {len(page)} rows at {start}")
        event_system.publish(PageLoadedEventData(
            event_type=EventType.PAGE_LOADED,
            source="View",
            timestamp=time.time(),
            view_key=self.key(),
            start=start,
            end=start + len(page) - 1,
        ))
        return page


class ViewRegistry:
    """Hands out one live View per identity key for a given source.

    Views are held weakly: once nothing references a View, it and its cache
    are dropped, and the next request for that identity starts cold.
    """

    def __init__(self, source: RecordSource, page_size: int = DEFAULT_PAGE_SIZE):
        self._source = source
        self._page_size = page_size
        self._views: "weakref.WeakValueDictionary[str, View]" = weakref.WeakValueDictionary()

    def get(self, filters: Iterable[FileFilter] = (), sort: Optional[FileSort] = None) -> View:
        filters = list(filters)
        key = ViewIdentity(filters, sort).key()
        view = self._views.get(key)
        if view is None:
            view = View(self._source, filters, sort, page_size=self._page_size)
            self._views[key] = view
            logging.debug(f"ViewRegistry: created view {key[:8]}")
        return view

    def __contains__(self, key: str) -> bool:
        return key in self._views

    def __len__(self) -> int:
        return len(self._views)
