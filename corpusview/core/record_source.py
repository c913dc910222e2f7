# core/record_source.py
"""The paging/counting contract a View reads through, plus local implementations."""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, TYPE_CHECKING

from .interval import Interval
from .records import FileRecord, FileSort, SortOrder, ViewIdentity

if TYPE_CHECKING:
    from .file_database import FileDatabase


class RecordSourceError(Exception):
    """A count, page or aggregate request could not be served."""


class RecordSource(ABC):
    """Remote corpus as seen by a View. Every call is a coroutine."""

    @abstractmethod
    async def count(self, identity: ViewIdentity) -> int:
        """Total number of records matching *identity*."""

    @abstractmethod
    async def fetch(self, identity: ViewIdentity, offset: int, limit: int) -> List[FileRecord]:
        """Rows ``offset .. offset + limit - 1`` of *identity*, in view order."""

    async def aggregate(self, compact_ranges: List[Dict[str, Any]]) -> Dict[str, Optional[int]]:
        """``{"count", "size"}`` for a whole selection without enumerating it client-side.

        Optional; callers fall back to fetching the records when a source
        raises NotImplementedError.
        """
        raise NotImplementedError


def sort_records(records: Sequence[FileRecord], sort: Optional[FileSort]) -> List[FileRecord]:
    """Order records for a view: missing sort values last, ties broken on file_id."""
    if sort is None:
        return list(records)
    present = [r for r in records if r.get(sort.annotation_name)]
    missing = [r for r in records if not r.get(sort.annotation_name)]
    present.sort(key=lambda r: r.file_id)
    # list.sort stays stable with reverse=True, so file_id ties keep ascending order.
    present.sort(key=lambda r: min(r.get(sort.annotation_name)), reverse=sort.order is SortOrder.DESC)
    missing.sort(key=lambda r: r.file_id)
    return present + missing


def summarize(records: Sequence[FileRecord]) -> Dict[str, Optional[int]]:
    """Unique-file count and total size; size is None when no record carries one."""
    unique: Dict[str, FileRecord] = {}
    for record in records:
        unique.setdefault(record.file_id, record)
    sizes = [r.file_size for r in unique.values() if r.file_size is not None]
    return {"count": len(unique), "size": sum(sizes) if sizes else None}


class InMemoryRecordSource(RecordSource):
    """Serves an in-memory list of records; filters and sorts on every request."""

    def __init__(self, records: Sequence[FileRecord]):
        self._records = list(records)

    def _matching(self, identity: ViewIdentity) -> List[FileRecord]:
        return sort_records([r for r in self._records if identity.matches(r)], identity.sort)

    async def count(self, identity: ViewIdentity) -> int:
        return len(self._matching(identity))

    async def fetch(self, identity: ViewIdentity, offset: int, limit: int) -> List[FileRecord]:
        return self._matching(identity)[offset:offset + limit]

    async def aggregate(self, compact_ranges: List[Dict[str, Any]]) -> Dict[str, Optional[int]]:
        selected: List[FileRecord] = []
        for entry in compact_ranges:
            rows = self._matching(ViewIdentity.from_dict(entry))
            for raw in entry["ranges"]:
                interval = Interval.from_dict(raw)
                selected.extend(rows[interval.start:interval.end + 1])
        return summarize(selected)


class DatabaseRecordSource(RecordSource):
    """Reads from a local FileDatabase; blocking SQLite calls run in a worker thread."""

    def __init__(self, database: "FileDatabase"):
        self.database = database

    async def count(self, identity: ViewIdentity) -> int:
        return await asyncio.to_thread(self.database.count, identity)

    async def fetch(self, identity: ViewIdentity, offset: int, limit: int) -> List[FileRecord]:
        logging.debug(f"DatabaseRecordSource: fetching {limit} rows at {offset} for {identity.key()[:8]}")
        return await asyncio.to_thread(self.database.fetch, identity, offset, limit)

    async def aggregate(self, compact_ranges: List[Dict[str, Any]]) -> Dict[str, Optional[int]]:
        return await asyncio.to_thread(self.database.aggregate, compact_ranges)
