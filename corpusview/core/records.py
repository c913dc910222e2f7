# core/records.py
"""Record, filter and sort types shared by views, sources and the daemon."""
import hashlib
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Union

FilterValue = Union[str, int, float]

# Attributes stored directly on a record; every other filter/sort name refers to an annotation.
TOP_LEVEL_ATTRIBUTES = ("file_id", "file_name", "file_path", "file_size", "uploaded")


@dataclass
class FileRecord:
    """Full metadata for one row of the corpus."""
    file_id: str
    file_name: str
    file_path: str
    file_size: Optional[int] = None
    uploaded: Optional[str] = None
    thumbnail: Optional[str] = None
    annotations: Dict[str, List[str]] = field(default_factory=dict)

    def get(self, name: str) -> List[Any]:
        """Values for a top-level attribute or annotation, as a list."""
        if name in TOP_LEVEL_ATTRIBUTES or name == "thumbnail":
            value = getattr(self, name)
            return [] if value is None else [value]
        return list(self.annotations.get(name, []))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file_id": self.file_id,
            "file_name": self.file_name,
            "file_path": self.file_path,
            "file_size": self.file_size,
            "uploaded": self.uploaded,
            "thumbnail": self.thumbnail,
            "annotations": {k: list(v) for k, v in self.annotations.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileRecord":
        return cls(
            file_id=str(data["file_id"]),
            file_name=data["file_name"],
            file_path=data["file_path"],
            file_size=data.get("file_size"),
            uploaded=data.get("uploaded"),
            thumbnail=data.get("thumbnail"),
            annotations={k: list(v) for k, v in (data.get("annotations") or {}).items()},
        )


@dataclass(frozen=True)
class FileFilter:
    name: str
    value: FilterValue

    def matches(self, record: FileRecord) -> bool:
        values = record.get(self.name)
        if self.name == "file_name":
            # Search-box semantics: substring, case-insensitive.
            needle = str(self.value).lower()
            return any(needle in str(v).lower() for v in values)
        return any(str(v) == str(self.value) for v in values)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "value": self.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileFilter":
        return cls(data["name"], data["value"])


class SortOrder(Enum):
    ASC = "ASC"
    DESC = "DESC"


@dataclass(frozen=True)
class FileSort:
    annotation_name: str
    order: SortOrder = SortOrder.ASC

    def to_dict(self) -> Dict[str, str]:
        return {"annotation_name": self.annotation_name, "order": self.order.value}

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> "FileSort":
        return cls(data["annotation_name"], SortOrder(data.get("order", "ASC")))


def _filter_sort_key(f: FileFilter):
    # Values match as strings, so they order as strings; json breaks ties between 1 and "1".
    return (f.name, str(f.value), json.dumps(f.value))


class ViewIdentity:
    """Filter set plus optional sort; the logical identity of a view.

    Filters are order-independent and duplicates collapse. ``key()`` is a
    canonical hash of that identity, computed once.
    """

    __slots__ = ("_filters", "_sort", "_key")

    def __init__(self, filters: Iterable[FileFilter] = (), sort: Optional[FileSort] = None):
        self._filters: FrozenSet[FileFilter] = frozenset(filters)
        self._sort = sort
        self._key: Optional[str] = None

    @property
    def filters(self) -> FrozenSet[FileFilter]:
        return self._filters

    @property
    def sort(self) -> Optional[FileSort]:
        return self._sort

    def sorted_filters(self) -> List[FileFilter]:
        return sorted(self._filters, key=_filter_sort_key)

    def key(self) -> str:
        if self._key is None:
            canonical = json.dumps(
                {
                    # 10 and "10" select the same rows, so they share a key
                    "filters": sorted({(f.name, str(f.value)) for f in self._filters}),
                    "sort": self._sort.to_dict() if self._sort else None,
                },
                sort_keys=True,
                separators=(",", ":"),
            )
            self._key = hashlib.sha1(canonical.encode("utf-8")).hexdigest()
        return self._key

    def matches(self, record: FileRecord) -> bool:
        """Same-name filters are OR-ed, different names AND-ed."""
        by_name: Dict[str, List[FileFilter]] = {}
        for f in self._filters:
            by_name.setdefault(f.name, []).append(f)
        return all(any(f.matches(record) for f in group) for group in by_name.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filters": [f.to_dict() for f in self.sorted_filters()],
            "sort": self._sort.to_dict() if self._sort else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ViewIdentity":
        sort = data.get("sort")
        return cls(
            [FileFilter.from_dict(f) for f in data.get("filters") or []],
            FileSort.from_dict(sort) if sort else None,
        )

    def __eq__(self, other) -> bool:
        if not isinstance(other, ViewIdentity):
            return NotImplemented
        return self.key() == other.key()

    def __hash__(self) -> int:
        return hash(self.key())

    def __repr__(self) -> str:
        return f"ViewIdentity(filters={self.sorted_filters()!r}, sort={self._sort!r})"
