# core/interval.py
"""Closed integer ranges used for selection and page bookkeeping."""
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, Optional, Tuple


def _check_index(name: str, value) -> None:
    # bool is an int subclass; True/False are never valid row indices.
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"Interval {name} must be an int, got {type(value).__name__}")
    if value < 0:
        raise ValueError(f"Interval {name} must be non-negative, got {value}")


@dataclass(frozen=True, order=True)
class Interval:
    """Immutable range of row indices, inclusive on both ends.

    ``Interval(5)`` is shorthand for the single index ``Interval(5, 5)``.
    """
    start: int
    end: Optional[int] = None

    def __post_init__(self):
        _check_index("start", self.start)
        if self.end is None:
            object.__setattr__(self, "end", self.start)
        _check_index("end", self.end)
        if self.start > self.end:
            raise ValueError(f"Interval start {self.start} is greater than end {self.end}")

    def __len__(self) -> int:
        return self.end - self.start + 1

    def __iter__(self) -> Iterator[int]:
        return iter(range(self.start, self.end + 1))

    def __repr__(self) -> str:
        return f"Interval({self.start}, {self.end})"

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def contains(self, index: int) -> bool:
        return self.start <= index <= self.end

    def overlaps(self, other: "Interval") -> bool:
        return self.start <= other.end and other.start <= self.end

    def abuts(self, other: "Interval") -> bool:
        """True when the two are disjoint with no integer between them."""
        return self.end + 1 == other.start or other.end + 1 == self.start

    # ------------------------------------------------------------------
    # Transformations (always return new intervals)
    # ------------------------------------------------------------------

    def union(self, other: "Interval") -> "Interval":
        if not (self.overlaps(other) or self.abuts(other)):
            raise ValueError(f"Cannot union disjoint intervals {self!r} and {other!r}")
        return Interval(min(self.start, other.start), max(self.end, other.end))

    def expand_to(self, index: int) -> "Interval":
        """Grow by at most one step so that *index* is covered."""
        if not (self.start - 1 <= index <= self.end + 1):
            raise ValueError(f"{index} is neither inside nor adjacent to {self!r}")
        return Interval(min(self.start, index), max(self.end, index))

    def partition_at(self, index: int) -> Tuple["Interval", ...]:
        """Remove *index*, leaving zero, one or two intervals."""
        if not self.contains(index):
            raise ValueError(f"{index} is not contained in {self!r}")
        parts = []
        if index > self.start:
            parts.append(Interval(self.start, index - 1))
        if index < self.end:
            parts.append(Interval(index + 1, self.end))
        return tuple(parts)

    @staticmethod
    def compact(intervals: Iterable["Interval"]) -> Tuple["Interval", ...]:
        """Merge overlapping and abutting intervals into a sorted, disjoint tuple."""
        merged: list = []
        for interval in sorted(intervals):
            if merged and (merged[-1].overlaps(interval) or merged[-1].abuts(interval)):
                merged[-1] = merged[-1].union(interval)
            else:
                merged.append(interval)
        return tuple(merged)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, int]:
        return {"start": self.start, "end": self.end}

    @classmethod
    def from_dict(cls, data: Dict[str, int]) -> "Interval":
        return cls(data["start"], data["end"])
