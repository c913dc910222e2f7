import dataclasses
import json
import typing
from typing import Any, List, Dict, Optional


# ==============================================================================
#  Base Message class
# ==============================================================================

@dataclasses.dataclass
class Message:
    """Base for all protocol models. Provides dict/JSON round-trip."""

    @classmethod
    def model_validate(cls, data: dict):
        """Construct from dict, recursively hydrating nested Message fields."""
        if not isinstance(data, dict):
            raise TypeError(f"{cls.__name__} expects an object, got {type(data).__name__}")
        hints = typing.get_type_hints(cls)
        kwargs = {}
        for f in dataclasses.fields(cls):
            if f.name not in data:
                continue
            val = data[f.name]
            hint = hints.get(f.name)
            origin = getattr(hint, '__origin__', None)
            # List[MessageSubclass]
            if origin is list and val:
                inner = getattr(hint, '__args__', (None,))[0]
                if inner and isinstance(inner, type) and issubclass(inner, Message):
                    val = [inner.model_validate(v) if isinstance(v, dict) else v for v in val]
            # Optional[MessageSubclass] or bare MessageSubclass
            elif isinstance(val, dict):
                candidates = getattr(hint, '__args__', (hint,)) if origin is typing.Union else (hint,)
                for inner in candidates:
                    if isinstance(inner, type) and issubclass(inner, Message):
                        val = inner.model_validate(val)
                        break
            kwargs[f.name] = val
        return cls(**kwargs)

    def model_dump(self) -> dict:
        return dataclasses.asdict(self)

    def model_dump_json(self) -> str:
        return json.dumps(self.model_dump())


# ==============================================================================
#  Base Models & Common Structures
# ==============================================================================

@dataclasses.dataclass
class Request(Message):
    """Base model for all client-to-server requests."""
    command: str = ""
    session_id: Optional[str] = None

@dataclasses.dataclass
class Response(Message):
    """Base model for all server-to-client responses."""
    status: str = "success"
    message: Optional[str] = None

@dataclasses.dataclass
class ErrorResponse(Response):
    """Standardized error response."""
    status: str = "error"
    message: str = ""

@dataclasses.dataclass
class FilterModel(Message):
    name: str = ""
    value: Any = None

    def __post_init__(self):
        if not self.name:
            raise ValueError("filter name must not be empty")

@dataclasses.dataclass
class SortModel(Message):
    annotation_name: str = ""
    order: str = "ASC"

    def __post_init__(self):
        if not self.annotation_name:
            raise ValueError("sort annotation_name must not be empty")
        if self.order not in ("ASC", "DESC"):
            raise ValueError(f"sort order must be ASC or DESC, got {self.order!r}")

@dataclasses.dataclass
class ViewModel(Message):
    """Wire form of a view identity: filters plus optional sort."""
    filters: List[FilterModel] = dataclasses.field(default_factory=list)
    sort: Optional[SortModel] = None

@dataclasses.dataclass
class RangeModel(Message):
    start: int = 0
    end: int = 0

@dataclasses.dataclass
class ViewRangesModel(ViewModel):
    """One view's share of a compact range selection."""
    ranges: List[RangeModel] = dataclasses.field(default_factory=list)

# ==============================================================================
#  Request/Response Models
# ==============================================================================

# --- Ping ---
@dataclasses.dataclass
class PingRequest(Request):
    command: str = "ping"

# --- Count ---
@dataclasses.dataclass
class CountRequest(Request):
    command: str = "count"
    view: ViewModel = dataclasses.field(default_factory=ViewModel)

@dataclasses.dataclass
class CountResponse(Response):
    count: int = 0

# --- Fetch Records ---
@dataclasses.dataclass
class FetchRecordsRequest(Request):
    command: str = "fetch_records"
    view: ViewModel = dataclasses.field(default_factory=ViewModel)
    offset: int = 0
    limit: int = 100

    def __post_init__(self):
        if isinstance(self.offset, bool) or not isinstance(self.offset, int) or self.offset < 0:
            raise ValueError(f"offset must be a non-negative integer, got {self.offset!r}")
        if isinstance(self.limit, bool) or not isinstance(self.limit, int) or self.limit <= 0:
            raise ValueError(f"limit must be a positive integer, got {self.limit!r}")

@dataclasses.dataclass
class FetchRecordsResponse(Response):
    # why: FileRecord.to_dict() payloads; hydrated client-side with FileRecord.from_dict()
    records: List[Dict[str, Any]] = dataclasses.field(default_factory=list)

# --- Aggregate ---
@dataclasses.dataclass
class AggregateRequest(Request):
    command: str = "aggregate"
    selection: List[ViewRangesModel] = dataclasses.field(default_factory=list)

@dataclasses.dataclass
class AggregateResponse(Response):
    count: int = 0
    size: Optional[int] = None
