"""Retrieval session core: filters, backend registry, session and loop."""
from .exceptions import (
    BackendError,
    BackendInitError,
    BackendNotFoundError,
    BGPReaderError,
    NoWindowError,
    OptionMismatchError,
    OptionNotFoundError,
    RenderError,
    SessionStateError,
    UsageError,
)
from .filters import FilterEntry, FilterKind, FilterSet, StreamFilters, TimeWindow
from .models import DumpPosition, DumpType, Element, ElementCursor, ElementType, Record, RecordStatus
from .registry import BackendId, BackendInfo, OptionHandle, OptionInfo, OptionRegistry
from .render import render_bgpdump, render_element, render_record
from .session import CancellationToken, Session, SessionState
from .retrieval import OutputModes, RetrievalLoop, RetrievalStats

__all__ = [
    "BackendError",
    "BackendId",
    "BackendInfo",
    "BackendInitError",
    "BackendNotFoundError",
    "BGPReaderError",
    "CancellationToken",
    "DumpPosition",
    "DumpType",
    "Element",
    "ElementCursor",
    "ElementType",
    "FilterEntry",
    "FilterKind",
    "FilterSet",
    "NoWindowError",
    "OptionHandle",
    "OptionInfo",
    "OptionMismatchError",
    "OptionNotFoundError",
    "OptionRegistry",
    "OutputModes",
    "Record",
    "RecordStatus",
    "RenderError",
    "RetrievalLoop",
    "RetrievalStats",
    "Session",
    "SessionState",
    "SessionStateError",
    "StreamFilters",
    "TimeWindow",
    "UsageError",
    "render_bgpdump",
    "render_element",
    "render_record",
]
