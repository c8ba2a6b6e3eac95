"""
Record and element models yielded by the retrieval protocol.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Iterator


class DumpType(str, Enum):
    """Kind of dump a record comes from."""

    UPDATE = "update"
    RIB = "rib"


class DumpPosition(str, Enum):
    """Position of a record within its dump file."""

    START = "start"
    MIDDLE = "middle"
    END = "end"


class RecordStatus(str, Enum):
    """Terminal classification of a record. Only VALID carries elements."""

    VALID = "valid_record"
    FILTERED_SOURCE = "filtered_source"
    EMPTY_SOURCE = "empty_source"
    CORRUPTED_SOURCE = "corrupted_source"
    CORRUPTED_RECORD = "corrupted_record"


class ElementType(str, Enum):
    """Routing element types."""

    RIB = "R"
    ANNOUNCEMENT = "A"
    WITHDRAWAL = "W"
    PEER_STATE = "S"


@dataclass
class Element:
    """One routing entry extracted from a valid record."""

    type: ElementType
    time: int
    peer_address: str
    peer_asn: int
    prefix: str | None = None
    next_hop: str | None = None
    as_path: str | None = None
    communities: list[str] = field(default_factory=list)
    old_state: str | None = None
    new_state: str | None = None
    origin: str | None = None

    @property
    def origin_asn(self) -> str | None:
        """Last hop of the AS path, if any."""
        if not self.as_path:
            return None
        return self.as_path.split()[-1]


class ElementCursor:
    """
    Single-pass cursor over the elements of one record.

    `next()` returns None once the elements are exhausted and keeps
    returning None afterwards.
    """

    def __init__(self, elements: Iterable[Element]):
        self._iter: Iterator[Element] | None = iter(elements)

    def next(self) -> Element | None:
        if self._iter is None:
            return None
        elem = next(self._iter, None)
        if elem is None:
            self._iter = None
        return elem

    def close(self) -> None:
        self._iter = None

    def __iter__(self) -> Iterator[Element]:
        while (elem := self.next()) is not None:
            yield elem


@dataclass
class Record:
    """
    One unit of retrieved data.

    Elements are produced lazily by `elements()`. Each call returns a fresh
    cursor over the same payload so a backend dump and the element output can
    both read a record.
    """

    time: int
    project: str
    collector: str
    dump_type: DumpType
    dump_position: DumpPosition
    status: RecordStatus
    dump_time: int
    element_source: Callable[[], Iterable[Element]] | None = field(default=None, repr=False)

    @classmethod
    def from_elements(cls, elements: Iterable[Element], **attrs) -> "Record":
        """Build a record whose payload is an already-known element sequence."""
        payload = tuple(elements)
        return cls(element_source=lambda: payload, **attrs)

    @property
    def is_valid(self) -> bool:
        return self.status == RecordStatus.VALID

    def elements(self) -> ElementCursor:
        """Return a cursor over this record's elements. Empty unless valid."""
        if not self.is_valid or self.element_source is None:
            return ElementCursor(())
        return ElementCursor(self.element_source())

    def release(self) -> None:
        """Drop the payload. The record keeps its metadata."""
        self.element_source = None
