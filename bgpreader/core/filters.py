"""
Filter set accumulated before a session starts.
"""
from dataclasses import dataclass
from enum import Enum


class FilterKind(str, Enum):
    """Kinds of inclusion filters. Same kind OR-combines, different kinds AND-combine."""

    PROJECT = "project"
    COLLECTOR = "collector"
    RECORD_TYPE = "record-type"


@dataclass(frozen=True)
class FilterEntry:
    """A single (kind, value) filter. The value is matched verbatim by the backend."""

    kind: FilterKind
    value: str


@dataclass(frozen=True)
class TimeWindow:
    """
    Time window in epoch seconds, both bounds inclusive.

    No ordering is enforced: a window with start > end matches nothing.
    """

    start: int
    end: int

    def contains(self, timestamp: int) -> bool:
        return self.start <= timestamp <= self.end


@dataclass(frozen=True)
class StreamFilters:
    """Immutable view of a filter set, handed to the backend at start."""

    projects: tuple[str, ...] = ()
    collectors: tuple[str, ...] = ()
    record_types: tuple[str, ...] = ()
    windows: tuple[TimeWindow, ...] = ()
    replay_period: int | None = None

    def matches_project(self, project: str) -> bool:
        return not self.projects or project in self.projects

    def matches_collector(self, collector: str) -> bool:
        return not self.collectors or collector in self.collectors

    def matches_record_type(self, record_type: str) -> bool:
        return not self.record_types or record_type in self.record_types

    def matches_time(self, timestamp: int) -> bool:
        return any(window.contains(timestamp) for window in self.windows)

    @property
    def last_end(self) -> int | None:
        """Latest window end, or None without windows."""
        if not self.windows:
            return None
        return max(window.end for window in self.windows)


class FilterSet:
    """
    Accumulating collection of filters, windows and a replay period.

    Entries keep insertion order within a kind and are never deduplicated.
    """

    def __init__(self) -> None:
        self._entries: list[FilterEntry] = []
        self._windows: list[TimeWindow] = []
        self._replay_period: int | None = None

    def add_filter(self, kind: FilterKind | str, value: str) -> FilterEntry:
        """
        Add an inclusion filter.

        Args:
            kind: Filter kind (project, collector or record-type)
            value: Opaque value matched by the backend

        Returns:
            The stored entry

        Raises:
            ValueError: If kind is not a known filter kind
        """
        entry = FilterEntry(kind=FilterKind(kind), value=value)
        self._entries.append(entry)
        return entry

    def add_window(self, start: int, end: int) -> TimeWindow:
        window = TimeWindow(start=int(start), end=int(end))
        self._windows.append(window)
        return window

    def add_replay_period(self, seconds: int) -> None:
        """Set the replay period. Non-positive values are ignored."""
        if seconds > 0:
            self._replay_period = int(seconds)

    def filters(self, kind: FilterKind | str) -> list[str]:
        kind = FilterKind(kind)
        return [entry.value for entry in self._entries if entry.kind == kind]

    @property
    def entries(self) -> list[FilterEntry]:
        return list(self._entries)

    @property
    def projects(self) -> list[str]:
        return self.filters(FilterKind.PROJECT)

    @property
    def collectors(self) -> list[str]:
        return self.filters(FilterKind.COLLECTOR)

    @property
    def record_types(self) -> list[str]:
        return self.filters(FilterKind.RECORD_TYPE)

    @property
    def windows(self) -> list[TimeWindow]:
        return list(self._windows)

    @property
    def replay_period(self) -> int | None:
        return self._replay_period

    def snapshot(self) -> StreamFilters:
        return StreamFilters(
            projects=tuple(self.projects),
            collectors=tuple(self.collectors),
            record_types=tuple(self.record_types),
            windows=tuple(self._windows),
            replay_period=self._replay_period,
        )
