"""
Pytest configuration and fixtures for bgpreader tests.
"""
import asyncio
from collections import deque
from typing import Iterable

import pytest

from bgpreader.app.config import Settings
from bgpreader.core.exceptions import BackendError, BackendInitError
from bgpreader.core.models import DumpPosition, DumpType, Element, ElementType, Record, RecordStatus
from bgpreader.core.registry import OptionInfo, OptionRegistry
from bgpreader.data.sources import BGPDataSource, StreamConfig


def make_record(
    time: int,
    status: RecordStatus = RecordStatus.VALID,
    elements: Iterable[Element] = (),
    dump_type: DumpType = DumpType.RIB,
    dump_position: DumpPosition = DumpPosition.MIDDLE,
    project: str = "routeviews",
    collector: str = "route-views2",
    dump_time: int | None = None,
) -> Record:
    """Build a record with an in-memory payload."""
    return Record.from_elements(
        elements,
        time=time,
        project=project,
        collector=collector,
        dump_type=dump_type,
        dump_position=dump_position,
        status=status,
        dump_time=time if dump_time is None else dump_time,
    )


def make_element(time: int = 50, prefix: str = "192.0.2.0/24", **overrides) -> Element:
    attrs = {
        "type": ElementType.RIB,
        "time": time,
        "peer_address": "198.51.100.1",
        "peer_asn": 65001,
        "prefix": prefix,
        "next_hop": "198.51.100.1",
        "as_path": "65001 65002 65003",
        "communities": ["65001:100"],
        "origin": "IGP",
    }
    attrs.update(overrides)
    return Element(**attrs)


class FakeSource(BGPDataSource):
    """In-memory backend that serves a fixed list of records."""

    def __init__(
        self,
        records: Iterable[Record] = (),
        fail_open: bool = False,
        fail_after: int | None = None,
    ):
        self.records = list(records)
        self.fail_open = fail_open
        self.fail_after = fail_after
        self.config: StreamConfig | None = None
        self.pending: deque[Record] = deque()
        self.served = 0
        self.close_calls = 0
        self._open = False

    async def open(self, config: StreamConfig) -> None:
        self.config = config
        if self.fail_open:
            raise BackendInitError("Could not reach data source")
        self.pending = deque(
            record for record in self.records if config.filters.matches_time(record.time)
        )
        self._open = True

    async def close(self) -> None:
        self.close_calls += 1
        self._open = False

    async def next_record(self) -> Record | None:
        if self.fail_after is not None and self.served >= self.fail_after:
            raise BackendError("Connection reset by data source")
        if self.pending:
            self.served += 1
            return self.pending.popleft()
        if self.config.blocking:
            # Live source with nothing new: wait until cancelled.
            await asyncio.Event().wait()
        return None

    def is_open(self) -> bool:
        return self._open


def build_fake_registry(source: BGPDataSource) -> OptionRegistry:
    """Registry with `fake` (default, serving `source`) and `other` backends."""
    registry = OptionRegistry()
    registry.register(
        "fake",
        "In-memory records",
        lambda: source,
        options=[OptionInfo("path", "Where records come from")],
        default=True,
    )
    registry.register(
        "other",
        "Another data source",
        FakeSource,
        options=[OptionInfo("url", "Remote location"), OptionInfo("path", "Local location")],
    )
    return registry


@pytest.fixture
def settings():
    """Settings independent of the environment."""
    return Settings(_env_file=None, LOG_LEVEL="CRITICAL")


@pytest.fixture
def sample_elements():
    return [
        make_element(prefix="192.0.2.0/24"),
        make_element(prefix="198.51.100.0/24"),
        make_element(prefix="203.0.113.0/24"),
    ]


@pytest.fixture
def fake_source():
    return FakeSource([make_record(50)])


@pytest.fixture
def fake_registry(fake_source):
    return build_fake_registry(fake_source)
