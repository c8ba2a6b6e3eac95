"""
BGP data source abstraction layer.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from ..core.filters import StreamFilters
from ..core.models import Record
from ..core.render import render_bgpdump


@dataclass(frozen=True)
class StreamConfig:
    """Everything a backend sees when it is opened."""

    filters: StreamFilters
    options: dict[str, str] = field(default_factory=dict)
    blocking: bool = False


class BGPDataSource(ABC):
    """
    Abstract base class for BGP data sources.

    Implementations pull records from one origin (archive dumps, live feeds)
    and honour the filters they are opened with.
    """

    @abstractmethod
    async def open(self, config: StreamConfig) -> None:
        """
        Open the data source.

        Args:
            config: Filters, option values and blocking mode

        Raises:
            BackendInitError: If the source cannot be initialized
        """

    @abstractmethod
    async def close(self) -> None:
        """Release the data source. Safe to call more than once."""

    @abstractmethod
    async def next_record(self) -> Record | None:
        """
        Pull the next record.

        Returns:
            The next record, or None once the data is exhausted. Blocking
            sources wait for new data instead of returning None.

        Raises:
            BackendError: If the source fails while fetching data
        """

    @abstractmethod
    def is_open(self) -> bool:
        """Check if the data source is open."""

    def dump_record(self, record: Record) -> list[str]:
        """Render a valid record in the source's native dump format."""
        return render_bgpdump(record)
