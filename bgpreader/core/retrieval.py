"""
Retrieval loop: pulls records and elements from a started session and writes
their rendering to an output stream.
"""
import sys
from dataclasses import dataclass
from typing import TextIO

from ..utils.logger import get_logger
from .exceptions import RenderError
from .render import DEFAULT_ELEMENT_BUFFER_SIZE, render_element, render_record
from .session import CancellationToken, Session

logger = get_logger(__name__)


@dataclass(frozen=True)
class OutputModes:
    """Which renderings the loop emits."""

    records: bool = True
    bgpdump: bool = False
    elements: bool = False

    @classmethod
    def resolve(cls, records: bool = False, bgpdump: bool = False, elements: bool = False) -> "OutputModes":
        """Per-record output is the default when no mode is requested."""
        if not (records or bgpdump or elements):
            records = True
        return cls(records=records, bgpdump=bgpdump, elements=elements)


@dataclass
class RetrievalStats:
    """Counters for one loop run."""

    records: int = 0
    valid_records: int = 0
    elements: int = 0


class RetrievalLoop:
    """
    Drains a started session.

    One record, and at most one element, is live at a time. Records and
    elements are written in the order the backend delivers them.
    """

    def __init__(
        self,
        session: Session,
        modes: OutputModes | None = None,
        out: TextIO | None = None,
        cancel: CancellationToken | None = None,
        element_buffer_size: int = DEFAULT_ELEMENT_BUFFER_SIZE,
    ):
        self.session = session
        self.modes = modes or OutputModes()
        self.out = out if out is not None else sys.stdout
        self.cancel = cancel
        self.element_buffer_size = element_buffer_size
        self.stats = RetrievalStats()

    async def run(self) -> RetrievalStats:
        """
        Pull records until the backend is exhausted or the pull is cancelled.

        Returns:
            Counters for this run

        Raises:
            BackendError: If the backend fails
            RenderError: If an element cannot be rendered
        """
        while (record := await self.session.next_record(self.cancel)) is not None:
            try:
                self.stats.records += 1
                if self.modes.records:
                    self._write(render_record(record))

                if record.is_valid:
                    self.stats.valid_records += 1
                    if self.modes.bgpdump:
                        for line in self.session.dump_record(record):
                            self._write(line)
                    if self.modes.elements:
                        self._write_elements(record)
            finally:
                record.release()

        logger.info(
            "Retrieval finished",
            records=self.stats.records,
            valid_records=self.stats.valid_records,
            elements=self.stats.elements,
        )
        return self.stats

    def _write_elements(self, record) -> None:
        cursor = record.elements()
        try:
            while (elem := cursor.next()) is not None:
                try:
                    line = render_element(elem, self.element_buffer_size)
                except RenderError:
                    logger.error("Element rendering failed", record_time=record.time, collector=record.collector)
                    raise
                self._write(line)
                self.stats.elements += 1
        finally:
            cursor.close()

    def _write(self, line: str) -> None:
        self.out.write(line)
        self.out.write("\n")
