"""
libbgpstream data interfaces, driven through the pybgpstream extension.
"""
import asyncio
import queue
import threading
from typing import Any, Callable

try:
    import _pybgpstream
except ImportError:
    _pybgpstream = None

from ..core.exceptions import BackendError, BackendInitError
from ..core.models import DumpPosition, DumpType, Element, ElementType, Record, RecordStatus
from ..core.registry import OptionInfo
from ..utils.logger import get_logger
from .sources import BGPDataSource, StreamConfig

logger = get_logger(__name__)

# Option metadata for the data interfaces libbgpstream ships with.
DATA_INTERFACES: dict[str, tuple[str, tuple[OptionInfo, ...]]] = {
    "broker": (
        "Retrieve metadata information from the BGPStream Broker",
        (
            OptionInfo("url", "Broker URI (default: https://broker.bgpstream.caida.org/v2)"),
            OptionInfo("param", "Additional Broker GET parameter"),
            OptionInfo("cache-dir", "Enable local cache at provided directory"),
        ),
    ),
    "singlefile": (
        "Read a single mrt data file (a RIB and/or an update)",
        (
            OptionInfo("rib-file", "rib mrt file to read (default: unset)"),
            OptionInfo("upd-file", "updates mrt file to read (default: unset)"),
        ),
    ),
    "csvfile": (
        "Retrieve metadata information from a csv file",
        (OptionInfo("csv-file", "csv file listing the mrt data to read (default: unset)"),),
    ),
    "sqlite": (
        "Retrieve metadata information from a sqlite database",
        (OptionInfo("db-file", "sqlite database (default: unset)"),),
    ),
    "kafka": (
        "Read updates in real-time from an Apache Kafka topic",
        (
            OptionInfo("brokers", "Comma-separated list of kafka brokers (host:port)"),
            OptionInfo("topic", "Topic to consume"),
            OptionInfo("group", "Consumer group id"),
            OptionInfo("offset", "Offset to start from (earliest, latest)"),
            OptionInfo("project", "Project name to assign to records"),
            OptionInfo("collector", "Collector name to assign to records"),
        ),
    ),
}

_STATUSES = {
    "valid": RecordStatus.VALID,
    "filtered-source": RecordStatus.FILTERED_SOURCE,
    "outside-interval": RecordStatus.FILTERED_SOURCE,
    "empty-source": RecordStatus.EMPTY_SOURCE,
    "corrupted-source": RecordStatus.CORRUPTED_SOURCE,
    "corrupted-record": RecordStatus.CORRUPTED_RECORD,
}

_POSITIONS = {
    "start": DumpPosition.START,
    "middle": DumpPosition.MIDDLE,
    "end": DumpPosition.END,
}


def _settle(future: asyncio.Future, result: Any, error: BaseException | None) -> None:
    if future.done():
        # Caller stopped waiting (cancelled pull)
        return
    if error is not None:
        future.set_exception(error)
    else:
        future.set_result(result)


class StreamWorker:
    """
    Daemon thread that runs blocking libbgpstream calls one at a time.

    A call stuck in libbgpstream (live mode with no new data) can be
    abandoned: the thread is a daemon, so it never holds up interpreter exit.
    """

    def __init__(self, name: str):
        self._calls: queue.SimpleQueue = queue.SimpleQueue()
        self._thread = threading.Thread(target=self._serve, name=name, daemon=True)
        self._thread.start()

    def _serve(self) -> None:
        while True:
            item = self._calls.get()
            if item is None:
                return
            loop, future, func = item
            try:
                result, error = func(), None
            except Exception as e:
                result, error = None, e
            try:
                loop.call_soon_threadsafe(_settle, future, result, error)
            except RuntimeError:
                # Event loop closed while the call was blocked; nobody is waiting.
                logger.debug("Dropping result of abandoned BGPStream call")

    async def call(self, func: Callable[[], Any]) -> Any:
        """Run `func` on the worker thread and wait for its result."""
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._calls.put((loop, future, func))
        return await future

    def shutdown(self) -> None:
        """Stop the thread once any call in progress returns."""
        self._calls.put(None)

    def is_alive(self) -> bool:
        return self._thread.is_alive()


class BGPStreamSource(BGPDataSource):
    """
    Data source backed by one libbgpstream data interface.

    libbgpstream calls block, so they run on a dedicated worker thread.
    """

    def __init__(self, interface: str):
        """
        Initialize BGPStream source.

        Args:
            interface: libbgpstream data interface name (e.g., "broker")
        """
        self.interface = interface
        self.stream = None
        self._worker: StreamWorker | None = None
        self._open = False

    async def open(self, config: StreamConfig) -> None:
        """Configure and start the libbgpstream stream."""
        if self._open:
            return
        if _pybgpstream is None:
            raise BackendInitError("pybgpstream is not installed. Install with: pip install bgpreader[bgpstream]")

        filters = config.filters
        try:
            stream = _pybgpstream.BGPStream()
            stream.set_data_interface(self.interface)
            for name, value in config.options.items():
                stream.set_data_interface_option(self.interface, name, value)
            for project in filters.projects:
                stream.add_filter("project", project)
            for collector in filters.collectors:
                stream.add_filter("collector", collector)
            for record_type in filters.record_types:
                stream.add_filter("record-type", record_type)
            for window in filters.windows:
                stream.add_interval_filter(window.start, window.end)
            if filters.replay_period:
                stream.add_rib_period_filter(filters.replay_period)
            if config.blocking:
                stream.set_live_mode()

            self._worker = StreamWorker(name=f"bgpstream-{self.interface}")
            await self._worker.call(stream.start)
        except Exception as e:
            self._shutdown_worker()
            raise BackendInitError(f"Could not init BGPStream data interface '{self.interface}': {e}") from e

        self.stream = stream
        self._open = True
        logger.info("BGPStream started", interface=self.interface, blocking=config.blocking)

    async def close(self) -> None:
        """Release the stream and its worker thread."""
        self.stream = None
        self._open = False
        self._shutdown_worker()

    async def next_record(self) -> Record | None:
        if not self._open:
            raise BackendError("BGPStream source is not open")

        try:
            raw = await self._worker.call(self.stream.get_next_record)
        except Exception as e:
            raise BackendError(f"Failed to read from BGPStream: {e}") from e

        if raw is None:
            return None
        return self._convert_record(raw)

    def is_open(self) -> bool:
        """Check if the stream is started."""
        return self._open

    def _shutdown_worker(self) -> None:
        if self._worker is not None:
            self._worker.shutdown()
            self._worker = None

    def _convert_record(self, raw: Any) -> Record:
        elements: tuple[Element, ...] | None = None

        def element_source() -> tuple[Element, ...]:
            # The extension hands out each element once; keep them for later cursors.
            nonlocal elements
            if elements is None:
                elements = tuple(self._drain_elements(raw))
            return elements

        return Record(
            time=int(raw.time),
            project=raw.project,
            collector=raw.collector,
            dump_type=DumpType.RIB if raw.type == "rib" else DumpType.UPDATE,
            dump_position=_POSITIONS.get(raw.dump_position, DumpPosition.MIDDLE),
            status=_STATUSES.get(raw.status, RecordStatus.CORRUPTED_RECORD),
            dump_time=int(raw.dump_time),
            element_source=element_source,
        )

    @staticmethod
    def _drain_elements(raw: Any):
        while (elem := raw.get_next_elem()) is not None:
            fields = elem.fields
            communities = fields.get("communities") or []
            yield Element(
                type=ElementType(elem.type),
                time=int(elem.time),
                peer_address=elem.peer_address,
                peer_asn=int(elem.peer_asn),
                prefix=fields.get("prefix"),
                next_hop=fields.get("next-hop"),
                as_path=fields.get("as-path"),
                communities=[str(c) if not isinstance(c, dict) else f"{c['asn']}:{c['value']}" for c in communities],
                old_state=fields.get("old-state"),
                new_state=fields.get("new-state"),
                origin=fields.get("origin"),
            )
