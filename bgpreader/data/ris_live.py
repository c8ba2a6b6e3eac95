"""
RIPE RIS Live data source: BGP messages streamed as JSON over HTTP.
"""
import asyncio
import json
import time
from contextlib import AsyncExitStack
from typing import Any, AsyncIterator

import httpx

from ..core.exceptions import BackendError, BackendInitError
from ..core.filters import StreamFilters
from ..core.models import DumpPosition, DumpType, Element, ElementType, Record, RecordStatus
from ..core.registry import OptionInfo
from ..utils.logger import get_logger
from .sources import BGPDataSource, StreamConfig

logger = get_logger(__name__)

PROJECT = "ris-live"

OPTIONS = (
    OptionInfo("url", "RIS Live streaming endpoint"),
    OptionInfo("client", "Client identifier sent with the request"),
    OptionInfo("idle-timeout", "Seconds without data before a non-blocking stream ends"),
)


def _format_path(path: list[Any]) -> str:
    hops = []
    for hop in path:
        if isinstance(hop, list):
            # AS_SET
            hops.append("{" + ",".join(str(asn) for asn in hop) + "}")
        else:
            hops.append(str(hop))
    return " ".join(hops)


def _collector_name(host: str) -> str:
    return host.removesuffix(".ripe.net")


class RISLiveSource(BGPDataSource):
    """
    RIS Live data source.

    Only carries update messages. Filters are applied locally; a single
    collector filter is also passed to the server as `host`. The stream ends
    once every configured window has passed, or, in non-blocking mode, after
    `idle-timeout` seconds without data.
    """

    def __init__(
        self,
        endpoint: str,
        client_name: str = "bgpreader",
        idle_timeout: float = 10.0,
        http_timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize RIS Live source.

        Args:
            endpoint: RIS Live streaming URL
            client_name: Client identifier sent to RIS Live
            idle_timeout: Non-blocking idle timeout in seconds
            http_timeout: Connect/write timeout in seconds
            transport: Optional httpx transport (tests use a mock transport)
        """
        self.endpoint = endpoint
        self.client_name = client_name
        self.idle_timeout = idle_timeout
        self.http_timeout = http_timeout
        self.transport = transport
        self.filters = StreamFilters()
        self.blocking = False
        self._stack: AsyncExitStack | None = None
        self._lines: AsyncIterator[str] | None = None
        self._last_time = 0
        self._open = False

    async def open(self, config: StreamConfig) -> None:
        """Connect to the RIS Live stream."""
        if self._open:
            return

        self._apply_options(config.options)
        self.filters = config.filters
        self.blocking = config.blocking

        if not self.filters.matches_project(PROJECT) or not self.filters.matches_record_type("updates"):
            logger.info("RIS Live filtered out by project/type filters", projects=self.filters.projects)
            self._open = True
            return
        if self.filters.replay_period:
            logger.info("RIS Live carries no RIB dumps, ignoring replay period", period=self.filters.replay_period)

        params = {"format": "json", "client": self.client_name}
        if len(self.filters.collectors) == 1:
            params["host"] = self.filters.collectors[0]

        stack = AsyncExitStack()
        try:
            client = await stack.enter_async_context(
                httpx.AsyncClient(
                    timeout=httpx.Timeout(self.http_timeout, read=None),
                    transport=self.transport,
                )
            )
            response = await stack.enter_async_context(client.stream("GET", self.endpoint, params=params))
            response.raise_for_status()
        except httpx.HTTPError as e:
            await stack.aclose()
            raise BackendInitError(f"Failed to connect to RIS Live: {e}") from e

        self._stack = stack
        self._lines = response.aiter_lines()
        self._open = True
        logger.info("Connected to RIS Live", endpoint=self.endpoint, params=params)

    def _apply_options(self, options: dict[str, str]) -> None:
        if "url" in options:
            if not options["url"].startswith(("http://", "https://")):
                raise BackendInitError(f"Invalid RIS Live url '{options['url']}'")
            self.endpoint = options["url"]
        if "client" in options:
            self.client_name = options["client"]
        if "idle-timeout" in options:
            try:
                self.idle_timeout = float(options["idle-timeout"])
            except ValueError as e:
                raise BackendInitError(f"Invalid idle-timeout '{options['idle-timeout']}'") from e
            if self.idle_timeout <= 0:
                raise BackendInitError("idle-timeout must be positive")

    async def close(self) -> None:
        """Disconnect from RIS Live."""
        stack, self._stack = self._stack, None
        self._lines = None
        self._open = False
        if stack is not None:
            await stack.aclose()

    async def next_record(self) -> Record | None:
        if not self._open:
            raise BackendError("RIS Live source is not open")

        while self._lines is not None:
            line = await self._read_line()
            if line is None:
                self._lines = None
                return None
            if not line.strip():
                continue

            record = self._parse_line(line)
            if record is None:
                continue
            if record.status == RecordStatus.CORRUPTED_RECORD:
                # No trustworthy time or collector to filter on
                return record

            last_end = self.filters.last_end
            if last_end is not None and record.time > last_end:
                logger.info("All time windows have passed", last_end=last_end)
                self._lines = None
                return None
            if not self.filters.matches_time(record.time):
                continue
            if not self.filters.matches_collector(record.collector):
                continue
            return record

        return None

    def is_open(self) -> bool:
        """Check if connected to RIS Live."""
        return self._open

    async def _read_line(self) -> str | None:
        try:
            if self.blocking:
                return await anext(self._lines)
            return await asyncio.wait_for(anext(self._lines), timeout=self.idle_timeout)
        except StopAsyncIteration:
            return None
        except asyncio.TimeoutError:
            logger.info("RIS Live idle, ending stream", idle_timeout=self.idle_timeout)
            return None
        except httpx.HTTPError as e:
            raise BackendError(f"Error reading from RIS Live: {e}") from e

    def _parse_line(self, line: str) -> Record | None:
        try:
            message = json.loads(line)
        except json.JSONDecodeError:
            logger.warning("Undecodable RIS Live message", size=len(line))
            return self._corrupted_record()

        if not isinstance(message, dict):
            return None
        if message.get("type") == "ris_error":
            raise BackendError(f"RIS Live error: {message.get('data', {}).get('message', message)}")
        if message.get("type") != "ris_message":
            return None

        try:
            return self._convert_message(message.get("data", {}))
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning("Malformed RIS Live message", error=str(e))
            return self._corrupted_record()

    def _corrupted_record(self) -> Record:
        # Stamped with the last good message time, or now if none arrived yet.
        timestamp = self._last_time or int(time.time())
        return Record(
            time=timestamp,
            project=PROJECT,
            collector="",
            dump_type=DumpType.UPDATE,
            dump_position=DumpPosition.MIDDLE,
            status=RecordStatus.CORRUPTED_RECORD,
            dump_time=timestamp,
        )

    def _convert_message(self, data: dict[str, Any]) -> Record:
        """
        Convert a RIS Live message to a record.

        Expected format:
        {
            "timestamp": 1700000000.12,
            "peer": "192.0.2.1",
            "peer_asn": "65001",
            "host": "rrc00.ripe.net",
            "type": "UPDATE",
            "path": [65001, 65002],
            "community": [[65001, 100]],
            "announcements": [{"next_hop": "192.0.2.1", "prefixes": ["203.0.113.0/24"]}],
            "origin": "IGP",
            "withdrawals": ["198.51.100.0/24"]
        }
        """
        timestamp = int(data.get("timestamp", 0))
        peer_address = data.get("peer", "")
        peer_asn = int(data.get("peer_asn", 0))

        elements: list[Element] = []
        if data.get("type") == "UPDATE":
            as_path = _format_path(data.get("path", []))
            communities = [f"{asn}:{value}" for asn, value in data.get("community", [])]
            for announcement in data.get("announcements", []):
                for prefix in announcement.get("prefixes", []):
                    elements.append(
                        Element(
                            type=ElementType.ANNOUNCEMENT,
                            time=timestamp,
                            peer_address=peer_address,
                            peer_asn=peer_asn,
                            prefix=prefix,
                            next_hop=announcement.get("next_hop"),
                            as_path=as_path,
                            communities=communities,
                            origin=data.get("origin"),
                        )
                    )
            for prefix in data.get("withdrawals", []):
                elements.append(
                    Element(
                        type=ElementType.WITHDRAWAL,
                        time=timestamp,
                        peer_address=peer_address,
                        peer_asn=peer_asn,
                        prefix=prefix,
                    )
                )
        elif data.get("type") == "RIS_PEER_STATE":
            elements.append(
                Element(
                    type=ElementType.PEER_STATE,
                    time=timestamp,
                    peer_address=peer_address,
                    peer_asn=peer_asn,
                    new_state=data.get("state"),
                )
            )

        self._last_time = timestamp
        return Record.from_elements(
            elements,
            time=timestamp,
            project=PROJECT,
            collector=_collector_name(data.get("host", "")),
            dump_type=DumpType.UPDATE,
            dump_position=DumpPosition.MIDDLE,
            status=RecordStatus.VALID,
            dump_time=timestamp,
        )
