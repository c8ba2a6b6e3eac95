"""
Session controller: backend selection, configuration and lifecycle.
"""
import asyncio
from enum import Enum
from typing import Any

from ..data.sources import BGPDataSource, StreamConfig
from ..utils.logger import get_logger
from .exceptions import (
    BackendError,
    BackendInitError,
    NoWindowError,
    OptionMismatchError,
    SessionStateError,
)
from .filters import FilterSet, StreamFilters
from .models import Record
from .registry import BackendId, OptionHandle, OptionRegistry

logger = get_logger(__name__)


class SessionState(str, Enum):
    """Session lifecycle states."""

    CONFIGURING = "configuring"
    STARTED = "started"
    ITERATING = "iterating"
    STOPPED = "stopped"
    ERROR = "error"


class CancellationToken:
    """Fires once to interrupt a pending record pull."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


class Session:
    """
    One retrieval session over one backend.

    Lifecycle: configuring -> started -> iterating -> stopped. Any failure
    moves the session to the error state, from which only `stop()` is valid.
    Options and filters can only be applied while configuring.
    """

    def __init__(self, registry: OptionRegistry, backend_id: BackendId | None = None):
        """
        Initialize a session.

        Args:
            registry: Registry the backend and option handles come from
            backend_id: Backend to use (default: registry default)
        """
        self.registry = registry
        self.state = SessionState.CONFIGURING
        self.blocking = False
        self._backend_id = backend_id if backend_id is not None else registry.default_backend()
        self._options: dict[str, str] = {}
        self._filters: StreamFilters | None = None
        self._source: BGPDataSource | None = None

    @property
    def backend_id(self) -> BackendId:
        return self._backend_id

    @property
    def backend_name(self) -> str:
        return self.registry.info(self._backend_id).name

    @property
    def options(self) -> dict[str, str]:
        return dict(self._options)

    @property
    def filters(self) -> StreamFilters | None:
        return self._filters

    def select_backend(self, backend_id: BackendId) -> None:
        """Select the active backend. Discards options set for the previous one."""
        self._require(SessionState.CONFIGURING, "select a backend")
        self.registry.info(backend_id)
        self._backend_id = backend_id
        self._options.clear()

    def set_backend_option(self, handle: OptionHandle, value: str) -> None:
        """
        Set an option on the active backend.

        Raises:
            OptionMismatchError: If the handle belongs to another backend
        """
        self._require(SessionState.CONFIGURING, "set a backend option")
        if handle.backend_id != self._backend_id:
            owner = self.registry.info(handle.backend_id).name
            raise OptionMismatchError(
                f"Option '{handle.name}' belongs to data interface '{owner}', "
                f"not '{self.backend_name}'"
            )
        self._options[handle.name] = value

    async def start(self, filters: FilterSet, blocking: bool = False) -> None:
        """
        Open the backend with a snapshot of the filter set.

        Args:
            filters: Filters to apply; must contain at least one window
            blocking: Wait for new data instead of ending when data runs out

        Raises:
            NoWindowError: If no time window was configured
            BackendInitError: If the backend cannot be initialized
        """
        self._require(SessionState.CONFIGURING, "start")
        if not filters.windows:
            raise NoWindowError()

        self._filters = filters.snapshot()
        self.blocking = blocking
        info = self.registry.info(self._backend_id)
        config = StreamConfig(filters=self._filters, options=dict(self._options), blocking=blocking)

        try:
            self._source = info.factory()
            await self._source.open(config)
        except BackendInitError:
            self.state = SessionState.ERROR
            raise
        except Exception as e:
            self.state = SessionState.ERROR
            raise BackendInitError(f"Could not init data interface '{info.name}': {e}") from e

        self.state = SessionState.STARTED
        logger.info(
            "Session started",
            backend=info.name,
            blocking=blocking,
            windows=len(self._filters.windows),
            options=sorted(self._options),
        )

    async def next_record(self, cancel: CancellationToken | None = None) -> Record | None:
        """
        Pull the next record from the backend.

        Args:
            cancel: Token interrupting a pull that is waiting for data

        Returns:
            The next record, or None when the data is exhausted or the pull
            was cancelled

        Raises:
            BackendError: If the backend fails
        """
        if self.state not in (SessionState.STARTED, SessionState.ITERATING):
            raise SessionStateError(f"Cannot pull records in state '{self.state.value}'")
        self.state = SessionState.ITERATING

        if cancel is not None and cancel.cancelled:
            return None

        try:
            if cancel is None:
                return await self._source.next_record()
            return await self._pull_cancellable(cancel)
        except BackendError:
            self.state = SessionState.ERROR
            raise
        except Exception as e:
            self.state = SessionState.ERROR
            raise BackendError(f"Data interface '{self.backend_name}' failed: {e}") from e

    async def _pull_cancellable(self, cancel: CancellationToken) -> Record | None:
        pull = asyncio.ensure_future(self._source.next_record())
        waiter = asyncio.ensure_future(cancel.wait())
        try:
            done, _ = await asyncio.wait({pull, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            pull.cancel()
            raise
        finally:
            waiter.cancel()

        if pull in done:
            return pull.result()

        pull.cancel()
        try:
            await pull
        except asyncio.CancelledError:
            pass
        logger.info("Record pull cancelled", backend=self.backend_name)
        return None

    def dump_record(self, record: Record) -> list[str]:
        if self._source is None:
            raise SessionStateError("Session has no open backend")
        return self._source.dump_record(record)

    async def stop(self) -> None:
        """Release the backend. Safe to call in any state and more than once."""
        if self.state == SessionState.STOPPED:
            return

        source, self._source = self._source, None
        self.state = SessionState.STOPPED
        if source is not None:
            await source.close()
            logger.info("Session stopped", backend=self.backend_name)

    def _require(self, state: SessionState, action: str) -> None:
        if self.state != state:
            raise SessionStateError(f"Cannot {action} in state '{self.state.value}'")

    async def __aenter__(self) -> "Session":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()
