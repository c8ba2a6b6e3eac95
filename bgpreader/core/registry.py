"""
Registry of data-source backends and the options each one accepts.
"""
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, NewType

from .exceptions import BackendNotFoundError, OptionNotFoundError

if TYPE_CHECKING:
    from ..data.sources import BGPDataSource

BackendId = NewType("BackendId", int)


@dataclass(frozen=True)
class OptionInfo:
    """A named option a backend accepts."""

    name: str
    description: str


@dataclass(frozen=True)
class OptionHandle:
    """Option resolved against one backend. Only valid for that backend."""

    backend_id: BackendId
    name: str


@dataclass(frozen=True)
class BackendInfo:
    """Static description of a registered backend."""

    id: BackendId
    name: str
    description: str
    factory: Callable[[], "BGPDataSource"] = field(repr=False, compare=False)
    options: tuple[OptionInfo, ...] = ()
    is_default: bool = False


class OptionRegistry:
    """
    Enumerates backends and resolves backend and option names.

    Ids are assigned in registration order starting at 1. The last backend
    registered with `default=True` is the default; without one, the first
    backend registered is.
    """

    def __init__(self) -> None:
        self._backends: list[BackendInfo] = []
        self._default: BackendId | None = None

    def register(
        self,
        name: str,
        description: str,
        factory: Callable[[], "BGPDataSource"],
        options: tuple[OptionInfo, ...] | list[OptionInfo] = (),
        default: bool = False,
    ) -> BackendId:
        """
        Register a backend.

        Args:
            name: Unique backend name used on the command line
            description: One-line description for usage output
            factory: Creates a fresh driver for each session
            options: Options the backend accepts
            default: Make this the default backend

        Returns:
            The new backend id

        Raises:
            ValueError: If the name is already registered
        """
        if any(info.name == name for info in self._backends):
            raise ValueError(f"Backend '{name}' is already registered")

        backend_id = BackendId(len(self._backends) + 1)
        self._backends.append(
            BackendInfo(
                id=backend_id,
                name=name,
                description=description,
                factory=factory,
                options=tuple(options),
            )
        )
        if default or self._default is None:
            self._default = backend_id
        return backend_id

    def list_backends(self) -> list[BackendInfo]:
        return [self._with_default_flag(info) for info in self._backends]

    def default_backend(self) -> BackendId:
        if self._default is None:
            raise BackendNotFoundError("<default>")
        return self._default

    def info(self, backend_id: BackendId) -> BackendInfo:
        for info in self._backends:
            if info.id == backend_id:
                return self._with_default_flag(info)
        raise BackendNotFoundError(str(backend_id))

    def resolve_backend(self, name: str) -> BackendId:
        for info in self._backends:
            if info.name == name:
                return info.id
        raise BackendNotFoundError(name)

    def list_options(self, backend_id: BackendId) -> tuple[OptionInfo, ...]:
        return self.info(backend_id).options

    def resolve_option(self, backend_id: BackendId, name: str) -> OptionHandle:
        info = self.info(backend_id)
        if not any(option.name == name for option in info.options):
            raise OptionNotFoundError(info.name, name)
        return OptionHandle(backend_id=backend_id, name=name)

    def _with_default_flag(self, info: BackendInfo) -> BackendInfo:
        if info.id != self._default:
            return info
        return BackendInfo(
            id=info.id,
            name=info.name,
            description=info.description,
            factory=info.factory,
            options=info.options,
            is_default=True,
        )
