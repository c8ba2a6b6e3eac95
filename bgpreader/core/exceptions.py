"""
Error taxonomy for the retrieval session.
"""


class BGPReaderError(Exception):
    """Base class for all bgpreader errors."""


class UsageError(BGPReaderError):
    """Raised for malformed command-line input."""


class BackendNotFoundError(BGPReaderError, LookupError):
    """Raised when a backend name does not resolve."""

    def __init__(self, name: str):
        super().__init__(f"Invalid data interface name '{name}'")
        self.name = name


class OptionNotFoundError(BGPReaderError, LookupError):
    """Raised when an option name is not owned by the given backend."""

    def __init__(self, backend_name: str, option_name: str):
        super().__init__(f"Invalid option '{option_name}' for data interface '{backend_name}'")
        self.backend_name = backend_name
        self.option_name = option_name


class OptionMismatchError(BGPReaderError):
    """Raised when an option handle is used against a backend that does not own it."""


class SessionStateError(BGPReaderError):
    """Raised when a session operation is called in the wrong state."""


class NoWindowError(BGPReaderError):
    """Raised when a session is started without any time window."""

    def __init__(self) -> None:
        super().__init__("At least one time window must be specified using -w")


class BackendInitError(BGPReaderError):
    """Raised when the backend cannot be initialized. Fatal for the session."""


class BackendError(BGPReaderError):
    """Raised when the backend fails while fetching data."""


class RenderError(BGPReaderError):
    """
    Raised when an element does not fit the output buffer.

    Attributes:
        truncated: Best-effort truncated rendering, for diagnostics
    """

    def __init__(self, message: str, truncated: str = ""):
        super().__init__(message)
        self.truncated = truncated
