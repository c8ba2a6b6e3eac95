"""
bgpreader command line: configure a session from flags, drain it and print
records and elements to stdout.
"""
import argparse
import asyncio
import signal
import sys
from typing import NoReturn, Sequence, TextIO

from pydantic import ValidationError

from . import __version__
from .app.config import Settings, get_settings
from .core.exceptions import (
    BackendError,
    BackendInitError,
    BackendNotFoundError,
    NoWindowError,
    OptionMismatchError,
    OptionNotFoundError,
    RenderError,
    UsageError,
)
from .core.filters import FilterKind, FilterSet, TimeWindow
from .core.registry import BackendId, OptionRegistry
from .core.render import DEFAULT_ELEMENT_BUFFER_SIZE
from .core.retrieval import OutputModes, RetrievalLoop, RetrievalStats
from .core.session import CancellationToken, Session
from .data import build_registry
from .utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = -1


class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that raises instead of exiting."""

    def error(self, message: str) -> NoReturn:
        raise UsageError(message)


def parse_window(value: str) -> TimeWindow:
    """Parse a `start,end` window argument."""
    start, sep, end = value.partition(",")
    if not sep:
        raise argparse.ArgumentTypeError(f"Malformed time window ({value}). Expecting start,end")
    try:
        return TimeWindow(start=int(start), end=int(end))
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Malformed time window ({value}). Expecting start,end") from e


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(prog="bgpreader", add_help=False)
    parser.add_argument("-d", dest="interface")
    parser.add_argument("-o", dest="options", action="append", default=[])
    parser.add_argument("-p", dest="projects", action="append", default=[])
    parser.add_argument("-c", dest="collectors", action="append", default=[])
    parser.add_argument("-t", dest="types", action="append", default=[])
    parser.add_argument("-w", dest="windows", action="append", default=[], type=parse_window)
    parser.add_argument("-P", dest="rib_period", type=int, default=0)
    parser.add_argument("-b", dest="blocking", action="store_true")
    parser.add_argument("-r", dest="record_output", action="store_true")
    parser.add_argument("-m", dest="bgpdump_output", action="store_true")
    parser.add_argument("-e", dest="elem_output", action="store_true")
    parser.add_argument("-h", "-?", dest="help", action="store_true")
    return parser


def usage(registry: OptionRegistry) -> str:
    """Usage text, listing the registered data interfaces."""
    interfaces = "".join(
        f"       {info.name:<15}{info.description}{' (default)' if info.is_default else ''}\n"
        for info in registry.list_backends()
    )
    return (
        "usage: bgpreader -w <start,end> [<options>]\n"
        "Available options are:\n"
        "   -d <interface> use the given data interface to find available data\n"
        "                  available data interfaces are:\n"
        f"{interfaces}"
        "   -o <option-name,option-value>*\n"
        "                  set an option for the current data interface.\n"
        "                  use '-o ?' to get a list of available options for the current\n"
        "                  data interface. (data interface can be selected using -d)\n"
        "   -p <project>   process records from only the given project (routeviews, ris)*\n"
        "   -c <collector> process records from only the given collector*\n"
        "   -t <type>      process records with only the given type (ribs, updates)*\n"
        "   -w <start,end> process records only within the given time window*\n"
        "   -P <period>    process a rib files every <period> seconds (bgp time)\n"
        "   -b             make blocking requests for BGP records\n"
        "                  allows bgpstream to be used to process data in real-time\n"
        "\n"
        "   -r             print info for each BGP record (default)\n"
        "   -m             print info for each BGP valid record in bgpdump -m format\n"
        "   -e             print info for each element of a valid BGP record\n"
        "\n"
        "   -h             print this help menu\n"
        "* denotes an option that can be given multiple times\n"
    )


def describe_options(registry: OptionRegistry, backend_id: BackendId) -> str:
    info = registry.info(backend_id)
    lines = [f"Data interface options for '{info.name}':"]
    if not info.options:
        lines.append("   [NONE]")
    for option in info.options:
        lines.append(f"   {option.name:<15}{option.description}")
    return "\n".join(lines) + "\n\n"


def _check_capacity(values: list, limit: int, what: str, on_command_line: bool = True) -> None:
    if len(values) > limit:
        suffix = " on the command line" if on_command_line else ""
        raise UsageError(f"A maximum of {limit} {what} can be specified{suffix}")


def _check_limits(args: argparse.Namespace, settings: Settings) -> None:
    _check_capacity(args.projects, settings.MAX_PROJECTS, "projects")
    _check_capacity(args.collectors, settings.MAX_COLLECTORS, "collectors")
    _check_capacity(args.types, settings.MAX_RECORD_TYPES, "types")
    _check_capacity(args.windows, settings.MAX_WINDOWS, "windows")
    _check_capacity(args.options, settings.MAX_OPTIONS, "interface options", on_command_line=False)


def build_filters(args: argparse.Namespace) -> FilterSet:
    filters = FilterSet()
    for project in args.projects:
        filters.add_filter(FilterKind.PROJECT, project)
    for collector in args.collectors:
        filters.add_filter(FilterKind.COLLECTOR, collector)
    for record_type in args.types:
        filters.add_filter(FilterKind.RECORD_TYPE, record_type)
    for window in args.windows:
        filters.add_window(window.start, window.end)
    filters.add_replay_period(args.rib_period)
    return filters


def apply_options(args: argparse.Namespace, registry: OptionRegistry, session: Session) -> None:
    """
    Apply -o name,value options to the session's selected backend.

    Raises:
        OptionNotFoundError: If -o names an option the backend does not own
        UsageError: If an -o argument is not a name,value pair
    """
    for raw in args.options:
        name, sep, value = raw.partition(",")
        if not sep:
            raise UsageError(
                f"Malformed data interface option ({raw}). Expecting <option-name>,<option-value>"
            )
        session.set_backend_option(registry.resolve_option(session.backend_id, name), value)


def _install_signal_handlers(loop: asyncio.AbstractEventLoop, cancel: CancellationToken) -> list[int]:
    installed = []
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, cancel.cancel)
        except (NotImplementedError, RuntimeError, ValueError):
            continue
        installed.append(signum)
    return installed


async def read_stream(
    session: Session,
    filters: FilterSet,
    modes: OutputModes,
    out: TextIO,
    blocking: bool = False,
    element_buffer_size: int = DEFAULT_ELEMENT_BUFFER_SIZE,
) -> RetrievalStats:
    """
    Start a configured session and drain it into `out`.

    The session is stopped on every exit path. SIGINT and SIGTERM interrupt
    a blocked pull and end the loop normally.
    """
    cancel = CancellationToken()
    loop = asyncio.get_running_loop()
    installed = _install_signal_handlers(loop, cancel)
    try:
        async with session:
            await session.start(filters, blocking=blocking)
            retrieval = RetrievalLoop(
                session,
                modes=modes,
                out=out,
                cancel=cancel,
                element_buffer_size=element_buffer_size,
            )
            return await retrieval.run()
    finally:
        for signum in installed:
            loop.remove_signal_handler(signum)


def main(
    argv: Sequence[str] | None = None,
    registry: OptionRegistry | None = None,
    settings: Settings | None = None,
    stdout: TextIO | None = None,
    stderr: TextIO | None = None,
) -> int:
    """
    Run bgpreader.

    Args:
        argv: Command-line arguments (default: sys.argv[1:])
        registry: Backend registry (default: built from settings)
        settings: Application settings (default: environment)
        stdout: Record/element output (default: sys.stdout)
        stderr: Diagnostics output (default: sys.stderr)

    Returns:
        0 on success or help, -1 on any error (including invalid BGPREADER_* settings)
    """
    stdout = stdout if stdout is not None else sys.stdout
    stderr = stderr if stderr is not None else sys.stderr
    try:
        settings = settings or get_settings()
    except ValidationError as e:
        stderr.write(f"ERROR: Invalid configuration: {e}\n")
        return EXIT_FAILURE
    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)
    if registry is None:
        registry = build_registry(settings)

    def fail(message: str, show_usage: bool = True) -> int:
        stderr.write(f"ERROR: {message}\n")
        if show_usage:
            stderr.write(usage(registry))
        return EXIT_FAILURE

    try:
        args = build_parser().parse_args(argv)
        if args.help:
            stderr.write(f"bgpreader version {__version__}\n")
            stderr.write(usage(registry))
            return EXIT_OK
        _check_limits(args, settings)

        session = Session(registry)
        if args.interface is not None:
            session.select_backend(registry.resolve_backend(args.interface))
        if any(raw.startswith("?") for raw in args.options):
            stderr.write(describe_options(registry, session.backend_id))
            stderr.write(usage(registry))
            return EXIT_OK
        apply_options(args, registry, session)
    except (UsageError, BackendNotFoundError, OptionNotFoundError, OptionMismatchError) as e:
        return fail(str(e))

    modes = OutputModes.resolve(
        records=args.record_output,
        bgpdump=args.bgpdump_output,
        elements=args.elem_output,
    )

    try:
        stats = asyncio.run(
            read_stream(
                session,
                build_filters(args),
                modes,
                stdout,
                blocking=args.blocking,
                element_buffer_size=settings.ELEMENT_BUFFER_SIZE,
            )
        )
    except NoWindowError as e:
        return fail(str(e))
    except BackendInitError as e:
        logger.error("Backend initialization failed", backend=session.backend_name, error=str(e))
        return fail(str(e), show_usage=False)
    except BackendError as e:
        logger.error("Backend failed", backend=session.backend_name, error=str(e))
        return fail(str(e), show_usage=False)
    except RenderError as e:
        stderr.write(f"{e}\n")
        stderr.write(f"Elem string: {e.truncated}\n")
        return EXIT_FAILURE

    logger.info("Done", records=stats.records, elements=stats.elements)
    return EXIT_OK


def run() -> None:
    """Console script entry point."""
    sys.exit(main())
