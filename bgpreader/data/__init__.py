"""BGP data source abstraction layer."""
from functools import partial

from ..app.config import Settings
from ..core.registry import OptionRegistry
from . import ris_live
from .bgpstream import DATA_INTERFACES, BGPStreamSource
from .ris_live import RISLiveSource
from .sources import BGPDataSource, StreamConfig


def build_registry(settings: Settings) -> OptionRegistry:
    """
    Build the registry of available data interfaces.

    Args:
        settings: Application settings (default backend, RIS Live endpoint)

    Returns:
        Registry holding the libbgpstream interfaces and RIS Live
    """
    registry = OptionRegistry()
    for name, (description, options) in DATA_INTERFACES.items():
        registry.register(
            name,
            description,
            partial(BGPStreamSource, name),
            options=options,
            default=name == settings.DEFAULT_BACKEND,
        )
    registry.register(
        ris_live.PROJECT,
        "Stream BGP messages in real-time from RIPE RIS Live",
        partial(
            RISLiveSource,
            endpoint=settings.RIS_LIVE_ENDPOINT,
            client_name=settings.RIS_LIVE_CLIENT,
            idle_timeout=settings.RIS_LIVE_IDLE_TIMEOUT,
            http_timeout=settings.HTTP_TIMEOUT,
        ),
        options=ris_live.OPTIONS,
        default=ris_live.PROJECT == settings.DEFAULT_BACKEND,
    )
    return registry


__all__ = ["BGPDataSource", "BGPStreamSource", "RISLiveSource", "StreamConfig", "build_registry"]
