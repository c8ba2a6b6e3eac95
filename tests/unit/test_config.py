"""
Unit tests for settings and the default backend registry.
"""
import pytest
from pydantic import ValidationError

from bgpreader.app.config import Settings
from bgpreader.data import build_registry
from bgpreader.data.bgpstream import BGPStreamSource
from bgpreader.data.ris_live import RISLiveSource


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self, settings):
        assert settings.DEFAULT_BACKEND == "broker"
        assert settings.ELEMENT_BUFFER_SIZE == 65536
        assert (settings.MAX_PROJECTS, settings.MAX_COLLECTORS, settings.MAX_WINDOWS) == (10, 100, 1024)

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("BGPREADER_DEFAULT_BACKEND", "ris-live")
        monkeypatch.setenv("BGPREADER_LOG_LEVEL", "debug")
        settings = Settings(_env_file=None)
        assert settings.DEFAULT_BACKEND == "ris-live"
        assert settings.LOG_LEVEL == "DEBUG"

    @pytest.mark.parametrize(
        "override",
        [{"LOG_LEVEL": "LOUD"}, {"LOG_FORMAT": "xml"}, {"RIS_LIVE_ENDPOINT": "ws://x"}, {"MAX_WINDOWS": 0}],
    )
    def test_invalid_values(self, override):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, **override)


class TestBuildRegistry:
    """Tests for the default backend registry."""

    def test_lists_bgpstream_interfaces_and_ris_live(self, settings):
        registry = build_registry(settings)
        names = [info.name for info in registry.list_backends()]
        assert names == ["broker", "singlefile", "csvfile", "sqlite", "kafka", "ris-live"]
        assert registry.info(registry.default_backend()).name == "broker"

    def test_default_follows_settings(self, settings):
        registry = build_registry(settings.model_copy(update={"DEFAULT_BACKEND": "ris-live"}))
        assert registry.info(registry.default_backend()).name == "ris-live"

    def test_factories_build_fresh_drivers(self, settings):
        registry = build_registry(settings)
        broker = registry.info(registry.resolve_backend("singlefile")).factory()
        ris = registry.info(registry.resolve_backend("ris-live")).factory()

        assert isinstance(broker, BGPStreamSource)
        assert broker.interface == "singlefile"
        assert isinstance(ris, RISLiveSource)
        assert ris.endpoint == settings.RIS_LIVE_ENDPOINT
        assert registry.info(1).factory() is not registry.info(1).factory()

    def test_option_names(self, settings):
        registry = build_registry(settings)
        singlefile = registry.resolve_backend("singlefile")
        assert [o.name for o in registry.list_options(singlefile)] == ["rib-file", "upd-file"]
        registry.resolve_option(registry.resolve_backend("ris-live"), "idle-timeout")
