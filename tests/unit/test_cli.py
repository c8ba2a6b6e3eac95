"""
Unit tests for the bgpreader command line.
"""
import io
import os
import signal
import subprocess
import sys
import textwrap
from pathlib import Path

import pytest

from bgpreader import cli
from bgpreader.app.config import get_settings
from bgpreader.core.models import RecordStatus

from conftest import FakeSource, build_fake_registry, make_element, make_record

ROOT = Path(__file__).resolve().parents[2]


def _run(argv, source, settings):
    stdout, stderr = io.StringIO(), io.StringIO()
    code = cli.main(argv, registry=build_fake_registry(source), settings=settings, stdout=stdout, stderr=stderr)
    return code, stdout.getvalue(), stderr.getvalue()


class TestEndToEnd:
    """Full runs against an in-memory backend."""

    def test_single_record(self, settings):
        source = FakeSource([make_record(50)])
        code, out, err = _run(["-d", "fake", "-w", "0,100", "-r"], source, settings)

        assert code == 0
        assert out == "50|routeviews|route-views2|rib|valid_record|50|middle|\n"
        assert source.close_calls == 1

    def test_records_are_default_output(self, settings):
        code, out, _ = _run(["-w", "0,100"], FakeSource([make_record(50)]), settings)
        assert code == 0
        assert out.count("\n") == 1

    def test_inverted_window_yields_nothing(self, settings):
        code, out, err = _run(["-w", "100,0"], FakeSource([make_record(50)]), settings)
        assert code == 0
        assert out == ""

    def test_elements_only(self, settings, sample_elements):
        source = FakeSource([make_record(50, elements=sample_elements)])
        code, out, _ = _run(["-w", "0,100", "-e"], source, settings)

        assert code == 0
        assert [line.split("|")[0] for line in out.splitlines()] == ["R", "R", "R"]

    def test_filters_and_options_reach_backend(self, settings):
        source = FakeSource([make_record(50)])
        code, _, _ = _run(
            ["-p", "ris", "-c", "rrc00", "-c", "rrc01", "-t", "updates", "-w", "0,100", "-w", "200,300",
             "-P", "3600", "-o", "path,/data/dumps", "-b"],
            source,
            settings,
        )

        filters = source.config.filters
        assert code == 0
        assert filters.projects == ("ris",)
        assert filters.collectors == ("rrc00", "rrc01")
        assert filters.record_types == ("updates",)
        assert len(filters.windows) == 2
        assert filters.replay_period == 3600
        assert source.config.options == {"path": "/data/dumps"}
        assert source.config.blocking is True

    def test_option_value_may_contain_commas(self, settings):
        source = FakeSource()
        code, _, _ = _run(["-w", "0,1", "-o", "path,a,b"], source, settings)
        assert code == 0
        assert source.config.options == {"path": "a,b"}

    def test_corrupted_record_is_printed_not_failed(self, settings):
        source = FakeSource([make_record(50, status=RecordStatus.CORRUPTED_RECORD)])
        code, out, _ = _run(["-w", "0,100", "-r", "-e"], source, settings)
        assert code == 0
        assert out.split("|")[4] == "corrupted_record"


class TestUsageErrors:
    """Configuration errors exit -1 without starting a session."""

    def test_missing_window(self, settings):
        source = FakeSource([make_record(50)])
        code, out, err = _run(["-r"], source, settings)

        assert code == -1
        assert out == ""
        assert "At least one time window must be specified" in err
        assert "usage: bgpreader" in err
        assert source.config is None

    @pytest.mark.parametrize("window", ["100", "a,b", "1,"])
    def test_malformed_window(self, settings, window):
        code, _, err = _run(["-w", window], FakeSource(), settings)
        assert code == -1
        assert "Malformed time window" in err

    def test_unknown_backend(self, settings):
        code, _, err = _run(["-d", "nope", "-w", "0,1"], FakeSource(), settings)
        assert code == -1
        assert "Invalid data interface name 'nope'" in err

    def test_malformed_option(self, settings):
        code, _, err = _run(["-w", "0,1", "-o", "path"], FakeSource(), settings)
        assert code == -1
        assert "Malformed data interface option" in err

    def test_option_of_other_backend(self, settings):
        code, _, err = _run(["-w", "0,1", "-o", "url,http://x"], FakeSource(), settings)
        assert code == -1
        assert "Invalid option 'url' for data interface 'fake'" in err

    def test_option_after_selecting_backend(self, settings):
        code, _, _ = _run(["-d", "other", "-w", "0,1", "-o", "url,http://x"], FakeSource(), settings)
        assert code == 0

    def test_missing_argument(self, settings):
        code, _, err = _run(["-w"], FakeSource(), settings)
        assert code == -1
        assert "usage: bgpreader" in err

    def test_unknown_flag(self, settings):
        code, _, _ = _run(["-x", "-w", "0,1"], FakeSource(), settings)
        assert code == -1

    def test_project_capacity(self, settings):
        argv = ["-w", "0,1"]
        for i in range(settings.MAX_PROJECTS + 1):
            argv += ["-p", f"project{i}"]
        code, _, err = _run(argv, FakeSource(), settings)
        assert code == -1
        assert f"A maximum of {settings.MAX_PROJECTS} projects" in err


class TestInformational:
    """Help and option listing exit 0."""

    @pytest.mark.parametrize("flag", ["-h", "-?"])
    def test_help(self, settings, flag):
        code, out, err = _run([flag], FakeSource(), settings)
        assert code == 0
        assert out == ""
        assert "bgpreader version" in err
        assert "fake           In-memory records (default)" in err
        assert "other          Another data source\n" in err

    def test_option_listing_for_selected_backend(self, settings):
        source = FakeSource()
        code, _, err = _run(["-d", "other", "-o", "?"], source, settings)

        assert code == 0
        assert "Data interface options for 'other':" in err
        assert "   url            Remote location" in err
        assert source.config is None


class TestBackendFailures:
    """Backend and rendering failures exit -1 after cleanup."""

    def test_init_failure(self, settings):
        source = FakeSource(fail_open=True)
        code, out, err = _run(["-w", "0,100"], source, settings)

        assert code == -1
        assert "ERROR: Could not reach data source" in err
        assert source.close_calls == 1

    def test_fetch_failure(self, settings):
        source = FakeSource([make_record(10), make_record(20)], fail_after=1)
        code, out, err = _run(["-w", "0,100"], source, settings)

        assert code == -1
        assert out.count("\n") == 1
        assert "Connection reset by data source" in err
        assert source.close_calls == 1

    def test_render_failure(self, settings):
        small = settings.model_copy(update={"ELEMENT_BUFFER_SIZE": 64})
        source = FakeSource([make_record(50, elements=[make_element(as_path="65001 " * 40)])])
        code, out, err = _run(["-w", "0,100", "-e"], source, small)

        assert code == -1
        assert out == ""
        assert "Failed to construct elem string" in err
        assert "Elem string: R|50|" in err
        assert source.close_calls == 1

    def test_invalid_environment_settings(self, monkeypatch):
        monkeypatch.setenv("BGPREADER_LOG_LEVEL", "chatty")
        get_settings.cache_clear()
        try:
            code, out, err = _run(["-w", "0,100"], FakeSource([make_record(50)]), None)
        finally:
            get_settings.cache_clear()

        assert code == -1
        assert out == ""
        assert err.startswith("ERROR: Invalid configuration")
        assert "LOG_LEVEL" in err


_BLOCKED_LIVE_RUN = textwrap.dedent(
    """
    import sys
    import threading
    from types import SimpleNamespace

    from bgpreader import cli
    from bgpreader.data import bgpstream


    class BlockedStream:
        def __getattr__(self, name):
            return lambda *args: None

        def get_next_record(self):
            print("blocked", flush=True)
            threading.Event().wait()


    bgpstream._pybgpstream = SimpleNamespace(BGPStream=BlockedStream)
    sys.exit(cli.main(["-d", "broker", "-w", "0,4102444800", "-b"]))
    """
)


@pytest.mark.skipif(sys.platform == "win32", reason="needs POSIX signals")
class TestInterrupt:
    """SIGINT ends a live run even while libbgpstream is blocked."""

    def test_sigint_exits_blocked_live_run(self, tmp_path):
        env = dict(os.environ, BGPREADER_LOG_LEVEL="CRITICAL")
        env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(ROOT), env.get("PYTHONPATH")]))
        proc = subprocess.Popen(
            [sys.executable, "-c", _BLOCKED_LIVE_RUN],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=tmp_path,
            env=env,
            text=True,
        )
        try:
            assert proc.stdout.readline().strip() == "blocked"
            proc.send_signal(signal.SIGINT)
            code = proc.wait(timeout=15)
        finally:
            if proc.poll() is None:
                proc.kill()
                proc.wait()

        assert code == 0, proc.stderr.read()
