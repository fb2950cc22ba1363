"""Tests for the dynprof command line."""

import json
import logging
import signal
from collections.abc import Iterator
from pathlib import Path

import pytest

from dynprof import cli
from dynprof.config import ControllerSettings, load_settings
from dynprof.observability import ROOT_LOGGER_NAME

from .conftest import requires_sigusr2


@pytest.fixture(autouse=True)
def restore_dynprof_logger() -> Iterator[None]:
    """main() configures logging; undo it so later tests see a clean hierarchy."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    handlers, level = list(logger.handlers), logger.level
    yield
    logger.handlers = handlers
    logger.setLevel(level)


@pytest.fixture
def on_demand_settings(monkeypatch: pytest.MonkeyPatch, on_demand_path: Path) -> ControllerSettings:
    settings = load_settings(on_demand_config_path=str(on_demand_path))
    monkeypatch.setattr(cli, "load_settings", lambda *args, **kwargs: settings)
    return settings


@pytest.fixture
def kills(monkeypatch: pytest.MonkeyPatch) -> list[tuple[int, int]]:
    sent: list[tuple[int, int]] = []
    monkeypatch.setattr(cli.os, "kill", lambda pid, signum: sent.append((pid, signum)))
    monkeypatch.setattr(cli.psutil, "pid_exists", lambda pid: pid == 1234)  # noqa: PLR2004
    return sent


class TestShow:
    """Test the show command."""

    def test_show_file(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        """Test printing the parsed snapshot as JSON."""
        path = tmp_path / "a.conf"
        path.write_text("VERBOSE_LOG_LEVEL=2\nSIG_USR2_ENABLED=yes\n")

        assert cli.main(["show", "--file", str(path)]) == 0

        output = json.loads(capsys.readouterr().out)
        assert output["path"] == str(path)
        assert output["config"]["verbose_log_level"] == 2  # noqa: PLR2004
        assert output["config"]["sig_usr2_enabled"] is True

    def test_show_missing_file(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        """Test that a missing file shows the defaults."""
        assert cli.main(["show", "--file", str(tmp_path / "missing.conf")]) == 0

        output = json.loads(capsys.readouterr().out)
        assert output["config"]["verbose_log_level"] == -1


class TestSettings:
    """Test the settings command."""

    def test_show_settings(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test printing resolved settings."""
        assert cli.main(["settings"]) == 0

        output = json.loads(capsys.readouterr().out)
        assert output["daemon_poll_interval_s"] == 5  # noqa: PLR2004

    def test_invalid_settings_file(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        """Test that validation errors exit with 1."""
        settings_file = tmp_path / "settings.yaml"
        settings_file.write_text("controller:\n  daemon_poll_interval_s: -1\n")

        assert cli.main(["settings", "--settings-file", str(settings_file)]) == 1
        assert "Error" in capsys.readouterr().err


@requires_sigusr2
class TestTrigger:
    """Test the trigger command."""

    def test_trigger_with_text(
        self,
        on_demand_settings: ControllerSettings,
        on_demand_path: Path,
        kills: list[tuple[int, int]],
    ) -> None:
        """Test writing the on-demand file and signalling the process."""
        assert cli.main(["trigger", "--pid", "1234", "--text", "ACTIVITIES_ITERATIONS=3"]) == 0

        assert on_demand_path.read_text() == "ACTIVITIES_ITERATIONS=3\n"
        assert kills == [(1234, signal.SIGUSR2)]

    def test_trigger_with_config_file(
        self,
        on_demand_settings: ControllerSettings,
        on_demand_path: Path,
        kills: list[tuple[int, int]],
        tmp_path: Path,
    ) -> None:
        """Test copying a prepared config file into place."""
        source = tmp_path / "request.conf"
        source.write_text("EVENTS_DURATION_SECS=5\n")

        assert cli.main(["trigger", "-p", "1234", "--config-file", str(source)]) == 0

        assert on_demand_path.read_text() == "EVENTS_DURATION_SECS=5\n"
        assert len(kills) == 1

    def test_signal_only(
        self,
        on_demand_settings: ControllerSettings,
        on_demand_path: Path,
        kills: list[tuple[int, int]],
    ) -> None:
        """Test that without a config source only the signal is sent."""
        assert cli.main(["trigger", "--pid", "1234"]) == 0

        assert not on_demand_path.exists()
        assert kills == [(1234, signal.SIGUSR2)]

    def test_unknown_pid(
        self, kills: list[tuple[int, int]], capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Test that a missing process is reported without signalling."""
        assert cli.main(["trigger", "--pid", "99"]) == 1

        assert kills == []
        assert "no process with pid 99" in capsys.readouterr().err

    def test_unreadable_config_file(
        self, kills: list[tuple[int, int]], tmp_path: Path
    ) -> None:
        """Test that an empty or missing source file aborts the trigger."""
        assert cli.main(["trigger", "--pid", "1234", "-c", str(tmp_path / "nope.conf")]) == 1
        assert kills == []

    def test_kill_failure(
        self, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str],
    ) -> None:
        """Test that a permission error exits with 1."""

        def deny(pid: int, signum: int) -> None:
            raise PermissionError("not allowed")

        monkeypatch.setattr(cli.psutil, "pid_exists", lambda pid: True)
        monkeypatch.setattr(cli.os, "kill", deny)

        assert cli.main(["trigger", "--pid", "1"]) == 1
        assert "failed to signal pid 1" in capsys.readouterr().err


class TestMain:
    """Test the entry point."""

    def test_no_command_prints_help(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test that running without a command shows usage and fails."""
        assert cli.main([]) == 1
        assert "usage: dynprof" in capsys.readouterr().out

    def test_text_and_file_are_exclusive(self) -> None:
        """Test that argparse rejects two config sources."""
        with pytest.raises(SystemExit):
            cli.main(["trigger", "--pid", "1", "--text", "A=1", "--config-file", "x"])
