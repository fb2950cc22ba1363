"""Shared fixtures for dynprof tests."""

import signal
from collections.abc import Callable, Iterable, Iterator
from pathlib import Path
from typing import Any

import pytest

from dynprof.config import load_settings
from dynprof.runtime import ConfigController, register_daemon_client_factory
from dynprof.runtime.signal_bridge import ON_DEMAND_SIGNAL

requires_sigusr2 = pytest.mark.skipif(
    ON_DEMAND_SIGNAL is None, reason="SIGUSR2 is not available on this platform"
)


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


class RecordingVerbosity:
    """Verbose-log backend that records every level change."""

    def __init__(self) -> None:
        self.calls: list[tuple[int, set[str]]] = []
        self._level = -1

    def set_level(self, level: int, modules: Iterable[str] = ()) -> None:
        self.calls.append((level, set(modules)))
        self._level = level if level >= 0 else -1

    def level(self) -> int:
        return self._level


class FakeDaemonClient:
    """Daemon client returning canned responses."""

    def __init__(self, response: str = "", contexts: int = 0) -> None:
        self.response = response
        self.contexts = contexts
        self.requests: list[tuple[bool, bool]] = []

    def read_on_demand_config(self, want_events: bool, want_activities: bool) -> str:
        self.requests.append((want_events, want_activities))
        return self.response

    def gpu_context_count(self, device_id: int) -> int:
        return self.contexts


@pytest.fixture(autouse=True)
def restore_on_demand_signal() -> Iterator[None]:
    """Every test starts and ends with the default SIGUSR2 disposition."""
    if ON_DEMAND_SIGNAL is None:
        yield
        return
    previous = signal.getsignal(ON_DEMAND_SIGNAL)
    signal.signal(ON_DEMAND_SIGNAL, signal.SIG_DFL)
    yield
    signal.signal(ON_DEMAND_SIGNAL, previous if previous is not None else signal.SIG_DFL)


@pytest.fixture(autouse=True)
def reset_process_state() -> Iterator[None]:
    register_daemon_client_factory(None)
    yield
    ConfigController.reset_instance()
    register_daemon_client_factory(None)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def verbosity() -> RecordingVerbosity:
    return RecordingVerbosity()


@pytest.fixture
def base_path(tmp_path: Path) -> Path:
    return tmp_path / "dynprof.conf"


@pytest.fixture
def on_demand_path(tmp_path: Path) -> Path:
    return tmp_path / "dynprof_on_demand.conf"


@pytest.fixture
def make_controller(
    base_path: Path,
    on_demand_path: Path,
    clock: FakeClock,
    verbosity: RecordingVerbosity,
) -> Iterator[Callable[..., ConfigController]]:
    """Build controllers on temporary config files; shut them down afterwards.

    By default the worker is not started and the clock is fake, so tests
    drive ``controller.scheduler.run_cycle(now)`` themselves.
    """
    controllers: list[ConfigController] = []

    def _make(
        base_text: str = "",
        on_demand_text: str | None = None,
        start: bool = False,
        use_fake_clock: bool = True,
        **overrides: Any,
    ) -> ConfigController:
        base_path.write_text(base_text)
        if on_demand_text is not None:
            on_demand_path.write_text(on_demand_text)
        settings = load_settings(
            base_config_path=str(base_path),
            on_demand_config_path=str(on_demand_path),
            **overrides,
        )
        kwargs: dict[str, Any] = {"verbosity": verbosity, "start": start}
        if use_fake_clock:
            kwargs["clock"] = clock
        controller = ConfigController(settings, **kwargs)
        controllers.append(controller)
        return controller

    yield _make

    for controller in controllers:
        controller.shutdown()
