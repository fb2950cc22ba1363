"""Process-wide access point for the active profiling configuration.

The controller holds three independently replaceable snapshot slots (base,
on-demand event profiler, on-demand activity profiler) under one lock. Only
the reconfiguration worker writes them; any thread may read them through the
change-detection queries. Snapshots are replaced, never mutated, so a reader
always sees a fully formed value. Slots are not updated transactionally with
respect to each other.

Usage:
    controller = ConfigController.instance()

    seen = controller.base_config()
    ...
    if controller.base_has_changed_since(seen):
        seen = controller.base_config()

    controller.set_activity_profiler_busy(True)
    ...
    controller.set_activity_profiler_busy(False)
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import Any

from dynprof.config.settings import ControllerSettings, load_settings
from dynprof.config.snapshot import ConfigSnapshot
from dynprof.config.sources import read_config_file
from dynprof.errors import SignalHandlerInstallError
from dynprof.observability.metrics import ReloadStats
from dynprof.observability.verbosity import LoggingVerbosity, VerboseLogBackend
from dynprof.runtime.daemon import GuardedDaemonClient, create_daemon_client
from dynprof.runtime.scheduler import ReconfigurationScheduler
from dynprof.runtime.signal_bridge import (
    ON_DEMAND_SIGNAL,
    SignalBridge,
    publish_controller,
    retract_controller,
)

logger = logging.getLogger(__name__)


class OneShotFlag:
    """A flag observed and cleared exactly once per set.

    Setting never takes a lock, so it is safe from a signal handler. Any
    number of sets between two consumes collapse into one. There must be a
    single consumer.
    """

    def __init__(self) -> None:
        self._raised = 0
        self._consumed = 0

    def set(self) -> None:
        self._raised += 1

    @property
    def pending(self) -> bool:
        return self._raised != self._consumed

    def consume(self) -> bool:
        """Test and clear."""
        raised = self._raised
        if raised == self._consumed:
            return False
        self._consumed = raised
        return True


def _on_main_thread() -> bool:
    return threading.current_thread() is threading.main_thread()


class ConfigController:
    """Holds the current snapshots and owns the reconfiguration worker.

    Construction reads the base config synchronously, so the base snapshot is
    valid as soon as the constructor returns, then starts the worker.

    Python only lets the main thread install signal handlers. When a base
    reload on the worker turns SIG_USR2_ENABLED on or off, the change is
    recorded and applied by the next main-thread call into the controller
    (any reader, ``set_activity_profiler_busy`` or
    ``apply_pending_signal_state``). A host whose main thread never calls the
    controller should call ``apply_pending_signal_state()`` periodically,
    e.g. from its own event loop.
    """

    _instance: ConfigController | None = None
    _instance_lock = threading.Lock()

    def __init__(
        self,
        settings: ControllerSettings | None = None,
        *,
        verbosity: VerboseLogBackend | None = None,
        clock: Callable[[], float] = time.monotonic,
        signum: int | None = ON_DEMAND_SIGNAL,
        start: bool = True,
    ) -> None:
        """Initialize the controller.

        Args:
            settings: Controller settings (default: load_settings())
            verbosity: Verbose-log backend (default: LoggingVerbosity)
            clock: Monotonic clock shared with the worker
            signum: Signal used for on-demand requests
            start: Start the background worker immediately
        """
        self.settings = settings or load_settings()
        self.verbosity: VerboseLogBackend = verbosity or LoggingVerbosity()
        self.reload_stats = ReloadStats()

        self._config_lock = threading.Lock()
        self.wake_condition = threading.Condition(threading.RLock())
        self._stop_requested = False
        self._stopped = False
        self._on_demand_signal = OneShotFlag()
        self._activity_profiler_busy = False

        self._daemon_lock = threading.Lock()
        self._daemon_client: GuardedDaemonClient | None = None
        self._daemon_client_resolved = False

        self._signal_bridge = SignalBridge(signum)
        self._pending_signal_state: bool | None = None

        base = ConfigSnapshot().parse(read_config_file(self.settings.base_config_path), clock())
        self._base = base
        self._event_profiler_on_demand = ConfigSnapshot()
        self._activity_profiler_on_demand = ConfigSnapshot()
        logger.info("Loaded base config from %s", self.settings.base_config_path)

        self.verbosity.set_level(base.verbose_log_level, base.verbose_log_modules)

        publish_controller(self)
        self.sync_signal_handler(base.sig_usr2_enabled)

        self.scheduler = ReconfigurationScheduler(self, self.settings, clock)
        if start:
            self.scheduler.start()

    # ------------------------------------------------------------------
    # Process-wide instance
    # ------------------------------------------------------------------

    @classmethod
    def instance(cls) -> ConfigController:
        """Get the process-wide controller, creating it on first use."""
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Shut down and forget the process-wide controller (used by tests)."""
        with cls._instance_lock:
            instance, cls._instance = cls._instance, None
        if instance is not None:
            instance.shutdown()

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    def base_config(self) -> ConfigSnapshot:
        self.apply_pending_signal_state()
        with self._config_lock:
            return self._base

    def event_profiler_on_demand_config(self) -> ConfigSnapshot:
        with self._config_lock:
            return self._event_profiler_on_demand

    def activity_profiler_on_demand_config(self) -> ConfigSnapshot:
        with self._config_lock:
            return self._activity_profiler_on_demand

    def base_has_changed_since(self, old: ConfigSnapshot) -> bool:
        self.apply_pending_signal_state()
        with self._config_lock:
            return self._base.timestamp > old.timestamp

    def event_profiler_on_demand_has_changed_since(self, old: ConfigSnapshot) -> bool:
        self.apply_pending_signal_state()
        with self._config_lock:
            return (
                self._event_profiler_on_demand.event_profiler_on_demand_start
                > old.event_profiler_on_demand_start
            )

    def activity_profiler_on_demand_has_changed_since(self, old: ConfigSnapshot) -> bool:
        self.apply_pending_signal_state()
        with self._config_lock:
            return (
                self._activity_profiler_on_demand.activity_profiler_request_received_time
                > old.activity_profiler_request_received_time
            )

    # ------------------------------------------------------------------
    # Narrow writes from other threads
    # ------------------------------------------------------------------

    @property
    def activity_profiler_busy(self) -> bool:
        return self._activity_profiler_busy

    def set_activity_profiler_busy(self, busy: bool) -> None:
        """Mark the activity profiler busy; honoured from the next worker cycle."""
        self._activity_profiler_busy = busy
        self.apply_pending_signal_state()

    def handle_on_demand_signal(self) -> None:
        """Request an on-demand session. Safe to call from a signal handler."""
        self._on_demand_signal.set()
        with self.wake_condition:
            self.wake_condition.notify_all()

    # ------------------------------------------------------------------
    # Worker-side state
    # ------------------------------------------------------------------

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    @property
    def on_demand_signal_pending(self) -> bool:
        return self._on_demand_signal.pending

    def consume_on_demand_signal(self) -> bool:
        return self._on_demand_signal.consume()

    def replace_base(self, snapshot: ConfigSnapshot) -> None:
        with self._config_lock:
            self._base = snapshot

    def replace_event_profiler_on_demand(self, snapshot: ConfigSnapshot) -> None:
        with self._config_lock:
            self._event_profiler_on_demand = snapshot

    def replace_activity_profiler_on_demand(self, snapshot: ConfigSnapshot) -> None:
        with self._config_lock:
            self._activity_profiler_on_demand = snapshot

    def daemon_client(self) -> GuardedDaemonClient | None:
        """Create the daemon client on first use, from the registered factory."""
        with self._daemon_lock:
            if not self._daemon_client_resolved:
                self._daemon_client_resolved = True
                self._daemon_client = create_daemon_client()
            return self._daemon_client

    def gpu_context_count(self, device_id: int) -> int:
        """GPU context count reported by the daemon (0 without a daemon client)."""
        client = self.daemon_client()
        if client is None:
            return 0
        return client.gpu_context_count(device_id)

    # ------------------------------------------------------------------
    # Signal handler state
    # ------------------------------------------------------------------

    @property
    def signal_bridge(self) -> SignalBridge:
        return self._signal_bridge

    @property
    def pending_signal_state(self) -> bool | None:
        """Handler state waiting for the main thread (None when nothing is pending)."""
        return self._pending_signal_state

    def sync_signal_handler(self, enabled: bool) -> None:
        """Install or remove the on-demand signal handler.

        Off the main thread the desired state is recorded and applied on the
        next main-thread call into the controller.
        """
        if not _on_main_thread():
            if enabled != self._signal_bridge.installed:
                if self._pending_signal_state != enabled:
                    action = "install" if enabled else "removal"
                    logger.debug("Deferring signal handler %s to the main thread", action)
                self._pending_signal_state = enabled
            else:
                self._pending_signal_state = None
            return

        self._pending_signal_state = None
        if self._stopped and enabled:
            return
        try:
            self._signal_bridge.sync(enabled)
        except SignalHandlerInstallError as e:
            logger.error("Failed to register on-demand signal handler: %s", e.message)

    def apply_pending_signal_state(self) -> None:
        """Apply a handler change the worker deferred.

        This is the main-thread hook for signal handler changes; it does
        nothing when called from any other thread or when nothing is pending.
        """
        pending = self._pending_signal_state
        if pending is not None and _on_main_thread():
            self.sync_signal_handler(pending)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def stats(self) -> dict[str, Any]:
        """Reload counters plus current worker and handler state."""
        result = self.reload_stats.to_dict()
        result["worker_alive"] = self.scheduler.is_alive
        result["signal_handler"] = self._signal_bridge.state.value
        result["activity_profiler_busy"] = self._activity_profiler_busy
        return result

    def shutdown(self) -> None:
        """Stop the worker promptly and restore the signal slot."""
        if self._stopped:
            return
        logger.info("Destroying config controller")

        with self.wake_condition:
            self._stop_requested = True
            self.wake_condition.notify_all()

        if not self.scheduler.join(self.settings.join_timeout_s):
            logger.warning(
                "Config updater did not stop within %ss", self.settings.join_timeout_s
            )

        self._stopped = True
        self._pending_signal_state = None
        try:
            self._signal_bridge.uninstall()
        except SignalHandlerInstallError as e:
            logger.error("Failed to restore original signal handler: %s", e.message)
        retract_controller(self)

    def __enter__(self) -> ConfigController:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()
