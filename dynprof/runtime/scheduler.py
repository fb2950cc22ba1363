"""Background reconfiguration worker.

A single daemon thread owns all timing policy:

- the base config file is re-read every ``base_reload_interval_s``;
- the daemon client is polled every ``daemon_poll_interval_s``;
- a consumed on-demand signal is handled immediately and takes priority over a
  daemon poll in the same cycle;
- an on-demand verbose log level is reverted to the base level after
  ``verbose_override_duration_s``.

The worker sleeps on the controller's condition for at most
``min(base_reload_interval_s, daemon_poll_interval_s)`` and wakes early on a
signal or at shutdown. ``run_cycle`` is the whole per-wake step and can be
driven directly with explicit timestamps.

Busy rejections are dropped, not queued: a new signal or daemon answer is
needed to try again.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from dynprof.config.settings import ControllerSettings
from dynprof.config.snapshot import ConfigSnapshot
from dynprof.config.sources import read_config_file
from dynprof.observability.metrics import OnDemandTarget

if TYPE_CHECKING:
    from dynprof.runtime.controller import ConfigController

logger = logging.getLogger(__name__)

WORKER_THREAD_NAME = "dynprof-config-updater"


class ReconfigurationScheduler:
    """Drives every mutation of the controller's snapshots."""

    def __init__(
        self,
        controller: ConfigController,
        settings: ControllerSettings,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._controller = controller
        self._settings = settings
        self._clock = clock
        self._thread: threading.Thread | None = None

        now = clock()
        self.next_base_reload = now + settings.base_reload_interval_s
        self.next_daemon_poll = now + settings.daemon_poll_interval_s
        self.verbose_reset_at: float | None = None

    @property
    def wait_interval(self) -> float:
        return self._settings.wait_interval_s

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the worker thread."""
        if self.is_alive:
            return
        self._thread = threading.Thread(target=self._run, name=WORKER_THREAD_NAME, daemon=True)
        self._thread.start()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the worker to exit.

        Returns:
            True if the worker is no longer running
        """
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def _run(self) -> None:
        controller = self._controller
        condition = controller.wake_condition
        logger.debug("Config updater started, wait interval %ss", self.wait_interval)

        while True:
            with condition:
                # Work that arrived while the last cycle ran must not wait a full interval
                if not controller.stop_requested and not controller.on_demand_signal_pending:
                    condition.wait(self.wait_interval)
            if not self.run_cycle(self._clock()):
                break

        logger.debug("Config updater stopped")

    def run_cycle(self, now: float) -> bool:
        """Run one wake cycle.

        Args:
            now: Current monotonic time

        Returns:
            False once stop has been requested, True otherwise
        """
        if self._controller.stop_requested:
            return False

        try:
            self._cycle(now)
        except Exception:
            logger.exception("Reconfiguration cycle failed, keeping last-known-good configuration")
        return True

    def _cycle(self, now: float) -> None:
        controller = self._controller

        if now >= self.next_base_reload:
            self._reload_base(now)
            self.next_base_reload = now + self._settings.base_reload_interval_s

        draft: ConfigSnapshot | None = None
        if controller.consume_on_demand_signal():
            draft = self._configure_from_signal(now)
        elif now >= self.next_daemon_poll:
            draft = self._configure_from_daemon(now)
            self.next_daemon_poll = now + self._settings.daemon_poll_interval_s

        if draft is not None and draft.verbose_log_level >= 0:
            logger.info(
                "Setting verbose level to %s from on-demand config", draft.verbose_log_level
            )
            controller.verbosity.set_level(draft.verbose_log_level, draft.verbose_log_modules)
            controller.reload_stats.record_verbose_override()
            self.verbose_reset_at = now + self._settings.verbose_override_duration_s

        if self.verbose_reset_at is not None and now >= self.verbose_reset_at:
            self.verbose_reset_at = None
            self._apply_base_verbosity()

    def _apply_base_verbosity(self) -> None:
        base = self._controller.base_config()
        verbosity = self._controller.verbosity
        logger.debug(
            "Resetting verbose level from %s to %s", verbosity.level(), base.verbose_log_level
        )
        verbosity.set_level(base.verbose_log_level, base.verbose_log_modules)

    def _reload_base(self, now: float) -> None:
        controller = self._controller
        text = read_config_file(self._settings.base_config_path)

        if text != controller.base_config().source:
            snapshot = ConfigSnapshot().parse(text, now)
            controller.replace_base(snapshot)
            controller.reload_stats.record_base_reload(now)
            logger.info("Base config changed, reloaded from %s", self._settings.base_config_path)
            if self.verbose_reset_at is None:
                self._apply_base_verbosity()

        controller.sync_signal_handler(controller.base_config().sig_usr2_enabled)

    def _configure_from_signal(self, now: float) -> ConfigSnapshot:
        controller = self._controller
        path = self._settings.on_demand_config_path
        logger.info("Received on-demand profiling signal, reading config from %s", path)
        controller.reload_stats.record_signal()

        draft = controller.base_config().clone()
        draft.parse(read_config_file(path), now)
        draft.apply_signal_defaults()

        if draft.requests_event_profiling():
            if now > controller.event_profiler_on_demand_config().event_profiler_on_demand_end:
                logger.info("Starting on-demand event profiling from signal")
                controller.replace_event_profiler_on_demand(draft.clone())
                controller.reload_stats.record_on_demand(OnDemandTarget.EVENT, accepted=True)
            else:
                logger.error("On-demand event profiler is busy")
                controller.reload_stats.record_on_demand(OnDemandTarget.EVENT, accepted=False)

        # A signal always requests a trace; duration and iterations of 0 suppress it downstream
        draft.update_activity_profiler_request_received_time(now)
        if not controller.activity_profiler_busy:
            logger.info("Starting on-demand activity profiling from signal")
            controller.replace_activity_profiler_on_demand(draft.clone())
            controller.reload_stats.record_on_demand(OnDemandTarget.ACTIVITY, accepted=True)
        else:
            logger.error("Activity profiler is busy")
            controller.reload_stats.record_on_demand(OnDemandTarget.ACTIVITY, accepted=False)

        return draft

    def _configure_from_daemon(self, now: float) -> ConfigSnapshot | None:
        controller = self._controller
        client = controller.daemon_client()
        if client is None:
            return None

        want_events = (
            now > controller.event_profiler_on_demand_config().event_profiler_on_demand_end
        )
        want_activities = not controller.activity_profiler_busy
        text = client.read_on_demand_config(want_events, want_activities)
        controller.reload_stats.record_daemon_poll()
        if not text:
            return None

        logger.info("Received config from daemon:\n%s", text)
        draft = ConfigSnapshot().parse(text, now)
        if draft.requests_event_profiling():
            controller.replace_event_profiler_on_demand(draft.clone())
            controller.reload_stats.record_on_demand(OnDemandTarget.EVENT, accepted=True)
        if draft.requests_activity_profiling():
            controller.replace_activity_profiler_on_demand(draft.clone())
            controller.reload_stats.record_on_demand(OnDemandTarget.ACTIVITY, accepted=True)
        return draft
