"""Counters for the reconfiguration worker.

Example:
    stats = ReloadStats()
    stats.record_base_reload(now)
    stats.record_on_demand(OnDemandTarget.ACTIVITY, accepted=False)
    stats.to_dict()["activity_rejected"]  # 1
"""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class OnDemandTarget(Enum):
    """Consumer of an on-demand draft."""

    EVENT = "event"
    ACTIVITY = "activity"


@dataclass
class ReloadStats:
    """Statistics for reconfiguration activity.

    Written by the worker thread only; readers take a consistent copy through
    ``to_dict``.

    Attributes:
        base_reloads: Base snapshots replaced because the file changed
        signals_handled: On-demand signal triggers consumed
        daemon_polls: Daemon queries issued
        event_accepted: Drafts published to the event-profiler slot
        event_rejected: Drafts dropped because the event window was still open
        activity_accepted: Drafts published to the activity-profiler slot
        activity_rejected: Drafts dropped because the activity profiler was busy
        verbose_overrides: On-demand verbose levels applied
        last_base_reload: Monotonic time of the last base replacement
    """

    base_reloads: int = 0
    signals_handled: int = 0
    daemon_polls: int = 0
    event_accepted: int = 0
    event_rejected: int = 0
    activity_accepted: int = 0
    activity_rejected: int = 0
    verbose_overrides: int = 0
    last_base_reload: float | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record_base_reload(self, now: float) -> None:
        with self._lock:
            self.base_reloads += 1
            self.last_base_reload = now

    def record_signal(self) -> None:
        with self._lock:
            self.signals_handled += 1

    def record_daemon_poll(self) -> None:
        with self._lock:
            self.daemon_polls += 1

    def record_on_demand(self, target: OnDemandTarget, accepted: bool) -> None:
        outcome = "accepted" if accepted else "rejected"
        with self._lock:
            name = f"{target.value}_{outcome}"
            setattr(self, name, getattr(self, name) + 1)

    def record_verbose_override(self) -> None:
        with self._lock:
            self.verbose_overrides += 1

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        with self._lock:
            return {
                "base_reloads": self.base_reloads,
                "signals_handled": self.signals_handled,
                "daemon_polls": self.daemon_polls,
                "event_accepted": self.event_accepted,
                "event_rejected": self.event_rejected,
                "activity_accepted": self.activity_accepted,
                "activity_rejected": self.activity_rejected,
                "verbose_overrides": self.verbose_overrides,
                "last_base_reload": self.last_base_reload,
            }
