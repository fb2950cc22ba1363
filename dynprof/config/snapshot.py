"""Parsed profiling configuration snapshots.

A ConfigSnapshot is the value the control plane hands to the profiling engine.
It is built by parsing free-text ``KEY=value`` configuration, optionally cloned
into a draft that is further adjusted (signal defaults, request stamping), and
then published by the controller. Published snapshots are never mutated: the
controller replaces them wholesale.

Example config text:
    # base configuration
    VERBOSE_LOG_LEVEL=1
    VERBOSE_LOG_MODULES=runtime.scheduler,config
    SIG_USR2_ENABLED=yes

    # on-demand request
    EVENTS_DURATION_SECS=10
    ACTIVITIES_DURATION_MSECS=2000

Usage:
    snapshot = ConfigSnapshot().parse(text)
    if snapshot.sig_usr2_enabled:
        ...

    draft = snapshot.clone().parse(on_demand_text)
    draft.apply_signal_defaults()
"""

from __future__ import annotations

import copy
import logging
import math
import threading
import time
from dataclasses import asdict, dataclass, field
from typing import Any

from dynprof.errors import ConfigParseError

logger = logging.getLogger(__name__)

# A bare signal starts a short activity trace
DEFAULT_SIGNAL_ACTIVITIES_DURATION_MS = 500

_TRUE_VALUES = ("yes", "true", "1", "on")
_FALSE_VALUES = ("no", "false", "0", "off")

_KEY_ALIASES = {"ENABLE_SIGUSR2": "SIG_USR2_ENABLED"}

_timestamp_lock = threading.Lock()
_last_timestamp = 0.0


def _next_timestamp() -> float:
    """Return a process-wide, strictly increasing monotonic timestamp."""
    global _last_timestamp

    with _timestamp_lock:
        now = time.monotonic()
        if now <= _last_timestamp:
            now = math.nextafter(_last_timestamp, math.inf)
        _last_timestamp = now
        return now


def _parse_bool(key: str, value: str) -> bool:
    lowered = value.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    msg = f"{key} expects a boolean (yes/no), got '{value}'"
    raise ConfigParseError(msg)


def _parse_int(key: str, value: str) -> int:
    try:
        return int(value)
    except ValueError as e:
        msg = f"{key} expects an integer, got '{value}'"
        raise ConfigParseError(msg) from e


def _parse_float(key: str, value: str) -> float:
    try:
        return float(value)
    except ValueError as e:
        msg = f"{key} expects a number, got '{value}'"
        raise ConfigParseError(msg) from e


def _split_lines(raw_text: str) -> dict[str, str]:
    """Split config text into upper-cased keys and stripped values."""
    entries: dict[str, str] = {}
    for line_number, line in enumerate(raw_text.splitlines(), start=1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if "=" not in stripped:
            msg = f"Expected KEY=value on line {line_number}"
            raise ConfigParseError(msg, line_number=line_number, line=stripped)
        key, _, value = stripped.partition("=")
        key = key.strip().upper()
        if not key:
            msg = f"Empty key on line {line_number}"
            raise ConfigParseError(msg, line_number=line_number, line=stripped)
        entries[_KEY_ALIASES.get(key, key)] = value.strip()
    return entries


def _updates_from_entries(entries: dict[str, str], now: float) -> dict[str, Any]:
    """Convert raw entries into field updates.

    Every value is converted before anything is applied, so a bad value
    leaves the snapshot untouched.
    """
    updates: dict[str, Any] = {}
    options: dict[str, str] = {}

    for key, value in entries.items():
        if key == "VERBOSE_LOG_LEVEL":
            updates["verbose_log_level"] = _parse_int(key, value)
        elif key == "VERBOSE_LOG_MODULES":
            updates["verbose_log_modules"] = {m.strip() for m in value.split(",") if m.strip()}
        elif key == "SIG_USR2_ENABLED":
            updates["sig_usr2_enabled"] = _parse_bool(key, value)
        elif key == "EVENTS_DURATION_SECS":
            duration = _parse_float(key, value)
            updates["event_profiler_on_demand_duration"] = max(duration, 0.0)
            if duration > 0:
                updates["event_profiler_on_demand_start"] = now
        elif key == "ACTIVITIES_DURATION_MSECS":
            updates["activities_duration_ms"] = _parse_int(key, value)
        elif key == "ACTIVITIES_DURATION_SECS":
            updates["activities_duration_ms"] = int(_parse_float(key, value) * 1000)
        elif key == "ACTIVITIES_ITERATIONS":
            updates["activities_iterations"] = _parse_int(key, value)
        elif key == "ACTIVITIES_WARMUP_PERIOD_SECS":
            updates["activities_warmup_s"] = _parse_int(key, value)
        elif key == "ACTIVITIES_LOG_FILE":
            updates["activities_log_file"] = value
        elif key == "PROFILE_START_TIME":
            updates["profile_start_time"] = _parse_int(key, value)
        else:
            options[key] = value

    if (updates.get("activities_duration_ms") or 0) > 0 or (
        updates.get("activities_iterations") or 0
    ) > 0:
        updates["activity_profiler_request_received_time"] = now

    updates["options"] = options
    return updates


@dataclass
class ConfigSnapshot:
    """One parsed profiling configuration.

    Attributes:
        source: Raw text this snapshot was last parsed from
        timestamp: Monotonic time of the last parse of new content
        verbose_log_level: Verbose logging level (-1 = unset)
        verbose_log_modules: Logger modules the verbose level applies to
        sig_usr2_enabled: Whether on-demand requests via SIGUSR2 are accepted
        event_profiler_on_demand_start: Start of the event-profiler window
        event_profiler_on_demand_duration: Length of the event-profiler window (seconds)
        activity_profiler_request_received_time: When an activity trace was requested (0 = never)
        activities_duration_ms: Requested activity trace duration (None = unset)
        activities_iterations: Requested activity trace iterations (None = unset)
        activities_warmup_s: Activity profiler warmup period
        activities_log_file: Trace output path for the activity profiler
        profile_start_time: Requested wall-clock start of the trace (ms since epoch)
        options: Every other key, passed through untouched
    """

    source: str = ""
    timestamp: float = field(default=0.0, compare=False)
    verbose_log_level: int = -1
    verbose_log_modules: set[str] = field(default_factory=set)
    sig_usr2_enabled: bool = False
    event_profiler_on_demand_start: float = field(default=0.0, compare=False)
    event_profiler_on_demand_duration: float = 0.0
    activity_profiler_request_received_time: float = field(default=0.0, compare=False)
    activities_duration_ms: int | None = None
    activities_iterations: int | None = None
    activities_warmup_s: int | None = None
    activities_log_file: str | None = None
    profile_start_time: int | None = None
    options: dict[str, str] = field(default_factory=dict)

    def parse(self, raw_text: str, now: float | None = None) -> ConfigSnapshot:
        """Overlay ``raw_text`` onto this snapshot.

        Malformed text is logged and contributes nothing. The timestamp only
        advances when the text differs from this snapshot's previous source,
        or when the snapshot has not been stamped yet.

        Args:
            raw_text: Free-text KEY=value configuration
            now: Time used for on-demand window and request stamps

        Returns:
            self, for chaining
        """
        if now is None:
            now = time.monotonic()

        # A snapshot that was never stamped gets one even for empty text
        if raw_text != self.source or self.timestamp == 0.0:
            self.source = raw_text
            self.timestamp = _next_timestamp()

        try:
            updates = _updates_from_entries(_split_lines(raw_text), now)
        except ConfigParseError as e:
            logger.error("Ignoring malformed config (%s): %s", e.details, e.message)
            return self

        options = updates.pop("options")
        for name, value in updates.items():
            setattr(self, name, value)
        self.options.update(options)
        return self

    def clone(self) -> ConfigSnapshot:
        """Return a deep, independent copy."""
        return copy.deepcopy(self)

    def apply_signal_defaults(self) -> None:
        """Fill in what a bare signal request conventionally omits.

        A signal always means "trace now": when neither a duration nor an
        iteration count was given, a short default trace is requested. Setting
        both to 0 explicitly suppresses the trace.
        """
        if self.activities_duration_ms is None and self.activities_iterations is None:
            self.activities_duration_ms = DEFAULT_SIGNAL_ACTIVITIES_DURATION_MS

    def update_activity_profiler_request_received_time(self, now: float | None = None) -> None:
        self.activity_profiler_request_received_time = time.monotonic() if now is None else now

    @property
    def event_profiler_on_demand_end(self) -> float:
        return self.event_profiler_on_demand_start + self.event_profiler_on_demand_duration

    def requests_event_profiling(self) -> bool:
        return self.event_profiler_on_demand_duration > 0

    def requests_activity_profiling(self) -> bool:
        return self.activity_profiler_request_received_time > 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        result = asdict(self)
        result["verbose_log_modules"] = sorted(self.verbose_log_modules)
        result["event_profiler_on_demand_end"] = self.event_profiler_on_demand_end
        return result
