"""Tests for ConfigSnapshot parsing, cloning and signal defaults."""

import logging

import pytest

from dynprof.config import DEFAULT_SIGNAL_ACTIVITIES_DURATION_MS, ConfigSnapshot


class TestParse:
    """Test parsing of key/value config text."""

    def test_parses_control_plane_fields(self) -> None:
        """Test the fields the control plane reads."""
        snapshot = ConfigSnapshot().parse(
            "# base config\n"
            "VERBOSE_LOG_LEVEL=2\n"
            "VERBOSE_LOG_MODULES=runtime.scheduler, config\n"
            "\n"
            "SIG_USR2_ENABLED=yes\n"
        )

        assert snapshot.verbose_log_level == 2  # noqa: PLR2004
        assert snapshot.verbose_log_modules == {"runtime.scheduler", "config"}
        assert snapshot.sig_usr2_enabled is True

    def test_keys_are_case_insensitive(self) -> None:
        """Test lower-case keys and the ENABLE_SIGUSR2 alias."""
        assert ConfigSnapshot().parse("sig_usr2_enabled=yes").sig_usr2_enabled is True
        assert ConfigSnapshot().parse("enable_sigusr2 = true").sig_usr2_enabled is True
        assert ConfigSnapshot().parse("sig_usr2_enabled=no").sig_usr2_enabled is False

    def test_defaults_for_empty_text(self) -> None:
        """Test that empty text yields the unset defaults."""
        snapshot = ConfigSnapshot().parse("")

        assert snapshot.verbose_log_level == -1
        assert snapshot.verbose_log_modules == set()
        assert snapshot.sig_usr2_enabled is False
        assert not snapshot.requests_event_profiling()
        assert not snapshot.requests_activity_profiling()

    def test_malformed_text_degrades_to_empty(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test that a line without '=' discards the whole text without raising."""
        with caplog.at_level(logging.ERROR, logger="dynprof.config.snapshot"):
            snapshot = ConfigSnapshot().parse("VERBOSE_LOG_LEVEL=3\nthis is not config\n")

        assert snapshot.verbose_log_level == -1
        assert snapshot.source == "VERBOSE_LOG_LEVEL=3\nthis is not config\n"
        assert "malformed" in caplog.text

    def test_bad_value_leaves_snapshot_untouched(self) -> None:
        """Test that one unparsable value applies nothing from that text."""
        snapshot = ConfigSnapshot().parse("VERBOSE_LOG_LEVEL=1")
        snapshot.parse("VERBOSE_LOG_LEVEL=5\nSIG_USR2_ENABLED=maybe")

        assert snapshot.verbose_log_level == 1
        assert snapshot.sig_usr2_enabled is False

    def test_unknown_keys_pass_through(self) -> None:
        """Test that downstream keys are kept untouched."""
        snapshot = ConfigSnapshot().parse("CUPTI_BUFFER_SIZE_MB=64\nREPORT_PERIOD_SECS=1")

        assert snapshot.options == {"CUPTI_BUFFER_SIZE_MB": "64", "REPORT_PERIOD_SECS": "1"}

    def test_event_window(self) -> None:
        """Test that EVENTS_DURATION_SECS opens a window starting at now."""
        snapshot = ConfigSnapshot().parse("EVENTS_DURATION_SECS=10", now=500.0)

        assert snapshot.requests_event_profiling()
        assert snapshot.event_profiler_on_demand_start == 500.0  # noqa: PLR2004
        assert snapshot.event_profiler_on_demand_end == 510.0  # noqa: PLR2004

    def test_activity_request_is_stamped(self) -> None:
        """Test that a positive duration or iteration count stamps the request time."""
        by_duration = ConfigSnapshot().parse("ACTIVITIES_DURATION_SECS=2", now=42.0)
        by_iterations = ConfigSnapshot().parse("ACTIVITIES_ITERATIONS=5", now=43.0)
        suppressed = ConfigSnapshot().parse("ACTIVITIES_ITERATIONS=0", now=44.0)

        assert by_duration.activities_duration_ms == 2000  # noqa: PLR2004
        assert by_duration.activity_profiler_request_received_time == 42.0  # noqa: PLR2004
        assert by_iterations.activity_profiler_request_received_time == 43.0  # noqa: PLR2004
        assert not suppressed.requests_activity_profiling()


class TestTimestamps:
    """Test change-detection timestamps."""

    def test_same_text_keeps_timestamp(self) -> None:
        """Test that re-parsing identical text does not advance the timestamp."""
        snapshot = ConfigSnapshot().parse("VERBOSE_LOG_LEVEL=1")
        first = snapshot.timestamp

        snapshot.parse("VERBOSE_LOG_LEVEL=1")

        assert snapshot.timestamp == first

    def test_empty_text_stamps_fresh_snapshot(self) -> None:
        """Test that parsing empty text into a new snapshot still stamps it."""
        earlier = ConfigSnapshot().parse("VERBOSE_LOG_LEVEL=1")
        empty = ConfigSnapshot().parse("")

        assert empty.timestamp > earlier.timestamp

        first = empty.timestamp
        empty.parse("")
        assert empty.timestamp == first

    def test_new_text_advances_timestamp(self) -> None:
        """Test that changed text always gets a strictly greater timestamp."""
        snapshot = ConfigSnapshot().parse("VERBOSE_LOG_LEVEL=1")
        first = snapshot.timestamp

        snapshot.parse("VERBOSE_LOG_LEVEL=2")

        assert snapshot.timestamp > first

    def test_fresh_snapshots_are_strictly_ordered(self) -> None:
        """Test ordering across snapshots parsed back to back."""
        timestamps = [ConfigSnapshot().parse(f"VERBOSE_LOG_LEVEL={i}").timestamp for i in range(50)]

        assert timestamps == sorted(timestamps)
        assert len(set(timestamps)) == len(timestamps)

    def test_identical_text_is_equal_except_timestamp(self) -> None:
        """Test semantic equality of snapshots from the same text."""
        text = "VERBOSE_LOG_LEVEL=1\nSIG_USR2_ENABLED=yes\nFOO=bar"
        first = ConfigSnapshot().parse(text)
        second = ConfigSnapshot().parse(text)

        assert first.timestamp != second.timestamp
        assert first == second


class TestCloneAndDefaults:
    """Test drafts derived from a snapshot."""

    def test_clone_is_independent(self) -> None:
        """Test that mutating a clone never leaks into the original."""
        original = ConfigSnapshot().parse("VERBOSE_LOG_MODULES=a,b\nFOO=1")
        draft = original.clone()

        draft.verbose_log_modules.add("c")
        draft.options["FOO"] = "2"
        draft.apply_signal_defaults()

        assert original.verbose_log_modules == {"a", "b"}
        assert original.options == {"FOO": "1"}
        assert original.activities_duration_ms is None

    def test_clone_then_parse_overlays(self) -> None:
        """Test that on-demand text is layered over the base values."""
        base = ConfigSnapshot().parse("VERBOSE_LOG_LEVEL=1\nSIG_USR2_ENABLED=yes")
        draft = base.clone().parse("EVENTS_DURATION_SECS=5", now=10.0)

        assert draft.verbose_log_level == 1
        assert draft.sig_usr2_enabled is True
        assert draft.requests_event_profiling()
        assert draft.timestamp > base.timestamp

    def test_signal_defaults_request_a_short_trace(self) -> None:
        """Test that a bare signal draft gets the default trace duration."""
        draft = ConfigSnapshot().parse("")
        draft.apply_signal_defaults()

        assert draft.activities_duration_ms == DEFAULT_SIGNAL_ACTIVITIES_DURATION_MS

    def test_signal_defaults_respect_explicit_fields(self) -> None:
        """Test that explicit duration or iterations are kept, including zeros."""
        with_iterations = ConfigSnapshot().parse("ACTIVITIES_ITERATIONS=3")
        with_iterations.apply_signal_defaults()
        suppressed = ConfigSnapshot().parse("ACTIVITIES_DURATION_MSECS=0\nACTIVITIES_ITERATIONS=0")
        suppressed.apply_signal_defaults()

        assert with_iterations.activities_duration_ms is None
        assert with_iterations.activities_iterations == 3  # noqa: PLR2004
        assert suppressed.activities_duration_ms == 0

    def test_to_dict(self) -> None:
        """Test JSON-friendly conversion."""
        data = ConfigSnapshot().parse("VERBOSE_LOG_MODULES=b,a\nEVENTS_DURATION_SECS=1", now=1.0).to_dict()

        assert data["verbose_log_modules"] == ["a", "b"]
        assert data["event_profiler_on_demand_end"] == 2.0  # noqa: PLR2004
