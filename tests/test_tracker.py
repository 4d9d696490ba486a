"""Tests for the queue tracking session."""

import csv

import pytest

from queue_estimator import (
    EstimatorConfig,
    QueueTracker,
    SampleExporter,
    SessionPhase,
    StatusReport,
)
from queue_estimator.types import ModelType

BASE_MS = 1_700_000_000_000
MINUTE_MS = 60000


def feed(tracker, positions, step_ms=MINUTE_MS, start_ms=BASE_MS):
    """Feed positions at a fixed cadence and return the last report."""
    report = None
    for i, position in enumerate(positions):
        report = tracker.on_position(position, start_ms + i * step_ms)
    return report


class RaisingEngine:
    def fit_all(self, samples, settings, now_ms=None):
        raise RuntimeError("fit exploded")


# =============================================================================
# Tests for Session Phases
# =============================================================================

class TestTrackerPhases:
    """Tests for the phase reported after each accepted sample."""

    def test_collecting_until_min_points(self):
        tracker = QueueTracker()
        report = feed(tracker, [200, 180, 160])

        assert report.phase is SessionPhase.COLLECTING
        assert report.position == 160
        assert report.samples_needed == 2
        assert report.format_lines() == [
            "[Queue] Position: 160 | Collecting data... (2 more needed)"
        ]

    def test_estimate_available(self):
        tracker = QueueTracker()
        report = feed(tracker, [200, 180, 160, 140, 120])

        assert report.phase is SessionPhase.ESTIMATE_AVAILABLE
        assert report.show_all is True
        assert "Linear" in [line.model_name for line in report.estimates]
        assert report.report.best is not None

        lines = report.format_lines()
        assert lines[0] == f"[Queue] Position: 120 | {len(report.estimates)} fit(s) succeeded:"
        assert len(lines) == len(report.estimates) + 1
        assert all("R²: " in line for line in lines[1:])

    def test_linear_estimate_minutes(self):
        config = EstimatorConfig()
        for model in ModelType:
            config.set_model_enabled(model, model is ModelType.LINEAR)
        tracker = QueueTracker(config)

        report = feed(tracker, [200, 180, 160, 140, 120])

        assert len(report.estimates) == 1
        assert report.estimates[0].minutes_remaining == 6
        assert report.estimates[0].goodness_of_fit == pytest.approx(1.0)

    def test_best_only(self):
        config = EstimatorConfig(show_all_results=False)
        tracker = QueueTracker(config)

        report = feed(tracker, [200, 180, 160, 140, 120])

        assert report.show_all is False
        assert len(report.estimates) == 1
        assert report.estimates[0].model_name == report.report.best.model.display_name

        lines = report.format_lines()
        assert len(lines) == 1
        assert lines[0].startswith("[Queue] Position: 120 | ETA: ")

    def test_no_models_enabled(self):
        config = EstimatorConfig()
        for model in ModelType:
            config.set_model_enabled(model, False)
        tracker = QueueTracker(config)

        report = feed(tracker, [200, 180, 160, 140, 120])

        assert report.phase is SessionPhase.NO_MODELS_ENABLED
        assert report.format_lines() == ["[Queue] Position: 120 | No formulas enabled in config!"]

    def test_constant_queue_all_fits_failed(self):
        tracker = QueueTracker()
        report = feed(tracker, [75] * 6)

        assert report.phase is SessionPhase.ALL_FITS_FAILED
        assert report.report is not None
        assert report.format_lines() == ["[Queue] Position: 75 | All curve fits failed"]

    def test_engine_error_reported_as_failure(self):
        tracker = QueueTracker(engine=RaisingEngine())
        report = feed(tracker, [200, 180, 160, 140, 120])

        assert report.phase is SessionPhase.ALL_FITS_FAILED
        assert report.report is None


# =============================================================================
# Tests for Ingestion
# =============================================================================

class TestTrackerIngestion:
    """Tests for position and text ingestion."""

    def test_throttled_sample_returns_none(self):
        tracker = QueueTracker()
        assert tracker.on_position(100, BASE_MS) is not None
        assert tracker.on_position(99, BASE_MS + 1000) is None
        assert len(tracker.samples()) == 1

    def test_negative_position_rejected(self):
        tracker = QueueTracker()
        with pytest.raises(ValueError):
            tracker.on_position(-1, BASE_MS)
        assert tracker.samples() == ()

    def test_clock_used_without_timestamp(self):
        tracker = QueueTracker(clock=lambda: BASE_MS)
        tracker.on_position(42)
        assert tracker.buffer.start_wall_clock_ms == BASE_MS

    def test_on_text_extracts_position(self):
        tracker = QueueTracker()
        report = tracker.on_text("§6Position in queue: §l412", BASE_MS)

        assert report.position == 412
        assert tracker.samples()[0].position == 412

    def test_on_text_ignores_other_messages(self):
        tracker = QueueTracker()
        assert tracker.on_text("Welcome to the server!", BASE_MS) is None
        assert tracker.samples() == ()

    def test_last_report_tracked(self):
        tracker = QueueTracker()
        report = tracker.on_position(100, BASE_MS)
        assert tracker.last_report == report

    def test_reset_starts_new_session(self):
        tracker = QueueTracker()
        feed(tracker, [200, 180, 160])

        tracker.reset()

        assert tracker.samples() == ()
        assert tracker.last_report is None
        report = tracker.on_position(90, BASE_MS + 10 * MINUTE_MS)
        assert report.samples_needed == 4
        assert tracker.samples()[0].t_ms == 0


# =============================================================================
# Tests for Listeners
# =============================================================================

class TestTrackerListeners:
    """Tests for report and rate callbacks."""

    def test_report_listener_receives_every_report(self):
        received = []
        tracker = QueueTracker()
        tracker.add_report_listener(received.append)

        feed(tracker, [200, 180, 160])
        tracker.on_position(150, BASE_MS + 2 * MINUTE_MS + 1000)  # throttled

        assert len(received) == 3
        assert all(isinstance(r, StatusReport) for r in received)

    def test_failing_listener_does_not_break_tracking(self):
        received = []

        def broken(report):
            raise RuntimeError("listener bug")

        tracker = QueueTracker()
        tracker.add_report_listener(broken)
        tracker.add_report_listener(received.append)

        report = tracker.on_position(100, BASE_MS)

        assert report is not None
        assert received == [report]

    def test_rate_listener(self):
        advisories = []
        config = EstimatorConfig(rate_tracking_interval_hours=0.5)
        for model in ModelType:
            config.set_model_enabled(model, model is ModelType.LINEAR)
        tracker = QueueTracker(config)
        tracker.add_rate_listener(advisories.append)

        feed(tracker, [500 - 2 * m for m in range(31)])

        assert len(advisories) == 1
        assert advisories[0].rate_per_minute == pytest.approx(2.0)
        assert advisories[0].increased is False

    def test_rate_interval_follows_config(self):
        config = EstimatorConfig()
        tracker = QueueTracker(config)
        config.set_rate_tracking_interval_hours(2.0)

        tracker.on_position(100, BASE_MS)

        assert tracker.rate_monitor.interval_ms == 2 * 3600 * 1000


# =============================================================================
# Tests for Export Wiring
# =============================================================================

class TestTrackerExport:
    """Tests for CSV export of accepted samples."""

    def test_accepted_samples_exported(self, tmp_path):
        exporter = SampleExporter(log_dir=tmp_path)
        tracker = QueueTracker(exporter=exporter)

        feed(tracker, [200, 180, 160])
        tracker.on_position(150, BASE_MS + 2 * MINUTE_MS + 1000)  # throttled
        tracker.reset()

        with open(exporter.path, newline="") as f:
            rows = list(csv.reader(f))

        assert rows[0] == ["timestamp", "relative_time_ms", "position"]
        assert [row[1:] for row in rows[1:]] == [
            ["0", "200"],
            ["60000", "180"],
            ["120000", "160"],
        ]

    def test_new_session_new_file(self, tmp_path):
        exporter = SampleExporter(log_dir=tmp_path)
        tracker = QueueTracker(exporter=exporter)

        tracker.on_position(100, BASE_MS)
        first = exporter.path
        tracker.reset()
        tracker.on_position(90, BASE_MS + 3600 * 1000)

        assert exporter.path != first
        assert len(list(tmp_path.glob("queue_*.csv"))) == 2
