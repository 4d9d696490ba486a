"""
Queue tracking session.

``QueueTracker`` is the object a host owns for one queue: it ingests
positions, keeps the sample buffer, runs the rate monitor and the fit
engine, and hands a ``StatusReport`` to registered listeners.
"""

import logging
import time
from typing import Callable, List, Optional, Sequence, Tuple

from .buffer import SampleBuffer
from .config import EstimatorConfig
from .engine import FitEngine
from .export import SampleExporter
from .parsing import extract_queue_position
from .rate import RateMonitor
from .types import (
    EstimateLine,
    RateAdvisory,
    Sample,
    SessionPhase,
    StatusReport,
)

logger = logging.getLogger("queue_estimator.tracker")

ReportListener = Callable[[StatusReport], None]
RateListener = Callable[[RateAdvisory], None]


def _wall_clock_ms() -> float:
    return time.time() * 1000


class QueueTracker:
    """
    Tracks queue position samples over time and estimates time to enter.

    All work runs synchronously on the caller's thread. Listeners receive
    immutable reports; the live buffer is never exposed.

    Example:
        tracker = QueueTracker(EstimatorConfig.load(path))
        tracker.add_report_listener(lambda r: print("\\n".join(r.format_lines())))

        # For every status line the server sends:
        tracker.on_text("Position in queue: 412")
    """

    def __init__(
        self,
        config: Optional[EstimatorConfig] = None,
        buffer: Optional[SampleBuffer] = None,
        engine: Optional[FitEngine] = None,
        rate_monitor: Optional[RateMonitor] = None,
        exporter: Optional[SampleExporter] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize a tracking session.

        Args:
            config: Estimator settings (defaults if None)
            buffer: Sample store, default throttling and capacity if None
            engine: Fit engine, all models if None
            rate_monitor: Rate tracker; its interval follows ``config``
            exporter: Optional raw sample CSV exporter
            clock: Returns wall-clock epoch ms, used when no timestamp is given
        """
        self.config = config or EstimatorConfig()
        self.buffer = buffer or SampleBuffer()
        self.engine = engine or FitEngine()
        self.rate_monitor = rate_monitor or RateMonitor(self.config.rate_interval_ms)
        self.exporter = exporter
        self._clock = clock or _wall_clock_ms

        self._report_listeners: List[ReportListener] = []
        self._rate_listeners: List[RateListener] = []
        self._last_report: Optional[StatusReport] = None

    def add_report_listener(self, callback: ReportListener):
        """Register a callback for the status report of every accepted sample."""
        self._report_listeners.append(callback)

    def add_rate_listener(self, callback: RateListener):
        """Register a callback for rate advisories."""
        self._rate_listeners.append(callback)

    def on_text(self, text: str, timestamp_ms: Optional[float] = None) -> Optional[StatusReport]:
        """Ingest a raw status line; ignored unless it announces a queue position."""
        position = extract_queue_position(text)
        if position is None:
            return None
        return self.on_position(position, timestamp_ms)

    def on_position(self, position: int, timestamp_ms: Optional[float] = None) -> Optional[StatusReport]:
        """
        Ingest a queue position.

        Args:
            position: Non-negative queue position
            timestamp_ms: Observation time (epoch ms), defaults to the clock

        Returns:
            StatusReport if the sample was recorded, None if it was throttled
        """
        if position < 0:
            raise ValueError(f"Queue position must be non-negative, got {position}")

        now_ms = self._clock() if timestamp_ms is None else timestamp_ms
        new_session = self.buffer.start_wall_clock_ms is None

        if not self.buffer.record(now_ms, position):
            return None

        sample = self.buffer.latest
        if new_session:
            self.rate_monitor.reset()
            if self.exporter:
                self.exporter.start_session(now_ms)

        logger.info(
            f"Queue position recorded: {position} at t={sample.t_ms:.0f}ms "
            f"(total points: {self.buffer.size})"
        )
        if self.exporter:
            self.exporter.write_sample(now_ms, sample.t_ms, position)

        snapshot = self.buffer.snapshot()

        self.rate_monitor.interval_ms = self.config.rate_interval_ms
        advisory = self.rate_monitor.check(snapshot)
        if advisory is not None:
            self._notify(self._rate_listeners, advisory)

        report = self._build_report(snapshot, now_ms)
        self._last_report = report
        self._notify(self._report_listeners, report)
        return report

    def _build_report(self, snapshot: Sequence[Sample], now_ms: float) -> StatusReport:
        position = snapshot[-1].position

        needed = self.config.min_data_points_before_fit - len(snapshot)
        if needed > 0:
            return StatusReport(position=position, phase=SessionPhase.COLLECTING, samples_needed=needed)

        if not self.config.has_any_model_enabled():
            return StatusReport(position=position, phase=SessionPhase.NO_MODELS_ENABLED)

        try:
            fit_report = self.engine.fit_all(snapshot, self.config.snapshot(), now_ms)
        except Exception:
            logger.exception("Error during curve fitting")
            return StatusReport(position=position, phase=SessionPhase.ALL_FITS_FAILED)

        ranked = fit_report.ranked_valid
        if not ranked:
            return StatusReport(
                position=position,
                phase=SessionPhase.ALL_FITS_FAILED,
                report=fit_report,
            )

        show_all = self.config.show_all_results
        chosen = ranked if show_all else ranked[:1]
        return StatusReport(
            position=position,
            phase=SessionPhase.ESTIMATE_AVAILABLE,
            estimates=tuple(EstimateLine.from_result(r, now_ms) for r in chosen),
            show_all=show_all,
            report=fit_report,
        )

    @staticmethod
    def _notify(listeners: Sequence[Callable], payload):
        for callback in listeners:
            try:
                callback(payload)
            except Exception:
                logger.exception(f"Listener {callback!r} failed")

    def reset(self):
        """Reset the tracker for a new session."""
        self.buffer.reset()
        self.rate_monitor.reset()
        if self.exporter:
            self.exporter.end_session()
        self._last_report = None
        logger.info("Queue tracker reset")

    def samples(self) -> Tuple[Sample, ...]:
        """Immutable snapshot of the recorded samples."""
        return self.buffer.snapshot()

    @property
    def last_report(self) -> Optional[StatusReport]:
        return self._last_report
