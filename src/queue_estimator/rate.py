"""
Windowed queue drain rate tracking.

Queues normally decelerate or hold steady, so a rate that rises between two
checks is reported as an advisory: it usually means something changed on
the server side (a second lane opened, players were kicked, ...).
"""

import logging
from typing import Optional, Sequence

from .types import RateAdvisory, Sample

logger = logging.getLogger("queue_estimator.rate")


class RateMonitor:
    """
    Computes the average positions/minute over the last ``interval_ms``.

    A check runs at most once per interval of sample time. It is skipped
    (and does not count as a check) when the window holds fewer than two
    samples or spans less than ``MIN_WINDOW_MS``.
    """

    MIN_WINDOW_MS = 30 * 1000

    def __init__(self, interval_ms: float = 3600 * 1000):
        self.interval_ms = interval_ms
        self._last_check_ms: float = 0.0
        self._last_rate: Optional[float] = None

    def check(self, samples: Sequence[Sample]) -> Optional[RateAdvisory]:
        """
        Run a rate check against the buffer contents if one is due.

        Args:
            samples: Buffer snapshot, oldest first

        Returns:
            RateAdvisory when a check was performed, otherwise None
        """
        if not samples:
            return None

        current_ms = samples[-1].t_ms
        if current_ms - self._last_check_ms < self.interval_ms:
            return None

        window_start = max(0.0, current_ms - self.interval_ms)
        window = [s for s in samples if s.t_ms >= window_start]
        if len(window) < 2:
            return None

        elapsed_ms = window[-1].t_ms - window[0].t_ms
        if elapsed_ms < self.MIN_WINDOW_MS:
            return None

        elapsed_minutes = elapsed_ms / 60000.0
        rate = (window[0].position - window[-1].position) / elapsed_minutes
        previous = self._last_rate
        increased = previous is not None and rate > previous

        advisory = RateAdvisory(
            rate_per_minute=rate,
            window_minutes=elapsed_minutes,
            previous_rate=previous,
            increased=increased,
        )

        logger.info(f"Queue rate: {rate:.2f} positions/min over {elapsed_minutes:.1f} min")
        if increased:
            logger.warning(
                f"Queue rate increased from {previous:.2f} to {rate:.2f} positions/min (unexpected)"
            )

        self._last_rate = rate
        self._last_check_ms = current_ms
        return advisory

    def reset(self):
        self._last_check_ms = 0.0
        self._last_rate = None

    @property
    def last_rate(self) -> Optional[float]:
        return self._last_rate

    @property
    def last_check_ms(self) -> float:
        return self._last_check_ms
