"""
Capacity-bounded, time-ordered store of queue position samples.
"""

import logging
from collections import deque
from typing import Optional, Tuple

from .types import Sample

logger = logging.getLogger("queue_estimator.buffer")


class SampleBuffer:
    """
    Append-only sample store for one queue session.

    Samples are throttled to at most one per ``min_interval_ms`` so that a
    server pushing rapid updates still yields a roughly constant sampling
    frequency. Duplicated positions are kept on purpose. Once ``capacity`` is
    exceeded the oldest sample is dropped.

    Example:
        buffer = SampleBuffer()
        if buffer.record(time.time() * 1000, 412):
            print(f"{buffer.size} samples")
    """

    MIN_INTERVAL_MS = 5000   # Most queue servers update every 5-60 seconds
    MAX_CAPACITY = 1000      # Bound for very long queues

    def __init__(
        self,
        min_interval_ms: Optional[float] = None,
        capacity: Optional[int] = None,
    ):
        """
        Initialize an empty buffer.

        Args:
            min_interval_ms: Minimum spacing between accepted samples
            capacity: Maximum number of samples retained
        """
        self.min_interval_ms = self.MIN_INTERVAL_MS if min_interval_ms is None else min_interval_ms
        self.capacity = self.MAX_CAPACITY if capacity is None else capacity
        if self.capacity < 1:
            raise ValueError("Capacity must be at least 1")

        self._samples: deque = deque(maxlen=self.capacity)
        self._start_wall_clock_ms: Optional[float] = None
        self._last_accepted_ms: Optional[float] = None

    def record(self, timestamp_ms: float, position: int) -> bool:
        """
        Record a position observed at an absolute timestamp.

        Args:
            timestamp_ms: Wall-clock time of the observation (epoch ms)
            position: Non-negative queue position

        Returns:
            True if the sample was stored, False if it was throttled
        """
        if (
            self._last_accepted_ms is not None
            and timestamp_ms - self._last_accepted_ms < self.min_interval_ms
        ):
            return False

        if self._start_wall_clock_ms is None:
            self._start_wall_clock_ms = timestamp_ms
            self._samples.clear()

        relative_ms = timestamp_ms - self._start_wall_clock_ms
        self._samples.append(Sample(t_ms=relative_ms, position=int(position)))
        self._last_accepted_ms = timestamp_ms
        return True

    def reset(self):
        """Forget the session; the next accepted sample starts a new one."""
        self._samples.clear()
        self._start_wall_clock_ms = None
        self._last_accepted_ms = None

    def snapshot(self) -> Tuple[Sample, ...]:
        """Immutable copy of the samples, oldest first."""
        return tuple(self._samples)

    @property
    def size(self) -> int:
        return len(self._samples)

    def __len__(self) -> int:
        return len(self._samples)

    @property
    def start_wall_clock_ms(self) -> Optional[float]:
        """Absolute time of the first accepted sample of this session."""
        return self._start_wall_clock_ms

    @property
    def last_accepted_ms(self) -> Optional[float]:
        return self._last_accepted_ms

    @property
    def latest(self) -> Optional[Sample]:
        if not self._samples:
            return None
        return self._samples[-1]
