"""Tests for the sample buffer and rate monitor."""

import pytest

from queue_estimator import RateMonitor, SampleBuffer
from queue_estimator.types import Sample

BASE_MS = 1_700_000_000_000


# =============================================================================
# Tests for Sample Buffer
# =============================================================================

class TestSampleBufferThrottling:
    """Tests for minimum-interval throttling."""

    def test_second_sample_within_interval_dropped(self):
        """Two samples closer than the minimum interval keep only the first."""
        buffer = SampleBuffer()
        assert buffer.record(BASE_MS, 100) is True
        assert buffer.record(BASE_MS + 2000, 99) is False
        assert buffer.size == 1
        assert buffer.latest.position == 100

    def test_sample_exactly_at_interval_accepted(self):
        """A sample exactly min_interval_ms later is accepted."""
        buffer = SampleBuffer()
        buffer.record(BASE_MS, 100)
        assert buffer.record(BASE_MS + SampleBuffer.MIN_INTERVAL_MS, 100) is True
        assert buffer.size == 2

    def test_duplicate_positions_kept(self):
        """Unchanged positions are recorded to keep a constant sampling frequency."""
        buffer = SampleBuffer()
        for i in range(4):
            buffer.record(BASE_MS + i * 5000, 250)
        assert [s.position for s in buffer.snapshot()] == [250, 250, 250, 250]

    def test_backwards_timestamp_rejected(self):
        """Timestamps before the last accepted one never break ordering."""
        buffer = SampleBuffer()
        buffer.record(BASE_MS + 60000, 100)
        assert buffer.record(BASE_MS, 101) is False
        assert buffer.size == 1

    def test_custom_interval(self):
        buffer = SampleBuffer(min_interval_ms=0)
        assert buffer.record(BASE_MS, 10)
        assert buffer.record(BASE_MS, 10)
        assert buffer.size == 2


class TestSampleBufferTimestamps:
    """Tests for session-relative timestamps."""

    def test_first_sample_starts_session(self):
        buffer = SampleBuffer()
        buffer.record(BASE_MS, 100)
        assert buffer.start_wall_clock_ms == BASE_MS
        assert buffer.snapshot()[0] == Sample(t_ms=0, position=100)

    def test_relative_timestamps(self):
        buffer = SampleBuffer()
        buffer.record(BASE_MS, 100)
        buffer.record(BASE_MS + 6000, 98)
        buffer.record(BASE_MS + 65000, 90)
        assert [s.t_ms for s in buffer.snapshot()] == [0, 6000, 65000]

    def test_t_minutes(self):
        assert Sample(t_ms=90000, position=1).t_minutes == 1.5


class TestSampleBufferEviction:
    """Tests for the capacity bound."""

    def test_capacity_plus_one_evicts_oldest(self):
        """capacity+1 samples leave exactly capacity, oldest gone."""
        buffer = SampleBuffer(capacity=5)
        for i in range(6):
            buffer.record(BASE_MS + i * 5000, 100 - i)

        samples = buffer.snapshot()
        assert len(samples) == 5
        assert samples[0].t_ms == 5000
        assert samples[0].position == 99
        assert samples[-1].position == 95

    def test_default_capacity(self):
        buffer = SampleBuffer()
        for i in range(SampleBuffer.MAX_CAPACITY + 1):
            buffer.record(BASE_MS + i * 5000, 5000 - i)

        assert buffer.size == SampleBuffer.MAX_CAPACITY
        assert buffer.snapshot()[0].t_ms == 5000

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            SampleBuffer(capacity=0)


class TestSampleBufferReset:
    """Tests for session reset."""

    def test_reset_clears_everything(self):
        buffer = SampleBuffer()
        buffer.record(BASE_MS, 100)
        buffer.record(BASE_MS + 5000, 99)

        buffer.reset()

        assert buffer.size == 0
        assert buffer.start_wall_clock_ms is None
        assert buffer.last_accepted_ms is None
        assert buffer.latest is None

    def test_reset_starts_new_session(self):
        """After reset the next sample is accepted immediately and becomes t=0."""
        buffer = SampleBuffer()
        buffer.record(BASE_MS, 100)
        buffer.reset()

        assert buffer.record(BASE_MS + 1000, 80) is True
        assert buffer.start_wall_clock_ms == BASE_MS + 1000
        assert buffer.snapshot() == (Sample(t_ms=0, position=80),)

    def test_snapshot_is_immutable_copy(self):
        buffer = SampleBuffer()
        buffer.record(BASE_MS, 100)
        snapshot = buffer.snapshot()
        buffer.record(BASE_MS + 5000, 99)

        assert isinstance(snapshot, tuple)
        assert len(snapshot) == 1


# =============================================================================
# Tests for Rate Monitor
# =============================================================================

def _minutes(pairs):
    """Samples from (minute, position) pairs."""
    return [Sample(t_ms=m * 60000, position=p) for m, p in pairs]


class TestRateMonitor:
    """Tests for windowed rate checks."""

    def test_not_due_before_interval(self):
        monitor = RateMonitor(interval_ms=10 * 60000)
        samples = _minutes([(m, 100 - 2 * m) for m in range(6)])
        assert monitor.check(samples) is None
        assert monitor.last_rate is None

    def test_rate_over_window(self):
        """Rate is first-minus-last position per elapsed minute."""
        monitor = RateMonitor(interval_ms=10 * 60000)
        samples = _minutes([(m, 100 - 2 * m) for m in range(11)])

        advisory = monitor.check(samples)

        assert advisory is not None
        assert advisory.rate_per_minute == pytest.approx(2.0)
        assert advisory.window_minutes == pytest.approx(10.0)
        assert advisory.previous_rate is None
        assert advisory.increased is False
        assert monitor.last_check_ms == 10 * 60000

    def test_window_excludes_old_samples(self):
        monitor = RateMonitor(interval_ms=10 * 60000)
        # Fast for the first 10 minutes, slow afterwards
        pairs = [(m, 200 - 5 * m) for m in range(11)]
        pairs += [(m, 150 - (m - 10)) for m in range(11, 21)]
        samples = _minutes(pairs)

        advisory = monitor.check(samples)

        # Only minutes 10..20 are in the window
        assert advisory.rate_per_minute == pytest.approx(1.0)

    def test_next_check_waits_full_interval(self):
        monitor = RateMonitor(interval_ms=10 * 60000)
        samples = _minutes([(m, 100 - m) for m in range(16)])

        assert monitor.check(samples[:11]) is not None
        assert monitor.check(samples) is None

    def test_increase_flagged(self):
        """A faster drain than the previous check raises the advisory flag."""
        monitor = RateMonitor(interval_ms=10 * 60000)
        pairs = [(m, 300 - m) for m in range(11)]
        pairs += [(m, 290 - 3 * (m - 10)) for m in range(11, 21)]
        samples = _minutes(pairs)

        first = monitor.check(samples[:11])
        second = monitor.check(samples)

        assert first.rate_per_minute == pytest.approx(1.0)
        assert second.rate_per_minute == pytest.approx(3.0)
        assert second.previous_rate == pytest.approx(1.0)
        assert second.increased is True

    def test_decrease_not_flagged(self):
        monitor = RateMonitor(interval_ms=10 * 60000)
        pairs = [(m, 300 - 3 * m) for m in range(11)]
        pairs += [(m, 270 - (m - 10)) for m in range(11, 21)]
        samples = _minutes(pairs)

        monitor.check(samples[:11])
        second = monitor.check(samples)

        assert second.increased is False

    def test_short_window_skipped(self):
        """Less than 30 seconds of data in the window skips the check entirely."""
        monitor = RateMonitor(interval_ms=20000)
        samples = [Sample(t_ms=t, position=10 - i) for i, t in enumerate([0, 10000, 20000, 30000])]

        assert monitor.check(samples) is None
        assert monitor.last_check_ms == 0
        assert monitor.last_rate is None

    def test_single_sample_window_skipped(self):
        monitor = RateMonitor(interval_ms=60000)
        samples = _minutes([(0, 10), (2, 9)])
        assert monitor.check(samples) is None

    def test_empty_samples(self):
        assert RateMonitor().check([]) is None

    def test_reset(self):
        monitor = RateMonitor(interval_ms=10 * 60000)
        monitor.check(_minutes([(m, 100 - m) for m in range(11)]))

        monitor.reset()

        assert monitor.last_rate is None
        assert monitor.last_check_ms == 0
