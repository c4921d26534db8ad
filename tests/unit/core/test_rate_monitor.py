"""Unit tests for the update rate monitor."""

import asyncio
from unittest.mock import patch

import pytest

from tileflip.core.rate_monitor import UpdateRateMonitor


class FakeClock:
    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


class TestUpdateRateMonitor:
    """Test UpdateRateMonitor sampling."""

    def test_initial_state(self):
        """A fresh monitor has no samples."""
        monitor = UpdateRateMonitor(clock=FakeClock())

        assert monitor.samples == ()
        assert monitor.latest == 0.0
        assert monitor.window == 30
        assert not monitor.is_running

    def test_sample_rate_from_last_event(self):
        """The rate is 1000 divided by the milliseconds since the last event."""
        clock = FakeClock()
        monitor = UpdateRateMonitor(clock=clock)

        monitor.mark_event(now_ms=1000.0)
        rate = monitor.sample(now_ms=1250.0)

        assert rate == pytest.approx(4.0)
        assert monitor.samples == (pytest.approx(4.0),)
        assert monitor.latest == pytest.approx(4.0)

    def test_zero_elapsed_produces_no_sample(self):
        """No sample is taken when no time has passed."""
        monitor = UpdateRateMonitor(clock=FakeClock())

        monitor.mark_event(now_ms=500.0)

        assert monitor.sample(now_ms=500.0) is None
        assert monitor.samples == ()

    def test_reference_resets_every_sample(self):
        """Without new events the next sample measures from the previous tick."""
        monitor = UpdateRateMonitor(clock=FakeClock())

        monitor.mark_event(now_ms=0.0)
        monitor.sample(now_ms=100.0)
        second = monitor.sample(now_ms=1100.0)

        assert second == pytest.approx(1.0)
        assert monitor.samples == (pytest.approx(10.0), pytest.approx(1.0))

    def test_window_evicts_oldest(self):
        """Only the most recent ``window`` samples are kept."""
        monitor = UpdateRateMonitor(window=3, clock=FakeClock())

        now = 0.0
        for step in (10.0, 20.0, 40.0, 50.0):
            monitor.mark_event(now_ms=now)
            now += step
            monitor.sample(now_ms=now)

        assert monitor.samples == (
            pytest.approx(50.0),
            pytest.approx(25.0),
            pytest.approx(20.0),
        )

    def test_default_clock_is_used(self):
        """Omitted timestamps come from the injected clock."""
        clock = FakeClock(0.0)
        monitor = UpdateRateMonitor(clock=clock)

        clock.now = 100.0
        monitor.mark_event()
        clock.now = 600.0

        assert monitor.sample() == pytest.approx(2.0)

    @patch("tileflip.core.rate_monitor.update_rate_gauge")
    def test_sample_updates_gauge(self, mock_gauge):
        """Every produced sample is published to the gauge."""
        monitor = UpdateRateMonitor(clock=FakeClock())

        monitor.mark_event(now_ms=0.0)
        monitor.sample(now_ms=200.0)

        mock_gauge.assert_called_once_with(pytest.approx(5.0))

    @pytest.mark.parametrize(
        "kwargs", [{"interval_seconds": 0}, {"window": 0}, {"interval_seconds": -1.0}]
    )
    def test_invalid_parameters(self, kwargs):
        """Interval and window must be positive."""
        with pytest.raises(ValueError):
            UpdateRateMonitor(**kwargs)


class TestUpdateRateMonitorTask:
    """Test the periodic sampling task."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        """The background task samples once per interval until stopped."""
        monitor = UpdateRateMonitor(interval_seconds=0.01)

        monitor.start()
        assert monitor.is_running

        await asyncio.sleep(0.055)
        await monitor.stop()

        assert not monitor.is_running
        assert len(monitor.samples) >= 2

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self):
        """Starting twice keeps a single task."""
        monitor = UpdateRateMonitor(interval_seconds=0.01)

        monitor.start()
        task = monitor._task
        monitor.start()

        assert monitor._task is task
        await monitor.stop()

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        """Stopping an idle monitor is a no-op."""
        monitor = UpdateRateMonitor()

        await monitor.stop()

        assert not monitor.is_running
