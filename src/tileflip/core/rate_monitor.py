"""Rolling sample of the tile update arrival rate.

Every incoming update marks "now"; once per tick the rate since the last
reference point is pushed into a bounded ring. The signal is for
observability only and never feeds control decisions.
"""

import asyncio
from collections import deque
from collections.abc import Callable

from tileflip.utils.telemetry import MonotonicClock, get_logger, update_rate_gauge


class UpdateRateMonitor:
    """Samples update arrival timing into a ring of events/second values."""

    def __init__(
        self,
        interval_seconds: float = 1.0,
        window: int = 30,
        clock: Callable[[], float] = MonotonicClock.now_ms,
    ):
        """Initialize the monitor.

        Args:
            interval_seconds: Time between samples
            window: Number of samples kept (oldest evicted first)
            clock: Millisecond clock
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        if window <= 0:
            raise ValueError("window must be positive")

        self.interval_seconds = interval_seconds
        self._clock = clock
        self._samples: deque[float] = deque(maxlen=window)
        self._last_event_ms = clock()
        self._task: asyncio.Task[None] | None = None
        self._logger = get_logger("tileflip.rate_monitor")

    def mark_event(self, now_ms: float | None = None) -> None:
        """Record the arrival time of an update event."""
        self._last_event_ms = self._clock() if now_ms is None else now_ms

    def sample(self, now_ms: float | None = None) -> float | None:
        """Take one rate sample and reset the reference point.

        Args:
            now_ms: Current time in milliseconds (defaults to the clock)

        Returns:
            The sampled rate, or None if no time elapsed since the reference
        """
        now = self._clock() if now_ms is None else now_ms
        elapsed = now - self._last_event_ms
        rate: float | None = None
        if elapsed > 0:
            rate = 1000.0 / elapsed
            self._samples.append(rate)
            update_rate_gauge(rate)
        # Reset even when no sample was produced
        self._last_event_ms = now
        return rate

    @property
    def samples(self) -> tuple[float, ...]:
        return tuple(self._samples)

    @property
    def latest(self) -> float:
        return self._samples[-1] if self._samples else 0.0

    @property
    def window(self) -> int:
        return self._samples.maxlen or 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the periodic sampling task on the running loop."""
        if self.is_running:
            return
        self._last_event_ms = self._clock()
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the periodic sampling task."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            rate = self.sample()
            self._logger.debug("Update rate sampled", rate=rate)
