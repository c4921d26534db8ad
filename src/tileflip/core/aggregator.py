"""Aggregation of flip outcomes into rolling metrics.

The OutcomeAggregator is the single owner of the pipeline metrics: counters,
the running response-time mean, the bounded flip history, per-powerup
statistics, the pending/flipped position view and the transaction log. The
classifier and scheduler hold a reference to it and report through its
``record_*`` methods; everything else reads snapshots.
"""

from collections import deque
from collections.abc import Callable, Sequence

from tileflip.schemas.types import (
    Cell,
    Coordinate,
    FlipRecord,
    MetricsSnapshot,
    PositionsSnapshot,
    Powerup,
    PowerupStatsSnapshot,
    TxLogEntry,
)
from tileflip.utils.errors import ExecutionFailure
from tileflip.utils.telemetry import MonotonicClock, get_logger

logger = get_logger(__name__)


class PowerupStats:
    """Count and bounded value window for one powerup kind."""

    def __init__(self, window: int):
        self.count = 0
        self.values: deque[int] = deque(maxlen=window)

    def observe(self, value: int) -> None:
        self.count += 1
        self.values.append(value)

    def snapshot(self) -> PowerupStatsSnapshot:
        return PowerupStatsSnapshot(count=self.count, values=list(self.values))


class OutcomeAggregator:
    """Turns chunk results and self-owned tile updates into metrics."""

    def __init__(
        self,
        history_size: int = 100,
        powerup_window: int = 100,
        tx_log_size: int = 10,
        clock: Callable[[], float] = MonotonicClock.wall_time_ms,
    ):
        """Initialize an empty aggregate.

        Args:
            history_size: Number of flip records kept
            powerup_window: Number of values kept per powerup kind
            tx_log_size: Number of transaction references kept
            clock: Wall-clock source in milliseconds for record timestamps
        """
        self._clock = clock
        self.total_count = 0
        self.success_count = 0
        self.failure_count = 0
        self.decode_errors = 0
        self.average_response_time_ms = 0.0
        self._history: deque[FlipRecord] = deque(maxlen=history_size)
        self._powerups: dict[Powerup, PowerupStats] = {
            kind: PowerupStats(powerup_window) for kind in Powerup
        }
        self._tx_log: deque[TxLogEntry] = deque(maxlen=tx_log_size)
        self._pending: list[Coordinate] = []
        self._flipped: list[Coordinate] = []

    # Recording

    def record_success(
        self,
        chunk: Sequence[Coordinate],
        elapsed_ms: float,
        tx_ref: str | None = None,
    ) -> None:
        """Account for a chunk the executor accepted.

        Every item of the chunk counts as one completed action whose response
        time is the chunk's elapsed time.

        Args:
            chunk: Coordinates of the chunk
            elapsed_ms: Time from submission start to result
            tx_ref: Transaction reference returned by the executor
        """
        size = len(chunk)
        if size == 0:
            return

        completed = self.success_count
        self.average_response_time_ms = (
            self.average_response_time_ms * completed + elapsed_ms * size
        ) / (completed + size)
        self.total_count += size
        self.success_count += size

        now = self._clock()
        for _ in chunk:
            self._history.append(
                FlipRecord(
                    timestamp=now, success=True, powerup=Powerup.NONE, powerup_value=0
                )
            )

        if tx_ref is not None:
            self._tx_log.append(TxLogEntry(tx_ref=tx_ref, timestamp=now))

        # One pending entry per item; a duplicate admission stays pending
        for coordinate in chunk:
            if coordinate in self._pending:
                self._pending.remove(coordinate)
        self._flipped.extend(chunk)

    def record_failure(
        self, chunk: Sequence[Coordinate], error: ExecutionFailure | None = None
    ) -> None:
        """Account for a chunk the executor rejected.

        The average response time is left unchanged and no position is
        marked as flipped.
        """
        size = len(chunk)
        if size == 0:
            return

        self.total_count += size
        self.failure_count += size

        now = self._clock()
        for _ in chunk:
            self._history.append(FlipRecord(timestamp=now, success=False))

        if error is not None:
            logger.debug(
                "Recorded failed chunk", chunk_id=error.chunk_id, size=size
            )

    def record_self_owned(self, cell: Cell) -> None:
        """Account for an update showing a tile now owned by us."""
        if cell.powerup != Powerup.NONE:
            self._powerups[cell.powerup].observe(cell.powerup_value)

        self._history.append(
            FlipRecord(
                timestamp=self._clock(),
                success=True,
                powerup=cell.powerup,
                powerup_value=cell.powerup_value,
            )
        )

    def record_decode_error(self) -> None:
        self.decode_errors += 1

    def mark_pending(self, coordinate: Coordinate) -> None:
        """Add an admitted coordinate to the position view."""
        self._pending.append(coordinate)

    # Read-only views

    @property
    def history(self) -> tuple[FlipRecord, ...]:
        return tuple(self._history)

    @property
    def tx_log(self) -> tuple[TxLogEntry, ...]:
        return tuple(self._tx_log)

    def powerup_stats(self, kind: Powerup) -> PowerupStatsSnapshot:
        return self._powerups[kind].snapshot()

    def snapshot(self) -> MetricsSnapshot:
        """Return a copy of the current metrics."""
        return MetricsSnapshot(
            total_count=self.total_count,
            success_count=self.success_count,
            failure_count=self.failure_count,
            average_response_time_ms=self.average_response_time_ms,
            decode_errors=self.decode_errors,
            history=list(self._history),
            powerup_stats={
                kind: stats.snapshot() for kind, stats in self._powerups.items()
            },
        )

    def positions(self) -> PositionsSnapshot:
        return PositionsSnapshot(
            pending=list(self._pending), flipped=list(self._flipped)
        )

    def success_rate_series(self, window: int = 10) -> list[float]:
        """Rolling success ratio over the history.

        One value per record from index ``window`` onward, each the ratio of
        successes among the ``window`` records ending at that record.
        """
        records = list(self._history)
        series = []
        for idx in range(window, len(records)):
            recent = records[idx - window + 1 : idx + 1]
            series.append(sum(1 for r in recent if r.success) / window)
        return series

    def powerup_distribution(self) -> dict[Powerup, tuple[int, float]]:
        """Count and average observed value per powerup kind (NONE excluded)."""
        distribution = {}
        for kind, stats in self._powerups.items():
            if kind == Powerup.NONE:
                continue
            snap = stats.snapshot()
            distribution[kind] = (snap.count, snap.average)
        return distribution

    def recent_powerups(self, limit: int = 30) -> list[FlipRecord]:
        """Most recent history records that carried a powerup."""
        found = [
            r
            for r in self._history
            if r.powerup is not None and r.powerup != Powerup.NONE
        ]
        return found[-limit:]
