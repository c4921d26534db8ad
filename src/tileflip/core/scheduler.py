"""Chunked, delayed dispatch of admitted flip candidates.

Admitted coordinates accumulate in a pending queue. The first admission of a
burst schedules a drain cycle on the next loop iteration; the cycle takes the
whole queue, splits it into chunks of at most ``chunk_size`` and schedules
chunk ``i`` to fire ``i * execution_delay_ms`` after the drain. Each fired
chunk becomes one independent executor call, so a slow chunk never holds
back the next one.
"""

import asyncio
import random
import time
from collections.abc import Awaitable, Callable, Sequence

from tileflip.core.aggregator import OutcomeAggregator
from tileflip.core.interfaces import ActionExecutor
from tileflip.schemas.types import Coordinate, FlipAction
from tileflip.utils.errors import ConfigurationError, ExecutionFailure
from tileflip.utils.telemetry import (
    async_performance_timer,
    get_logger,
    record_cancelled_dispatches,
    record_chunk_outcome,
    update_pending_depth,
)

logger = get_logger(__name__)

CHUNK_SIZE_BOUNDS = (1, 20)
EXECUTION_DELAY_BOUNDS = (50, 1000)


def chunk(items: Sequence[Coordinate], chunk_size: int) -> list[list[Coordinate]]:
    """Split items into contiguous, order-preserving chunks.

    Args:
        items: Drained coordinates
        chunk_size: Maximum chunk length

    Returns:
        ``ceil(len(items) / chunk_size)`` chunks
    """
    if chunk_size < 1:
        raise ValueError("chunk_size must be at least 1")
    return [list(items[i : i + chunk_size]) for i in range(0, len(items), chunk_size)]


def plan_dispatch(
    chunks: Sequence[list[Coordinate]], execution_delay_ms: float
) -> list[tuple[float, list[Coordinate]]]:
    """Assign each chunk its delay in seconds relative to the drain."""
    return [(i * execution_delay_ms / 1000.0, c) for i, c in enumerate(chunks)]


class AuxActionFactory:
    """Builds flip actions with a random auxiliary parameter in ``[0, aux_choices)``."""

    def __init__(self, aux_choices: int = 6, rng: random.Random | None = None):
        if aux_choices < 1:
            raise ValueError("aux_choices must be at least 1")
        self.aux_choices = aux_choices
        self._rng = rng or random.Random()

    def __call__(self, coordinate: Coordinate) -> FlipAction:
        return FlipAction(coordinate.x, coordinate.y, self._rng.randrange(self.aux_choices))


def _validate_bounds(parameter: str, value: float, bounds: tuple[int, int]) -> None:
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise ConfigurationError(parameter, value, bounds)
    if not bounds[0] <= value <= bounds[1]:
        raise ConfigurationError(parameter, value, bounds)


class BatchDispatchScheduler:
    """Drains the pending queue into delayed, independent executor calls."""

    def __init__(
        self,
        executor: ActionExecutor,
        aggregator: OutcomeAggregator,
        chunk_size: int = 10,
        execution_delay_ms: float = 100,
        action_factory: Callable[[Coordinate], FlipAction] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.perf_counter,
    ):
        """Initialize the scheduler.

        Args:
            executor: Executor receiving one call per chunk
            aggregator: Metrics owner receiving chunk outcomes
            chunk_size: Maximum actions per chunk (1-20)
            execution_delay_ms: Delay between consecutive chunks (50-1000 ms)
            action_factory: Turns a coordinate into a FlipAction
            sleep: Awaitable used for chunk delays
            clock: Monotonic clock in seconds used to time executor calls

        Raises:
            ConfigurationError: If chunk_size or execution_delay_ms is out of bounds
        """
        self.executor = executor
        self.aggregator = aggregator
        self.chunk_size = chunk_size
        self.execution_delay_ms = execution_delay_ms
        self._action_factory = action_factory or AuxActionFactory()
        self._sleep = sleep
        self._clock = clock

        self._pending: list[Coordinate] = []
        self._drain_task: asyncio.Task[None] | None = None
        self._timers: dict[int, asyncio.Task[None]] = {}
        self._in_flight: set[asyncio.Task[None]] = set()
        self._next_chunk_id = 0

    # Parameters

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @chunk_size.setter
    def chunk_size(self, value: int) -> None:
        _validate_bounds("chunk_size", value, CHUNK_SIZE_BOUNDS)
        if value != int(value):
            raise ConfigurationError("chunk_size", value, CHUNK_SIZE_BOUNDS)
        self._chunk_size = int(value)

    @property
    def execution_delay_ms(self) -> float:
        return self._execution_delay_ms

    @execution_delay_ms.setter
    def execution_delay_ms(self, value: float) -> None:
        _validate_bounds("execution_delay_ms", value, EXECUTION_DELAY_BOUNDS)
        self._execution_delay_ms = value

    # State

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def scheduled_count(self) -> int:
        return len(self._timers)

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    @property
    def drain_scheduled(self) -> bool:
        return self._drain_task is not None

    # Queue

    def enqueue(self, coordinate: Coordinate) -> None:
        """Append an admitted coordinate and start a drain cycle if none is scheduled."""
        self._pending.append(coordinate)
        update_pending_depth(len(self._pending))
        self._schedule_drain()

    def resume(self) -> None:
        """Schedule a drain for candidates left over from a stopped run."""
        if self._pending:
            self._schedule_drain()

    def _schedule_drain(self) -> None:
        if self._drain_task is None:
            self._drain_task = asyncio.create_task(self._drain_soon())

    async def _drain_soon(self) -> None:
        # Let the rest of the current burst land in the queue first
        await asyncio.sleep(0)
        self._drain_task = None
        self.dispatch_cycle()

    def drain(self) -> list[Coordinate]:
        """Atomically take the whole pending queue."""
        items, self._pending = self._pending, []
        update_pending_depth(0)
        return items

    def dispatch_cycle(self) -> list[int]:
        """Drain, chunk and schedule one timer per chunk.

        Returns:
            Identifiers of the scheduled chunks (empty if nothing was pending)
        """
        items = self.drain()
        if not items:
            return []

        chunks = chunk(items, self._chunk_size)
        chunk_ids = []
        for delay, c in plan_dispatch(chunks, self._execution_delay_ms):
            chunk_id = self._next_chunk_id
            self._next_chunk_id += 1
            task = asyncio.create_task(self._fire_after(chunk_id, delay, c))
            self._timers[chunk_id] = task
            task.add_done_callback(lambda _t, cid=chunk_id: self._timers.pop(cid, None))
            chunk_ids.append(chunk_id)

        logger.debug(
            "Drain cycle scheduled",
            candidates=len(items),
            chunks=len(chunks),
            execution_delay_ms=self._execution_delay_ms,
        )
        return chunk_ids

    async def _fire_after(
        self, chunk_id: int, delay: float, coordinates: list[Coordinate]
    ) -> None:
        await self._sleep(delay)
        # The executor call outlives this timer so stop() leaves it running
        task = asyncio.create_task(self._submit(chunk_id, coordinates))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _submit(self, chunk_id: int, coordinates: list[Coordinate]) -> None:
        actions = [self._action_factory(c) for c in coordinates]
        size = len(actions)
        start = self._clock()
        try:
            async with async_performance_timer(
                "flip_chunk", chunk_id=chunk_id, size=size, logger=logger
            ):
                tx_ref = await self.executor.execute(actions)
        except Exception as e:
            elapsed = self._clock() - start
            failure = ExecutionFailure(chunk_id, size, e)
            record_chunk_outcome(size, False, elapsed)
            self.aggregator.record_failure(coordinates, failure)
            logger.warning("Chunk execution failed", chunk_id=chunk_id, error=str(e))
            return

        elapsed = self._clock() - start
        record_chunk_outcome(size, True, elapsed)
        self.aggregator.record_success(
            coordinates,
            elapsed * 1000.0,
            str(tx_ref) if tx_ref is not None else None,
        )

    # Shutdown

    def cancel_scheduled(self) -> int:
        """Cancel the pending drain and every chunk timer that has not fired.

        Executor calls already in flight are left to complete.

        Returns:
            Number of chunk dispatches cancelled
        """
        if self._drain_task is not None:
            self._drain_task.cancel()
            self._drain_task = None

        cancelled = 0
        for task in list(self._timers.values()):
            if not task.done():
                task.cancel()
                cancelled += 1
        self._timers.clear()

        record_cancelled_dispatches(cancelled)
        if cancelled:
            logger.info("Cancelled scheduled chunk dispatches", count=cancelled)
        return cancelled

    async def wait_in_flight(self) -> None:
        """Wait for executor calls already submitted."""
        if self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    async def wait_idle(self) -> None:
        """Wait until no drain, timer or executor call is outstanding."""
        while True:
            tasks = [*self._timers.values(), *self._in_flight]
            if self._drain_task is not None:
                tasks.append(self._drain_task)
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)
