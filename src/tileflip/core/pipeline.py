"""Flip pipeline wiring the feed, classifier, scheduler and aggregator.

This module provides the FlipPipeline class that owns every stateful
component, subscribes to the tile update feed, and exposes start/stop,
parameter controls and read-only snapshots to the presentation layer.
"""

import asyncio
import random
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

from tileflip.config.config import PipelineConfig
from tileflip.core.aggregator import OutcomeAggregator
from tileflip.core.classifier import CandidateClassifier, Classification
from tileflip.core.decoder import KeyIndexTable, parse_tile_model
from tileflip.core.interfaces import (
    ActionExecutor,
    IdentityProvider,
    Subscription,
    UpdateFeed,
)
from tileflip.core.rate_monitor import UpdateRateMonitor
from tileflip.core.scheduler import AuxActionFactory, BatchDispatchScheduler
from tileflip.schemas.types import MetricsSnapshot, PositionsSnapshot, TxLogEntry
from tileflip.utils.admission import BernoulliAdmission
from tileflip.utils.errors import ConfigurationError, DecodeError
from tileflip.utils.telemetry import (
    get_logger,
    get_tracer,
    record_config_rejection,
    record_update,
)


class FlipPipeline:
    """Decision and dispatch pipeline for available tiles.

    Incoming updates are decoded and classified synchronously; admitted
    candidates are dispatched in chunks by the scheduler and every outcome
    lands in the aggregator. ``stop()`` unsubscribes from the feed and
    cancels dispatches that have not fired yet, while executor calls already
    in flight still complete and update the metrics.
    """

    def __init__(
        self,
        feed: UpdateFeed,
        executor: ActionExecutor,
        identity_provider: IdentityProvider,
        config: PipelineConfig | None = None,
        key_table: KeyIndexTable | None = None,
        rng: random.Random | None = None,
        on_decode_error: Callable[[DecodeError], None] | None = None,
        enable_rate_monitor: bool = True,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        """Initialize the pipeline and its components.

        Args:
            feed: Source of tile updates
            executor: Receives one call per chunk
            identity_provider: Source of the local identity
            config: Pipeline tunables (defaults when omitted)
            key_table: Key to linear index lookup; loaded from
                ``config.key_table_path`` when omitted
            rng: Random source for admission and auxiliary parameters
            on_decode_error: Called with every dropped undecodable event
            enable_rate_monitor: Run the periodic update-rate sampler
            sleep: Awaitable used for chunk delays
        """
        self.config = config or PipelineConfig()
        self.feed = feed
        self.executor = executor
        self.identity_provider = identity_provider
        self.on_decode_error = on_decode_error
        self.enable_rate_monitor = enable_rate_monitor

        if key_table is None and self.config.key_table_path:
            key_table = KeyIndexTable.from_file(Path(self.config.key_table_path))
        self.key_table = key_table

        rng = rng or random.Random()
        self.aggregator = OutcomeAggregator(
            history_size=self.config.history_size,
            powerup_window=self.config.powerup_window,
            tx_log_size=self.config.tx_log_size,
        )
        self.admission = BernoulliAdmission(self.config.sample_factor, rng=rng)
        self.scheduler = BatchDispatchScheduler(
            executor,
            self.aggregator,
            chunk_size=self.config.chunk_size,
            execution_delay_ms=self.config.execution_delay_ms,
            action_factory=AuxActionFactory(self.config.aux_choices, rng=rng),
            sleep=sleep,
        )
        self.classifier = CandidateClassifier(
            self.aggregator,
            self.admission,
            identity_provider,
            enqueue=self.scheduler.enqueue,
        )
        self.rate_monitor = UpdateRateMonitor(
            interval_seconds=self.config.rate_interval_seconds,
            window=self.config.rate_window,
        )

        self._subscription: Subscription | None = None
        self._running = False
        self._lifecycle_lock = asyncio.Lock()
        self._logger = get_logger("tileflip.pipeline")
        self._tracer = get_tracer("tileflip.pipeline")

    # Lifecycle

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Subscribe to the feed and start sampling the update rate."""
        async with self._lifecycle_lock:
            if self._running:
                return

            with self._tracer.start_as_current_span("pipeline.start"):
                self._subscription = await self.feed.subscribe(self.handle_update)
                if self.enable_rate_monitor:
                    self.rate_monitor.start()
                self._running = True
                self.scheduler.resume()

            self._logger.info(
                "Pipeline started",
                chunk_size=self.scheduler.chunk_size,
                execution_delay_ms=self.scheduler.execution_delay_ms,
                sample_factor=self.admission.sample_factor,
            )

    async def stop(self) -> None:
        """Unsubscribe, cancel unfired dispatches and stop the rate sampler.

        Executor calls already in flight are not cancelled.
        """
        async with self._lifecycle_lock:
            if not self._running:
                return

            self._running = False
            if self._subscription is not None:
                self._subscription.cancel()
                self._subscription = None

            cancelled = self.scheduler.cancel_scheduled()
            await self.rate_monitor.stop()

            self._logger.info(
                "Pipeline stopped",
                cancelled_dispatches=cancelled,
                in_flight=self.scheduler.in_flight_count,
            )

    async def wait_idle(self) -> None:
        """Wait until every scheduled and in-flight dispatch has settled."""
        await self.scheduler.wait_idle()

    # Event path

    def handle_update(self, key: str, payload: Mapping[str, Any]) -> Classification | None:
        """Process one tile update from the feed.

        Args:
            key: Feed key of the tile entity
            payload: Tile model fields

        Returns:
            The classification, or None if the event was dropped
        """
        self.rate_monitor.mark_event()
        if not self._running:
            return None

        try:
            cell = parse_tile_model(
                payload,
                key=key,
                key_table=self.key_table,
                grid_width=self.config.grid_width,
            )
        except DecodeError as e:
            self.aggregator.record_decode_error()
            record_update("decode_error")
            self._logger.warning("Dropped undecodable update", key=key, error=str(e))
            if self.on_decode_error is not None:
                self.on_decode_error(e)
            return None

        return self.classifier.classify(cell)

    # Controls

    def set_chunk_size(self, value: int) -> None:
        """Set the maximum chunk size (1-20), effective from the next drain."""
        self._apply("chunk_size", value, lambda: setattr(self.scheduler, "chunk_size", value))

    def set_execution_delay(self, value_ms: int) -> None:
        """Set the inter-chunk delay (50-1000 ms), effective from the next drain."""
        self._apply(
            "execution_delay_ms",
            value_ms,
            lambda: setattr(self.scheduler, "execution_delay_ms", value_ms),
        )

    def set_sample_factor(self, value: float) -> None:
        """Set the admission probability (0.0-1.0)."""
        self._apply(
            "sample_factor",
            value,
            lambda: setattr(self.admission, "sample_factor", value),
        )

    def _apply(self, parameter: str, value: Any, setter: Callable[[], None]) -> None:
        try:
            setter()
        except ConfigurationError:
            record_config_rejection(parameter)
            self._logger.warning("Rejected parameter change", parameter=parameter, value=value)
            raise
        self._logger.info("Parameter changed", parameter=parameter, value=value)

    # Read-only views

    def metrics(self) -> MetricsSnapshot:
        return self.aggregator.snapshot()

    def positions(self) -> PositionsSnapshot:
        return self.aggregator.positions()

    def update_rates(self) -> tuple[float, ...]:
        return self.rate_monitor.samples

    def tx_log(self) -> tuple[TxLogEntry, ...]:
        return self.aggregator.tx_log

    def get_stats(self) -> dict[str, Any]:
        """Summary of pipeline state for logging and the CLI."""
        snapshot = self.aggregator.snapshot()
        return {
            "running": self._running,
            "chunk_size": self.scheduler.chunk_size,
            "execution_delay_ms": self.scheduler.execution_delay_ms,
            "sample_factor": self.admission.sample_factor,
            "pending": self.scheduler.pending_count,
            "scheduled_chunks": self.scheduler.scheduled_count,
            "in_flight_chunks": self.scheduler.in_flight_count,
            "updates_per_second": self.rate_monitor.latest,
            "metrics": snapshot.to_dict(),
            "powerup_distribution": {
                kind.name: {"count": count, "average": avg}
                for kind, (count, avg) in self.aggregator.powerup_distribution().items()
            },
            "success_rate_series": self.aggregator.success_rate_series(),
            "recent_powerups": [
                r.model_dump(mode="json") for r in self.aggregator.recent_powerups()
            ],
            "tx_log": [e.model_dump(mode="json") for e in self.aggregator.tx_log],
        }
