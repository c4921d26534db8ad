"""End-to-end tests of the flip pipeline against the in-memory adapters."""

import asyncio
import random

import pytest

from tileflip.adapters.memory import (
    InMemoryUpdateFeed,
    RecordingExecutor,
    StaticIdentity,
)
from tileflip.config import PipelineConfig
from tileflip.core.decoder import KeyIndexTable
from tileflip.core.pipeline import FlipPipeline
from tileflip.schemas.types import Coordinate, Powerup

LOCAL = "0x0" + "c0ffee" * 10 + "01"


class DelayRecorder:
    """Sleep that records delays and yields once."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


@pytest.fixture
def feed():
    return InMemoryUpdateFeed()


class TestEndToEnd:
    """Test the full update-to-metrics path."""

    @pytest.mark.asyncio
    async def test_burst_of_available_tiles(self, feed):
        """A burst of 25 available tiles is flipped in three delayed chunks."""
        sleep = DelayRecorder()
        executor = RecordingExecutor()
        pipeline = FlipPipeline(
            feed,
            executor,
            StaticIdentity(LOCAL),
            config=PipelineConfig(chunk_size=10, execution_delay_ms=300),
            rng=random.Random(11),
            enable_rate_monitor=False,
            sleep=sleep,
        )
        await pipeline.start()

        for i in range(25):
            feed.publish_tile(i, 2 * i)
        await pipeline.wait_idle()

        assert sleep.delays == [0.0, 0.3, 0.6]
        assert [len(call) for call in executor.calls] == [10, 10, 5]
        metrics = pipeline.metrics()
        assert metrics.total_count == 25
        assert metrics.success_count == 25
        assert metrics.success_rate == 1.0
        positions = pipeline.positions()
        assert positions.pending == []
        assert positions.flipped == [Coordinate(i, 2 * i) for i in range(25)]
        assert [e.tx_ref for e in pipeline.tx_log()] == executor.tx_refs
        await pipeline.stop()

    @pytest.mark.asyncio
    async def test_mixed_feed(self, feed):
        """Own, foreign, available and broken updates are each handled."""
        decode_errors = []
        executor = RecordingExecutor(fail_when=lambda actions: actions[0].x == 7)
        pipeline = FlipPipeline(
            feed,
            executor,
            StaticIdentity(LOCAL),
            config=PipelineConfig(chunk_size=1, execution_delay_ms=50),
            rng=random.Random(5),
            on_decode_error=decode_errors.append,
            enable_rate_monitor=False,
            sleep=DelayRecorder(),
        )
        await pipeline.start()

        feed.publish_tile(1, 1)
        feed.publish_tile(7, 7)
        feed.publish_tile(2, 2, LOCAL, Powerup.MULTIPLIER, 3, team=1)
        feed.publish_tile(3, 3, LOCAL, Powerup.MULTIPLIER, 9, team=1)
        feed.publish_tile(4, 4, "0x" + "dead" * 16, team=2)
        feed.publish("broken", {"x": 5, "y": 5, "flipped": "0x00001"})
        await pipeline.wait_idle()

        metrics = pipeline.metrics()
        assert metrics.total_count == 2
        assert metrics.success_count == 1
        assert metrics.failure_count == 1
        assert metrics.decode_errors == 1
        assert len(decode_errors) == 1
        assert metrics.powerup_stats[Powerup.MULTIPLIER].count == 2
        assert pipeline.aggregator.powerup_distribution()[Powerup.MULTIPLIER] == (
            2,
            pytest.approx(6.0),
        )

        positions = pipeline.positions()
        assert positions.flipped == [Coordinate(1, 1)]
        assert positions.pending == [Coordinate(7, 7)]
        await pipeline.stop()

    @pytest.mark.asyncio
    async def test_key_addressed_updates(self, feed):
        """Updates without coordinates are located through the key table."""
        table = KeyIndexTable.from_keys(f"entity-{i}" for i in range(1024))
        executor = RecordingExecutor()
        pipeline = FlipPipeline(
            feed,
            executor,
            StaticIdentity(LOCAL),
            key_table=table,
            enable_rate_monitor=False,
            sleep=DelayRecorder(),
        )
        await pipeline.start()

        feed.publish("entity-300", {"flipped": "0x0"})
        feed.publish("unknown", {"flipped": "0x0"})
        await pipeline.wait_idle()

        assert [(a.x, a.y) for a in executor.actions] == [(1, 44)]
        assert pipeline.metrics().decode_errors == 1
        await pipeline.stop()

    @pytest.mark.asyncio
    async def test_stop_with_real_delays(self, feed):
        """Stopping mid-schedule keeps only chunks already fired."""
        executor = RecordingExecutor(latency_seconds=0.02)
        pipeline = FlipPipeline(
            feed,
            executor,
            StaticIdentity(LOCAL),
            config=PipelineConfig(chunk_size=5, execution_delay_ms=1000),
            enable_rate_monitor=False,
        )
        await pipeline.start()

        for i in range(15):
            feed.publish_tile(i, 0)
        await asyncio.sleep(0.01)
        await pipeline.stop()
        await pipeline.scheduler.wait_in_flight()

        assert executor.call_count == 1
        assert pipeline.metrics().success_count == 5
        assert pipeline.scheduler.scheduled_count == 0

    @pytest.mark.asyncio
    async def test_sampling_limits_dispatch(self, feed):
        """With a sample factor of 0.5 roughly half the tiles are dispatched."""
        executor = RecordingExecutor()
        pipeline = FlipPipeline(
            feed,
            executor,
            StaticIdentity(LOCAL),
            config=PipelineConfig(chunk_size=20, sample_factor=0.5),
            rng=random.Random(99),
            enable_rate_monitor=False,
            sleep=DelayRecorder(),
        )
        await pipeline.start()

        for i in range(1000):
            feed.publish_tile(i % 256, i // 256)
        await pipeline.wait_idle()

        assert 400 <= len(executor.actions) <= 600
        assert all(len(call) <= 20 for call in executor.calls)
        await pipeline.stop()

    @pytest.mark.asyncio
    async def test_calls_target_configured_contract(self, feed):
        """Dispatched chunks are rendered as hex calls to the configured contract."""
        config = PipelineConfig(contract_address="0x7ab1e", entrypoint="flip")
        executor = RecordingExecutor.from_config(config)
        pipeline = FlipPipeline(
            feed,
            executor,
            StaticIdentity(LOCAL),
            config=config,
            rng=random.Random(3),
            enable_rate_monitor=False,
            sleep=DelayRecorder(),
        )
        await pipeline.start()

        feed.publish_tile(10, 255)
        feed.publish_tile(1, 2)
        await pipeline.wait_idle()

        calls = executor.submitted[0]
        assert [c["contractAddress"] for c in calls] == ["0x7ab1e", "0x7ab1e"]
        assert [c["calldata"][:2] for c in calls] == [["0xa", "0xff"], ["0x1", "0x2"]]
        assert all(c["calldata"][2] in {f"0x{i}" for i in range(6)} for c in calls)
        await pipeline.stop()
