"""Demo command running the pipeline against the in-memory adapters."""

import asyncio
import json
import random
from pathlib import Path

from tileflip.adapters.memory import (
    InMemoryUpdateFeed,
    RecordingExecutor,
    StaticIdentity,
)
from tileflip.config import load_config, validate_config
from tileflip.config.environment import get_config_file_path
from tileflip.core.pipeline import FlipPipeline
from tileflip.schemas.types import Powerup
from tileflip.utils.errors import ConfigurationError
from tileflip.utils.metrics_exporter import MetricsExporter, create_metrics_exporter
from tileflip.utils.telemetry import (
    get_logger,
    setup_logging,
    setup_tracing,
    start_metrics_server,
)

logger = get_logger(__name__)

DEMO_IDENTITY = "0x" + "5e1f" * 16
FOREIGN_IDENTITY = "0x" + "f0e1" * 16


async def publish_random_tiles(
    feed: InMemoryUpdateFeed,
    rng: random.Random,
    rate: float,
    duration: float,
    grid_width: int,
) -> int:
    """Publish a mix of available, self-owned and foreign tiles.

    Returns:
        Number of updates published
    """
    interval = 1.0 / rate
    published = 0
    loop = asyncio.get_running_loop()
    deadline = loop.time() + duration

    while loop.time() < deadline:
        x, y = rng.randrange(grid_width), rng.randrange(grid_width)
        roll = rng.random()
        if roll < 0.7:
            feed.publish_tile(x, y)
        elif roll < 0.9:
            powerup = Powerup.MULTIPLIER if rng.random() < 0.3 else Powerup.NONE
            value = rng.randrange(1, 6) if powerup == Powerup.MULTIPLIER else 0
            feed.publish_tile(x, y, DEMO_IDENTITY, powerup, value, team=1)
        else:
            feed.publish_tile(x, y, FOREIGN_IDENTITY, team=2)
        published += 1
        await asyncio.sleep(interval)

    return published


async def export_metrics_periodically(
    exporter: MetricsExporter, pipeline: FlipPipeline, poll_seconds: float
) -> None:
    """Publish the pipeline snapshot whenever the export interval has passed."""
    while True:
        exporter.export_all(pipeline.metrics())
        await asyncio.sleep(poll_seconds)


async def run_demo(
    duration: float,
    rate: float,
    seed: int | None,
    config_path: Path | None = None,
    serve_metrics: bool = False,
) -> dict:
    """Run the pipeline for ``duration`` seconds and return its final stats."""
    config = load_config(config_path or get_config_file_path())
    validate_config(config)
    setup_logging(
        config.logging.level,
        config.logging.enable_identity_redaction,
        config.logging.format,
    )
    if config.features.tracing:
        setup_tracing(config.tracing.service_name, config.tracing.otlp_endpoint)
    exporter = None
    if config.metrics.enabled and config.features.metrics_export:
        exporter = create_metrics_exporter(config)
        if serve_metrics:
            start_metrics_server(config.metrics.port)
            logger.info("Serving metrics", port=config.metrics.port)

    rng = random.Random(seed)
    feed = InMemoryUpdateFeed()
    executor = RecordingExecutor.from_config(
        config.pipeline, latency_seconds=0.05, failure_rate=0.1, rng=rng
    )
    pipeline = FlipPipeline(
        feed,
        executor,
        StaticIdentity(DEMO_IDENTITY),
        config=config.pipeline,
        rng=rng,
        enable_rate_monitor=config.features.rate_monitoring,
    )

    await pipeline.start()
    export_task = None
    if exporter is not None:
        export_task = asyncio.create_task(
            export_metrics_periodically(
                exporter, pipeline, min(config.metrics.export_interval_seconds, 1.0)
            )
        )
    try:
        published = await publish_random_tiles(
            feed, rng, rate, duration, config.pipeline.grid_width
        )
    finally:
        if export_task is not None:
            export_task.cancel()
        await pipeline.stop()
        await pipeline.scheduler.wait_in_flight()

    if exporter is not None:
        exporter.export_snapshot(pipeline.metrics())

    stats = pipeline.get_stats()
    stats["published"] = published
    stats["executor_calls"] = executor.call_count
    return stats


def run_demo_command(args: list[str]) -> int:
    """Parse demo options and run the demo.

    Args:
        args: Command line arguments

    Returns:
        Exit code (0 for success, 1 for error)
    """
    duration = 5.0
    rate = 50.0
    seed: int | None = None
    config_path: Path | None = None
    serve_metrics = False

    i = 0
    try:
        while i < len(args):
            arg = args[i]
            if arg in ["--duration", "--rate", "--seed", "--config"]:
                if i + 1 >= len(args):
                    print(f"Error: {arg} requires a value")
                    return 1
                value = args[i + 1]
                if arg == "--duration":
                    duration = float(value)
                elif arg == "--rate":
                    rate = float(value)
                elif arg == "--seed":
                    seed = int(value)
                else:
                    config_path = Path(value)
                i += 2
            elif arg == "--serve-metrics":
                serve_metrics = True
                i += 1
            else:
                print(f"Unknown argument: {arg}")
                return 1
    except ValueError as e:
        print(f"Error: invalid value: {e}")
        return 1

    if duration <= 0 or rate <= 0:
        print("Error: --duration and --rate must be positive")
        return 1

    try:
        stats = asyncio.run(run_demo(duration, rate, seed, config_path, serve_metrics))
    except ConfigurationError as e:
        print(f"✗ Configuration error: {e}")
        return 1

    print(json.dumps(stats, indent=2, default=str))
    return 0
