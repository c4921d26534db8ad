"""Metrics exporter for configuration, feature flags and pipeline snapshots.

The pipeline's own counters live in ``telemetry``; this module publishes
the slower-moving state (active configuration, feature flags and the
aggregated flip metrics) as gauges and Info metrics for scraping.
"""

import platform
import sys
import time

from prometheus_client import Gauge, Info, generate_latest
from prometheus_client.core import REGISTRY

from tileflip.config import Config, FeatureFlags
from tileflip.schemas.types import MetricsSnapshot, Powerup
from tileflip.utils.telemetry import get_logger

logger = get_logger(__name__)

feature_flag_gauge = Gauge(
    "tileflip_feature_flag_enabled",
    "Feature flag status (1=enabled, 0=disabled)",
    ["feature_name"],
    registry=REGISTRY,
)

config_info = Info("tileflip_config", "Configuration information", registry=REGISTRY)

system_info = Info("tileflip_system", "System information", registry=REGISTRY)

success_rate_gauge = Gauge(
    "tileflip_success_rate",
    "Share of completed flip actions that succeeded",
    registry=REGISTRY,
)

average_response_gauge = Gauge(
    "tileflip_average_response_time_ms",
    "Running mean response time of successful flip actions",
    registry=REGISTRY,
)

flip_count_gauge = Gauge(
    "tileflip_flip_count",
    "Completed flip actions by outcome",
    ["outcome"],
    registry=REGISTRY,
)

powerup_count_gauge = Gauge(
    "tileflip_powerup_count",
    "Powerups observed on self-owned tiles",
    ["kind"],
    registry=REGISTRY,
)

powerup_average_gauge = Gauge(
    "tileflip_powerup_average_value",
    "Average observed powerup value over the retained window",
    ["kind"],
    registry=REGISTRY,
)


class MetricsExporter:
    """Exports configuration, feature flag and snapshot metrics."""

    def __init__(self, config: Config):
        self.config = config
        self._last_export_time = 0.0
        self._export_interval = config.metrics.export_interval_seconds

    def export_feature_flags(self, features: FeatureFlags) -> None:
        feature_dict = features.to_dict()
        for feature_name, enabled in feature_dict.items():
            feature_flag_gauge.labels(feature_name=feature_name).set(
                1 if enabled else 0
            )
        logger.debug("Exported feature flags", count=len(feature_dict))

    def export_config_info(self, config: Config) -> None:
        """Export the active configuration as an Info metric.

        Args:
            config: Configuration to export
        """
        pipeline = config.pipeline
        config_info.info(
            {
                "environment": config.environment,
                "debug": str(config.debug),
                "log_level": config.logging.level,
                "log_format": config.logging.format,
                "chunk_size": str(pipeline.chunk_size),
                "execution_delay_ms": str(pipeline.execution_delay_ms),
                "sample_factor": str(pipeline.sample_factor),
                "grid_width": str(pipeline.grid_width),
                "entrypoint": pipeline.entrypoint,
            }
        )
        logger.debug("Exported configuration info")

    def export_system_info(self) -> None:
        from tileflip import __version__

        system_info.info(
            {
                "python_version": sys.version.split()[0],
                "platform": platform.platform(),
                "tileflip_version": __version__,
            }
        )

    def export_snapshot(self, snapshot: MetricsSnapshot) -> None:
        """Publish an aggregator snapshot as gauges.

        Args:
            snapshot: Current flip metrics
        """
        success_rate_gauge.set(snapshot.success_rate)
        average_response_gauge.set(snapshot.average_response_time_ms)
        flip_count_gauge.labels(outcome="success").set(snapshot.success_count)
        flip_count_gauge.labels(outcome="failure").set(snapshot.failure_count)

        for kind, stats in snapshot.powerup_stats.items():
            if kind == Powerup.NONE:
                continue
            label = kind.name.lower()
            powerup_count_gauge.labels(kind=label).set(stats.count)
            powerup_average_gauge.labels(kind=label).set(stats.average)

    def should_export(self) -> bool:
        """Check if metrics should be exported based on interval.

        Returns:
            True if enough time has passed since last export
        """
        current_time = time.time()
        if current_time - self._last_export_time >= self._export_interval:
            self._last_export_time = current_time
            return True
        return False

    def export_all(self, snapshot: MetricsSnapshot | None = None) -> None:
        """Export everything if the export interval has passed."""
        if not self.should_export():
            return

        self.export_feature_flags(self.config.features)
        self.export_config_info(self.config)
        if snapshot is not None:
            self.export_snapshot(snapshot)


def create_metrics_exporter(config: Config) -> MetricsExporter:
    """Create a metrics exporter and publish the static metrics once.

    Args:
        config: Configuration to use for metrics export

    Returns:
        Configured metrics exporter
    """
    exporter = MetricsExporter(config)
    exporter.export_feature_flags(config.features)
    exporter.export_config_info(config)
    exporter.export_system_info()
    return exporter


def get_metrics_text() -> str:
    """Get metrics in Prometheus text format."""
    return generate_latest(REGISTRY).decode("utf-8")
