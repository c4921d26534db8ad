"""Core configuration management for tileflip.

This module provides the main configuration classes and loading functionality
with environment variable support and feature flags.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from tileflip.utils.errors import ConfigurationError


class ConfigError(ConfigurationError):
    """Configuration-related errors."""

    def __init__(self, message: str, parameter: str = "config"):
        super().__init__(parameter, message=message)


@dataclass
class FeatureFlags:
    """Feature flags for enabling/disabling functionality.

    These can be controlled via the TILEFLIP_FEATURES environment variable
    as a comma-separated list (e.g., "ratemonitor,metrics,logging").
    """

    rate_monitoring: bool = True
    metrics_export: bool = True
    tracing: bool = False
    structured_logging: bool = True
    identity_redaction: bool = True

    @classmethod
    def from_env(cls, env_var: str = "TILEFLIP_FEATURES") -> "FeatureFlags":
        """Load feature flags from environment variable.

        Args:
            env_var: Environment variable name (default: TILEFLIP_FEATURES)

        Returns:
            FeatureFlags instance with features enabled based on env var
        """
        features_str = os.getenv(env_var, "")
        if not features_str:
            return cls()

        enabled_features = {f.strip().lower() for f in features_str.split(",")}

        feature_mapping = {
            "ratemonitor": "rate_monitoring",
            "metrics": "metrics_export",
            "tracing": "tracing",
            "logging": "structured_logging",
            "redaction": "identity_redaction",
        }

        kwargs = {}
        for feature_name, attr_name in feature_mapping.items():
            kwargs[attr_name] = feature_name in enabled_features

        return cls(**kwargs)

    def to_dict(self) -> dict[str, bool]:
        """Convert to dictionary for metrics export."""
        return {
            "rate_monitoring": self.rate_monitoring,
            "metrics_export": self.metrics_export,
            "tracing": self.tracing,
            "structured_logging": self.structured_logging,
            "identity_redaction": self.identity_redaction,
        }


class PipelineConfig(BaseModel):
    """Tunables of the flip pipeline."""

    model_config = ConfigDict(validate_assignment=True)

    chunk_size: int = Field(default=10, ge=1, le=20)
    execution_delay_ms: int = Field(default=100, ge=50, le=1000)
    sample_factor: float = Field(default=1.0, ge=0.0, le=1.0)

    grid_width: int = Field(default=256, ge=1)
    aux_choices: int = Field(default=6, ge=1)
    contract_address: str = "0x0"
    entrypoint: str = "flip"

    history_size: int = Field(default=100, ge=1)
    powerup_window: int = Field(default=100, ge=1)
    tx_log_size: int = Field(default=10, ge=1)
    rate_window: int = Field(default=30, ge=1)
    rate_interval_seconds: float = Field(default=1.0, gt=0.0)

    key_table_path: str | None = None


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["json", "text"] = "json"
    enable_identity_redaction: bool = True


class MetricsConfig(BaseModel):
    """Metrics configuration."""

    enabled: bool = True
    port: int = 8000
    export_interval_seconds: float = 15.0


class TracingConfig(BaseModel):
    """Tracing configuration."""

    service_name: str = "tileflip"
    otlp_endpoint: str | None = None


class Config(BaseModel):
    """Main configuration class for tileflip.

    This class combines all configuration sections and provides
    validation and environment variable loading.
    """

    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)

    features: FeatureFlags = Field(default_factory=FeatureFlags)

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    tracing: TracingConfig = Field(default_factory=TracingConfig)

    environment: Literal["development", "staging", "production", "testing"] = (
        "development"
    )
    debug: bool = False

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @field_validator("features", mode="before")
    @classmethod
    def validate_features(cls, v):
        """Validate feature flags."""
        if isinstance(v, dict):
            return FeatureFlags(**v)
        return v


def load_config_from_file(config_path: Path) -> Config:
    """Load configuration from YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        Loaded configuration

    Raises:
        ConfigError: If configuration is invalid or file cannot be read
    """
    try:
        with open(config_path) as f:
            config_data = yaml.safe_load(f)

        if config_data is None:
            config_data = {}

        return Config(**config_data)

    except FileNotFoundError as e:
        raise ConfigError(f"Configuration file not found: {config_path}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in configuration file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"Configuration validation failed: {e}") from e


def _env_number(name: str, cast: type[int] | type[float]) -> int | float | None:
    env_val = os.getenv(name)
    if env_val is None:
        return None
    try:
        return cast(env_val)
    except ValueError as e:
        raise ConfigError(f"Invalid {name}: {env_val}", parameter=name) from e


def load_config_from_env() -> Config:
    """Load configuration from environment variables.

    Environment variables are mapped as follows:
    - TILEFLIP_ENVIRONMENT: Environment name
    - TILEFLIP_DEBUG: Enable debug mode (true/false)
    - TILEFLIP_FEATURES: Comma-separated list of enabled features
    - TILEFLIP_LOG_LEVEL: Logging level
    - TILEFLIP_LOG_FORMAT: Logging format (json/text)
    - TILEFLIP_METRICS_PORT: Metrics server port
    - TILEFLIP_OTLP_ENDPOINT: OTLP trace exporter endpoint
    - TILEFLIP_CHUNK_SIZE: Actions per chunk (1-20)
    - TILEFLIP_EXECUTION_DELAY_MS: Delay between chunks (50-1000)
    - TILEFLIP_SAMPLE_FACTOR: Admission probability (0.0-1.0)
    - TILEFLIP_CONTRACT_ADDRESS: Actions contract address
    - TILEFLIP_KEY_TABLE: Path of the tile key table

    Returns:
        Configuration loaded from environment variables
    """
    config_data: dict = {}

    if env_val := os.getenv("TILEFLIP_ENVIRONMENT"):
        config_data["environment"] = env_val
    if env_val := os.getenv("TILEFLIP_DEBUG"):
        config_data["debug"] = env_val.lower() in ("true", "1", "yes", "on")

    if os.getenv("TILEFLIP_FEATURES"):
        config_data["features"] = FeatureFlags.from_env()

    logging_config = {}
    if env_val := os.getenv("TILEFLIP_LOG_LEVEL"):
        logging_config["level"] = env_val.upper()
    if env_val := os.getenv("TILEFLIP_LOG_FORMAT"):
        logging_config["format"] = env_val.lower()
    if logging_config:
        config_data["logging"] = logging_config

    if (port := _env_number("TILEFLIP_METRICS_PORT", int)) is not None:
        config_data["metrics"] = {"port": port}

    if env_val := os.getenv("TILEFLIP_OTLP_ENDPOINT"):
        config_data["tracing"] = {"otlp_endpoint": env_val}

    pipeline_config: dict = {}
    if (value := _env_number("TILEFLIP_CHUNK_SIZE", int)) is not None:
        pipeline_config["chunk_size"] = value
    if (value := _env_number("TILEFLIP_EXECUTION_DELAY_MS", int)) is not None:
        pipeline_config["execution_delay_ms"] = value
    if (value := _env_number("TILEFLIP_SAMPLE_FACTOR", float)) is not None:
        pipeline_config["sample_factor"] = value
    if env_val := os.getenv("TILEFLIP_CONTRACT_ADDRESS"):
        pipeline_config["contract_address"] = env_val
    if env_val := os.getenv("TILEFLIP_KEY_TABLE"):
        pipeline_config["key_table_path"] = env_val
    if pipeline_config:
        config_data["pipeline"] = pipeline_config

    try:
        return Config(**config_data)
    except ValidationError as e:
        raise ConfigError(f"Environment configuration validation failed: {e}") from e


def _merge(base: dict, override: dict) -> dict:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Path | None = None) -> Config:
    """Load configuration from file and environment variables.

    Configuration is loaded in the following order (later sources override earlier):
    1. Default values
    2. Configuration file (if provided)
    3. Environment variables

    Args:
        config_path: Optional path to configuration file

    Returns:
        Merged configuration
    """
    data = Config().model_dump()

    if config_path and config_path.exists():
        file_config = load_config_from_file(config_path)
        data = _merge(data, file_config.model_dump(exclude_unset=True))

    env_config = load_config_from_env()
    data = _merge(data, env_config.model_dump(exclude_unset=True))

    try:
        return Config(**data)
    except ValidationError as e:
        raise ConfigError(f"Configuration validation failed: {e}") from e


def validate_config(config: Config) -> None:
    """Validate configuration for consistency and correctness.

    Args:
        config: Configuration to validate

    Raises:
        ConfigError: If configuration is invalid
    """
    if config.metrics.port <= 0 or config.metrics.port > 65535:
        raise ConfigError("metrics.port must be between 1 and 65535")

    if config.metrics.export_interval_seconds <= 0:
        raise ConfigError("metrics.export_interval_seconds must be positive")

    if config.pipeline.key_table_path is not None:
        if not Path(config.pipeline.key_table_path).exists():
            raise ConfigError(
                f"Key table not found: {config.pipeline.key_table_path}",
                parameter="pipeline.key_table_path",
            )

    if config.environment == "production":
        if config.debug:
            raise ConfigError("Debug mode should not be enabled in production")

        if config.logging.level == "DEBUG":
            raise ConfigError("DEBUG logging should not be used in production")

        if config.pipeline.contract_address == "0x0":
            raise ConfigError(
                "contract_address must be set in production",
                parameter="pipeline.contract_address",
            )
