"""Configuration management for tileflip.

This module provides configuration loading, validation, and feature flag management
for the flip pipeline.
"""

from .config import (
    Config,
    ConfigError,
    FeatureFlags,
    LoggingConfig,
    MetricsConfig,
    PipelineConfig,
    TracingConfig,
    load_config,
    load_config_from_env,
    load_config_from_file,
    validate_config,
)
from .environment import Environment, get_config_file_path, get_environment

__all__ = [
    "Config",
    "ConfigError",
    "Environment",
    "FeatureFlags",
    "LoggingConfig",
    "MetricsConfig",
    "PipelineConfig",
    "TracingConfig",
    "get_config_file_path",
    "get_environment",
    "load_config",
    "load_config_from_env",
    "load_config_from_file",
    "validate_config",
]
