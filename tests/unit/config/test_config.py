"""Unit tests for configuration loading and validation."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from tileflip.config import (
    Config,
    ConfigError,
    Environment,
    FeatureFlags,
    PipelineConfig,
    get_config_file_path,
    get_environment,
    load_config,
    load_config_from_env,
    load_config_from_file,
    validate_config,
)
from tileflip.utils.errors import ConfigurationError


class TestFeatureFlags:
    """Test feature flag parsing."""

    def test_defaults(self):
        flags = FeatureFlags()

        assert flags.rate_monitoring
        assert flags.metrics_export
        assert not flags.tracing

    def test_from_env(self):
        """Only the listed features are enabled."""
        with patch.dict(os.environ, {"TILEFLIP_FEATURES": "metrics, Tracing"}):
            flags = FeatureFlags.from_env()

        assert flags.metrics_export
        assert flags.tracing
        assert not flags.rate_monitoring
        assert not flags.structured_logging

    def test_from_env_unset(self):
        with patch.dict(os.environ, {}, clear=True):
            assert FeatureFlags.from_env() == FeatureFlags()

    def test_to_dict(self):
        assert set(FeatureFlags().to_dict()) == {
            "rate_monitoring",
            "metrics_export",
            "tracing",
            "structured_logging",
            "identity_redaction",
        }


class TestPipelineConfig:
    """Test pipeline tunables."""

    def test_defaults(self):
        config = PipelineConfig()

        assert config.chunk_size == 10
        assert config.execution_delay_ms == 100
        assert config.sample_factor == 1.0
        assert config.grid_width == 256
        assert config.aux_choices == 6
        assert config.entrypoint == "flip"
        assert config.history_size == 100
        assert config.tx_log_size == 10
        assert config.rate_window == 30

    @pytest.mark.parametrize(
        "field,value",
        [
            ("chunk_size", 0),
            ("chunk_size", 21),
            ("execution_delay_ms", 49),
            ("execution_delay_ms", 1001),
            ("sample_factor", -0.1),
            ("sample_factor", 1.1),
        ],
    )
    def test_bounds(self, field, value):
        with pytest.raises(ValidationError):
            PipelineConfig(**{field: value})


class TestLoadConfig:
    """Test loading from files and environment."""

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "tileflip.yaml"
        path.write_text(
            "environment: staging\n"
            "pipeline:\n"
            "  chunk_size: 5\n"
            "  sample_factor: 0.5\n"
            "features:\n"
            "  tracing: true\n"
        )

        config = load_config_from_file(path)

        assert config.environment == "staging"
        assert config.pipeline.chunk_size == 5
        assert config.pipeline.sample_factor == 0.5
        assert config.features.tracing

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert load_config_from_file(path) == Config()

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config_from_file(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("pipeline: [unclosed\n")

        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config_from_file(path)

    def test_out_of_bounds_file_value(self, tmp_path):
        """File values outside documented bounds are rejected."""
        path = tmp_path / "bounds.yaml"
        path.write_text("pipeline:\n  chunk_size: 50\n")

        with pytest.raises(ConfigurationError):
            load_config_from_file(path)

    def test_load_from_env(self):
        env = {
            "TILEFLIP_ENVIRONMENT": "testing",
            "TILEFLIP_DEBUG": "yes",
            "TILEFLIP_LOG_LEVEL": "debug",
            "TILEFLIP_METRICS_PORT": "9100",
            "TILEFLIP_CHUNK_SIZE": "4",
            "TILEFLIP_EXECUTION_DELAY_MS": "250",
            "TILEFLIP_SAMPLE_FACTOR": "0.75",
            "TILEFLIP_CONTRACT_ADDRESS": "0xabc",
        }
        with patch.dict(os.environ, env, clear=True):
            config = load_config_from_env()

        assert config.environment == "testing"
        assert config.debug
        assert config.logging.level == "DEBUG"
        assert config.metrics.port == 9100
        assert config.pipeline.chunk_size == 4
        assert config.pipeline.execution_delay_ms == 250
        assert config.pipeline.sample_factor == 0.75
        assert config.pipeline.contract_address == "0xabc"

    def test_env_number_not_numeric(self):
        with patch.dict(os.environ, {"TILEFLIP_CHUNK_SIZE": "ten"}, clear=True):
            with pytest.raises(ConfigError) as exc_info:
                load_config_from_env()

        assert exc_info.value.parameter == "TILEFLIP_CHUNK_SIZE"

    def test_env_overrides_file(self, tmp_path):
        """Environment values win; untouched file values survive."""
        path = tmp_path / "tileflip.yaml"
        path.write_text("pipeline:\n  chunk_size: 5\n  execution_delay_ms: 300\n")

        with patch.dict(os.environ, {"TILEFLIP_CHUNK_SIZE": "8"}, clear=True):
            config = load_config(path)

        assert config.pipeline.chunk_size == 8
        assert config.pipeline.execution_delay_ms == 300

    def test_load_without_file(self):
        with patch.dict(os.environ, {}, clear=True):
            assert load_config(None) == Config()


class TestValidateConfig:
    """Test cross-field validation."""

    def test_default_is_valid(self):
        validate_config(Config())

    def test_invalid_port(self):
        config = Config(metrics={"port": 70000})

        with pytest.raises(ConfigError, match="metrics.port"):
            validate_config(config)

    def test_missing_key_table(self, tmp_path):
        config = Config(pipeline={"key_table_path": str(tmp_path / "nope.txt")})

        with pytest.raises(ConfigError) as exc_info:
            validate_config(config)

        assert exc_info.value.parameter == "pipeline.key_table_path"

    def test_production_requires_contract(self):
        config = Config(environment="production")

        with pytest.raises(ConfigError, match="contract_address"):
            validate_config(config)

    def test_production_forbids_debug(self):
        config = Config(
            environment="production",
            debug=True,
            pipeline={"contract_address": "0xabc"},
        )

        with pytest.raises(ConfigError, match="Debug"):
            validate_config(config)

    def test_production_valid(self):
        config = Config(environment="production", pipeline={"contract_address": "0xabc"})

        validate_config(config)


class TestEnvironment:
    """Test environment detection and file discovery."""

    def test_default_environment(self):
        with patch.dict(os.environ, {}, clear=True):
            assert get_environment() == Environment.DEVELOPMENT

    def test_unknown_environment_falls_back(self):
        with patch.dict(os.environ, {"TILEFLIP_ENVIRONMENT": "moon"}):
            assert get_environment() == Environment.DEVELOPMENT

    def test_environment_from_env(self):
        with patch.dict(os.environ, {"TILEFLIP_ENVIRONMENT": "Staging"}):
            assert get_environment() == Environment.STAGING

    def test_specific_file_wins(self, tmp_path: Path):
        (tmp_path / "config").mkdir()
        (tmp_path / "config" / "staging.yaml").write_text("")
        (tmp_path / "tileflip.yaml").write_text("")

        found = get_config_file_path(Environment.STAGING, base_dir=tmp_path)

        assert found == tmp_path / "config" / "staging.yaml"

    def test_generic_fallback(self, tmp_path: Path):
        (tmp_path / "tileflip.yaml").write_text("")

        found = get_config_file_path(Environment.PRODUCTION, base_dir=tmp_path)

        assert found == tmp_path / "tileflip.yaml"

    def test_nothing_found(self, tmp_path: Path):
        assert get_config_file_path(Environment.TESTING, base_dir=tmp_path) is None
