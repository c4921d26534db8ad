"""Unit tests for pipeline error types."""

import pytest

from tileflip.config.config import ConfigError
from tileflip.utils.errors import (
    ConfigurationError,
    DecodeError,
    ExecutionFailure,
    RecoveryAction,
    TileflipError,
)


class TestTileflipError:
    """Test base TileflipError class."""

    def test_initialization(self) -> None:
        """Test error initialization with message and recovery action."""
        error = TileflipError("Test error", RecoveryAction.DROP)
        assert str(error) == "Test error"
        assert error.recovery_action == RecoveryAction.DROP

    def test_default_recovery_action(self) -> None:
        """Test default recovery action is ABORT."""
        error = TileflipError("Test error")
        assert error.recovery_action == RecoveryAction.ABORT


class TestDecodeError:
    """Test DecodeError class."""

    def test_initialization(self) -> None:
        error = DecodeError("0x1a2b3", "unknown powerup kind 10")

        assert error.value == "0x1a2b3"
        assert error.reason == "unknown powerup kind 10"
        assert error.recovery_action == RecoveryAction.DROP
        assert isinstance(error, TileflipError)

    def test_message_format(self) -> None:
        error = DecodeError("0x00001", "owner fragment is empty")
        assert str(error) == "Cannot decode '0x00001': owner fragment is empty"


class TestExecutionFailure:
    """Test ExecutionFailure class."""

    def test_initialization(self) -> None:
        cause = RuntimeError("nonce too low")
        error = ExecutionFailure(3, 10, cause)

        assert error.chunk_id == 3
        assert error.size == 10
        assert error.cause is cause
        assert error.recovery_action == RecoveryAction.ABORT

    def test_message_with_cause(self) -> None:
        error = ExecutionFailure(3, 10, RuntimeError("nonce too low"))
        assert str(error) == "Chunk 3 (10 actions) failed: nonce too low"

    def test_message_without_cause(self) -> None:
        error = ExecutionFailure(0, 1)
        assert str(error) == "Chunk 0 (1 actions) failed"


class TestConfigurationError:
    """Test ConfigurationError class."""

    def test_message_with_bounds(self) -> None:
        error = ConfigurationError("chunk_size", 25, (1, 20))

        assert error.parameter == "chunk_size"
        assert error.value == 25
        assert error.bounds == (1, 20)
        assert error.recovery_action == RecoveryAction.REJECT
        assert str(error) == "Invalid chunk_size=25: must be between 1 and 20"

    def test_message_without_bounds(self) -> None:
        error = ConfigurationError("entrypoint", "")
        assert str(error) == "Invalid entrypoint=''"

    def test_explicit_message(self) -> None:
        error = ConfigurationError("metrics.port", message="port taken")
        assert str(error) == "port taken"

    def test_config_error_is_configuration_error(self) -> None:
        """Loader errors can be caught together with setter errors."""
        with pytest.raises(ConfigurationError) as exc_info:
            raise ConfigError("bad file")

        assert exc_info.value.parameter == "config"
        assert str(exc_info.value) == "bad file"
