"""Structured error types for the flip pipeline.

This module provides structured exceptions with recovery actions
for the failure modes of decoding, dispatching and configuring the
pipeline. None of them is fatal to the pipeline itself.
"""

from enum import Enum
from typing import Any


class RecoveryAction(Enum):
    """Recovery actions for error handling."""

    DROP = "drop"
    ABORT = "abort"
    REJECT = "reject"


class TileflipError(Exception):
    """Base exception for pipeline errors."""

    def __init__(
        self, message: str, recovery_action: RecoveryAction = RecoveryAction.ABORT
    ):
        """Initialize pipeline error.

        Args:
            message: Error message
            recovery_action: Suggested recovery action
        """
        super().__init__(message)
        self.recovery_action = recovery_action


class DecodeError(TileflipError):
    """Error raised when a tile update cannot be decoded.

    This covers malformed packed values, out-of-range powerup kinds and
    keys that cannot be mapped to coordinates. The offending event is
    dropped and the pipeline continues.
    """

    def __init__(self, value: Any, reason: str):
        """Initialize decode error.

        Args:
            value: The value that failed to decode
            reason: Human-readable reason
        """
        self.value = value
        self.reason = reason

        message = f"Cannot decode {value!r}: {reason}"

        super().__init__(message, RecoveryAction.DROP)


class ExecutionFailure(TileflipError):
    """Error raised when the executor rejects or fails a chunk.

    Failed chunks are recorded in the metrics and never retried; their
    coordinates stay pending from the caller's point of view.
    """

    def __init__(self, chunk_id: int, size: int, cause: BaseException | None = None):
        """Initialize execution failure.

        Args:
            chunk_id: Identifier of the failed chunk
            size: Number of actions in the chunk
            cause: Underlying exception raised by the executor
        """
        self.chunk_id = chunk_id
        self.size = size
        self.cause = cause

        detail = f": {cause}" if cause is not None else ""
        message = f"Chunk {chunk_id} ({size} actions) failed{detail}"

        super().__init__(message, RecoveryAction.ABORT)


class ConfigurationError(TileflipError):
    """Error raised when a parameter is set outside its documented bounds.

    The previous value is kept unchanged.
    """

    def __init__(
        self,
        parameter: str,
        value: Any = None,
        bounds: tuple[float, float] | None = None,
        message: str | None = None,
    ):
        """Initialize configuration error.

        Args:
            parameter: Name of the rejected parameter
            value: Rejected value
            bounds: Inclusive (min, max) bounds, if any
            message: Explicit message overriding the generated one
        """
        self.parameter = parameter
        self.value = value
        self.bounds = bounds

        if message is None:
            if bounds is not None:
                message = (
                    f"Invalid {parameter}={value!r}: "
                    f"must be between {bounds[0]} and {bounds[1]}"
                )
            else:
                message = f"Invalid {parameter}={value!r}"

        super().__init__(message, RecoveryAction.REJECT)
