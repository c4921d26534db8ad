# Shared utilities and helpers

from .admission import SAMPLE_FACTOR_BOUNDS, AdmissionPolicy, BernoulliAdmission
from .errors import (
    ConfigurationError,
    DecodeError,
    ExecutionFailure,
    RecoveryAction,
    TileflipError,
)

__all__ = [
    "SAMPLE_FACTOR_BOUNDS",
    "AdmissionPolicy",
    "BernoulliAdmission",
    "ConfigurationError",
    "DecodeError",
    "ExecutionFailure",
    "RecoveryAction",
    "TileflipError",
]
