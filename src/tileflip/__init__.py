"""tileflip - Automated tile flipping for a shared on-chain grid.

tileflip watches a live feed of tile updates, classifies every tile as ours,
available or foreign, samples available tiles into a queue, and submits them
in delayed chunks to an action executor while aggregating response-time,
success-rate and powerup metrics.
"""

__version__ = "0.1.0"

from .core import (
    ActionExecutor,
    BatchDispatchScheduler,
    CandidateClassifier,
    Classification,
    FlipPipeline,
    IdentityProvider,
    KeyIndexTable,
    OutcomeAggregator,
    UpdateFeed,
    UpdateRateMonitor,
    decode_packed_state,
    parse_tile_model,
)
from .schemas import (
    Cell,
    Coordinate,
    FlipAction,
    MetricsSnapshot,
    PositionsSnapshot,
    Powerup,
)
from .utils import ConfigurationError, DecodeError, ExecutionFailure

__all__ = [
    "ActionExecutor",
    "BatchDispatchScheduler",
    "CandidateClassifier",
    "Cell",
    "Classification",
    "ConfigurationError",
    "Coordinate",
    "DecodeError",
    "ExecutionFailure",
    "FlipAction",
    "FlipPipeline",
    "IdentityProvider",
    "KeyIndexTable",
    "MetricsSnapshot",
    "OutcomeAggregator",
    "PositionsSnapshot",
    "Powerup",
    "UpdateFeed",
    "UpdateRateMonitor",
    "__version__",
    "decode_packed_state",
    "parse_tile_model",
]
