# Event path, dispatch scheduling and outcome aggregation

from .aggregator import OutcomeAggregator, PowerupStats
from .classifier import CandidateClassifier, Classification
from .decoder import (
    GRID_WIDTH,
    KeyIndexTable,
    decode_packed_state,
    encode_packed_state,
    index_to_coordinate,
    mask_identity,
    parse_tile_model,
)
from .interfaces import (
    ActionExecutor,
    IdentityProvider,
    Subscription,
    UpdateCallback,
    UpdateFeed,
)
from .pipeline import FlipPipeline
from .rate_monitor import UpdateRateMonitor
from .scheduler import (
    CHUNK_SIZE_BOUNDS,
    EXECUTION_DELAY_BOUNDS,
    AuxActionFactory,
    BatchDispatchScheduler,
    chunk,
    plan_dispatch,
)

__all__ = [
    "CHUNK_SIZE_BOUNDS",
    "EXECUTION_DELAY_BOUNDS",
    "GRID_WIDTH",
    "ActionExecutor",
    "AuxActionFactory",
    "BatchDispatchScheduler",
    "CandidateClassifier",
    "Classification",
    "FlipPipeline",
    "IdentityProvider",
    "KeyIndexTable",
    "OutcomeAggregator",
    "PowerupStats",
    "Subscription",
    "UpdateCallback",
    "UpdateFeed",
    "UpdateRateMonitor",
    "chunk",
    "decode_packed_state",
    "encode_packed_state",
    "index_to_coordinate",
    "mask_identity",
    "parse_tile_model",
    "plan_dispatch",
]
