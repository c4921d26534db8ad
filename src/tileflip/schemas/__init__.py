"""Data models and type definitions for the tileflip pipeline."""

from .types import (
    UNOWNED,
    Cell,
    Coordinate,
    FlipAction,
    FlipCall,
    FlipRecord,
    MetricsSnapshot,
    PositionsSnapshot,
    Powerup,
    PowerupStatsSnapshot,
    TxLogEntry,
)

__all__ = [
    "UNOWNED",
    "Cell",
    "Coordinate",
    "FlipAction",
    "FlipCall",
    "FlipRecord",
    "MetricsSnapshot",
    "PositionsSnapshot",
    "Powerup",
    "PowerupStatsSnapshot",
    "TxLogEntry",
]
