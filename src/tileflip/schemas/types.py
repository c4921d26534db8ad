"""Core type definitions for tiles, flip actions and metrics snapshots."""

from enum import IntEnum
from typing import Annotated, Any, NamedTuple, TypedDict

from pydantic import BaseModel, ConfigDict, Field

UNOWNED = "0x0"
"""Owner value of a tile nobody has flipped yet."""


class Powerup(IntEnum):
    """Powerup kinds carried by a flipped tile."""

    NONE = 0
    MULTIPLIER = 1


class Coordinate(NamedTuple):
    """Grid position of a tile."""

    x: int
    y: int


class FlipAction(NamedTuple):
    """One flip request as passed to the executor."""

    x: int
    y: int
    aux: int

    def to_call(self, contract_address: str, entrypoint: str = "flip") -> "FlipCall":
        """Render the action as an on-chain call with hex calldata.

        Args:
            contract_address: Address of the actions contract
            entrypoint: Contract entrypoint to invoke

        Returns:
            Call dictionary accepted by account executors
        """
        return {
            "contractAddress": contract_address,
            "entrypoint": entrypoint,
            "calldata": [hex(self.x), hex(self.y), hex(self.aux)],
        }


class FlipCall(TypedDict):
    """Account-level call produced from a FlipAction."""

    contractAddress: Annotated[str, "Address of the actions contract"]
    entrypoint: Annotated[str, "Contract entrypoint name"]
    calldata: Annotated[list[str], "Hex-encoded x, y and auxiliary parameter"]


class Cell(BaseModel):
    """Decoded tile state."""

    model_config = ConfigDict(frozen=True)

    x: int = Field(ge=0)
    y: int = Field(ge=0)
    owner: str = UNOWNED
    powerup: Powerup = Powerup.NONE
    powerup_value: int = Field(default=0, ge=0, le=255)
    team: int = Field(default=0, ge=0, le=15)

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.x, self.y)

    @property
    def is_unowned(self) -> bool:
        return self.owner == UNOWNED


class FlipRecord(BaseModel):
    """One entry of the rolling flip history."""

    model_config = ConfigDict(frozen=True)

    timestamp: float = Field(description="Wall-clock time in milliseconds")
    success: bool
    powerup: Powerup | None = None
    powerup_value: int | None = None


class TxLogEntry(BaseModel):
    """Reference of a successfully submitted chunk."""

    model_config = ConfigDict(frozen=True)

    tx_ref: str
    timestamp: float


class PowerupStatsSnapshot(BaseModel):
    """Observed statistics for one powerup kind."""

    count: int = 0
    values: list[int] = Field(default_factory=list)

    @property
    def average(self) -> float:
        if not self.values:
            return 0.0
        return sum(self.values) / len(self.values)


class MetricsSnapshot(BaseModel):
    """Read-only copy of the aggregated flip metrics."""

    total_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    average_response_time_ms: float = 0.0
    decode_errors: int = 0
    history: list[FlipRecord] = Field(default_factory=list)
    powerup_stats: dict[Powerup, PowerupStatsSnapshot] = Field(default_factory=dict)

    @property
    def success_rate(self) -> float:
        if self.total_count == 0:
            return 0.0
        return self.success_count / self.total_count

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        data = self.model_dump(mode="json")
        data["powerup_stats"] = {
            kind.name: stats.model_dump()
            for kind, stats in self.powerup_stats.items()
        }
        data["success_rate"] = self.success_rate
        return data


class PositionsSnapshot(BaseModel):
    """Coordinates awaiting a result and coordinates already flipped."""

    pending: list[Coordinate] = Field(default_factory=list)
    flipped: list[Coordinate] = Field(default_factory=list)
