"""Decoding of packed tile state into Cell records.

A packed state is a hex string holding, from the least-significant nibble
upward: team (1 nibble), powerup value (2 nibbles), powerup kind (1 nibble)
and the owner identity fragment (all remaining nibbles). A value of zero is
the unowned sentinel.
"""

from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from tileflip.schemas.types import UNOWNED, Cell, Powerup
from tileflip.utils.errors import DecodeError

GRID_WIDTH = 256

# team + powerup value + powerup kind
_TRAILER_NIBBLES = 4
_HEX_DIGITS = frozenset("0123456789abcdef")


class KeyIndexTable:
    """Static lookup from feed keys to linear grid indices.

    The table is built once from the ordered list of tile keys; a key's
    position in that list is its linear index on the grid.
    """

    def __init__(self, keys: Iterable[str]):
        self._index: dict[str, int] = {}
        for i, key in enumerate(keys):
            # First occurrence wins, as with a positional search
            self._index.setdefault(key, i)

    @classmethod
    def from_keys(cls, keys: Iterable[str]) -> "KeyIndexTable":
        return cls(keys)

    @classmethod
    def from_file(cls, path: Path) -> "KeyIndexTable":
        """Load a table from a text file holding one key per line.

        Blank lines are skipped.
        """
        with open(path) as f:
            return cls(line.strip() for line in f if line.strip())

    def index_of(self, key: str) -> int | None:
        return self._index.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self._index

    def __len__(self) -> int:
        return len(self._index)


def _normalize_hex(value: Any) -> str:
    """Return the lowercase hex digits of ``value`` with prefix and leading zeros removed."""
    if not isinstance(value, str):
        raise DecodeError(value, "packed state must be a hex string")

    digits = value.strip().lower()
    if digits.startswith("0x"):
        digits = digits[2:]
    if not digits:
        raise DecodeError(value, "empty hex value")
    if not set(digits) <= _HEX_DIGITS:
        raise DecodeError(value, "malformed hex")

    return digits.lstrip("0")


def mask_identity(identity: str) -> str:
    """Shorten an identity to the owner fragment a packed state carries.

    The packed state stores the owner in the high nibbles and overwrites the
    low four with the tile trailer, so only the identity without its last
    four nibbles can be compared with decoded owners.

    Args:
        identity: Account identity, with or without ``0x`` prefix

    Returns:
        ``0x``-prefixed lowercase fragment without leading zeros, or ``0x0``
        when nothing remains

    Raises:
        DecodeError: If identity is not valid hex
    """
    digits = _normalize_hex(identity)[:-_TRAILER_NIBBLES]
    return "0x" + (digits or "0")


def index_to_coordinate(index: int, grid_width: int = GRID_WIDTH) -> tuple[int, int]:
    """Map a linear grid index to ``(x, y)``."""
    return index // grid_width, index % grid_width


def decode_packed_state(
    packed: Any,
    *,
    x: int | None = None,
    y: int | None = None,
    key: str | None = None,
    key_table: KeyIndexTable | None = None,
    grid_width: int = GRID_WIDTH,
) -> Cell:
    """Decode a packed state value into a Cell.

    Args:
        packed: Hex string of the packed tile state
        x: Explicit x coordinate, if the payload carries one
        y: Explicit y coordinate, if the payload carries one
        key: Feed key used to locate the tile when coordinates are absent
        key_table: Key to linear index lookup
        grid_width: Width of the grid used to split linear indices

    Returns:
        Decoded cell

    Raises:
        DecodeError: On malformed hex, out-of-range powerup kind, an empty
            owner fragment, or a key that cannot be resolved to coordinates
    """
    digits = _normalize_hex(packed)
    cx, cy = _resolve_coordinates(x, y, key, key_table, grid_width)

    if not digits:
        return Cell(x=cx, y=cy)

    if len(digits) <= _TRAILER_NIBBLES:
        # Nothing left for the owner: indistinguishable from the sentinel
        raise DecodeError(packed, "owner fragment is empty")

    owner = "0x" + digits[:-_TRAILER_NIBBLES]
    kind_nibble = int(digits[-4], 16)
    try:
        powerup = Powerup(kind_nibble)
    except ValueError as e:
        raise DecodeError(packed, f"unknown powerup kind {kind_nibble}") from e

    return Cell(
        x=cx,
        y=cy,
        owner=owner,
        powerup=powerup,
        powerup_value=int(digits[-3:-1], 16),
        team=int(digits[-1], 16),
    )


def encode_packed_state(
    owner: str = UNOWNED,
    powerup: Powerup = Powerup.NONE,
    powerup_value: int = 0,
    team: int = 0,
) -> str:
    """Pack tile attributes into the hex form delivered by the feed.

    Used by the in-memory feed to produce realistic payloads. The trailer
    replaces the low four nibbles of the owner identity, so the packed value
    is as wide as the identity itself. An unowned tile always packs to the
    sentinel regardless of the other fields.

    Raises:
        ValueError: If a field does not fit its nibbles
    """
    fragment = mask_identity(owner)[2:]
    if fragment == "0":
        return UNOWNED
    if not 0 <= powerup_value <= 0xFF:
        raise ValueError("powerup_value must fit in two nibbles")
    if not 0 <= team <= 0xF:
        raise ValueError("team must fit in one nibble")

    return f"0x{fragment}{int(powerup):x}{powerup_value:02x}{team:x}"


def _resolve_coordinates(
    x: int | None,
    y: int | None,
    key: str | None,
    key_table: KeyIndexTable | None,
    grid_width: int,
) -> tuple[int, int]:
    if x is not None and y is not None:
        return _as_coordinate(x), _as_coordinate(y)

    if key is None or key_table is None:
        raise DecodeError(key, "no coordinates and no key table to resolve them")

    index = key_table.index_of(key)
    if index is None:
        raise DecodeError(key, "unknown tile key")

    ix, iy = index_to_coordinate(index, grid_width)
    # A single explicit coordinate still takes precedence
    return (
        _as_coordinate(x) if x is not None else ix,
        _as_coordinate(y) if y is not None else iy,
    )


def _as_coordinate(value: Any) -> int:
    try:
        coordinate = int(value)
    except (TypeError, ValueError) as e:
        raise DecodeError(value, "coordinate is not an integer") from e
    if coordinate < 0:
        raise DecodeError(value, "coordinate is negative")
    return coordinate


def parse_tile_model(
    model: Mapping[str, Any],
    key: str | None = None,
    key_table: KeyIndexTable | None = None,
    grid_width: int = GRID_WIDTH,
) -> Cell:
    """Decode a tile model payload as delivered by the update feed.

    Args:
        model: Tile model fields; ``flipped`` holds the packed state and
            ``x``/``y`` are optional
        key: Feed key of the entity
        key_table: Key to linear index lookup
        grid_width: Width of the grid

    Returns:
        Decoded cell

    Raises:
        DecodeError: If the payload cannot be decoded
    """
    if "flipped" not in model:
        raise DecodeError(dict(model), "missing 'flipped' field")

    return decode_packed_state(
        model["flipped"],
        x=model.get("x"),
        y=model.get("y"),
        key=key,
        key_table=key_table,
        grid_width=grid_width,
    )


__all__ = [
    "GRID_WIDTH",
    "UNOWNED",
    "KeyIndexTable",
    "decode_packed_state",
    "encode_packed_state",
    "index_to_coordinate",
    "mask_identity",
    "parse_tile_model",
]
