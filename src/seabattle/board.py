"""
board.py

Core data structures for a naval combat match:
 - Position, Orientation, ShipClass and Ship describing a single ship
 - Fleet, the ordered collection of one player's ships in one session
 - ShotGrid, the tri-state record of shots fired at a fleet

Ships are stored by their anchor cell and orientation; the occupied cells are
always derived, never stored, so a fleet cannot drift out of sync with its
ships.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterator, NamedTuple

import numpy as np

from . import config as _cfg
from .errors import ShotError

BOARD_SIZE = _cfg.BOARD_SIZE


class Position(NamedTuple):
    """Zero-based (x, y) cell address; x is the column, y is the row."""

    x: int
    y: int

    def in_bounds(self, size: int = BOARD_SIZE) -> bool:
        return 0 <= self.x < size and 0 <= self.y < size

    def neighbours(self, size: int = BOARD_SIZE) -> Iterator["Position"]:
        """Yield the in-bounds cells within Chebyshev distance 1 (self excluded)."""
        for dx in (-1, 0, 1):
            for dy in (-1, 0, 1):
                if dx == 0 and dy == 0:
                    continue
                p = Position(self.x + dx, self.y + dy)
                if p.in_bounds(size):
                    yield p


class Orientation(str, enum.Enum):
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"


class ShipClass(str, enum.Enum):
    """Ship classes and their canonical lengths (see :data:`CLASS_LENGTHS`)."""

    TINY = "tiny"
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"

    @property
    def length(self) -> int:
        return CLASS_LENGTHS[self]


CLASS_LENGTHS: dict[ShipClass, int] = {
    ShipClass.TINY: 1,
    ShipClass.SMALL: 2,
    ShipClass.MEDIUM: 3,
    ShipClass.LARGE: 4,
}


@dataclass(frozen=True)
class Ship:
    """A ship anchored at *position* extending *length* cells along *orientation*."""

    position: Position
    orientation: Orientation
    length: int
    kind: ShipClass

    @property
    def end(self) -> Position:
        """Last cell the ship covers."""
        x, y = self.position
        if self.orientation is Orientation.HORIZONTAL:
            return Position(x + self.length - 1, y)
        return Position(x, y + self.length - 1)

    def cells(self) -> tuple[Position, ...]:
        x, y = self.position
        if self.orientation is Orientation.HORIZONTAL:
            return tuple(Position(x + i, y) for i in range(self.length))
        return tuple(Position(x, y + i) for i in range(self.length))


class Fleet:
    """
    Ordered collection of ships belonging to one player in one session.

    The fleet does not check its own invariants; :func:`seabattle.placement.validate`
    is run on the ships before a fleet is handed to a session.  Lookups
    assume at most one ship per cell, which placement guarantees.
    """

    def __init__(self, ships=()):
        self.ships: tuple[Ship, ...] = tuple(ships)
        self._owner: dict[Position, Ship] = {}
        for ship in self.ships:
            for cell in ship.cells():
                self._owner.setdefault(cell, ship)

    def __iter__(self) -> Iterator[Ship]:
        return iter(self.ships)

    def __len__(self) -> int:
        return len(self.ships)

    def __bool__(self) -> bool:
        return bool(self.ships)

    def __repr__(self) -> str:
        return f"Fleet({len(self.ships)} ships)"

    def ship_at(self, pos: Position) -> Ship | None:
        return self._owner.get(pos)

    def occupies(self, pos: Position) -> bool:
        return pos in self._owner


class Cell(enum.IntEnum):
    UNKNOWN = 0
    MISS = 1
    HIT = 2


class ShotGrid:
    """
    N×N record of shots fired at one fleet, as seen by the attacker.

    Stored as an ``int8`` numpy array indexed ``[y, x]`` holding :class:`Cell`
    values.  A cell can be marked once; marking it again raises
    :class:`~seabattle.errors.ShotError`.
    """

    def __init__(self, size: int = BOARD_SIZE):
        self.size = size
        self._cells = np.zeros((size, size), dtype=np.int8)

    def __getitem__(self, pos: Position) -> Cell:
        return Cell(int(self._cells[pos.y, pos.x]))

    def in_bounds(self, pos: Position) -> bool:
        return pos.in_bounds(self.size)

    def is_unknown(self, pos: Position) -> bool:
        return self._cells[pos.y, pos.x] == Cell.UNKNOWN

    def mark(self, pos: Position, value: Cell) -> None:
        if value is Cell.UNKNOWN:
            raise ValueError("cannot reset a cell to UNKNOWN")
        if not self.is_unknown(pos):
            raise ShotError(f"Cell ({pos.x}, {pos.y}) already attacked")
        self._cells[pos.y, pos.x] = value

    def unknown_mask(self) -> np.ndarray:
        """Boolean (size, size) array, True where no shot has landed yet."""
        return self._cells == Cell.UNKNOWN

    def count(self, value: Cell) -> int:
        return int(np.count_nonzero(self._cells == value))

    def rows(self) -> list[str]:
        """Grid as text rows ('.' unknown, 'o' miss, 'X' hit), for logs and debugging."""
        symbols = {Cell.UNKNOWN: ".", Cell.MISS: "o", Cell.HIT: "X"}
        return [" ".join(symbols[Cell(int(v))] for v in row) for row in self._cells]
