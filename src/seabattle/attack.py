"""Shot resolution against a fleet and its shot grid."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

import numpy as np

from .board import Cell, Fleet, Position, Ship, ShotGrid
from .errors import ShotError


class Outcome(str, enum.Enum):
    """Result of a single shot; values are the wire ``status`` strings."""

    MISS = "miss"
    HIT = "shot"
    SUNK = "killed"


@dataclass(frozen=True)
class Shot:
    position: Position
    outcome: Outcome
    all_sunk: bool = False
    # cells auto-marked MISS around a sunk ship, in board order
    revealed: tuple[Position, ...] = field(default_factory=tuple)


def is_sunk(ship: Ship, grid: ShotGrid) -> bool:
    return all(grid[c] is Cell.HIT for c in ship.cells())


def all_sunk(fleet: Fleet, grid: ShotGrid) -> bool:
    return all(is_sunk(ship, grid) for ship in fleet)


def mark_contour(ship: Ship, fleet: Fleet, grid: ShotGrid) -> tuple[Position, ...]:
    """Mark every still-unknown, ship-free neighbour of *ship* as MISS and return them.

    The contour is collected first and applied afterwards so cells shared by
    two hull segments are only considered once.
    """
    contour: set[Position] = set()
    for cell in ship.cells():
        contour.update(cell.neighbours(grid.size))
    revealed = []
    for pos in sorted(contour, key=lambda p: (p.y, p.x)):
        if fleet.occupies(pos) or not grid.is_unknown(pos):
            continue
        grid.mark(pos, Cell.MISS)
        revealed.append(pos)
    return tuple(revealed)


def resolve(fleet: Fleet, grid: ShotGrid, pos: Position) -> Shot:
    """Fire at *pos* and record the result in *grid*.

    Raises :class:`ShotError` if *pos* is off the board or already marked;
    nothing is mutated in that case.
    """
    if not grid.in_bounds(pos):
        raise ShotError(f"Position ({pos.x}, {pos.y}) is outside the board")
    if not grid.is_unknown(pos):
        raise ShotError(f"Cell ({pos.x}, {pos.y}) already attacked")

    ship = fleet.ship_at(pos)
    if ship is None:
        grid.mark(pos, Cell.MISS)
        return Shot(pos, Outcome.MISS)

    grid.mark(pos, Cell.HIT)
    if not is_sunk(ship, grid):
        return Shot(pos, Outcome.HIT)

    revealed = mark_contour(ship, fleet, grid)
    return Shot(pos, Outcome.SUNK, all_sunk=all_sunk(fleet, grid), revealed=revealed)


def random_target(grid: ShotGrid, rng: np.random.Generator) -> Position:
    """Pick a cell uniformly among those still UNKNOWN in *grid*."""
    candidates = np.flatnonzero(grid.unknown_mask())
    if candidates.size == 0:
        raise ShotError("No cells remain to attack")
    idx = int(rng.choice(candidates))
    y, x = divmod(idx, grid.size)
    return Position(x, y)
