"""Fleet placement rules.

:func:`validate` checks a proposed fleet in a fixed order and stops at the
first broken rule, so the reported reason is always the earliest one:

1. bounds       every cell of every ship lies on the board
2. overlap      no cell is claimed by two ships
3. adjacency    no two ships touch, diagonals included
4. composition  ship lengths match the quota and each class matches its length
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Iterable, Mapping

from . import config as _cfg
from .board import Position, Ship
from .errors import PlacementError, Rejection

logger = logging.getLogger(__name__)


def check_bounds(ships: Iterable[Ship], size: int) -> None:
    # ships are straight: both ends on the board means every cell is.
    for ship in ships:
        if ship.length < 1 or not (ship.position.in_bounds(size) and ship.end.in_bounds(size)):
            raise PlacementError(Rejection.OUT_OF_BOUNDS, "Ship is outside the board boundaries")


def check_overlap(ships: Iterable[Ship]) -> None:
    occupied: set[Position] = set()
    for ship in ships:
        for cell in ship.cells():
            if cell in occupied:
                raise PlacementError(Rejection.OVERLAP, f"Ships overlap at ({cell.x}, {cell.y})")
            occupied.add(cell)


def check_adjacency(ships: Iterable[Ship], size: int) -> None:
    owner: dict[Position, int] = {}
    ships = list(ships)
    for idx, ship in enumerate(ships):
        for cell in ship.cells():
            owner[cell] = idx
    for idx, ship in enumerate(ships):
        for cell in ship.cells():
            for n in cell.neighbours(size):
                other = owner.get(n)
                if other is not None and other != idx:
                    raise PlacementError(
                        Rejection.ADJACENT,
                        f"Ships are adjacent at ({cell.x}, {cell.y}) and ({n.x}, {n.y})",
                    )


def check_composition(ships: Iterable[Ship], quota: Mapping[int, int]) -> None:
    ships = list(ships)
    for ship in ships:
        if ship.kind.length != ship.length:
            raise PlacementError(
                Rejection.BAD_COMPOSITION,
                f"Ship of type {ship.kind.value} must have length {ship.kind.length}, got {ship.length}",
            )
    counts = Counter(ship.length for ship in ships)
    expected = {length: n for length, n in quota.items() if n}
    if dict(counts) != expected:
        raise PlacementError(Rejection.BAD_COMPOSITION, "Invalid ship configuration")


def validate(
    ships: Iterable[Ship],
    *,
    size: int = _cfg.BOARD_SIZE,
    quota: Mapping[int, int] | None = None,
) -> None:
    """Raise :class:`PlacementError` for the first rule *ships* break; return None if valid."""
    ships = list(ships)
    quota = _cfg.FLEET_QUOTA if quota is None else quota
    try:
        check_bounds(ships, size)
        check_overlap(ships)
        check_adjacency(ships, size)
        check_composition(ships, quota)
    except PlacementError as e:
        logger.debug("Placement rejected (%s): %s", e.reason.value, e.text)
        raise
