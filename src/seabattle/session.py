"""Two-player game session logic.

A :class:`GameSession` holds the complete mutable state of one match: both
fleets, both shot grids, the turn owner and the result.  It moves through
three phases::

    AWAITING_FLEETS --both fleets placed--> IN_PROGRESS --last ship sunk / forfeit--> FINISHED

Every public method takes the session lock, checks everything it needs
before touching state, and emits :class:`~seabattle.events.Event` objects to
its subscribers *while still holding the lock*.  Subscribers must therefore
never block; the server's subscriber only enqueues outbound frames.  This
keeps the per-session event order identical to the order in which
operations were applied.

Turn rules
----------
* Player A (the room creator) moves first.
* A miss passes the turn to the opponent; a hit or a sinking shot keeps it.
* Shots out of turn, at marked cells or off the board are rejected without
  any change to the session.
"""

from __future__ import annotations

import enum
import logging
import threading
from typing import Callable, Iterable, List, Mapping

import numpy as np

from . import config as _cfg
from .attack import Outcome, Shot, random_target, resolve
from .board import Cell, Fleet, Position, Ship, ShotGrid
from .errors import StateError
from .events import Category, Event
from .placement import validate

logger = logging.getLogger(__name__)


class Phase(enum.Enum):
    AWAITING_FLEETS = "awaiting_fleets"
    IN_PROGRESS = "in_progress"
    FINISHED = "finished"


class GameSession:
    """State of a single match between two registered players."""

    def __init__(
        self,
        session_id: int,
        player_a: int,
        player_b: int,
        *,
        size: int = _cfg.BOARD_SIZE,
        quota: Mapping[int, int] | None = None,
        rng: np.random.Generator | None = None,
    ):
        self.id = session_id
        self.player_a = player_a
        self.player_b = player_b
        self.size = size
        self.quota = _cfg.FLEET_QUOTA if quota is None else quota
        self._rng = rng if rng is not None else np.random.default_rng()
        self._lock = threading.Lock()

        self._fleets: dict[int, Fleet] = {player_a: Fleet(), player_b: Fleet()}
        # grid[p] records the shots fired *at* p's fleet
        self._grids: dict[int, ShotGrid] = {player_a: ShotGrid(size), player_b: ShotGrid(size)}

        self.turn_owner: int = player_a
        self.phase = Phase.AWAITING_FLEETS
        self._started = False
        self.winner: int | None = None
        self.win_reason: str | None = None

        # Event subscribers
        self._subs: List[Callable[[Event], None]] = []

    def __repr__(self) -> str:
        return f"GameSession(id={self.id}, players=({self.player_a}, {self.player_b}), phase={self.phase.value})"

    # -------------------- read-only views --------------------
    @property
    def players(self) -> tuple[int, int]:
        return (self.player_a, self.player_b)

    @property
    def started(self) -> bool:
        """True once both fleets were accepted, even if the game has since finished."""
        return self._started

    @property
    def finished(self) -> bool:
        return self.phase is Phase.FINISHED

    def opponent(self, player_id: int) -> int:
        return self.player_b if player_id == self.player_a else self.player_a

    def fleet(self, player_id: int) -> Fleet:
        return self._fleets[player_id]

    def grid(self, player_id: int) -> ShotGrid:
        """Shots fired at *player_id*'s fleet."""
        return self._grids[player_id]

    # -------------------- event bus --------------------
    def subscribe(self, cb: Callable[[Event], None]) -> None:
        """Allow external components (router/tests) to receive game events."""
        self._subs.append(cb)

    def _emit(self, ev: Event) -> None:
        for cb in tuple(self._subs):
            try:
                cb(ev)
            except Exception:  # noqa: BLE001
                # A misbehaving subscriber must not leave the session half-updated
                logger.exception("Session %s subscriber failed for %s", self.id, ev)

    # -------------------- placement --------------------
    def place_fleet(self, player_id: int, ships: Iterable[Ship]) -> bool:
        """Validate and store *player_id*'s fleet. Return True if this started the game."""
        ships = list(ships)
        with self._lock:
            self._require_participant(player_id)
            if self.phase is not Phase.AWAITING_FLEETS:
                raise StateError("Game has already started")
            if self._fleets[player_id]:
                raise StateError("Fleet already placed")
            validate(ships, size=self.size, quota=self.quota)
            self._fleets[player_id] = Fleet(ships)
            logger.debug("Session %s: player %s placed %d ships", self.id, player_id, len(ships))

            if not all(self._fleets.values()):
                return False
            self.phase = Phase.IN_PROGRESS
            self._started = True
            logger.info("Session %s started, player %s moves first", self.id, self.turn_owner)
            for pid in self.players:
                self._emit(Event(Category.TURN, "start", {
                    "player": pid,
                    "ships": self._fleets[pid],
                    "current": self.turn_owner,
                }))
            self._emit(Event(Category.TURN, "turn", {"current": self.turn_owner}))
            return True

    # -------------------- gameplay --------------------
    def attack(self, player_id: int, pos: Position) -> Shot:
        """Fire at *pos* on the opponent's board on behalf of *player_id*."""
        with self._lock:
            self._require_turn(player_id)
            return self._execute_shot(player_id, pos)

    def random_attack(self, player_id: int) -> Shot:
        """Fire at a uniformly chosen cell the attacker has not targeted yet."""
        with self._lock:
            self._require_turn(player_id)
            pos = random_target(self._grids[self.opponent(player_id)], self._rng)
            return self._execute_shot(player_id, pos)

    def forfeit(self, player_id: int, reason: str = "disconnect") -> int | None:
        """End the match in favour of *player_id*'s opponent.

        Works in any phase.  Returns the winner, or None if the session had
        already finished (the forfeit is then a no-op).
        """
        with self._lock:
            self._require_participant(player_id)
            if self.phase is Phase.FINISHED:
                return None
            winner = self.opponent(player_id)
            if not self.started:
                logger.info("Session %s: player %s left during fleet placement", self.id, player_id)
            self._conclude(winner, reason=reason)
            return winner

    # -------------------- internal utilities --------------------
    def _require_participant(self, player_id: int) -> None:
        if player_id not in self._fleets:
            raise StateError(f"Player {player_id} is not in game {self.id}")

    def _require_turn(self, player_id: int) -> None:
        self._require_participant(player_id)
        if self.phase is Phase.AWAITING_FLEETS:
            raise StateError("Game has not started")
        if self.phase is Phase.FINISHED:
            raise StateError("Game is finished")
        if player_id != self.turn_owner:
            raise StateError("Not your turn")

    def _execute_shot(self, attacker: int, pos: Position) -> Shot:
        defender = self.opponent(attacker)
        shot = resolve(self._fleets[defender], self._grids[defender], pos)
        logger.debug("Session %s: player %s fired at %s -> %s", self.id, attacker, tuple(pos), shot.outcome.value)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Session %s: board of player %s\n%s", self.id, defender, "\n".join(self._grids[defender].rows()))

        self._emit(Event(Category.TURN, "shot", {
            "attacker": attacker,
            "position": shot.position,
            "outcome": shot.outcome,
        }))
        for cell in shot.revealed:
            self._emit(Event(Category.TURN, "shot", {
                "attacker": attacker,
                "position": cell,
                "outcome": Outcome.MISS,
            }))

        if shot.all_sunk:
            self._conclude(attacker, reason="fleet destroyed")
            return shot

        if shot.outcome is Outcome.MISS:
            self.turn_owner = defender
            self._emit(Event(Category.TURN, "turn", {"current": self.turn_owner}))
        return shot

    def _conclude(self, winner: int, *, reason: str) -> None:
        self.winner = winner
        self.win_reason = reason
        self.phase = Phase.FINISHED
        loser = self.opponent(winner)
        logger.info(
            "Session %s finished: player %s won by %s after %d hits and %d misses",
            self.id,
            winner,
            reason,
            self._grids[loser].count(Cell.HIT),
            self._grids[loser].count(Cell.MISS),
        )
        category = Category.TURN if reason == "fleet destroyed" else Category.SYSTEM
        self._emit(Event(category, "finish", {"winner": winner, "reason": reason}))
