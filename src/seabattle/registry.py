"""In-memory registry of players, waiting rooms and live sessions.

One :class:`Registry` is built at process start and handed to the
dispatcher.  It owns identity allocation and every lifecycle transition:

* player registration (names double as login handles)
* room creation, joining and promotion into a :class:`GameSession`
* session teardown once a match finishes
* disconnect handling for waiting and playing players

Locking
-------
``_lobby_lock`` guards rooms, the session map and the player→session index;
``_players_lock`` guards players and win counts.  Each session carries its
own lock.  Locks are only ever nested lobby → players; a session lock is
never held while taking a registry lock, so unrelated sessions never
contend and the registry never waits on a busy match.
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Mapping

import numpy as np

from . import config as _cfg
from .attack import Shot
from .board import Position, Ship
from .credentials import HashedSecret, hash_secret, verify_secret
from .errors import CredentialError, NotFoundError, StateError, ValidationError
from .session import GameSession

logger = logging.getLogger(__name__)


@dataclass
class Player:
    id: int
    name: str
    secret: HashedSecret = field(repr=False)
    wins: int = 0


@dataclass
class Room:
    id: int
    members: List[int] = field(default_factory=list)


@dataclass(frozen=True)
class JoinResult:
    room: Room
    session: GameSession | None = None


@dataclass(frozen=True)
class Departure:
    """What a disconnect changed: room membership and/or a forfeited session."""

    rooms_changed: bool = False
    session: GameSession | None = None
    winner: int | None = None


class Registry:
    """Concurrency-safe store of players, rooms and sessions."""

    def __init__(
        self,
        *,
        board_size: int = _cfg.BOARD_SIZE,
        quota: Mapping[int, int] | None = None,
        seed: int | None = None,
    ):
        self.board_size = board_size
        self.quota = dict(_cfg.FLEET_QUOTA if quota is None else quota)
        self._seeds = np.random.SeedSequence(seed)

        self._players_lock = threading.Lock()
        self._players: dict[int, Player] = {}
        self._names: dict[str, Player] = {}

        self._lobby_lock = threading.Lock()
        self._rooms: dict[int, Room] = {}
        self._sessions: dict[int, GameSession] = {}
        self._player_session: dict[int, int] = {}

        self._player_ids = itertools.count(1)
        self._room_ids = itertools.count(1)
        self._session_ids = itertools.count(1)

        self._session_listeners: List[Callable[[GameSession], None]] = []

    def add_session_listener(self, cb: Callable[[GameSession], None]) -> None:
        """Call *cb* with every new session before it becomes reachable by id."""
        self._session_listeners.append(cb)

    # ------------------------------------------------------------------
    # Players
    # ------------------------------------------------------------------
    def register_player(self, name: str, secret: str) -> Player:
        """Create a player for an unused *name*, or log in to an existing one.

        Raises :class:`CredentialError` if *name* is taken and *secret* does
        not match.  Hashing runs outside the lock; if two threads race on
        the same new name, the loser is verified against the winner's secret.
        """
        with self._players_lock:
            existing = self._names.get(name)
        if existing is None:
            hashed = hash_secret(secret)
            with self._players_lock:
                existing = self._names.get(name)
                if existing is None:
                    player = Player(next(self._player_ids), name, hashed)
                    self._players[player.id] = player
                    self._names[name] = player
                    logger.info("Registered player %r as %d", name, player.id)
                    return player
        if not verify_secret(secret, existing.secret):
            logger.info("Rejected login for %r: invalid password", name)
            raise CredentialError("Invalid password")
        logger.info("Player %r (%d) logged in", name, existing.id)
        return existing

    def get_player(self, player_id: int) -> Player:
        with self._players_lock:
            player = self._players.get(player_id)
        if player is None:
            raise NotFoundError(f"Player {player_id} not found")
        return player

    def record_win(self, player_id: int) -> None:
        with self._players_lock:
            player = self._players.get(player_id)
            if player is None:
                raise NotFoundError(f"Player {player_id} not found")
            player.wins += 1

    def leaderboard(self) -> list[tuple[str, int]]:
        """(name, wins) for players with at least one win, most wins first."""
        with self._players_lock:
            ranked = [(p.name, p.wins) for p in self._players.values() if p.wins > 0]
        # sorted() is stable, so ties keep registration order
        return sorted(ranked, key=lambda item: item[1], reverse=True)

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------
    def create_room(self, player_id: int) -> Room:
        self.get_player(player_id)
        with self._lobby_lock:
            self._require_not_playing(player_id)
            room = Room(next(self._room_ids), [player_id])
            self._rooms[room.id] = room
        logger.info("Player %d created room %d", player_id, room.id)
        return room

    def join_room(self, room_id: int, player_id: int) -> JoinResult:
        """Add *player_id* to *room_id*; a second member promotes the room to a session.

        Promotion and removal of the room happen under one lock acquisition,
        so a room can never be joined after it was promoted.
        """
        self.get_player(player_id)
        with self._lobby_lock:
            room = self._rooms.get(room_id)
            if room is None:
                raise NotFoundError(f"Room {room_id} not found")
            self._require_not_playing(player_id)
            if player_id in room.members:
                raise ValidationError("You are already in this room")
            room.members.append(player_id)
            logger.info("Player %d joined room %d", player_id, room_id)
            if len(room.members) < 2:
                return JoinResult(Room(room.id, list(room.members)))

            del self._rooms[room_id]
            player_a, player_b = room.members
            for pid in (player_a, player_b):
                self._leave_rooms(pid)
            session = GameSession(
                next(self._session_ids),
                player_a,
                player_b,
                size=self.board_size,
                quota=self.quota,
                rng=np.random.default_rng(self._seeds.spawn(1)[0]),
            )
            for cb in self._session_listeners:
                cb(session)
            self._sessions[session.id] = session
            self._player_session[player_a] = session.id
            self._player_session[player_b] = session.id
        logger.info("Room %d promoted to session %d (%d vs %d)", room_id, session.id, player_a, player_b)
        return JoinResult(Room(room.id, [player_a, player_b]), session)

    def room_listing(self) -> list[tuple[int, list[tuple[str, int]]]]:
        """Snapshot of open rooms as ``(room_id, [(name, player_id), ...])``."""
        with self._lobby_lock:
            rooms = [(room.id, list(room.members)) for room in self._rooms.values()]
            with self._players_lock:
                return [
                    (room_id, [(self._players[pid].name, pid) for pid in members])
                    for room_id, members in rooms
                ]

    def _require_not_playing(self, player_id: int) -> None:
        # caller holds _lobby_lock
        if player_id in self._player_session:
            raise StateError("You are already in a game")

    def _leave_rooms(self, player_id: int) -> bool:
        """Drop *player_id* from every waiting room, deleting emptied rooms."""
        # caller holds _lobby_lock
        changed = False
        for room in list(self._rooms.values()):
            if player_id in room.members:
                room.members.remove(player_id)
                changed = True
                if not room.members:
                    del self._rooms[room.id]
                    logger.info("Room %d closed (empty)", room.id)
        return changed

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------
    def get_session(self, session_id: int) -> GameSession:
        with self._lobby_lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise NotFoundError(f"Game {session_id} not found")
        return session

    def remove_session(self, session_id: int) -> None:
        with self._lobby_lock:
            session = self._sessions.pop(session_id, None)
            if session is None:
                return
            for pid in session.players:
                if self._player_session.get(pid) == session_id:
                    del self._player_session[pid]
        logger.debug("Session %d removed", session_id)

    def place_fleet(self, session_id: int, player_id: int, ships: Iterable[Ship]) -> bool:
        return self.get_session(session_id).place_fleet(player_id, ships)

    def attack(self, session_id: int, player_id: int, pos: Position) -> Shot:
        session = self.get_session(session_id)
        shot = session.attack(player_id, pos)
        if shot.all_sunk:
            self._finalize(session)
        return shot

    def random_attack(self, session_id: int, player_id: int) -> Shot:
        session = self.get_session(session_id)
        shot = session.random_attack(player_id)
        if shot.all_sunk:
            self._finalize(session)
        return shot

    def _finalize(self, session: GameSession) -> None:
        # only the caller whose operation finished the session gets here
        self.record_win(session.winner)
        self.remove_session(session.id)

    # ------------------------------------------------------------------
    # Disconnects
    # ------------------------------------------------------------------
    def on_disconnect(self, player_id: int) -> Departure:
        """Drop *player_id* from waiting rooms, or forfeit their live session."""
        with self._lobby_lock:
            rooms_changed = self._leave_rooms(player_id)
            sid = self._player_session.get(player_id)
            session = self._sessions.get(sid) if sid is not None else None
        if session is None:
            if rooms_changed:
                logger.info("Player %d left the lobby", player_id)
            return Departure(rooms_changed=rooms_changed)

        winner = session.forfeit(player_id, reason="disconnect")
        if winner is None:
            # lost the race against the shot that ended the match
            return Departure(rooms_changed=rooms_changed)
        self._finalize(session)
        return Departure(rooms_changed=rooms_changed, session=session, winner=winner)
