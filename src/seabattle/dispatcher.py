"""Map inbound protocol messages onto registry/session operations.

The dispatcher keeps no game state of its own.  It owns only the side table
binding each open connection to the player that registered on it, which
answers "who sent this" and tells it which player to disconnect when a
connection closes.  Session events reach clients through a per-session
:class:`~seabattle.router.EventRouter`; lobby-wide updates (rooms, winners)
are broadcast from here.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Hashable, Protocol

from . import protocol
from .errors import CredentialError, GameError, ProtocolError, StateError, ValidationError
from .protocol import (
    AttackRequest,
    CreateRoomRequest,
    Heartbeat,
    JoinRoomRequest,
    PlaceFleetRequest,
    RandomAttackRequest,
    RegisterRequest,
    Request,
)
from .registry import Registry
from .router import EventRouter
from .session import GameSession

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """What the dispatcher needs from the connection layer. Neither call may block."""

    def send(self, conn: Any, msg: dict) -> None: ...

    def broadcast(self, msg: dict) -> None: ...


class Dispatcher:
    def __init__(self, registry: Registry, transport: Transport) -> None:
        self._registry = registry
        self._transport = transport
        self._lock = threading.Lock()
        self._conn_player: dict[Hashable, int] = {}
        self._player_conn: dict[int, Hashable] = {}
        registry.add_session_listener(self._attach_router)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------
    def player_for(self, conn: Hashable) -> int | None:
        with self._lock:
            return self._conn_player.get(conn)

    def disconnected(self, conn: Hashable) -> None:
        """Forget *conn* and let the registry clean up after its player."""
        with self._lock:
            player_id = self._conn_player.pop(conn, None)
            if player_id is not None and self._player_conn.get(player_id) is conn:
                del self._player_conn[player_id]
        if player_id is None:
            return
        logger.info("Player %d disconnected", player_id)
        departure = self._registry.on_disconnect(player_id)
        if departure.rooms_changed:
            self._broadcast_rooms()
        if departure.session is not None:
            self._broadcast_winners()

    def send_to_player(self, player_id: int, msg: dict) -> None:
        with self._lock:
            conn = self._player_conn.get(player_id)
        if conn is None:
            logger.debug("Dropping %s for offline player %d", msg["type"], player_id)
            return
        self._transport.send(conn, msg)

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------
    def handle(self, conn: Hashable, text: str | bytes) -> None:
        """Parse one frame from *conn* and apply it. Never raises."""
        try:
            req = protocol.parse_message(text)
        except ProtocolError as e:
            logger.warning("Dropping malformed message: %s", e.text)
            return
        except Exception:  # noqa: BLE001
            logger.exception("Dropping message from %r that could not be parsed", conn)
            return

        if isinstance(req, Heartbeat):
            return
        kind = protocol.REQUEST_TYPES[type(req)]
        logger.debug("Handling %s from %r", kind, conn)
        try:
            self.dispatch(conn, req)
        except CredentialError as e:
            self._transport.send(conn, protocol.register_error(req.name, e.text, req.msg_id))
        except GameError as e:
            logger.debug("Rejected %s: %s", kind, e.text)
            self._transport.send(conn, protocol.error(e, kind, req.msg_id))
        except Exception:  # noqa: BLE001
            logger.exception("Handler for %s failed", kind)

    def dispatch(self, conn: Hashable, req: Request) -> None:
        if isinstance(req, RegisterRequest):
            self._register(conn, req)
        elif isinstance(req, CreateRoomRequest):
            self._create_room(conn, req)
        elif isinstance(req, JoinRoomRequest):
            self._join_room(conn, req)
        elif isinstance(req, PlaceFleetRequest):
            self._place_fleet(conn, req)
        elif isinstance(req, AttackRequest):
            self._attack(conn, req)
        elif isinstance(req, RandomAttackRequest):
            self._random_attack(conn, req)
        else:  # pragma: no cover – parse_message only yields the types above
            raise ProtocolError(f"no handler for {type(req).__name__}")

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------
    def _register(self, conn: Hashable, req: RegisterRequest) -> None:
        current = self.player_for(conn)
        # a bound connection may only log in again as itself
        if current is not None and self._registry.get_player(current).name != req.name:
            raise StateError("This connection is already registered")
        player = self._registry.register_player(req.name, req.password)
        with self._lock:
            bound = self._player_conn.get(player.id)
            if bound is not None and bound is not conn:
                taken = True
            else:
                taken = False
                self._conn_player[conn] = player.id
                self._player_conn[player.id] = conn
        if taken:
            self._transport.send(conn, protocol.register_error(req.name, "Player is already connected", req.msg_id))
            return
        self._transport.send(conn, protocol.register_result(player.name, player.id, req.msg_id))
        self._broadcast_rooms()
        self._broadcast_winners()

    def _create_room(self, conn: Hashable, req: CreateRoomRequest) -> None:
        self._registry.create_room(self._require_player(conn))
        self._broadcast_rooms()

    def _join_room(self, conn: Hashable, req: JoinRoomRequest) -> None:
        result = self._registry.join_room(req.room_id, self._require_player(conn))
        if result.session is not None:
            for pid in result.session.players:
                self.send_to_player(pid, protocol.game_created(result.session.id, pid))
        self._broadcast_rooms()

    def _place_fleet(self, conn: Hashable, req: PlaceFleetRequest) -> None:
        player_id = self._acting_player(conn, req.player_id)
        self._registry.place_fleet(req.game_id, player_id, req.ships)

    def _attack(self, conn: Hashable, req: AttackRequest) -> None:
        player_id = self._acting_player(conn, req.player_id)
        shot = self._registry.attack(req.game_id, player_id, req.position)
        if shot.all_sunk:
            self._broadcast_winners()

    def _random_attack(self, conn: Hashable, req: RandomAttackRequest) -> None:
        player_id = self._acting_player(conn, req.player_id)
        shot = self._registry.random_attack(req.game_id, player_id)
        if shot.all_sunk:
            self._broadcast_winners()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _require_player(self, conn: Hashable) -> int:
        player_id = self.player_for(conn)
        if player_id is None:
            raise StateError("Register first")
        return player_id

    def _acting_player(self, conn: Hashable, claimed: int | None) -> int:
        player_id = self._require_player(conn)
        if claimed is not None and claimed != player_id:
            raise ValidationError("playerId does not match this connection")
        return player_id

    def _attach_router(self, session: GameSession) -> None:
        session.subscribe(EventRouter(session, self.send_to_player))

    def _broadcast_rooms(self) -> None:
        self._transport.broadcast(protocol.rooms_updated(self._registry.room_listing()))

    def _broadcast_winners(self) -> None:
        self._transport.broadcast(protocol.winners_updated(self._registry.leaderboard()))
