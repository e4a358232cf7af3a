"""JSON wire protocol.

Every frame is one JSON object ``{"type": str, "data": object, "id": int}``.
``data`` is always a structured value; string-wrapped JSON is rejected.
Inbound frames are parsed exactly once, here, into one frozen dataclass per
message kind, so nothing past this module ever looks at raw dictionaries.

Client → Server
---------------
register        {name, password}
create_room     (no payload; the creator is the connection's player)
join_room       {roomId}
place_fleet     {gameId, ships, playerId?}
attack          {gameId, x, y, playerId?}
random_attack   {gameId, playerId?}

Server → Client
---------------
register        {name, index, error, errorText}
rooms_updated   [{roomId, members: [{name, index}]}]
game_created    {gameId, playerId}
game_started    {ships, currentPlayerId}
attack_result   {position: {x, y}, currentPlayer, status: miss|shot|killed}
turn            {currentPlayer}
finish          {winner}
winners_updated [{name, wins}]
error           {code, errorText, request}

A ship on the wire is ``{position: {x, y}, direction: bool, length, type}``
where ``direction`` true means horizontal.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Union

from typing_extensions import Literal

from .board import Fleet, Orientation, Position, Ship, ShipClass
from .errors import GameError, ProtocolError

# integer fields may also arrive as decimal strings
_INT_TEXT = re.compile(r"-?[0-9]{1,18}")

AttackStatus = Literal["miss", "shot", "killed"]


@dataclass(frozen=True)
class Heartbeat:
    """``ping``/``pong`` frames; consumed at the transport edge, never dispatched."""

    kind: str
    msg_id: int = 0


@dataclass(frozen=True)
class RegisterRequest:
    name: str
    password: str
    msg_id: int = 0


@dataclass(frozen=True)
class CreateRoomRequest:
    msg_id: int = 0


@dataclass(frozen=True)
class JoinRoomRequest:
    room_id: int
    msg_id: int = 0


@dataclass(frozen=True)
class PlaceFleetRequest:
    game_id: int
    ships: tuple[Ship, ...]
    player_id: int | None = None
    msg_id: int = 0


@dataclass(frozen=True)
class AttackRequest:
    game_id: int
    position: Position
    player_id: int | None = None
    msg_id: int = 0


@dataclass(frozen=True)
class RandomAttackRequest:
    game_id: int
    player_id: int | None = None
    msg_id: int = 0


Request = Union[
    Heartbeat,
    RegisterRequest,
    CreateRoomRequest,
    JoinRoomRequest,
    PlaceFleetRequest,
    AttackRequest,
    RandomAttackRequest,
]


# ---------------------------------------------------------------------------
# Inbound
# ---------------------------------------------------------------------------

def _int(data: dict, key: str, *, required: bool = True) -> int | None:
    value = data.get(key)
    if value is None:
        if required:
            raise ProtocolError(f"missing field {key!r}")
        return None
    if isinstance(value, bool):
        raise ProtocolError(f"field {key!r} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and _INT_TEXT.fullmatch(value.strip()):
        return int(value)
    raise ProtocolError(f"field {key!r} must be an integer")


def _text(data: dict, key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise ProtocolError(f"field {key!r} must be a non-empty string")
    return value


def _object(data: Any, kind: str) -> dict:
    if not isinstance(data, dict):
        raise ProtocolError(f"{kind} payload must be a JSON object")
    return data


def parse_ship(raw: Any) -> Ship:
    raw = _object(raw, "ship")
    pos = _object(raw.get("position"), "ship position")
    direction = raw.get("direction")
    if not isinstance(direction, bool):
        raise ProtocolError("ship direction must be a boolean")
    try:
        kind = ShipClass(raw.get("type"))
    except ValueError:
        raise ProtocolError(f"unknown ship type {raw.get('type')!r}") from None
    return Ship(
        position=Position(_int(pos, "x"), _int(pos, "y")),
        orientation=Orientation.HORIZONTAL if direction else Orientation.VERTICAL,
        length=_int(raw, "length"),
        kind=kind,
    )


def parse_message(text: str | bytes) -> Request:
    """Decode one inbound frame into its request dataclass or raise ProtocolError."""
    try:
        frame = json.loads(text)
    except (ValueError, UnicodeDecodeError) as e:
        raise ProtocolError(f"invalid JSON: {e}") from None
    frame = _object(frame, "frame")
    kind = frame.get("type")
    if not isinstance(kind, str):
        raise ProtocolError("frame has no type")
    msg_id = _int(frame, "id", required=False) or 0
    data = frame.get("data")

    if kind in ("ping", "pong"):
        return Heartbeat(kind, msg_id)
    if kind == "register":
        data = _object(data, kind)
        return RegisterRequest(_text(data, "name"), _text(data, "password"), msg_id)
    if kind == "create_room":
        if data not in (None, "", {}):
            raise ProtocolError("create_room takes no payload")
        return CreateRoomRequest(msg_id)
    if kind == "join_room":
        data = _object(data, kind)
        return JoinRoomRequest(_int(data, "roomId"), msg_id)
    if kind == "place_fleet":
        data = _object(data, kind)
        ships = data.get("ships")
        if not isinstance(ships, list):
            raise ProtocolError("ships must be a list")
        return PlaceFleetRequest(
            _int(data, "gameId"),
            tuple(parse_ship(s) for s in ships),
            _int(data, "playerId", required=False),
            msg_id,
        )
    if kind == "attack":
        data = _object(data, kind)
        return AttackRequest(
            _int(data, "gameId"),
            Position(_int(data, "x"), _int(data, "y")),
            _int(data, "playerId", required=False),
            msg_id,
        )
    if kind == "random_attack":
        data = _object(data, kind)
        return RandomAttackRequest(
            _int(data, "gameId"),
            _int(data, "playerId", required=False),
            msg_id,
        )
    raise ProtocolError(f"unknown message type {kind!r}")


# ---------------------------------------------------------------------------
# Outbound
# ---------------------------------------------------------------------------

def message(kind: str, data: Any, msg_id: int = 0) -> dict:
    return {"type": kind, "data": data, "id": msg_id}


def encode(msg: dict) -> str:
    return json.dumps(msg, separators=(",", ":"))


def ship_to_wire(ship: Ship) -> dict:
    return {
        "position": {"x": ship.position.x, "y": ship.position.y},
        "direction": ship.orientation is Orientation.HORIZONTAL,
        "length": ship.length,
        "type": ship.kind.value,
    }


def register_result(name: str, index: int, msg_id: int = 0) -> dict:
    return message("register", {"name": name, "index": index, "error": False, "errorText": ""}, msg_id)


def register_error(name: str, text: str, msg_id: int = 0) -> dict:
    return message("register", {"name": name, "index": -1, "error": True, "errorText": text}, msg_id)


def rooms_updated(listing: list[tuple[int, list[tuple[str, int]]]]) -> dict:
    return message("rooms_updated", [
        {"roomId": room_id, "members": [{"name": name, "index": pid} for name, pid in members]}
        for room_id, members in listing
    ])


def winners_updated(board: list[tuple[str, int]]) -> dict:
    return message("winners_updated", [{"name": name, "wins": wins} for name, wins in board])


def game_created(game_id: int, player_id: int) -> dict:
    return message("game_created", {"gameId": game_id, "playerId": player_id})


def game_started(fleet: Fleet, current: int) -> dict:
    return message("game_started", {"ships": [ship_to_wire(s) for s in fleet], "currentPlayerId": current})


def attack_result(pos: Position, current: int, status: AttackStatus) -> dict:
    return message("attack_result", {"position": {"x": pos.x, "y": pos.y}, "currentPlayer": current, "status": status})


def turn(current: int) -> dict:
    return message("turn", {"currentPlayer": current})


def finish(winner: int) -> dict:
    return message("finish", {"winner": winner})


def error(err: GameError, request: str, msg_id: int = 0) -> dict:
    return message("error", {"code": err.code, "errorText": err.text, "request": request}, msg_id)


def ping() -> dict:
    return message("ping", {})


REQUEST_TYPES: dict[type, str] = {
    RegisterRequest: "register",
    CreateRoomRequest: "create_room",
    JoinRoomRequest: "join_room",
    PlaceFleetRequest: "place_fleet",
    AttackRequest: "attack",
    RandomAttackRequest: "random_attack",
}
