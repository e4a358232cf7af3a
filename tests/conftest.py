from __future__ import annotations

import sys
from pathlib import Path

# Ensure local `src` directory is importable before project is installed.
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

import logging

import pytest

import seabattle.config as _cfg
from seabattle.board import CLASS_LENGTHS, Orientation, Position, Ship, ShipClass
from seabattle.dispatcher import Dispatcher
from seabattle.registry import Registry

KIND_BY_LENGTH = {length: kind for kind, length in CLASS_LENGTHS.items()}

# Suppress INFO & DEBUG logs from the game core during tests
logging.basicConfig(level=logging.WARNING)


def make_ship(x: int, y: int, length: int, horizontal: bool = True, kind: ShipClass | None = None) -> Ship:
    """Build a ship whose class matches its length unless *kind* says otherwise."""
    return Ship(
        Position(x, y),
        Orientation.HORIZONTAL if horizontal else Orientation.VERTICAL,
        length,
        kind if kind is not None else KIND_BY_LENGTH[length],
    )


def standard_ships() -> list[Ship]:
    """A valid default fleet: 1×4, 2×3, 3×2, 4×1, all in rows 0, 2 and 4."""
    return [
        make_ship(0, 0, 4),
        make_ship(5, 0, 3),
        make_ship(0, 2, 3),
        make_ship(4, 2, 2),
        make_ship(7, 2, 2),
        make_ship(0, 4, 2),
        make_ship(3, 4, 1),
        make_ship(5, 4, 1),
        make_ship(7, 4, 1),
        make_ship(9, 4, 1),
    ]


def ship_to_wire(ship: Ship) -> dict:
    return {
        "position": {"x": ship.position.x, "y": ship.position.y},
        "direction": ship.orientation is Orientation.HORIZONTAL,
        "length": ship.length,
        "type": ship.kind.value,
    }


class RecordingTransport:
    """In-memory stand-in for the TCP transport; records every frame."""

    def __init__(self) -> None:
        self.sent: list[tuple[object, dict]] = []
        self.broadcasts: list[dict] = []

    def send(self, conn, msg: dict) -> None:
        self.sent.append((conn, msg))

    def broadcast(self, msg: dict) -> None:
        self.broadcasts.append(msg)

    def to(self, conn, kind: str | None = None) -> list[dict]:
        return [m for c, m in self.sent if c is conn and (kind is None or m["type"] == kind)]

    def broadcast_of(self, kind: str) -> list[dict]:
        return [m for m in self.broadcasts if m["type"] == kind]

    def clear(self) -> None:
        self.sent.clear()
        self.broadcasts.clear()


@pytest.fixture(autouse=True)
def fast_scrypt(monkeypatch):
    """Keep secret hashing cheap in tests."""
    monkeypatch.setattr(_cfg, "SCRYPT_N", 2**10)


@pytest.fixture
def ships() -> list[Ship]:
    return standard_ships()


@pytest.fixture
def registry() -> Registry:
    return Registry(seed=1234)


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def dispatcher(registry: Registry, transport: RecordingTransport) -> Dispatcher:
    return Dispatcher(registry, transport)
