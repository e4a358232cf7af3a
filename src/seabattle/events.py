"""Events a GameSession publishes to its subscribers.

A session emits strongly-typed events while it holds its lock; subscribers
(the session's :class:`~seabattle.router.EventRouter`, tests) translate them
into wire messages without reaching into session internals.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Dict


class Category(Enum):
    """Whether an event came from play or from a forfeit."""

    TURN = auto()  # per-turn lifecycle (start, shot, turn, finish)
    SYSTEM = auto()  # forfeits and other non-shot transitions


@dataclass(frozen=True)
class Event:
    """One state change inside a session, with a type-specific payload."""

    category: Category
    type: str  # finer-grained identifier, e.g. "start", "shot", "finish"
    payload: Dict[str, Any]
