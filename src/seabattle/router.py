"""Turn session events into the messages each player receives.

One router is attached per session when the registry creates it.  Start
events go only to the player whose fleet they carry; every other event is
fanned out to both seats.  Offline players are skipped by the ``send``
callable, not here.
"""

from __future__ import annotations

import logging
from typing import Callable

from . import protocol
from .events import Category, Event
from .session import GameSession

logger = logging.getLogger(__name__)

SendToPlayer = Callable[[int, dict], None]


class EventRouter:
    """Session subscriber mapping `Event` objects to outbound messages."""

    def __init__(self, session: GameSession, send: SendToPlayer) -> None:
        self._session = session
        self._send = send

    def __call__(self, ev: Event) -> None:
        try:
            self.dispatch(ev)
        except Exception:  # noqa: BLE001
            logger.exception("Could not route %s for game %d", ev.type, self._session.id)

    def dispatch(self, ev: Event) -> None:
        if ev.category is Category.TURN:
            self._on_play(ev)
        elif ev.category is Category.SYSTEM:
            self._on_forfeit(ev)
        else:  # pragma: no cover
            logger.debug("Ignoring event %s", ev)

    def _on_play(self, ev: Event) -> None:
        data = ev.payload
        if ev.type == "start":
            self._send(data["player"], protocol.game_started(data["ships"], data["current"]))
        elif ev.type == "shot":
            self._to_both(protocol.attack_result(data["position"], data["attacker"], data["outcome"].value))
        elif ev.type == "turn":
            self._to_both(protocol.turn(data["current"]))
        elif ev.type == "finish":
            self._to_both(protocol.finish(data["winner"]))
        else:
            logger.debug("Unhandled play event: %s", ev)

    def _on_forfeit(self, ev: Event) -> None:
        if ev.type == "finish":
            # the leaver's connection is already unbound; only the survivor hears this
            self._to_both(protocol.finish(ev.payload["winner"]))
        else:
            logger.debug("Unhandled system event: %s", ev)

    def _to_both(self, msg: dict) -> None:
        for pid in self._session.players:
            self._send(pid, msg)
