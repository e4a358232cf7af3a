"""Exception taxonomy shared by the game core and the dispatcher.

Every rejection raised by the core is a :class:`GameError`.  The dispatcher
is the only place that catches them and decides whether the requester gets
an ``error`` message back (validation, not-found, state) or the request is
logged and dropped (protocol).
"""

from __future__ import annotations

import enum


class GameError(Exception):
    """Base for every rejection raised by the game core."""

    code = "error"

    def __init__(self, text: str) -> None:
        super().__init__(text)
        self.text = text


class ValidationError(GameError):
    """Bad placement, bad shot coordinates or an already attacked cell."""

    code = "validation"


class Rejection(str, enum.Enum):
    """Reason attached to a rejected fleet placement."""

    OUT_OF_BOUNDS = "OutOfBounds"
    OVERLAP = "Overlap"
    ADJACENT = "Adjacent"
    BAD_COMPOSITION = "BadComposition"


class PlacementError(ValidationError):
    """Raised when a fleet breaks one of the placement rules."""

    def __init__(self, reason: Rejection, text: str) -> None:
        super().__init__(text)
        self.reason = reason


class ShotError(ValidationError):
    """Raised for a shot outside the board or at a cell already marked."""


class CredentialError(GameError):
    """Raised when a known name is registered with the wrong secret."""

    code = "credential"


class ProtocolError(GameError):
    """Raised when an inbound message cannot be parsed or has an unknown type."""

    code = "protocol"


class NotFoundError(GameError):
    """Raised for an unknown room, session or player id."""

    code = "not_found"


class StateError(GameError):
    """Raised for a request that is well-formed but not allowed right now."""

    code = "state"
