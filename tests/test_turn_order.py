"""GameSession state machine: placement, turn ownership, finishing."""

from __future__ import annotations

import logging

import numpy as np
import pytest

from conftest import make_ship, standard_ships
from seabattle.attack import Outcome
from seabattle.board import Cell, Position
from seabattle.errors import PlacementError, ShotError, StateError
from seabattle.events import Category, Event
from seabattle.session import GameSession, Phase

A, B = 1, 2

# cells of B's standard fleet, and a cell that is water in it
SHIP_CELL = Position(0, 0)
WATER = Position(9, 9)


@pytest.fixture
def events() -> list[Event]:
    return []


@pytest.fixture
def session(events) -> GameSession:
    s = GameSession(7, A, B, rng=np.random.default_rng(3))
    s.subscribe(events.append)
    return s


@pytest.fixture
def started(session, events) -> GameSession:
    session.place_fleet(A, standard_ships())
    session.place_fleet(B, standard_ships())
    events.clear()
    return session


def _types(events) -> list[str]:
    return [e.type for e in events]


def test_game_starts_once_both_fleets_placed(session, events) -> None:
    assert session.place_fleet(A, standard_ships()) is False
    assert session.phase is Phase.AWAITING_FLEETS
    assert events == []
    assert session.place_fleet(B, standard_ships()) is True
    assert session.phase is Phase.IN_PROGRESS
    assert session.started
    starts = [e for e in events if e.type == "start"]
    assert [e.payload["player"] for e in starts] == [A, B]
    assert all(e.payload["current"] == A for e in starts)
    assert starts[1].payload["ships"] is session.fleet(B)
    assert _types(events) == ["start", "start", "turn"]


def test_invalid_fleet_is_rejected_without_state_change(session) -> None:
    with pytest.raises(PlacementError):
        session.place_fleet(A, standard_ships()[:-1])
    assert not session.fleet(A)
    assert session.place_fleet(A, standard_ships()) is False


def test_fleet_cannot_be_placed_twice(session) -> None:
    session.place_fleet(A, standard_ships())
    with pytest.raises(StateError, match="already placed"):
        session.place_fleet(A, standard_ships())


def test_attack_before_start_is_rejected(session) -> None:
    session.place_fleet(A, standard_ships())
    with pytest.raises(StateError, match="not started"):
        session.attack(A, WATER)


def test_out_of_turn_shot_does_not_touch_grid(started, events) -> None:
    with pytest.raises(StateError, match="Not your turn"):
        started.attack(B, SHIP_CELL)
    assert started.grid(A)[SHIP_CELL] is Cell.UNKNOWN
    assert started.turn_owner == A
    assert events == []


def test_miss_passes_turn(started, events) -> None:
    shot = started.attack(A, WATER)
    assert shot.outcome is Outcome.MISS
    assert started.turn_owner == B
    assert _types(events) == ["shot", "turn"]
    assert events[0].payload["attacker"] == A
    assert events[1].payload["current"] == B


def test_hit_keeps_turn(started, events) -> None:
    shot = started.attack(A, SHIP_CELL)
    assert shot.outcome is Outcome.HIT
    assert started.turn_owner == A
    assert _types(events) == ["shot"]


def test_sunk_keeps_turn_and_reports_revealed_cells(started, events) -> None:
    shot = started.attack(A, Position(9, 4))
    assert shot.outcome is Outcome.SUNK
    assert started.turn_owner == A
    assert len(events) == 1 + len(shot.revealed)
    assert all(e.payload["outcome"] is Outcome.MISS for e in events[1:])


def test_turns_alternate_only_on_miss(started) -> None:
    owners = []
    for pos in (Position(9, 9), Position(9, 9), Position(0, 0), Position(9, 8)):
        owners.append(started.turn_owner)
        started.attack(started.turn_owner, pos)
    # A misses, B misses, A hits, A misses
    assert owners == [A, B, A, A]
    assert started.turn_owner == B


def test_repeat_shot_is_rejected(started) -> None:
    started.attack(A, SHIP_CELL)
    with pytest.raises(ShotError):
        started.attack(A, SHIP_CELL)
    assert started.turn_owner == A


def test_destroying_fleet_finishes_once(started, events) -> None:
    for ship in standard_ships():
        for cell in ship.cells():
            shot = started.attack(A, cell)
    assert shot.all_sunk
    assert started.finished
    assert started.winner == A
    assert started.win_reason == "fleet destroyed"
    assert events[-1].type == "finish"
    assert events[-1].category is Category.TURN
    assert sum(e.type == "finish" for e in events) == 1
    with pytest.raises(StateError, match="finished"):
        started.attack(A, WATER)
    assert started.forfeit(B) is None


def test_forfeit_during_battle(started, events) -> None:
    assert started.forfeit(A) == B
    assert started.finished and started.winner == B
    assert started.started
    assert events[-1] == Event(Category.SYSTEM, "finish", {"winner": B, "reason": "disconnect"})


def test_forfeit_during_placement(session) -> None:
    session.place_fleet(A, standard_ships())
    assert session.forfeit(A) == B
    assert session.phase is Phase.FINISHED
    assert not session.started
    with pytest.raises(StateError):
        session.place_fleet(B, standard_ships())


def test_random_attack_uses_unknown_cells(started) -> None:
    seen = set()
    for _ in range(30):
        attacker = started.turn_owner
        shot = started.random_attack(attacker)
        assert (attacker, shot.position) not in seen
        seen.add((attacker, shot.position))
        assert started.grid(started.opponent(attacker))[shot.position] is not Cell.UNKNOWN
        if started.finished:
            break


def test_stranger_cannot_act(started) -> None:
    with pytest.raises(StateError, match="not in game"):
        started.attack(99, WATER)


def test_small_board_session() -> None:
    s = GameSession(1, A, B, size=4, quota={2: 1})
    s.place_fleet(A, [make_ship(0, 0, 2)])
    s.place_fleet(B, [make_ship(2, 3, 2)])
    assert s.attack(A, Position(2, 3)).outcome is Outcome.HIT
    last = s.attack(A, Position(3, 3))
    assert last.all_sunk and s.winner == A


def test_shots_and_result_are_logged(started, caplog) -> None:
    with caplog.at_level(logging.DEBUG, logger="seabattle.session"):
        started.attack(A, WATER)
        started.forfeit(B)
    assert ". . . . . . . . . o" in caplog.text
    assert "player 1 won by disconnect after 0 hits and 1 misses" in caplog.text


def test_placement_forfeit_is_logged(session, caplog) -> None:
    with caplog.at_level(logging.INFO, logger="seabattle.session"):
        session.forfeit(B)
    assert "left during fleet placement" in caplog.text
