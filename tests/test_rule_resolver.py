import pytest

from stagecraft.sim.core import Simulation
from stagecraft.sim.errors import InvariantViolation
from stagecraft.sim.model import EMPTY_CELL, Character, Direction, GridSize, Rule, pattern_from_offsets
from stagecraft.sim.resolver import OUTCOME_BLOCKED, OUTCOME_MOVED, OUTCOME_NO_MATCH, OUTCOME_STAYED, Resolution


def _move_rule(rule_id: str, offset: tuple[int, int], *, occupied: list[tuple[int, int]] | None = None) -> Rule:
    return Rule(
        rule_id=rule_id,
        before=pattern_from_offsets(occupied or []),
        after=pattern_from_offsets(self_at=offset),
    )


def _build_sim(x: int, y: int) -> Simulation:
    sim = Simulation(grid=GridSize(width=8, height=8))
    sim.add_character(Character(character_id="hero", x=x, y=y))
    return sim


def _resolve(sim: Simulation, character_id: str = "hero") -> Resolution:
    character = sim.get_character(character_id)
    sim.evaluator.begin_pass(0.0)
    try:
        return sim.resolver.resolve(character, sim.rules_for(character_id), 0.0)
    finally:
        sim.evaluator.end_pass(0.0)


def test_first_matching_rule_wins() -> None:
    sim = _build_sim(3, 3)
    sim.add_rule("hero", _move_rule("r1", (1, 0), occupied=[(0, 1)]))
    sim.add_rule("hero", _move_rule("r2", (1, 0)))
    sim.add_rule("hero", _move_rule("r3", (0, 1)))

    resolution = _resolve(sim)

    assert resolution.moved is True
    assert resolution.rule_id == "r2"
    assert resolution.outcome == OUTCOME_MOVED
    assert (resolution.new_x, resolution.new_y) == (4, 3)
    assert resolution.new_direction is Direction.RIGHT


def test_no_matching_rule_leaves_character_unchanged() -> None:
    sim = _build_sim(3, 3)
    sim.add_rule("hero", _move_rule("r1", (1, 0), occupied=[(0, 1)]))

    resolution = _resolve(sim)

    assert resolution.moved is False
    assert resolution.rule_id is None
    assert resolution.outcome == OUTCOME_NO_MATCH
    assert (resolution.new_x, resolution.new_y) == (3, 3)


def test_matching_rule_without_movement_still_wins() -> None:
    sim = _build_sim(3, 3)
    sim.add_rule("hero", _move_rule("idle", (0, 0)))
    sim.add_rule("hero", _move_rule("walk", (1, 0)))

    resolution = _resolve(sim)

    assert resolution.moved is False
    assert resolution.rule_id == "idle"
    assert resolution.outcome == OUTCOME_STAYED


def test_after_template_without_self_stays_in_place() -> None:
    sim = _build_sim(3, 3)
    sim.add_rule("hero", Rule(rule_id="vanish", before=pattern_from_offsets(), after=pattern_from_offsets(self_at=None)))

    resolution = _resolve(sim)

    assert resolution.outcome == OUTCOME_STAYED
    assert (resolution.new_x, resolution.new_y) == (3, 3)


def test_blocked_winner_stops_rule_search() -> None:
    sim = _build_sim(0, 3)
    sim.add_rule("hero", _move_rule("left", (-1, 0)))
    sim.add_rule("hero", _move_rule("right", (1, 0)))

    resolution = _resolve(sim)

    assert resolution.moved is False
    assert resolution.rule_id == "left"
    assert resolution.outcome == OUTCOME_BLOCKED
    assert resolution.new_x == 0


def test_diagonal_move_keeps_facing() -> None:
    sim = _build_sim(3, 3)
    sim.get_character("hero").direction = Direction.UP
    sim.add_rule("hero", _move_rule("diagonal", (1, 1)))

    resolution = _resolve(sim)

    assert (resolution.new_x, resolution.new_y) == (4, 4)
    assert resolution.new_direction is Direction.UP


def test_corrupted_rule_raises_instead_of_guessing() -> None:
    sim = _build_sim(3, 3)
    rule = sim.add_rule("hero", _move_rule("r1", (1, 0)))
    rule.before = tuple(tuple(EMPTY_CELL for _ in range(3)) for _ in range(3))

    with pytest.raises(InvariantViolation):
        _resolve(sim)
