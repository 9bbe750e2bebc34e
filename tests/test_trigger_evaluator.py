from stagecraft.sim.model import Character, GridSize, Rule, Trigger, pattern_from_offsets
from stagecraft.sim.spatial import SpatialIndex
from stagecraft.sim.triggers import InputState, TriggerEvaluator


def _rule(trigger: Trigger, **kwargs: object) -> Rule:
    return Rule(
        rule_id=f"{trigger.value}-rule",
        before=pattern_from_offsets(),
        after=pattern_from_offsets(),
        trigger=trigger,
        **kwargs,
    )


def _build_evaluator(characters: list[Character]) -> TriggerEvaluator:
    index = SpatialIndex(GridSize(width=8, height=8))
    index.rebuild(characters)
    return TriggerEvaluator(index, InputState(), timer_interval_ms=1000)


def test_always_trigger_holds() -> None:
    hero = Character(character_id="hero", x=1, y=1)
    evaluator = _build_evaluator([hero])

    assert evaluator.evaluate(_rule(Trigger.ALWAYS), hero, 0.0) is True


def test_key_press_trigger_is_case_insensitive_and_follows_held_keys() -> None:
    hero = Character(character_id="hero", x=1, y=1)
    evaluator = _build_evaluator([hero])
    rule = _rule(Trigger.KEY_PRESS, trigger_key="ArrowUp")

    assert evaluator.evaluate(rule, hero, 0.0) is False
    evaluator.input.key_down("arrowup")
    assert evaluator.evaluate(rule, hero, 0.0) is True
    evaluator.input.key_up("ARROWUP")
    assert evaluator.evaluate(rule, hero, 0.0) is False

    evaluator.input.key_down("ArrowUp")
    evaluator.input.release_all()
    assert evaluator.evaluate(rule, hero, 0.0) is False


def test_collision_trigger_needs_a_cooccupant_of_the_target_type() -> None:
    hero = Character(character_id="hero", x=2, y=2)
    coin = Character(character_id="coin-1", template_id="coin", x=2, y=2, allow_overlap=True)
    evaluator = _build_evaluator([hero, coin])

    assert evaluator.evaluate(_rule(Trigger.COLLISION), hero, 0.0) is True
    assert evaluator.evaluate(_rule(Trigger.COLLISION, target_character="coin"), hero, 0.0) is True
    assert evaluator.evaluate(_rule(Trigger.COLLISION, target_character="coin-1"), hero, 0.0) is True
    assert evaluator.evaluate(_rule(Trigger.COLLISION, target_character="gem"), hero, 0.0) is False

    evaluator.index.rebuild([hero])
    assert evaluator.evaluate(_rule(Trigger.COLLISION), hero, 0.0) is False


def test_proximity_trigger_uses_inclusive_range() -> None:
    hero = Character(character_id="hero", x=2, y=2)
    other = Character(character_id="other", x=4, y=3)
    evaluator = _build_evaluator([hero, other])

    assert evaluator.evaluate(_rule(Trigger.PROXIMITY, proximity=2), hero, 0.0) is True
    assert evaluator.evaluate(_rule(Trigger.PROXIMITY, proximity=1), hero, 0.0) is False


def test_timer_trigger_is_shared_across_a_pass() -> None:
    hero = Character(character_id="hero", x=1, y=1)
    villain = Character(character_id="villain", x=5, y=5)
    evaluator = _build_evaluator([hero, villain])
    rule = _rule(Trigger.TIMER)

    evaluator.begin_pass(0.0)
    assert evaluator.evaluate(rule, hero, 0.0) is False
    evaluator.end_pass(0.0)
    assert evaluator.timer_reference == 0.0

    evaluator.begin_pass(1000.0)
    assert evaluator.evaluate(rule, hero, 1000.0) is True
    assert evaluator.evaluate(rule, villain, 1000.0) is True
    evaluator.end_pass(1000.0)
    assert evaluator.timer_reference == 1000.0

    evaluator.begin_pass(1500.0)
    assert evaluator.evaluate(rule, hero, 1500.0) is False
    evaluator.end_pass(1500.0)


def test_timer_reference_only_moves_when_a_timer_rule_fired() -> None:
    evaluator = _build_evaluator([])
    evaluator.reset_timer(0.0)

    evaluator.begin_pass(2000.0)
    evaluator.end_pass(2000.0)

    assert evaluator.timer_reference == 0.0


def test_click_is_visible_for_one_pass_on_the_clicked_cell() -> None:
    hero = Character(character_id="hero", x=3, y=4)
    other = Character(character_id="other", x=0, y=0)
    evaluator = _build_evaluator([hero, other])
    rule = _rule(Trigger.CLICK)

    evaluator.input.click(3, 4)
    evaluator.begin_pass(0.0)
    assert evaluator.evaluate(rule, hero, 0.0) is True
    assert evaluator.evaluate(rule, hero, 0.0) is True
    assert evaluator.evaluate(rule, other, 0.0) is False
    evaluator.end_pass(0.0)

    assert evaluator.input.last_click is None
    evaluator.begin_pass(100.0)
    assert evaluator.evaluate(rule, hero, 100.0) is False
    evaluator.end_pass(100.0)
