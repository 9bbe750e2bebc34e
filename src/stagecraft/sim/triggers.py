from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from stagecraft.sim.model import DEFAULT_TIMER_INTERVAL_MS, Character, Rule, Trigger
from stagecraft.sim.spatial import SpatialIndex


def normalize_key(key: str) -> str:
    return str(key).lower()


@dataclass
class InputState:
    """Raw host input: held keys and the most recent grid click."""

    pressed_keys: set[str] = field(default_factory=set)
    last_click: tuple[int, int] | None = None

    def key_down(self, key: str) -> None:
        self.pressed_keys.add(normalize_key(key))

    def key_up(self, key: str) -> None:
        self.pressed_keys.discard(normalize_key(key))

    def release_all(self) -> None:
        self.pressed_keys.clear()

    def click(self, x: int, y: int) -> None:
        self.last_click = (int(x), int(y))

    def clear(self) -> None:
        self.pressed_keys.clear()
        self.last_click = None

    def is_pressed(self, key: str) -> bool:
        return normalize_key(key) in self.pressed_keys

    def to_dict(self) -> dict[str, Any]:
        return {
            "pressed_keys": sorted(self.pressed_keys),
            "last_click": list(self.last_click) if self.last_click is not None else None,
        }


class TriggerEvaluator:
    """Decides whether a rule's trigger holds for a character at this tick.

    Evaluation happens inside a pass bracketed by ``begin_pass``/``end_pass``.
    A recorded click stays visible for the whole pass, so every rule of every
    character sees it once, and is cleared when the pass ends.

    All timer-triggered rules share one timer: at ``begin_pass`` the timer is
    due when ``timer_interval_ms`` has elapsed since it last fired, every timer
    rule in that pass observes the same answer, and if any of them fired the
    reference point moves to ``now`` at ``end_pass``. Rules do not keep
    independent cadences.
    """

    def __init__(
        self,
        index: SpatialIndex,
        input_state: InputState,
        *,
        timer_interval_ms: int = DEFAULT_TIMER_INTERVAL_MS,
    ) -> None:
        self.index = index
        self.input = input_state
        self.timer_interval_ms = timer_interval_ms
        self.timer_reference: float | None = None
        self._timer_due = False
        self._timer_fired = False
        self._pass_click: tuple[int, int] | None = None

    def reset_timer(self, now: float | None) -> None:
        self.timer_reference = now
        self._timer_due = False
        self._timer_fired = False

    def begin_pass(self, now: float) -> None:
        if self.timer_reference is None:
            self.timer_reference = now
        self._timer_due = now - self.timer_reference >= self.timer_interval_ms
        self._timer_fired = False
        self._pass_click = self.input.last_click

    def end_pass(self, now: float) -> None:
        if self._timer_fired:
            self.timer_reference = now
        self._timer_due = False
        self._timer_fired = False
        self._pass_click = None
        self.input.last_click = None

    def evaluate(self, rule: Rule, character: Character, now: float) -> bool:
        trigger = rule.trigger
        if trigger is Trigger.ALWAYS:
            return True
        if trigger is Trigger.KEY_PRESS:
            return rule.trigger_key is not None and self.input.is_pressed(rule.trigger_key)
        if trigger is Trigger.COLLISION:
            return any(
                self._matches_target(rule, other)
                for other in self.index.occupants_at(character.x, character.y)
                if other.character_id != character.character_id
            )
        if trigger is Trigger.PROXIMITY:
            return any(
                other.character_id != character.character_id
                for other in self.index.characters_in_range(character.x, character.y, int(rule.proximity or 0))
            )
        if trigger is Trigger.TIMER:
            if self._timer_due:
                self._timer_fired = True
            return self._timer_due
        if trigger is Trigger.CLICK:
            return self._pass_click is not None and self._pass_click == character.position
        return False

    @staticmethod
    def _matches_target(rule: Rule, other: Character) -> bool:
        if rule.target_character is None:
            return True
        return rule.target_character in (other.template_id, other.character_id)
