from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from stagecraft.sim.model import DIRECTION_BY_OFFSET, Character, Direction, Rule, self_offset
from stagecraft.sim.patterns import PatternMatcher
from stagecraft.sim.spatial import SpatialIndex
from stagecraft.sim.triggers import TriggerEvaluator

logger = logging.getLogger(__name__)

OUTCOME_NO_MATCH = "no_match"
OUTCOME_MOVED = "moved"
OUTCOME_STAYED = "stayed"
OUTCOME_BLOCKED = "blocked"


@dataclass(frozen=True)
class Resolution:
    moved: bool
    new_x: int
    new_y: int
    new_direction: Direction
    rule_id: str | None = None
    outcome: str = OUTCOME_NO_MATCH


class RuleResolver:
    """Picks at most one rule per character per tick and computes its move.

    The first rule (lowest index) whose trigger and before-pattern both hold
    wins. A winning rule that cannot move its character, whether because the
    after-template has no ``self`` cell or because the destination is blocked,
    is still the winner: later rules are not tried.
    """

    def __init__(self, index: SpatialIndex, evaluator: TriggerEvaluator, matcher: PatternMatcher) -> None:
        self.index = index
        self.evaluator = evaluator
        self.matcher = matcher

    def resolve(self, character: Character, ordered_rules: Sequence[Rule], now: float) -> Resolution:
        for rule in ordered_rules:
            if not self.evaluator.evaluate(rule, character, now):
                continue
            if not self.matcher.matches(character, rule.before):
                continue
            return self._apply(character, rule)
        return self._unchanged(character)

    def _apply(self, character: Character, rule: Rule) -> Resolution:
        offset = self_offset(rule.after)
        if offset is None or offset == (0, 0):
            return self._unchanged(character, rule_id=rule.rule_id, outcome=OUTCOME_STAYED)
        dx, dy = offset
        new_x = character.x + dx
        new_y = character.y + dy
        if not self.index.is_valid_move(character, new_x, new_y):
            logger.debug(
                "move blocked character=%s rule=%s from=(%d,%d) to=(%d,%d)",
                character.character_id,
                rule.rule_id,
                character.x,
                character.y,
                new_x,
                new_y,
            )
            return self._unchanged(character, rule_id=rule.rule_id, outcome=OUTCOME_BLOCKED)
        return Resolution(
            moved=True,
            new_x=new_x,
            new_y=new_y,
            new_direction=DIRECTION_BY_OFFSET.get(offset, character.direction),
            rule_id=rule.rule_id,
            outcome=OUTCOME_MOVED,
        )

    @staticmethod
    def _unchanged(
        character: Character,
        *,
        rule_id: str | None = None,
        outcome: str = OUTCOME_NO_MATCH,
    ) -> Resolution:
        return Resolution(
            moved=False,
            new_x=character.x,
            new_y=character.y,
            new_direction=character.direction,
            rule_id=rule_id,
            outcome=outcome,
        )
