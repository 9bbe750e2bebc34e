from __future__ import annotations

from stagecraft.sim.errors import InvariantViolation
from stagecraft.sim.model import PATTERN_CENTER, Character, Pattern
from stagecraft.sim.spatial import SpatialIndex

NEIGHBOR_OFFSETS: tuple[tuple[int, int], ...] = tuple(
    (dx, dy)
    for dy in (-1, 0, 1)
    for dx in (-1, 0, 1)
    if (dx, dy) != (0, 0)
)


class PatternMatcher:
    """Structural match of a before-template against the live grid.

    Only occupancy is compared: a non-empty template cell needs at least one
    character in the matching world cell, an empty one needs none. Off-grid
    cells read as empty, never as "anything goes".
    """

    def __init__(self, index: SpatialIndex) -> None:
        self.index = index

    def matches(self, character: Character, before: Pattern) -> bool:
        if not before[PATTERN_CENTER][PATTERN_CENTER].is_self:
            raise InvariantViolation(
                f"rule for character '{character.character_id}' lost the acting character at before[1][1]"
            )
        for dx, dy in NEIGHBOR_OFFSETS:
            expected = before[dy + PATTERN_CENTER][dx + PATTERN_CENTER].is_occupied
            x = character.x + dx
            y = character.y + dy
            if not self.index.is_in_bounds(x, y):
                if expected:
                    return False
                continue
            if self.index.is_occupied(x, y) != expected:
                return False
        return True
