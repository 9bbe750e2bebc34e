from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

from stagecraft.sim.errors import InvariantViolation, ValidationError

PATTERN_SIZE = 3
PATTERN_CENTER = 1
UNPLACED = -1
DEFAULT_SPRITE_SIZE = 8

MIN_SPEED_MS = 100
MAX_SPEED_MS = 2000
DEFAULT_SPEED_MS = 1000
DEFAULT_TIMER_INTERVAL_MS = 1000

GRID_PRESETS: dict[str, tuple[int, int]] = {
    "small": (8, 8),
    "medium": (16, 16),
    "large": (32, 32),
}
DEFAULT_GRID_PRESET = "small"


class Direction(Enum):
    NONE = "none"
    UP = "up"
    DOWN = "down"
    LEFT = "left"
    RIGHT = "right"


DIRECTION_BY_OFFSET: dict[tuple[int, int], Direction] = {
    (0, -1): Direction.UP,
    (0, 1): Direction.DOWN,
    (-1, 0): Direction.LEFT,
    (1, 0): Direction.RIGHT,
}


class Trigger(Enum):
    ALWAYS = "always"
    KEY_PRESS = "keyPress"
    COLLISION = "collision"
    PROXIMITY = "proximity"
    TIMER = "timer"
    CLICK = "click"


class CellKind(Enum):
    EMPTY = "empty"
    SELF = "self"
    OTHER = "other"


def clamp_speed(speed_ms: Any) -> int:
    if isinstance(speed_ms, bool) or not isinstance(speed_ms, (int, float)):
        raise ValidationError("speed must be a number of milliseconds")
    return int(min(MAX_SPEED_MS, max(MIN_SPEED_MS, speed_ms)))


def _require_id(value: Any, *, field_name: str) -> str:
    if not isinstance(value, str) or not value:
        raise ValidationError(f"{field_name} must be a non-empty string")
    return value


def _require_int(value: Any, *, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field_name} must be an integer")
    return value


@dataclass(frozen=True)
class PatternCell:
    """One cell of a before/after template.

    ``self`` marks the acting character, ``other`` any other character
    (optionally narrowed to a character type), ``empty`` nothing at all.
    Templates never hold live character objects.
    """

    kind: CellKind
    template_id: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.kind, CellKind):
            raise ValidationError("pattern cell kind must be a CellKind")
        if self.kind is not CellKind.OTHER and self.template_id is not None:
            raise ValidationError("only 'other' pattern cells carry a template_id")

    @property
    def is_occupied(self) -> bool:
        return self.kind is not CellKind.EMPTY

    @property
    def is_self(self) -> bool:
        return self.kind is CellKind.SELF

    @classmethod
    def other(cls, template_id: str | None = None) -> "PatternCell":
        return cls(kind=CellKind.OTHER, template_id=template_id)

    def to_dict(self) -> dict[str, Any] | None:
        if self.kind is CellKind.EMPTY:
            return None
        if self.kind is CellKind.SELF:
            return {"kind": CellKind.SELF.value}
        return {"kind": CellKind.OTHER.value, "template_id": self.template_id}

    @classmethod
    def from_dict(cls, data: Any, *, owner_id: str | None = None) -> "PatternCell":
        if isinstance(data, PatternCell):
            return data
        if data is None:
            return EMPTY_CELL
        if data == CellKind.SELF.value:
            return SELF_CELL
        if not isinstance(data, dict):
            raise ValidationError("pattern cell must be null or an object")
        if "kind" in data:
            try:
                kind = CellKind(data["kind"])
            except ValueError:
                raise ValidationError(f"unknown pattern cell kind: {data['kind']!r}") from None
            if kind is CellKind.OTHER:
                template_id = data.get("template_id")
                return cls.other(None if template_id is None else str(template_id))
            return SELF_CELL if kind is CellKind.SELF else EMPTY_CELL
        # Older documents embed whole character objects as placeholders.
        if "id" in data:
            character_id = str(data["id"])
            if owner_id is not None and character_id == owner_id:
                return SELF_CELL
            return cls.other(character_id)
        raise ValidationError("pattern cell object requires 'kind' or 'id'")


EMPTY_CELL = PatternCell(kind=CellKind.EMPTY)
SELF_CELL = PatternCell(kind=CellKind.SELF)

Pattern = tuple[tuple[PatternCell, ...], ...]


def normalize_pattern(raw: Any, *, field_name: str, owner_id: str | None = None) -> Pattern:
    if not isinstance(raw, (list, tuple)) or len(raw) != PATTERN_SIZE:
        raise ValidationError(f"{field_name} must be a {PATTERN_SIZE}x{PATTERN_SIZE} grid")
    rows: list[tuple[PatternCell, ...]] = []
    for row in raw:
        if not isinstance(row, (list, tuple)) or len(row) != PATTERN_SIZE:
            raise ValidationError(f"{field_name} must be a {PATTERN_SIZE}x{PATTERN_SIZE} grid")
        rows.append(tuple(PatternCell.from_dict(cell, owner_id=owner_id) for cell in row))
    return tuple(rows)


def pattern_from_offsets(
    occupied: Iterable[tuple[int, int]] = (),
    *,
    self_at: tuple[int, int] | None = (0, 0),
    template_ids: dict[tuple[int, int], str] | None = None,
) -> Pattern:
    """Build a template from offsets relative to the center, (dx, dy) in [-1, 1]."""
    grid = [[EMPTY_CELL for _ in range(PATTERN_SIZE)] for _ in range(PATTERN_SIZE)]
    types = template_ids or {}
    for dx, dy in occupied:
        _check_offset(dx, dy)
        grid[dy + PATTERN_CENTER][dx + PATTERN_CENTER] = PatternCell.other(types.get((dx, dy)))
    if self_at is not None:
        dx, dy = self_at
        _check_offset(dx, dy)
        grid[dy + PATTERN_CENTER][dx + PATTERN_CENTER] = SELF_CELL
    return tuple(tuple(row) for row in grid)


def _check_offset(dx: int, dy: int) -> None:
    if not (-PATTERN_CENTER <= dx <= PATTERN_CENTER and -PATTERN_CENTER <= dy <= PATTERN_CENTER):
        raise ValidationError(f"pattern offset ({dx}, {dy}) lies outside the 3x3 template")


def self_offset(after: Pattern) -> tuple[int, int] | None:
    """Offset of the single ``self`` cell of an after-template, if any."""
    found: tuple[int, int] | None = None
    for row_index, row in enumerate(after):
        for col_index, cell in enumerate(row):
            if not cell.is_self:
                continue
            if found is not None:
                raise InvariantViolation("after-template holds more than one cell for the acting character")
            found = (col_index - PATTERN_CENTER, row_index - PATTERN_CENTER)
    return found


def check_rule_invariants(before: Pattern, after: Pattern) -> None:
    if not before[PATTERN_CENTER][PATTERN_CENTER].is_self:
        raise InvariantViolation("before[1][1] must be the acting character")
    for row_index, row in enumerate(before):
        for col_index, cell in enumerate(row):
            if cell.is_self and (row_index, col_index) != (PATTERN_CENTER, PATTERN_CENTER):
                raise InvariantViolation("before-template places the acting character off-center")
    self_offset(after)


def pattern_to_rows(pattern: Pattern) -> list[list[dict[str, Any] | None]]:
    return [[cell.to_dict() for cell in row] for row in pattern]


@dataclass(frozen=True)
class GridSize:
    width: int
    height: int

    def __post_init__(self) -> None:
        _require_int(self.width, field_name="grid.width")
        _require_int(self.height, field_name="grid.height")
        if self.width < 1 or self.height < 1:
            raise ValidationError("grid width and height must be >= 1")

    def contains(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    @classmethod
    def preset(cls, name: str) -> "GridSize":
        if name not in GRID_PRESETS:
            raise ValidationError(f"unknown grid preset: {name}")
        width, height = GRID_PRESETS[name]
        return cls(width=width, height=height)

    def to_dict(self) -> dict[str, int]:
        return {"width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GridSize":
        if not isinstance(data, dict):
            raise ValidationError("grid must be an object")
        return cls(width=data.get("width"), height=data.get("height"))


@dataclass
class SimulationSettings:
    speed_ms: int = DEFAULT_SPEED_MS
    timer_interval_ms: int = DEFAULT_TIMER_INTERVAL_MS

    def __post_init__(self) -> None:
        self.speed_ms = clamp_speed(self.speed_ms)
        _require_int(self.timer_interval_ms, field_name="settings.timer_interval_ms")
        if self.timer_interval_ms < 1:
            raise ValidationError("settings.timer_interval_ms must be >= 1")

    def to_dict(self) -> dict[str, int]:
        return {"speed_ms": self.speed_ms, "timer_interval_ms": self.timer_interval_ms}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "SimulationSettings":
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ValidationError("settings must be an object")
        return cls(
            speed_ms=data.get("speed_ms", DEFAULT_SPEED_MS),
            timer_interval_ms=data.get("timer_interval_ms", DEFAULT_TIMER_INTERVAL_MS),
        )


@dataclass
class Character:
    character_id: str
    template_id: str | None = None
    name: str = ""
    x: int = UNPLACED
    y: int = UNPLACED
    size: int = DEFAULT_SPRITE_SIZE
    pixels: list[list[str]] = field(default_factory=list)
    direction: Direction = Direction.NONE
    initial_x: int | None = None
    initial_y: int | None = None
    is_solid: bool = False
    allow_overlap: bool = False

    def __post_init__(self) -> None:
        _require_id(self.character_id, field_name="character_id")
        if self.template_id is None:
            self.template_id = self.character_id
        _require_id(self.template_id, field_name="template_id")
        _require_int(self.x, field_name="character.x")
        _require_int(self.y, field_name="character.y")
        if (self.x == UNPLACED) != (self.y == UNPLACED):
            raise ValidationError(
                f"character position ({self.x}, {self.y}) is half placed; use ({UNPLACED}, {UNPLACED}) for unplaced"
            )
        _require_int(self.size, field_name="character.size")
        if self.size < 1:
            raise ValidationError("character.size must be >= 1")
        if not isinstance(self.direction, Direction):
            try:
                self.direction = Direction(self.direction)
            except ValueError:
                raise ValidationError(f"unknown direction: {self.direction!r}") from None
        if self.pixels:
            if len(self.pixels) != self.size or any(len(row) != self.size for row in self.pixels):
                raise ValidationError("character.pixels must be a size x size grid")
            self.pixels = [[str(color) for color in row] for row in self.pixels]
        for name in ("initial_x", "initial_y"):
            value = getattr(self, name)
            if value is not None:
                _require_int(value, field_name=f"character.{name}")
        self.is_solid = bool(self.is_solid)
        self.allow_overlap = bool(self.allow_overlap)

    @property
    def is_placed(self) -> bool:
        return self.x != UNPLACED and self.y != UNPLACED

    @property
    def position(self) -> tuple[int, int]:
        return (self.x, self.y)

    def to_dict(self) -> dict[str, Any]:
        return {
            "character_id": self.character_id,
            "template_id": self.template_id,
            "name": self.name,
            "x": self.x,
            "y": self.y,
            "size": self.size,
            "pixels": copy.deepcopy(self.pixels),
            "direction": self.direction.value,
            "initial_x": self.initial_x,
            "initial_y": self.initial_y,
            "is_solid": self.is_solid,
            "allow_overlap": self.allow_overlap,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Character":
        if not isinstance(data, dict):
            raise ValidationError("character must be an object")
        return cls(
            character_id=data.get("character_id"),
            template_id=(str(data["template_id"]) if data.get("template_id") is not None else None),
            name=str(data.get("name", "")),
            x=data.get("x", UNPLACED),
            y=data.get("y", UNPLACED),
            size=data.get("size", DEFAULT_SPRITE_SIZE),
            pixels=[list(row) for row in data.get("pixels", [])],
            direction=data.get("direction", Direction.NONE.value),
            initial_x=data.get("initial_x"),
            initial_y=data.get("initial_y"),
            is_solid=bool(data.get("is_solid", False)),
            allow_overlap=bool(data.get("allow_overlap", False)),
        )


@dataclass
class Rule:
    rule_id: str
    before: Pattern
    after: Pattern
    trigger: Trigger = Trigger.ALWAYS
    trigger_key: str | None = None
    proximity: int | None = None
    target_character: str | None = None

    def __post_init__(self) -> None:
        _require_id(self.rule_id, field_name="rule_id")
        self.before = normalize_pattern(self.before, field_name="rule.before")
        self.after = normalize_pattern(self.after, field_name="rule.after")
        if not isinstance(self.trigger, Trigger):
            try:
                self.trigger = Trigger(self.trigger)
            except ValueError:
                raise ValidationError(f"unknown trigger: {self.trigger!r}") from None
        if self.trigger is Trigger.KEY_PRESS:
            _require_id(self.trigger_key, field_name="rule.trigger_key")
        if self.trigger is Trigger.PROXIMITY and self.proximity is None:
            raise ValidationError("proximity rules require rule.proximity")
        if self.proximity is not None:
            _require_int(self.proximity, field_name="rule.proximity")
            if self.proximity < 1:
                raise ValidationError("rule.proximity must be >= 1")
        if self.target_character is not None:
            _require_id(self.target_character, field_name="rule.target_character")
        check_rule_invariants(self.before, self.after)

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "before": pattern_to_rows(self.before),
            "after": pattern_to_rows(self.after),
            "trigger": self.trigger.value,
            "trigger_key": self.trigger_key,
            "proximity": self.proximity,
            "target_character": self.target_character,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], *, owner_id: str | None = None) -> "Rule":
        if not isinstance(data, dict):
            raise ValidationError("rule must be an object")
        return cls(
            rule_id=data.get("rule_id"),
            before=normalize_pattern(data.get("before"), field_name="rule.before", owner_id=owner_id),
            after=normalize_pattern(data.get("after"), field_name="rule.after", owner_id=owner_id),
            trigger=data.get("trigger", Trigger.ALWAYS.value),
            trigger_key=data.get("trigger_key"),
            proximity=data.get("proximity"),
            target_character=data.get("target_character"),
        )
