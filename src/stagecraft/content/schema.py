from __future__ import annotations

from typing import Any

SUPPORTED_SCHEMA_VERSIONS = {1}
REQUIRED_PROJECT_FIELDS = {"schema_version", "grid", "characters", "rules"}
VALID_TRIGGERS = {"always", "keyPress", "collision", "proximity", "timer", "click"}
VALID_DIRECTIONS = {"none", "up", "down", "left", "right"}
PATTERN_SIZE = 3


def _is_json_primitive(value: Any) -> bool:
    return value is None or isinstance(value, (bool, int, float, str))


def _validate_json_value(value: Any, *, field_name: str) -> None:
    if _is_json_primitive(value):
        return
    if isinstance(value, list):
        for item in value:
            _validate_json_value(item, field_name=field_name)
        return
    if isinstance(value, dict):
        for key, nested_value in value.items():
            if not isinstance(key, str):
                raise ValueError(f"{field_name} keys must be strings")
            _validate_json_value(nested_value, field_name=field_name)
        return
    raise ValueError(f"{field_name} must contain only canonical JSON primitives")


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _validate_grid(grid: Any) -> tuple[int, int]:
    if not isinstance(grid, dict):
        raise ValueError("grid must be an object")
    width = grid.get("width")
    height = grid.get("height")
    if not _is_int(width) or not _is_int(height) or width < 1 or height < 1:
        raise ValueError("grid.width and grid.height must be positive integers")
    return width, height


def _validate_settings(settings: Any) -> None:
    if settings is None:
        return
    if not isinstance(settings, dict):
        raise ValueError("settings must be an object when present")
    for key in ("speed_ms", "timer_interval_ms"):
        if key in settings and not isinstance(settings[key], (int, float)):
            raise ValueError(f"settings.{key} must be a number")


def _validate_character(row: Any, *, index: int, grid: tuple[int, int]) -> str:
    field_name = f"characters[{index}]"
    if not isinstance(row, dict):
        raise ValueError(f"{field_name} must be an object")
    character_id = row.get("character_id")
    if not isinstance(character_id, str) or not character_id:
        raise ValueError(f"{field_name}.character_id must be a non-empty string")
    x = row.get("x", -1)
    y = row.get("y", -1)
    if not _is_int(x) or not _is_int(y):
        raise ValueError(f"{field_name} position must be integers")
    if (x == -1) != (y == -1):
        raise ValueError(f"{field_name} position ({x}, {y}) is half placed")
    width, height = grid
    if (x, y) != (-1, -1) and not (0 <= x < width and 0 <= y < height):
        raise ValueError(f"{field_name} position ({x}, {y}) is outside the grid")
    direction = row.get("direction", "none")
    if direction not in VALID_DIRECTIONS:
        raise ValueError(f"{field_name} invalid direction: {direction}")
    return character_id


def _validate_pattern(pattern: Any, *, field_name: str) -> None:
    if not isinstance(pattern, list) or len(pattern) != PATTERN_SIZE:
        raise ValueError(f"{field_name} must be a 3x3 list")
    for row in pattern:
        if not isinstance(row, list) or len(row) != PATTERN_SIZE:
            raise ValueError(f"{field_name} must be a 3x3 list")
        for cell in row:
            if cell is not None and not isinstance(cell, (dict, str)):
                raise ValueError(f"{field_name} cells must be null, a string or an object")


def _validate_rules(rules: Any, *, character_ids: set[str]) -> None:
    if not isinstance(rules, dict):
        raise ValueError("rules must be an object keyed by character_id")
    for character_id, rows in rules.items():
        if character_id not in character_ids:
            raise ValueError(f"rules reference unknown character_id: {character_id}")
        if not isinstance(rows, list):
            raise ValueError(f"rules[{character_id}] must be a list")
        seen: set[str] = set()
        for index, row in enumerate(rows):
            field_name = f"rules[{character_id}][{index}]"
            if not isinstance(row, dict):
                raise ValueError(f"{field_name} must be an object")
            rule_id = row.get("rule_id")
            if not isinstance(rule_id, str) or not rule_id:
                raise ValueError(f"{field_name}.rule_id must be a non-empty string")
            if rule_id in seen:
                raise ValueError(f"{field_name} duplicate rule_id: {rule_id}")
            seen.add(rule_id)
            trigger = row.get("trigger", "always")
            if trigger not in VALID_TRIGGERS:
                raise ValueError(f"{field_name} unsupported trigger: {trigger}")
            _validate_pattern(row.get("before"), field_name=f"{field_name}.before")
            _validate_pattern(row.get("after"), field_name=f"{field_name}.after")


def validate_project_payload(payload: Any) -> None:
    if not isinstance(payload, dict):
        raise ValueError("project payload must be an object")
    missing = REQUIRED_PROJECT_FIELDS - set(payload.keys())
    if missing:
        raise ValueError(f"project payload missing fields: {sorted(missing)}")
    if payload["schema_version"] not in SUPPORTED_SCHEMA_VERSIONS:
        raise ValueError(f"unsupported schema_version: {payload['schema_version']}")
    if "project_hash" in payload and not isinstance(payload["project_hash"], str):
        raise ValueError("project_hash must be a string")
    _validate_json_value(payload, field_name="project")

    grid = _validate_grid(payload["grid"])
    _validate_settings(payload.get("settings"))

    characters = payload["characters"]
    if not isinstance(characters, list):
        raise ValueError("characters must be a list")
    character_ids: set[str] = set()
    for index, row in enumerate(characters):
        character_id = _validate_character(row, index=index, grid=grid)
        if character_id in character_ids:
            raise ValueError(f"duplicate character_id: {character_id}")
        character_ids.add(character_id)

    _validate_rules(payload["rules"], character_ids=character_ids)
