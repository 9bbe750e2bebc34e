from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

from stagecraft.sim.clock import SimulationClock
from stagecraft.sim.errors import ValidationError
from stagecraft.sim.hooks import SimulationListener
from stagecraft.sim.model import Character, Direction, GridSize, Rule, SimulationSettings
from stagecraft.sim.patterns import PatternMatcher
from stagecraft.sim.resolver import OUTCOME_BLOCKED, Resolution, RuleResolver
from stagecraft.sim.spatial import SpatialIndex
from stagecraft.sim.triggers import InputState, TriggerEvaluator

SCHEMA_VERSION = 1
MAX_EVENT_TRACE = 256
CHARACTER_MOVED_EVENT_TYPE = "character_moved"
MOVE_BLOCKED_EVENT_TYPE = "move_blocked"
SIMULATION_STARTED_EVENT_TYPE = "simulation_started"
SIMULATION_STOPPED_EVENT_TYPE = "simulation_stopped"
SIMULATION_RESET_EVENT_TYPE = "simulation_reset"


@dataclass
class SimulationState:
    grid: GridSize
    tick: int = 0
    characters: dict[str, Character] = field(default_factory=dict)
    rules: dict[str, list[Rule]] = field(default_factory=dict)
    event_trace: list[dict[str, Any]] = field(default_factory=list)
    input: InputState = field(default_factory=InputState)


class Simulation:
    """One independent rule-based grid simulation.

    The simulation exclusively owns its characters (keyed by stable id, kept
    in insertion order) and the ordered rule list of each character. Every
    collaborator (index, trigger evaluator, matcher, resolver, clock) is
    constructed per instance, so simulations never share state.

    Moves are committed sequentially: within one tick each character is
    resolved against the positions already committed by the characters
    before it in the collection.
    """

    def __init__(self, grid: GridSize, *, settings: SimulationSettings | None = None) -> None:
        self.settings = settings if settings is not None else SimulationSettings()
        self.state = SimulationState(grid=grid)
        self.index = SpatialIndex(grid)
        self.evaluator = TriggerEvaluator(
            self.index,
            self.state.input,
            timer_interval_ms=self.settings.timer_interval_ms,
        )
        self.matcher = PatternMatcher(self.index)
        self.resolver = RuleResolver(self.index, self.evaluator, self.matcher)
        self.clock = SimulationClock(self._step, speed_ms=self.settings.speed_ms)
        self.listeners: list[SimulationListener] = []
        self.last_resolutions: dict[str, Resolution] = {}

    @property
    def grid(self) -> GridSize:
        return self.state.grid

    @property
    def is_running(self) -> bool:
        return self.clock.is_running

    @property
    def speed(self) -> int:
        return self.clock.speed

    def add_character(self, character: Character) -> Character:
        return self._insert_character(character, check_occupancy=True)

    def _insert_character(self, character: Character, *, check_occupancy: bool) -> Character:
        if character.character_id in self.state.characters:
            raise ValidationError(f"duplicate character_id: {character.character_id}")
        if character.is_placed:
            if check_occupancy:
                self._check_placement(character, character.x, character.y)
            else:
                self._check_bounds(character.x, character.y)
            if character.initial_x is None or character.initial_y is None:
                character.initial_x = character.x
                character.initial_y = character.y
        self.state.characters[character.character_id] = character
        self.state.rules.setdefault(character.character_id, [])
        self._refresh_index()
        return character

    def place(self, character: Character | str, x: int, y: int) -> Character:
        if isinstance(character, str):
            target = self.get_character(character)
        else:
            target = self.state.characters.get(character.character_id, character)
        self._check_placement(target, x, y)
        if target.character_id not in self.state.characters:
            self.state.characters[target.character_id] = target
            self.state.rules.setdefault(target.character_id, [])
        target.x = x
        target.y = y
        target.initial_x = x
        target.initial_y = y
        self._refresh_index()
        return target

    def remove(self, character_id: str) -> bool:
        if character_id not in self.state.characters:
            return False
        del self.state.characters[character_id]
        self.state.rules.pop(character_id, None)
        self.last_resolutions.pop(character_id, None)
        self._refresh_index()
        return True

    def get_character(self, character_id: str) -> Character:
        character = self.state.characters.get(character_id)
        if character is None:
            raise ValidationError(f"unknown character_id: {character_id}")
        return character

    def characters(self) -> list[Character]:
        return list(self.state.characters.values())

    def character_positions(self) -> dict[str, tuple[int, int, Direction]]:
        return {
            character.character_id: (character.x, character.y, character.direction)
            for character in self.state.characters.values()
        }

    def add_rule(self, character_id: str, rule: Rule | dict[str, Any]) -> Rule:
        rules = self._rules_of(character_id)
        normalized = rule if isinstance(rule, Rule) else Rule.from_dict(rule, owner_id=character_id)
        if any(existing.rule_id == normalized.rule_id for existing in rules):
            raise ValidationError(f"duplicate rule_id for character '{character_id}': {normalized.rule_id}")
        rules.append(normalized)
        return normalized

    def remove_rule(self, character_id: str, rule_id: str) -> bool:
        rules = self._rules_of(character_id)
        for index, rule in enumerate(rules):
            if rule.rule_id == rule_id:
                del rules[index]
                return True
        return False

    def reorder_rules(self, character_id: str, from_index: int, to_index: int) -> None:
        rules = self._rules_of(character_id)
        for name, value in (("from_index", from_index), ("to_index", to_index)):
            if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value < len(rules):
                raise ValidationError(f"{name} must be within [0, {len(rules)})")
        rules.insert(to_index, rules.pop(from_index))

    def rules_for(self, character_id: str) -> tuple[Rule, ...]:
        return tuple(self._rules_of(character_id))

    def resize_grid(self, width: int, height: int) -> None:
        grid = GridSize(width=width, height=height)
        for character in self.state.characters.values():
            if character.is_placed and not grid.contains(character.x, character.y):
                raise ValidationError(
                    f"character '{character.character_id}' at ({character.x}, {character.y}) "
                    f"would fall outside a {width}x{height} grid"
                )
        self.state.grid = grid
        self.index.grid = grid
        self._refresh_index()

    def on_key_down(self, key: str) -> None:
        self.state.input.key_down(key)

    def on_key_up(self, key: str) -> None:
        self.state.input.key_up(key)

    def release_all_keys(self) -> None:
        self.state.input.release_all()

    def on_click(self, x: int, y: int) -> None:
        self.state.input.click(x, y)

    def start(self, now: float = 0.0) -> bool:
        if not self.clock.start(now):
            return False
        self.evaluator.reset_timer(now)
        self._append_event_trace_entry(SIMULATION_STARTED_EVENT_TYPE, {"now": now})
        return True

    def stop(self) -> bool:
        if not self.clock.stop():
            return False
        self.state.input.clear()
        self._append_event_trace_entry(SIMULATION_STOPPED_EVENT_TYPE, {})
        return True

    def tick(self, now: float) -> bool:
        return self.clock.tick(now)

    def set_speed(self, speed_ms: int) -> int:
        self.settings.speed_ms = self.clock.set_speed(speed_ms)
        return self.settings.speed_ms

    def reset(self) -> None:
        for character in self.state.characters.values():
            if character.initial_x is None or character.initial_y is None:
                continue
            character.x = character.initial_x
            character.y = character.initial_y
        self.state.tick = 0
        self.state.input.clear()
        self.evaluator.reset_timer(self.clock.last_tick if self.clock.is_running else None)
        self.last_resolutions = {}
        self._refresh_index()
        self._append_event_trace_entry(SIMULATION_RESET_EVENT_TYPE, {})

    def register_listener(self, listener: SimulationListener) -> None:
        if any(existing.name == listener.name for existing in self.listeners):
            raise ValueError(f"duplicate listener name: {listener.name}")
        self.listeners.append(listener)
        listener.on_simulation_start(self)

    def get_listener(self, name: str) -> SimulationListener | None:
        for listener in self.listeners:
            if listener.name == name:
                return listener
        return None

    def get_event_trace(self) -> list[dict[str, Any]]:
        return copy.deepcopy(self.state.event_trace)

    def project_payload(self) -> dict[str, Any]:
        return {
            "schema_version": SCHEMA_VERSION,
            "grid": self.state.grid.to_dict(),
            "settings": self.settings.to_dict(),
            "characters": [character.to_dict() for character in self.state.characters.values()],
            "rules": {
                character_id: [rule.to_dict() for rule in self.state.rules.get(character_id, [])]
                for character_id in self.state.characters
            },
        }

    def simulation_payload(self) -> dict[str, Any]:
        return {
            **self.project_payload(),
            "tick": self.state.tick,
            "is_running": self.clock.is_running,
            "last_tick": self.clock.last_tick,
            "timer_reference": self.evaluator.timer_reference,
            "input": self.state.input.to_dict(),
            "event_trace": self.get_event_trace(),
        }

    @classmethod
    def from_project_payload(cls, payload: dict[str, Any]) -> "Simulation":
        if not isinstance(payload, dict):
            raise ValidationError("project payload must be an object")
        schema_version = payload.get("schema_version")
        if schema_version != SCHEMA_VERSION:
            raise ValidationError(f"unsupported project schema_version: {schema_version}")
        sim = cls(
            grid=GridSize.from_dict(payload.get("grid")),
            settings=SimulationSettings.from_dict(payload.get("settings")),
        )
        for row in payload.get("characters", []):
            # Saved states may hold co-occupied cells the engine itself produced.
            sim._insert_character(Character.from_dict(row), check_occupancy=False)
        raw_rules = payload.get("rules", {})
        if not isinstance(raw_rules, dict):
            raise ValidationError("rules must be an object keyed by character_id")
        for character_id, rows in raw_rules.items():
            if not isinstance(rows, list):
                raise ValidationError(f"rules[{character_id}] must be a list")
            for row in rows:
                sim.add_rule(character_id, Rule.from_dict(row, owner_id=character_id))
        return sim

    def load_project_payload(self, payload: dict[str, Any]) -> None:
        """Replace grid, settings, characters and rules in place; running state is kept."""
        loaded = Simulation.from_project_payload(payload)
        self.state.grid = loaded.state.grid
        self.state.characters = loaded.state.characters
        self.state.rules = loaded.state.rules
        self.settings = loaded.settings
        self.index.grid = loaded.state.grid
        self.clock.set_speed(loaded.settings.speed_ms)
        self.evaluator.timer_interval_ms = loaded.settings.timer_interval_ms
        self.last_resolutions = {}
        self._refresh_index()

    def _rules_of(self, character_id: str) -> list[Rule]:
        if character_id not in self.state.characters:
            raise ValidationError(f"unknown character_id: {character_id}")
        return self.state.rules.setdefault(character_id, [])

    def _check_bounds(self, x: int, y: int) -> None:
        if isinstance(x, bool) or isinstance(y, bool) or not isinstance(x, int) or not isinstance(y, int):
            raise ValidationError("placement coordinates must be integers")
        if not self.index.is_in_bounds(x, y):
            raise ValidationError(
                f"position ({x}, {y}) is outside the {self.state.grid.width}x{self.state.grid.height} grid"
            )

    def _check_placement(self, character: Character, x: int, y: int) -> None:
        self._check_bounds(x, y)
        if not self.index.is_valid_move(character, x, y):
            raise ValidationError(f"cell ({x}, {y}) is occupied")

    def _refresh_index(self) -> None:
        self.index.rebuild(self.state.characters.values())

    def _step(self, now: float) -> None:
        tick = self.state.tick
        self._refresh_index()
        for listener in self.listeners:
            listener.on_tick_start(self, tick)

        resolutions: dict[str, Resolution] = {}
        self.evaluator.begin_pass(now)
        for character in list(self.state.characters.values()):
            if not character.is_placed:
                continue
            resolution = self.resolver.resolve(character, self.state.rules.get(character.character_id, ()), now)
            resolutions[character.character_id] = resolution
            if resolution.moved:
                self._commit_move(character, resolution)
            elif resolution.outcome == OUTCOME_BLOCKED:
                self._append_event_trace_entry(
                    MOVE_BLOCKED_EVENT_TYPE,
                    {
                        "character_id": character.character_id,
                        "rule_id": resolution.rule_id,
                        "cell": [character.x, character.y],
                    },
                )
        self.evaluator.end_pass(now)

        self.last_resolutions = resolutions
        self.state.tick += 1
        for listener in self.listeners:
            listener.on_tick_end(self, tick)

    def _commit_move(self, character: Character, resolution: Resolution) -> None:
        from_cell = character.position
        character.x = resolution.new_x
        character.y = resolution.new_y
        character.direction = resolution.new_direction
        self._refresh_index()
        self._append_event_trace_entry(
            CHARACTER_MOVED_EVENT_TYPE,
            {
                "character_id": character.character_id,
                "rule_id": resolution.rule_id,
                "from": list(from_cell),
                "to": [character.x, character.y],
                "direction": character.direction.value,
            },
        )
        for listener in self.listeners:
            listener.on_character_moved(self, character, from_cell)

    def _append_event_trace_entry(self, event_type: str, params: dict[str, Any]) -> None:
        self.state.event_trace.append(
            {
                "tick": self.state.tick,
                "event_type": event_type,
                "params": copy.deepcopy(params),
            }
        )
        if len(self.state.event_trace) > MAX_EVENT_TRACE:
            overflow = len(self.state.event_trace) - MAX_EVENT_TRACE
            del self.state.event_trace[:overflow]
