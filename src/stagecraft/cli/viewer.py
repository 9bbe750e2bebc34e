from __future__ import annotations

from stagecraft.sim.core import Simulation
from stagecraft.sim.errors import ValidationError
from stagecraft.sim.model import Character, GridSize, Rule, Trigger, pattern_from_offsets

EMPTY_GLYPH = "."
CROWDED_GLYPH = "*"
HERO_ID = "hero"
WANDERER_ID = "wanderer"
ARROW_KEY_OFFSETS: dict[str, tuple[int, int]] = {
    "ArrowUp": (0, -1),
    "ArrowDown": (0, 1),
    "ArrowLeft": (-1, 0),
    "ArrowRight": (1, 0),
}


def _glyph_for(character: Character) -> str:
    label = character.name or character.character_id
    return label[:1].upper() if label else "?"


class AsciiViewer:
    """Read-only projection of simulation state for terminal display."""

    def render(self, sim: Simulation) -> str:
        lines: list[str] = []
        lines.append(f"tick={sim.state.tick} running={sim.is_running} speed={sim.speed}ms")

        grid = sim.grid
        for y in range(grid.height):
            row: list[str] = []
            for x in range(grid.width):
                occupants = sim.index.occupants_at(x, y)
                if not occupants:
                    row.append(EMPTY_GLYPH)
                elif len(occupants) > 1:
                    row.append(CROWDED_GLYPH)
                else:
                    row.append(_glyph_for(occupants[0]))
            lines.append("".join(row))

        for character in sim.characters():
            position = f"({character.x},{character.y})" if character.is_placed else "<unplaced>"
            resolution = sim.last_resolutions.get(character.character_id)
            outcome = f" last={resolution.outcome}:{resolution.rule_id}" if resolution is not None else ""
            lines.append(
                f"character[{character.character_id}] pos={position} "
                f"facing={character.direction.value}{outcome}"
            )

        return "\n".join(lines)


class SimulationController:
    """Host adapter with a virtual millisecond clock; the simulation owns all state."""

    def __init__(self, sim: Simulation, *, now: float = 0.0) -> None:
        self.sim = sim
        self.now = now

    def start(self) -> bool:
        return self.sim.start(self.now)

    def stop(self) -> bool:
        return self.sim.stop()

    def toggle(self) -> bool:
        if self.sim.is_running:
            self.sim.stop()
        else:
            self.sim.start(self.now)
        return self.sim.is_running

    def reset(self) -> None:
        self.sim.reset()

    def set_speed(self, speed_ms: int) -> int:
        return self.sim.set_speed(speed_ms)

    def step(self, ticks: int = 1) -> int:
        """Advance the virtual clock one speed interval per tick; returns executed ticks."""
        executed = 0
        for _ in range(ticks):
            self.now += self.sim.speed
            if self.sim.tick(self.now):
                executed += 1
        return executed

    def tick_once(self) -> bool:
        if not self.sim.is_running:
            self.sim.start(self.now)
        return self.step(1) == 1

    def press(self, key: str) -> None:
        self.sim.on_key_down(key)

    def release(self, key: str) -> None:
        self.sim.on_key_up(key)

    def click(self, x: int, y: int) -> None:
        self.sim.on_click(x, y)

    def place(self, character_id: str, x: int, y: int) -> bool:
        try:
            self.sim.place(character_id, x, y)
        except ValidationError:
            return False
        return True


def build_demo_simulation() -> Simulation:
    sim = Simulation(grid=GridSize.preset("small"))
    sim.add_character(Character(character_id=HERO_ID, name="Hero", x=1, y=1, is_solid=True))
    sim.add_character(Character(character_id=WANDERER_ID, name="Wanderer", x=5, y=5))

    open_ground = pattern_from_offsets()
    for key, offset in ARROW_KEY_OFFSETS.items():
        sim.add_rule(
            HERO_ID,
            Rule(
                rule_id=f"walk-{key}",
                before=open_ground,
                after=pattern_from_offsets(self_at=offset),
                trigger=Trigger.KEY_PRESS,
                trigger_key=key,
            ),
        )
    sim.add_rule(
        WANDERER_ID,
        Rule(
            rule_id="flee-hero",
            before=open_ground,
            after=pattern_from_offsets(self_at=(0, 1)),
            trigger=Trigger.PROXIMITY,
            proximity=2,
        ),
    )
    sim.add_rule(
        WANDERER_ID,
        Rule(
            rule_id="drift-right",
            before=open_ground,
            after=pattern_from_offsets(self_at=(1, 0)),
            trigger=Trigger.TIMER,
        ),
    )
    return sim


def run_demo() -> None:
    sim = build_demo_simulation()

    view = AsciiViewer()
    controller = SimulationController(sim)

    print(
        "Stagecraft demo. Commands: show | start | stop | step <n> | press <key> | release <key> | "
        "click <x> <y> | place <id> <x> <y> | speed <ms> | reset | quit"
    )
    print(view.render(sim))

    while True:
        raw = input("> ").strip()
        if raw in {"quit", "exit"}:
            break
        if raw == "show":
            print(view.render(sim))
            continue
        if raw == "start":
            controller.start()
            print(view.render(sim))
            continue
        if raw == "stop":
            controller.stop()
            print(view.render(sim))
            continue
        if raw == "reset":
            controller.reset()
            print(view.render(sim))
            continue

        parts = raw.split()
        if len(parts) == 2 and parts[0] == "step":
            controller.step(int(parts[1]))
            print(view.render(sim))
            continue
        if len(parts) == 2 and parts[0] == "press":
            controller.press(parts[1])
            print(f"pressed {parts[1]}")
            continue
        if len(parts) == 2 and parts[0] == "release":
            controller.release(parts[1])
            print(f"released {parts[1]}")
            continue
        if len(parts) == 3 and parts[0] == "click":
            controller.click(int(parts[1]), int(parts[2]))
            print("click recorded")
            continue
        if len(parts) == 4 and parts[0] == "place":
            if controller.place(parts[1], int(parts[2]), int(parts[3])):
                print(view.render(sim))
            else:
                print("cannot place there")
            continue
        if len(parts) == 2 and parts[0] == "speed":
            print(f"speed={controller.set_speed(int(parts[1]))}ms")
            continue

        print("unknown command")


if __name__ == "__main__":
    run_demo()
