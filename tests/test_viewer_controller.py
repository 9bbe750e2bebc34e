from stagecraft.cli.viewer import AsciiViewer, SimulationController, build_demo_simulation
from stagecraft.sim.model import Direction


def test_ascii_viewer_renders_grid_and_characters() -> None:
    sim = build_demo_simulation()

    lines = AsciiViewer().render(sim).splitlines()

    assert lines[0] == "tick=0 running=False speed=1000ms"
    assert lines[2] == ".H......"
    assert lines[6] == ".....W.."
    assert lines[9] == "character[hero] pos=(1,1) facing=none"
    assert lines[10] == "character[wanderer] pos=(5,5) facing=none"


def test_controller_step_only_advances_running_simulation() -> None:
    sim = build_demo_simulation()
    controller = SimulationController(sim)

    assert controller.step(2) == 0
    assert sim.state.tick == 0

    controller.start()
    assert controller.step(2) == 2
    assert sim.state.tick == 2
    assert controller.now == 4000.0


def test_controller_key_press_moves_hero() -> None:
    sim = build_demo_simulation()
    controller = SimulationController(sim)
    controller.start()

    controller.press("ArrowRight")
    controller.step(1)
    controller.release("ArrowRight")
    controller.step(1)

    assert sim.character_positions()["hero"] == (2, 1, Direction.RIGHT)


def test_controller_toggle_reset_and_tick_once() -> None:
    sim = build_demo_simulation()
    controller = SimulationController(sim)

    assert controller.tick_once() is True
    assert sim.is_running is True
    assert controller.toggle() is False
    assert controller.toggle() is True

    controller.reset()
    assert sim.state.tick == 0
    assert sim.get_character("wanderer").position == (5, 5)


def test_controller_place_reports_invalid_cells() -> None:
    sim = build_demo_simulation()
    controller = SimulationController(sim)

    assert controller.place("hero", 5, 5) is False
    assert controller.place("hero", 99, 0) is False
    assert controller.place("nobody", 0, 0) is False
    assert controller.place("hero", 0, 7) is True
    assert sim.get_character("hero").initial_y == 7
