from stagecraft.cli.viewer import SimulationController, build_demo_simulation
from stagecraft.sim.core import Simulation
from stagecraft.sim.hash import simulation_hash


def _run_scripted_input(sim: Simulation) -> None:
    controller = SimulationController(sim)
    controller.start()
    controller.press("ArrowRight")
    controller.step(3)
    controller.release("ArrowRight")
    controller.press("ArrowDown")
    controller.step(2)
    controller.release("ArrowDown")
    controller.click(5, 5)
    controller.step(4)


def test_identical_setup_and_input_produce_identical_hash() -> None:
    sim_a = build_demo_simulation()
    sim_b = build_demo_simulation()

    _run_scripted_input(sim_a)
    _run_scripted_input(sim_b)

    assert simulation_hash(sim_a) == simulation_hash(sim_b)
    assert sim_a.character_positions() == sim_b.character_positions()
    assert sim_a.get_event_trace() == sim_b.get_event_trace()


def test_different_input_changes_hash() -> None:
    sim_a = build_demo_simulation()
    sim_b = build_demo_simulation()

    _run_scripted_input(sim_a)
    controller = SimulationController(sim_b)
    controller.start()
    controller.step(9)

    assert simulation_hash(sim_a) != simulation_hash(sim_b)


def test_hash_covers_character_fields() -> None:
    sim = build_demo_simulation()
    before = simulation_hash(sim)

    sim.get_character("hero").name = "Renamed"

    assert simulation_hash(sim) != before
