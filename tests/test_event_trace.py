from stagecraft.sim.core import MAX_EVENT_TRACE, Simulation
from stagecraft.sim.hash import simulation_hash
from stagecraft.sim.model import Character, GridSize, Rule, pattern_from_offsets


def _build_sim(start: tuple[int, int], offset: tuple[int, int]) -> Simulation:
    sim = Simulation(grid=GridSize(width=8, height=8))
    sim.add_character(Character(character_id="hero", x=start[0], y=start[1]))
    sim.add_rule(
        "hero",
        Rule(rule_id="walk", before=pattern_from_offsets(), after=pattern_from_offsets(self_at=offset)),
    )
    return sim


def _advance(sim: Simulation, ticks: int) -> None:
    for index in range(1, ticks + 1):
        sim.tick(index * sim.speed)


def test_event_trace_records_lifecycle_and_moves() -> None:
    sim = _build_sim((2, 2), (1, 0))

    sim.start(0.0)
    _advance(sim, 1)
    sim.stop()
    sim.reset()

    assert sim.get_event_trace() == [
        {"tick": 0, "event_type": "simulation_started", "params": {"now": 0.0}},
        {
            "tick": 0,
            "event_type": "character_moved",
            "params": {
                "character_id": "hero",
                "rule_id": "walk",
                "from": [2, 2],
                "to": [3, 2],
                "direction": "right",
            },
        },
        {"tick": 1, "event_type": "simulation_stopped", "params": {}},
        {"tick": 0, "event_type": "simulation_reset", "params": {}},
    ]


def test_event_trace_bounded_eviction() -> None:
    sim = _build_sim((0, 0), (-1, 0))
    sim.start(0.0)

    _advance(sim, MAX_EVENT_TRACE + 20)

    trace = sim.get_event_trace()
    assert len(trace) == MAX_EVENT_TRACE
    assert trace[0]["event_type"] == "move_blocked"
    assert trace[0]["tick"] == 20
    assert trace[-1]["tick"] == MAX_EVENT_TRACE + 19


def test_event_trace_is_returned_as_a_copy() -> None:
    sim = _build_sim((2, 2), (1, 0))
    sim.start(0.0)

    sim.get_event_trace()[0]["params"]["now"] = 99.0

    assert sim.get_event_trace()[0]["params"] == {"now": 0.0}


def test_event_trace_in_hash() -> None:
    sim = _build_sim((2, 2), (0, 0))
    initial_hash = simulation_hash(sim)

    sim.start(0.0)

    assert simulation_hash(sim) != initial_hash
