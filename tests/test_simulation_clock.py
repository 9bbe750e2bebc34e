from stagecraft.sim.clock import SimulationClock


def _build_clock(speed_ms: int = 1000) -> tuple[SimulationClock, list[float]]:
    steps: list[float] = []
    return SimulationClock(steps.append, speed_ms=speed_ms), steps


def test_clock_only_steps_while_running_and_due() -> None:
    clock, steps = _build_clock()

    assert clock.tick(5000.0) is False
    assert clock.start(0.0) is True
    assert clock.start(10.0) is False
    assert clock.tick(999.0) is False
    assert clock.tick(1000.0) is True
    assert clock.tick(1500.0) is False
    assert clock.tick(2000.0) is True
    assert steps == [1000.0, 2000.0]

    assert clock.stop() is True
    assert clock.stop() is False
    assert clock.tick(9000.0) is False
    assert steps == [1000.0, 2000.0]


def test_clock_speed_is_clamped() -> None:
    clock, _ = _build_clock(speed_ms=10)

    assert clock.speed == 100
    assert clock.set_speed(50) == 100
    assert clock.set_speed(9999) == 2000
    assert clock.set_speed(250) == 250


def test_clock_speed_change_applies_to_next_tick() -> None:
    clock, steps = _build_clock(speed_ms=1000)
    clock.start(0.0)

    clock.set_speed(100)

    assert clock.tick(100.0) is True
    assert steps == [100.0]
