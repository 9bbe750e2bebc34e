from __future__ import annotations

from collections.abc import Callable

from stagecraft.sim.model import DEFAULT_SPEED_MS, clamp_speed


class SimulationClock:
    """Fixed-step pacing for a host-driven loop.

    Two states only: stopped and running. The clock never schedules itself;
    the host calls ``tick(now)`` from its own timer or frame callback and the
    clock runs ``step(now)`` when at least ``speed`` milliseconds have passed
    since the last step.
    """

    def __init__(self, step: Callable[[float], None], *, speed_ms: int = DEFAULT_SPEED_MS) -> None:
        self._step = step
        self.speed = clamp_speed(speed_ms)
        self.is_running = False
        self.last_tick: float | None = None

    def start(self, now: float = 0.0) -> bool:
        if self.is_running:
            return False
        self.is_running = True
        self.last_tick = now
        return True

    def stop(self) -> bool:
        if not self.is_running:
            return False
        self.is_running = False
        return True

    def set_speed(self, speed_ms: int) -> int:
        self.speed = clamp_speed(speed_ms)
        return self.speed

    def is_due(self, now: float) -> bool:
        if not self.is_running:
            return False
        return self.last_tick is None or now - self.last_tick >= self.speed

    def tick(self, now: float) -> bool:
        if not self.is_due(now):
            return False
        self.last_tick = now
        self._step(now)
        return True
