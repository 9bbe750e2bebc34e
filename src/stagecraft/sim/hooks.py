from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from stagecraft.sim.core import Simulation
    from stagecraft.sim.model import Character


class SimulationListener:
    """Observer hooks for host collaborators.

    Listeners are registered on a ``Simulation`` instance and are called in
    stable registration order. They observe; the simulation stays the source
    of truth.
    """

    name: str

    def on_simulation_start(self, sim: Simulation) -> None:
        """Called once, immediately when the listener is registered."""

    def on_tick_start(self, sim: Simulation, tick: int) -> None:
        """Called before characters are resolved for an executed tick."""

    def on_tick_end(self, sim: Simulation, tick: int) -> None:
        """Called after every character has been resolved for an executed tick."""

    def on_character_moved(self, sim: Simulation, character: Character, from_cell: tuple[int, int]) -> None:
        """Called right after a move is committed."""
