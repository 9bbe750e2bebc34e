from __future__ import annotations

import copy
from typing import Any

from stagecraft.sim.core import Simulation

DEFAULT_MAX_HISTORY = 50


class SnapshotHistory:
    """Bounded undo/redo stacks of whole-project snapshots.

    Each entry is a deep copy of ``Simulation.project_payload()``. Recording a
    new snapshot discards the redo stack; the oldest snapshot is dropped once
    ``max_history`` is exceeded.
    """

    def __init__(self, max_history: int = DEFAULT_MAX_HISTORY) -> None:
        if isinstance(max_history, bool) or not isinstance(max_history, int) or max_history < 1:
            raise ValueError("max_history must be a positive integer")
        self.max_history = max_history
        self._undo: list[dict[str, Any]] = []
        self._redo: list[dict[str, Any]] = []

    def record(self, sim: Simulation) -> None:
        self._undo.append(copy.deepcopy(sim.project_payload()))
        if len(self._undo) > self.max_history:
            del self._undo[0]
        self._redo.clear()

    def can_undo(self) -> bool:
        return bool(self._undo)

    def can_redo(self) -> bool:
        return bool(self._redo)

    def undo(self, sim: Simulation) -> bool:
        if not self._undo:
            return False
        current = copy.deepcopy(sim.project_payload())
        sim.load_project_payload(self._undo[-1])
        self._undo.pop()
        self._redo.append(current)
        return True

    def redo(self, sim: Simulation) -> bool:
        if not self._redo:
            return False
        current = copy.deepcopy(sim.project_payload())
        sim.load_project_payload(self._redo[-1])
        self._redo.pop()
        self._undo.append(current)
        return True

    def clear(self) -> None:
        self._undo.clear()
        self._redo.clear()
