from __future__ import annotations

import heapq
from typing import Iterable

from stagecraft.sim.errors import ValidationError
from stagecraft.sim.model import Character, GridSize

Cell = tuple[int, int]

ORTHOGONAL_STEPS: tuple[Cell, ...] = ((0, 1), (1, 0), (0, -1), (-1, 0))


class SpatialIndex:
    """Position -> occupants cache over a bounded grid.

    The index is refreshed wholesale from a character snapshot; it is never
    patched incrementally. Callers rebuild it after any position change and
    before the next dependent query.
    """

    def __init__(self, grid: GridSize) -> None:
        self.grid = grid
        self._cells: dict[Cell, list[Character]] = {}

    def rebuild(self, characters: Iterable[Character]) -> None:
        cells: dict[Cell, list[Character]] = {}
        for character in characters:
            if not character.is_placed or not self.is_in_bounds(character.x, character.y):
                continue
            cells.setdefault((character.x, character.y), []).append(character)
        self._cells = cells

    def is_in_bounds(self, x: int, y: int) -> bool:
        return self.grid.contains(x, y)

    def occupants_at(self, x: int, y: int) -> list[Character]:
        return list(self._cells.get((x, y), ()))

    def is_occupied(self, x: int, y: int) -> bool:
        return bool(self._cells.get((x, y)))

    def is_valid_move(self, character: Character | None, x: int, y: int) -> bool:
        if not self.is_in_bounds(x, y):
            return False
        for occupant in self._cells.get((x, y), ()):
            if character is not None and occupant.character_id == character.character_id:
                continue
            if not occupant.allow_overlap:
                return False
        return True

    def characters_in_range(self, x: int, y: int, range_cells: int) -> list[Character]:
        """Characters within Chebyshev distance ``range_cells`` of (x, y), inclusive."""
        if isinstance(range_cells, bool) or not isinstance(range_cells, int) or range_cells < 0:
            raise ValidationError("range must be a non-negative integer")
        found: list[Character] = []
        for cell_y in range(y - range_cells, y + range_cells + 1):
            for cell_x in range(x - range_cells, x + range_cells + 1):
                found.extend(self._cells.get((cell_x, cell_y), ()))
        return found

    def adjacent_characters(self, x: int, y: int) -> dict[str, list[Character]]:
        return {
            "up": self.occupants_at(x, y - 1),
            "down": self.occupants_at(x, y + 1),
            "left": self.occupants_at(x - 1, y),
            "right": self.occupants_at(x + 1, y),
        }

    def has_line_of_sight(self, a: Character, b: Character, max_distance: int) -> bool:
        if not a.is_placed or not b.is_placed:
            return False
        if max(abs(b.x - a.x), abs(b.y - a.y)) > max_distance:
            return False
        ignored = {a.character_id, b.character_id}
        for cell in bresenham_line(a.position, b.position)[1:-1]:
            for occupant in self._cells.get(cell, ()):
                if occupant.is_solid and occupant.character_id not in ignored:
                    return False
        return True

    def find_path(self, start: Cell, goal: Cell, *, mover: Character | None = None) -> list[Cell] | None:
        """A* over orthogonal steps; cells are passable where ``is_valid_move`` allows."""
        if not self.is_in_bounds(*start) or not self.is_in_bounds(*goal):
            return None
        if start == goal:
            return [start]
        counter = 0
        open_heap: list[tuple[int, int, Cell]] = [(_manhattan(start, goal), counter, start)]
        came_from: dict[Cell, Cell] = {}
        g_score: dict[Cell, int] = {start: 0}
        closed: set[Cell] = set()
        while open_heap:
            _, _, current = heapq.heappop(open_heap)
            if current == goal:
                return _reconstruct_path(came_from, current)
            if current in closed:
                continue
            closed.add(current)
            for dx, dy in ORTHOGONAL_STEPS:
                neighbor = (current[0] + dx, current[1] + dy)
                if neighbor in closed or not self.is_valid_move(mover, neighbor[0], neighbor[1]):
                    continue
                tentative = g_score[current] + 1
                if tentative < g_score.get(neighbor, tentative + 1):
                    came_from[neighbor] = current
                    g_score[neighbor] = tentative
                    counter += 1
                    heapq.heappush(open_heap, (tentative + _manhattan(neighbor, goal), counter, neighbor))
        return None


def bresenham_line(start: Cell, end: Cell) -> list[Cell]:
    x0, y0 = start
    x1, y1 = end
    dx = abs(x1 - x0)
    dy = -abs(y1 - y0)
    step_x = 1 if x0 < x1 else -1
    step_y = 1 if y0 < y1 else -1
    error = dx + dy
    cells: list[Cell] = []
    while True:
        cells.append((x0, y0))
        if (x0, y0) == (x1, y1):
            return cells
        doubled = 2 * error
        if doubled >= dy:
            error += dy
            x0 += step_x
        if doubled <= dx:
            error += dx
            y0 += step_y


def _manhattan(a: Cell, b: Cell) -> int:
    return abs(a[0] - b[0]) + abs(a[1] - b[1])


def _reconstruct_path(came_from: dict[Cell, Cell], current: Cell) -> list[Cell]:
    path = [current]
    while current in came_from:
        current = came_from[current]
        path.append(current)
    path.reverse()
    return path
