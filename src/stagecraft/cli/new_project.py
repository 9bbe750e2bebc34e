from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Sequence

from stagecraft.cli.viewer import build_demo_simulation
from stagecraft.content.io import save_project_json
from stagecraft.sim.core import Simulation
from stagecraft.sim.hash import simulation_hash
from stagecraft.sim.model import DEFAULT_GRID_PRESET, GRID_PRESETS, GridSize, SimulationSettings


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stagecraft-new-project",
        description="Write a new canonical project JSON (grid + settings + characters + rules + project_hash).",
    )
    parser.add_argument("project_path", help="Output path for the project JSON")
    parser.add_argument(
        "--grid",
        choices=sorted(GRID_PRESETS),
        default=DEFAULT_GRID_PRESET,
        help=f"Grid size preset (default: {DEFAULT_GRID_PRESET})",
    )
    parser.add_argument("--speed", type=int, help="Tick interval in milliseconds, clamped to the supported range")
    parser.add_argument("--demo", action="store_true", help="Populate the project with the demo characters and rules")
    parser.add_argument("--force", action="store_true", help="Overwrite output path if it already exists")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    project_path = Path(args.project_path)

    try:
        if project_path.exists() and not args.force:
            raise ValueError(f"output exists: {project_path} (use --force to overwrite)")

        if args.demo:
            simulation = build_demo_simulation()
            if args.grid != DEFAULT_GRID_PRESET:
                width, height = GRID_PRESETS[args.grid]
                simulation.resize_grid(width, height)
        else:
            simulation = Simulation(grid=GridSize.preset(args.grid), settings=SimulationSettings())
        if args.speed is not None:
            simulation.set_speed(args.speed)
        save_project_json(project_path, simulation)

        payload = json.loads(project_path.read_text(encoding="utf-8"))
        print(
            "ok "
            f"project_path={project_path} "
            f"grid={simulation.grid.width}x{simulation.grid.height} "
            f"characters={len(simulation.characters())} "
            f"speed={simulation.speed} "
            f"project_hash={payload['project_hash']} "
            f"simulation_hash={simulation_hash(simulation)}"
        )
    except Exception as exc:
        print(f"error: {exc}")
        return 1

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
