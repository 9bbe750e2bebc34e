from __future__ import annotations

import argparse
import hashlib
import importlib.metadata
import json
import os
import platform
import sys
from pathlib import Path
from typing import Any

from stagecraft.cli.viewer import SimulationController, build_demo_simulation
from stagecraft.content.io import load_project_json, save_project_json
from stagecraft.sim.core import Simulation
from stagecraft.sim.hash import simulation_hash
from stagecraft.sim.model import Character, MAX_SPEED_MS, MIN_SPEED_MS

CELL_SIZE = 50
HUD_HEIGHT = 84
WINDOW_MARGIN = 12
SPEED_STEP_MS = 100
FRAME_RATE = 60

BACKGROUND_COLOR = (17, 18, 25)
CELL_COLOR = (58, 58, 64)
GRID_LINE_COLOR = (35, 35, 40)
HUD_TEXT_COLOR = (240, 240, 240)
SPEED_PRESETS_MS: tuple[int, ...] = (100, 250, 500, 1000, 2000)

# pygame key name -> key name carried by keyPress rules
KEY_NAME_ALIASES: dict[str, str] = {
    "up": "ArrowUp",
    "down": "ArrowDown",
    "left": "ArrowLeft",
    "right": "ArrowRight",
    "space": " ",
    "return": "Enter",
    "escape": "Escape",
}

pygame: Any | None = None


def _pixel_to_cell(pixel_x: int, pixel_y: int) -> tuple[int, int] | None:
    local_x = pixel_x - WINDOW_MARGIN
    local_y = pixel_y - WINDOW_MARGIN - HUD_HEIGHT
    if local_x < 0 or local_y < 0:
        return None
    return (local_x // CELL_SIZE, local_y // CELL_SIZE)


def _normalize_key_name(name: str) -> str:
    return KEY_NAME_ALIASES.get(name, name)


def _character_color(character: Character) -> tuple[int, int, int]:
    digest = hashlib.sha256(character.template_id.encode("utf-8")).digest()
    return (96 + digest[0] % 160, 96 + digest[1] % 160, 96 + digest[2] % 160)


def _window_size(sim: Simulation) -> tuple[int, int]:
    return (
        sim.grid.width * CELL_SIZE + 2 * WINDOW_MARGIN,
        sim.grid.height * CELL_SIZE + HUD_HEIGHT + 2 * WINDOW_MARGIN,
    )


def _next_speed(current: int, delta: int) -> int:
    return max(MIN_SPEED_MS, min(MAX_SPEED_MS, current + delta))


def _draw_grid(screen: Any, sim: Simulation) -> None:
    origin_y = WINDOW_MARGIN + HUD_HEIGHT
    for y in range(sim.grid.height):
        for x in range(sim.grid.width):
            rect = pygame.Rect(WINDOW_MARGIN + x * CELL_SIZE, origin_y + y * CELL_SIZE, CELL_SIZE, CELL_SIZE)
            pygame.draw.rect(screen, CELL_COLOR, rect)
            pygame.draw.rect(screen, GRID_LINE_COLOR, rect, 1)


def _draw_character(screen: Any, character: Character) -> None:
    origin_x = WINDOW_MARGIN + character.x * CELL_SIZE
    origin_y = WINDOW_MARGIN + HUD_HEIGHT + character.y * CELL_SIZE
    if not character.pixels:
        rect = pygame.Rect(origin_x + 6, origin_y + 6, CELL_SIZE - 12, CELL_SIZE - 12)
        pygame.draw.rect(screen, _character_color(character), rect)
        return
    pixel_size = max(1, CELL_SIZE // character.size)
    for row_index, row in enumerate(character.pixels):
        for col_index, color in enumerate(row):
            if not color or color == "transparent":
                continue
            rect = pygame.Rect(origin_x + col_index * pixel_size, origin_y + row_index * pixel_size, pixel_size, pixel_size)
            try:
                pygame.draw.rect(screen, pygame.Color(color), rect)
            except ValueError:
                pygame.draw.rect(screen, _character_color(character), rect)


def _draw_hud(screen: Any, sim: Simulation, font: Any, status_message: str | None) -> None:
    state_label = "running" if sim.is_running else "stopped"
    lines = [
        f"tick={sim.state.tick} | {state_label} | speed={sim.speed}ms | characters={len(sim.characters())}",
        "ENTER start/stop | BACKSPACE reset | +/- speed | F5 save | F9 load | ESC quit",
    ]
    if status_message:
        lines.append(f"status: {status_message}")
    y = WINDOW_MARGIN
    for line in lines:
        surface = font.render(line, True, HUD_TEXT_COLOR)
        screen.blit(surface, (WINDOW_MARGIN, y))
        y += 24


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stagecraft-viewer",
        description="Run the Stagecraft pygame viewer.",
    )
    parser.add_argument(
        "--project",
        help="Optional project JSON path to load on startup (defaults to the built-in demo).",
    )
    parser.add_argument(
        "--save-path",
        default="saves/session_project.json",
        help="Project JSON path used by F5 save and fallback F9 load.",
    )
    parser.add_argument(
        "--headless",
        action="store_true",
        help="Force SDL dummy video driver, run a single tick and exit without opening a real window.",
    )
    parser.add_argument(
        "--speed",
        type=int,
        choices=SPEED_PRESETS_MS,
        help="Initial tick interval in milliseconds.",
    )
    return parser


def _env_flag_enabled(var_name: str) -> bool:
    return os.environ.get(var_name, "").strip().lower() in {"1", "true", "yes", "on"}


def _print_startup_banner() -> None:
    try:
        pygame_version = importlib.metadata.version("pygame")
    except importlib.metadata.PackageNotFoundError:
        pygame_version = "not-installed"
    print(
        "[stagecraft.viewer] startup "
        f"python={platform.python_version()} "
        f"pygame={pygame_version} "
        f"platform={platform.platform()}"
    )
    for name in ("SDL_VIDEODRIVER", "SDL_AUDIODRIVER"):
        value = os.environ.get(name, "<unset>")
        print(f"[stagecraft.viewer] env {name}={value}")


def _ensure_pygame_imported() -> Any:
    global pygame
    if pygame is None:
        import pygame as pygame_module

        pygame = pygame_module
    return pygame


def _build_viewer_simulation(*, speed_ms: int | None = None) -> Simulation:
    sim = build_demo_simulation()
    if speed_ms is not None:
        sim.set_speed(speed_ms)
    return sim


def _load_viewer_simulation(project_path: str, *, speed_ms: int | None = None) -> Simulation:
    sim = load_project_json(project_path)
    if speed_ms is not None:
        sim.set_speed(speed_ms)
    print(
        "[stagecraft.viewer] loaded "
        f"path={project_path} "
        f"characters={len(sim.characters())} "
        f"simulation_hash={simulation_hash(sim)}"
    )
    return sim


def _save_viewer_simulation(sim: Simulation, save_path: str) -> None:
    save_project_json(save_path, sim)
    payload = json.loads(Path(save_path).read_text(encoding="utf-8"))
    print(
        "[stagecraft.viewer] saved "
        f"path={save_path} "
        f"project_hash={payload.get('project_hash', '<missing>')} "
        f"simulation_hash={simulation_hash(sim)}"
    )


def run_pygame_viewer(
    *,
    project_path: str | None = None,
    headless: bool = False,
    save_path: str = "saves/session_project.json",
    speed_ms: int | None = None,
) -> int:
    if headless:
        os.environ["SDL_VIDEODRIVER"] = "dummy"
        print("[stagecraft.viewer] warning: headless mode active; no window will open.")

    _print_startup_banner()
    pygame_module = _ensure_pygame_imported()

    try:
        pygame_module.init()
    except Exception as exc:
        print(
            "[stagecraft.viewer] failed during pygame.init(): "
            f"{exc}. Hint: verify a working SDL video driver (set SDL_VIDEODRIVER=dummy for headless mode).",
            file=sys.stderr,
        )
        return 1

    try:
        if project_path:
            sim = _load_viewer_simulation(project_path, speed_ms=speed_ms)
        else:
            sim = _build_viewer_simulation(speed_ms=speed_ms)
    except Exception as exc:
        print(f"[stagecraft.viewer] failed to initialize simulation: {exc}", file=sys.stderr)
        pygame_module.quit()
        return 1

    controller = SimulationController(sim, now=float(pygame_module.time.get_ticks()))
    window_size = _window_size(sim)

    try:
        pygame_module.display.set_caption("Stagecraft Viewer")
        screen = pygame_module.display.set_mode(window_size)
    except Exception as exc:
        print(
            "[stagecraft.viewer] failed during pygame.display.set_mode(...): "
            f"{exc}. Hint: GUI sessions require a valid display; use --headless or STAGECRAFT_HEADLESS=1.",
            file=sys.stderr,
        )
        pygame_module.quit()
        return 1

    driver_name = pygame_module.display.get_driver()
    print(f"[stagecraft.viewer] display initialized: {driver_name}, window size={window_size}")

    if headless:
        controller.tick_once()
        print(f"[stagecraft.viewer] headless tick complete tick={sim.state.tick} simulation_hash={simulation_hash(sim)}")
        pygame_module.quit()
        return 0

    def load_simulation_from_path(path_value: str) -> bool:
        nonlocal sim, status_message
        try:
            loaded = _load_viewer_simulation(path_value)
        except Exception as exc:
            status_message = f"load failed: {exc}"
            print(f"[stagecraft.viewer] load failed path={path_value}: {exc}", file=sys.stderr)
            return False
        sim = loaded
        controller.sim = loaded
        if _window_size(loaded) != screen.get_size():
            pygame_module.display.set_mode(_window_size(loaded))
        status_message = f"loaded {path_value}"
        return True

    clock = pygame_module.time.Clock()
    font = pygame_module.font.SysFont("consolas", 18)
    running = True
    status_message: str | None = None

    while running:
        clock.tick(FRAME_RATE)

        for event in pygame_module.event.get():
            if event.type == pygame_module.QUIT:
                running = False
            elif event.type == pygame_module.WINDOWFOCUSLOST:
                sim.release_all_keys()
            elif event.type == pygame_module.KEYDOWN and event.key == pygame_module.K_ESCAPE:
                running = False
            elif event.type == pygame_module.KEYDOWN and event.key == pygame_module.K_RETURN:
                controller.now = float(pygame_module.time.get_ticks())
                status_message = "running" if controller.toggle() else "stopped"
            elif event.type == pygame_module.KEYDOWN and event.key == pygame_module.K_BACKSPACE:
                controller.reset()
                status_message = "reset"
            elif event.type == pygame_module.KEYDOWN and event.key in (
                pygame_module.K_PLUS,
                pygame_module.K_EQUALS,
                pygame_module.K_KP_PLUS,
            ):
                status_message = f"speed={controller.set_speed(_next_speed(sim.speed, -SPEED_STEP_MS))}ms"
            elif event.type == pygame_module.KEYDOWN and event.key in (pygame_module.K_MINUS, pygame_module.K_KP_MINUS):
                status_message = f"speed={controller.set_speed(_next_speed(sim.speed, SPEED_STEP_MS))}ms"
            elif event.type == pygame_module.KEYDOWN and event.key == pygame_module.K_F5:
                _save_viewer_simulation(sim, save_path)
                status_message = f"saved {save_path}"
            elif event.type == pygame_module.KEYDOWN and event.key == pygame_module.K_F9:
                load_target = project_path if project_path else save_path
                if load_target and Path(load_target).exists():
                    load_simulation_from_path(load_target)
                else:
                    status_message = f"load failed: file not found ({load_target})"
                    print(f"[stagecraft.viewer] load skipped; file not found path={load_target}")
            elif event.type == pygame_module.KEYDOWN:
                controller.press(_normalize_key_name(pygame_module.key.name(event.key)))
            elif event.type == pygame_module.KEYUP:
                controller.release(_normalize_key_name(pygame_module.key.name(event.key)))
            elif event.type == pygame_module.MOUSEBUTTONDOWN and event.button == 1:
                cell = _pixel_to_cell(event.pos[0], event.pos[1])
                if cell is not None and sim.grid.contains(*cell):
                    controller.click(*cell)

        controller.now = float(pygame_module.time.get_ticks())
        sim.tick(controller.now)

        screen.fill(BACKGROUND_COLOR)
        _draw_grid(screen, sim)
        for character in sim.characters():
            if character.is_placed:
                _draw_character(screen, character)
        _draw_hud(screen, sim, font, status_message)
        pygame_module.display.flip()

    pygame_module.quit()
    return 0


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    headless = args.headless or _env_flag_enabled("STAGECRAFT_HEADLESS")
    raise SystemExit(
        run_pygame_viewer(
            project_path=args.project,
            headless=headless,
            save_path=args.save_path,
            speed_ms=args.speed,
        )
    )


if __name__ == "__main__":
    main()
