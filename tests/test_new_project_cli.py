import json
from pathlib import Path

import pytest

from stagecraft.cli.new_project import main
from stagecraft.content.io import load_project_json


def test_new_project_writes_empty_project(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    out_path = tmp_path / "projects" / "empty.json"

    assert main([str(out_path), "--grid", "medium"]) == 0

    captured = capsys.readouterr()
    payload = json.loads(out_path.read_text(encoding="utf-8"))
    assert captured.out.startswith("ok ")
    assert "grid=16x16" in captured.out
    assert payload["characters"] == []
    assert payload["rules"] == {}
    assert load_project_json(out_path).grid.width == 16


def test_new_project_demo_with_speed(tmp_path: Path) -> None:
    out_path = tmp_path / "demo.json"

    assert main([str(out_path), "--demo", "--grid", "large", "--speed", "50"]) == 0

    sim = load_project_json(out_path)
    assert sim.grid.width == 32
    assert sim.speed == 100
    assert [character.character_id for character in sim.characters()] == ["hero", "wanderer"]


def test_new_project_refuses_to_overwrite_without_force(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    out_path = tmp_path / "existing.json"
    out_path.write_text("{}", encoding="utf-8")

    assert main([str(out_path)]) == 1
    assert "output exists" in capsys.readouterr().out
    assert main([str(out_path), "--force"]) == 0
