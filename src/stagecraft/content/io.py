from __future__ import annotations

import json
import os
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any

from stagecraft.content.schema import validate_project_payload
from stagecraft.sim.core import Simulation
from stagecraft.sim.hash import PROJECT_HASH_FIELD, project_hash

CANONICAL_JSON_INDENT = 2
CANONICAL_JSON_SEPARATORS = (",", ": ")


def _build_project_payload(simulation: Simulation) -> dict[str, Any]:
    payload = simulation.project_payload()
    payload[PROJECT_HASH_FIELD] = project_hash(payload)
    return payload


def _canonical_json(payload: dict[str, Any]) -> str:
    return json.dumps(
        payload,
        indent=CANONICAL_JSON_INDENT,
        separators=CANONICAL_JSON_SEPARATORS,
        sort_keys=True,
    )


def _write_atomic_json(path: str | Path, payload: dict[str, Any]) -> None:
    destination = Path(path)
    destination.parent.mkdir(parents=True, exist_ok=True)
    serialized = _canonical_json(payload)

    temp_path: Path | None = None
    try:
        with NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=destination.parent,
            delete=False,
            suffix=".tmp",
        ) as temp_file:
            temp_file.write(serialized)
            temp_file.flush()
            os.fsync(temp_file.fileno())
            temp_path = Path(temp_file.name)
        os.replace(temp_path, destination)
    except Exception:
        if temp_path is not None:
            temp_path.unlink(missing_ok=True)
        raise


def _load_canonical_project_payload(payload: dict[str, Any]) -> Simulation:
    validate_project_payload(payload)
    if PROJECT_HASH_FIELD in payload:
        expected_hash = payload[PROJECT_HASH_FIELD]
        actual_hash = project_hash(payload)
        if expected_hash != actual_hash:
            raise ValueError(
                f"project_hash mismatch while loading project (stored={expected_hash}, recomputed={actual_hash})"
            )
    return Simulation.from_project_payload(payload)


def save_project_json(path: str | Path, simulation: Simulation) -> None:
    payload = _build_project_payload(simulation)
    validate_project_payload(payload)
    _write_atomic_json(path, payload)


def load_project_json(path: str | Path) -> Simulation:
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    return _load_canonical_project_payload(payload)
