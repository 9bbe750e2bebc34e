from __future__ import annotations

import hashlib
import json
from typing import Any

from stagecraft.sim.core import Simulation

PROJECT_HASH_FIELD = "project_hash"


def _digest(payload: Any) -> str:
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


def project_hash(payload: dict[str, Any]) -> str:
    return _digest({key: value for key, value in payload.items() if key != PROJECT_HASH_FIELD})


def simulation_hash(simulation: Simulation) -> str:
    payload = simulation.simulation_payload()
    if payload["last_tick"] is not None:
        payload["last_tick"] = round(float(payload["last_tick"]), 8)
    if payload["timer_reference"] is not None:
        payload["timer_reference"] = round(float(payload["timer_reference"]), 8)
    return _digest(payload)
