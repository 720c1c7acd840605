from __future__ import annotations

import json
import os
from typing import Any


###############################################################################
def load_configuration_data(path: str) -> dict[str, Any]:
    if not os.path.exists(path):
        return {}
    try:
        with open(path, "r", encoding="utf-8") as handle:
            payload = json.load(handle)
    except (OSError, json.JSONDecodeError) as exc:
        raise RuntimeError(f"Unable to load configuration from {path}") from exc
    if not isinstance(payload, dict):
        return {}
    return payload


# -----------------------------------------------------------------------------
def ensure_mapping(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


# -----------------------------------------------------------------------------
def resolve_data_path(value: str, base_path: str) -> str:
    if os.path.isabs(value):
        return value
    return os.path.join(base_path, value)
