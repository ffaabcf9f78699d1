"""Centralized feature-flag loader for resolution behavior.

Precedence, lowest first: built-in defaults, ``config/feature_flags.json``,
``GEO_IMPACT_FLAG_<NAME>`` environment variables. Unknown keys are ignored.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

_log = logging.getLogger(__name__)

FLAG_ENV_PREFIX = "GEO_IMPACT_FLAG_"
_TRUTHY = {"1", "true", "yes", "on"}

DEFAULT_FEATURE_FLAGS: dict[str, Any] = {
    "fallback_text_match_enabled": True,
    "named_region_global_match": False,
    "sector_prefix_expansion_enabled": False,
    "geometry_repair_enabled": True,
    "max_division_tasks": 0,
}


def default_feature_flags_path() -> Path:
    return Path.cwd() / "config" / "feature_flags.json"


def _coerce_flag_value(key: str, value: Any) -> Any:
    default = DEFAULT_FEATURE_FLAGS[key]
    # bool before int: bool is an int subclass.
    if isinstance(default, bool):
        return value if isinstance(value, bool) else str(value).strip().lower() in _TRUTHY
    if isinstance(default, int):
        try:
            return max(0, int(value))
        except (TypeError, ValueError):
            _log.warning("Flag %s expects an integer, got %r", key, value)
            return default
    return value


def _read_flag_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        _log.warning("Ignoring unreadable feature flag file %s: %s", path, exc)
        return {}
    if not isinstance(payload, dict):
        _log.warning("Ignoring feature flag file %s: expected a JSON object", path)
        return {}
    return payload


def load_feature_flags(path: Path | None = None) -> dict[str, Any]:
    file_flags = _read_flag_file(path or default_feature_flags_path())
    flags: dict[str, Any] = {}
    for key, default in DEFAULT_FEATURE_FLAGS.items():
        value = default
        if key in file_flags:
            value = _coerce_flag_value(key, file_flags[key])
        env_raw = os.getenv(FLAG_ENV_PREFIX + key.upper(), "").strip()
        if env_raw:
            value = _coerce_flag_value(key, env_raw)
        flags[key] = value
    return flags
