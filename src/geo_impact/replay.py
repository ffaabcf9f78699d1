"""Fixture-based replay runner for QA of impact resolution."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .config import EngineConfig, ImpactFilters
from .coordinator import ImpactCoordinator, to_geojson
from .feature_flags import DEFAULT_FEATURE_FLAGS
from .models import GeographicImpactResult
from .sources import InMemoryImpactStore


@dataclass
class ReplayResult:
    summary: str
    result: GeographicImpactResult
    geojson: dict[str, Any]


def load_replay_fixture(path: str | Path) -> dict:
    fixture_path = Path(path)
    if not fixture_path.exists():
        raise FileNotFoundError(f"Replay fixture not found: {fixture_path}")
    return json.loads(fixture_path.read_text(encoding="utf-8"))


def run_replay_fixture(path: str | Path) -> ReplayResult:
    payload = load_replay_fixture(path)

    filters = ImpactFilters.model_validate(payload.get("filters", {}))
    config = EngineConfig.model_validate(payload.get("engine", {}))
    flags = {**DEFAULT_FEATURE_FLAGS, **payload.get("feature_flags", {})}

    store = InMemoryImpactStore.from_payload(payload)
    coordinator = ImpactCoordinator(store, config=config, flags=flags)
    result = coordinator.resolve(filters)

    available = sum(1 for v in result.values.values() if v.data_availability == "available")
    summary = (
        f"Replay complete: records={len(store.records)}, divisions={len(result.divisions)}, "
        f"available={available}, success={result.success}"
    )

    return ReplayResult(summary=summary, result=result, geojson=to_geojson(result))
