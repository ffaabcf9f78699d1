"""Impact coordinator: filters → sectors → records → per-division resolution.

Pipeline stages:

  1. **sectors**   – expand the selected sector into its descendant ids
  2. **records**   – query published records matching hazard/date/sector filters
  3. **divisions** – load the division tree and pick the target divisions
  4. **costs**     – snapshot relation/damage/loss rows for the filtered records
  5. **aggregate** – one cooperative task per division: footprint resolution
                     followed by damage/loss aggregation

Stages 1–4 run through ``_run_stage()`` for timing and error capture. In
stage 5 a failing division is reported as ``no_data`` and never aborts its
siblings; each task writes only its own key of the result map.

Usage
-----
>>> coord = ImpactCoordinator(store)
>>> result = coord.resolve({"sector_id": 10})
>>> collection = coord.to_geojson(result)
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from pydantic import ValidationError

from .aggregation import ImpactAggregator
from .config import EngineConfig, ImpactFilters
from .divisions import DivisionTree
from .errors import InputError
from .feature_flags import load_feature_flags
from .footprint import FootprintResolver
from .geometry import normalize_geometry
from .models import (
    DisasterRecord,
    Division,
    GeographicImpactResult,
    ImpactMetadata,
    ImpactValue,
)
from .sectors import SectorExpander
from .sources import ImpactStore

_log = logging.getLogger(__name__)

# Type alias for progress callbacks: (stage_name, status, detail_dict)
ProgressCallback = Callable[[str, str, dict[str, Any]], None]

GENERIC_FAILURE = "Failed to process geographic impact data"


@dataclass
class ResolutionContext:
    """Diagnostics for one resolution run."""

    started_at: str = ""
    finished_at: str = ""
    sector_ids: set[int] = field(default_factory=set)
    record_count: int = 0
    division_count: int = 0
    stage_errors: dict[str, list[str]] = field(default_factory=lambda: defaultdict(list))
    stage_diagnostics: dict[str, dict[str, Any]] = field(default_factory=dict)
    division_errors: dict[str, str] = field(default_factory=dict)
    strategy_counts: Counter = field(default_factory=Counter)

    @property
    def has_errors(self) -> bool:
        return bool(self.division_errors) or any(bool(v) for v in self.stage_errors.values())


@dataclass
class ResolutionSnapshot:
    """Read-only state shared by every division task of a run."""

    filters: ImpactFilters
    sector_ids: set[int]
    records: list[DisasterRecord]
    tree: DivisionTree
    aggregator: ImpactAggregator
    resolver: FootprintResolver
    metadata: ImpactMetadata


def to_geojson(result: GeographicImpactResult) -> dict[str, Any]:
    """FeatureCollection of the result's divisions with impact properties."""
    if not result.success:
        return {"type": "FeatureCollection", "features": []}

    features = []
    for division in result.divisions:
        value = result.values.get(str(division.id))
        geometry = normalize_geometry(division.geometry) if division.geometry else None
        features.append(
            {
                "type": "Feature",
                "geometry": geometry,
                "properties": {
                    "id": division.id,
                    "name": dict(division.name),
                    "level": division.level,
                    "parentId": division.parent_id,
                    "totalDamage": (value.total_damage if value else None) or 0,
                    "totalLoss": (value.total_loss if value else None) or 0,
                    "dataAvailability": value.data_availability if value else "no_data",
                },
            }
        )
    return {"type": "FeatureCollection", "features": features}


class ImpactCoordinator:
    """Resolves and aggregates geographic impact against one ``ImpactStore``.

    Parameters
    ----------
    store :
        Read interfaces for divisions, sectors, records and cost rows.
    config :
        Matching and aggregation tuning (thresholds, leaf level, currency).
    flags :
        Feature flags; loaded from file/env when omitted.
    on_progress :
        Optional callback ``(stage, status, details)`` for live progress.
    """

    def __init__(
        self,
        store: ImpactStore,
        *,
        config: EngineConfig | None = None,
        flags: dict[str, Any] | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self.store = store
        self.config = config if config is not None else EngineConfig()
        self.flags = flags if flags is not None else load_feature_flags()
        self._on_progress = on_progress
        self._ctx = ResolutionContext()

    @property
    def ctx(self) -> ResolutionContext:
        return self._ctx

    # ── Stage execution wrapper ──────────────────────────────────────

    def _run_stage(
        self,
        stage_name: str,
        fn: Callable[..., Any],
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        """Execute *fn* inside a stage wrapper that captures errors, timing,
        and fires the progress callback."""
        self._notify(stage_name, "started", {})
        start = time.monotonic()
        try:
            result = fn(*args, **kwargs)
            elapsed_ms = round((time.monotonic() - start) * 1000, 1)
            self._ctx.stage_diagnostics[stage_name] = {"status": "ok", "elapsed_ms": elapsed_ms}
            self._notify(stage_name, "completed", {"elapsed_ms": elapsed_ms})
            return result
        except Exception as exc:
            elapsed_ms = round((time.monotonic() - start) * 1000, 1)
            error_msg = f"{type(exc).__name__}: {exc}"
            self._ctx.stage_errors[stage_name].append(error_msg)
            self._ctx.stage_diagnostics[stage_name] = {
                "status": "error",
                "elapsed_ms": elapsed_ms,
                "error": error_msg,
            }
            self._notify(stage_name, "error", {"error": error_msg, "elapsed_ms": elapsed_ms})
            _log.error("Coordinator: stage %s failed: %s", stage_name, error_msg)
            raise

    def _notify(self, stage: str, status: str, details: dict[str, Any]) -> None:
        if self._on_progress is not None:
            try:
                self._on_progress(stage, status, details)
            except Exception:
                _log.debug("Progress callback error for stage %s", stage, exc_info=True)

    # ── Stages ───────────────────────────────────────────────────────

    def _expand_sectors(self, filters: ImpactFilters) -> set[int]:
        expander = SectorExpander(
            self.store.list_sectors(),
            leaf_level=self.config.leaf_sector_level,
            prefix_expansion=bool(self.flags.get("sector_prefix_expansion_enabled")),
        )
        root = filters.sector_id
        if filters.sub_sector_id is not None:
            if not expander.is_descendant(filters.sub_sector_id, filters.sector_id):
                raise InputError(
                    f"Sub-sector {filters.sub_sector_id} is not part of sector {filters.sector_id}"
                )
            root = filters.sub_sector_id
        sector_ids = expander.expand(root)
        if not sector_ids:
            raise InputError(f"Invalid sector id: {root}")
        _log.info("Coordinator: sector %s expanded to %d sector ids", root, len(sector_ids))
        return sector_ids

    def _load_records(self, filters: ImpactFilters, sector_ids: set[int]) -> list[DisasterRecord]:
        records = self.store.query_records(
            filters,
            sector_ids=sector_ids,
            published_status=self.config.published_status,
        )
        _log.info("Coordinator: %d records match the filters", len(records))
        return records

    def _load_tree(self) -> DivisionTree:
        return DivisionTree(self.store.list_divisions(), name_languages=self.config.name_languages)

    def _load_costs(self, records: list[DisasterRecord], sector_ids: set[int]) -> ImpactAggregator:
        record_ids = [r.id for r in records]
        return ImpactAggregator(
            records,
            relations=self.store.list_relations(record_ids, sector_ids),
            damages=self.store.list_damages(record_ids, sector_ids),
            losses=self.store.list_losses(record_ids, sector_ids),
        )

    def _metadata(self, filters: ImpactFilters) -> ImpactMetadata:
        return ImpactMetadata(
            assessment_type=filters.assessment_type,
            confidence_level=filters.confidence_level,
            currency=self.config.currency,
            assessment_date=datetime.now(timezone.utc).isoformat(),
        )

    def prepare(self, filters: ImpactFilters | dict[str, Any]) -> ResolutionSnapshot:
        """Run stages 1–4 and return the shared snapshot.

        Raises ``InputError`` for unusable filters or an unknown sector.
        """
        if not isinstance(filters, ImpactFilters):
            try:
                filters = ImpactFilters.model_validate(filters)
            except ValidationError as exc:
                raise InputError(f"Invalid filters: {exc.errors()[0]['msg']}") from exc

        sector_ids = self._run_stage("sectors", self._expand_sectors, filters)
        records = self._run_stage("records", self._load_records, filters, sector_ids)
        tree = self._run_stage("divisions", self._load_tree)
        aggregator = self._run_stage("costs", self._load_costs, records, sector_ids)

        self._ctx.sector_ids = sector_ids
        self._ctx.record_count = len(records)

        resolver = FootprintResolver(
            tree,
            config=self.config,
            named_region_global=bool(self.flags.get("named_region_global_match")),
            fallback_enabled=bool(self.flags.get("fallback_text_match_enabled", True)),
            repair_geometry=bool(self.flags.get("geometry_repair_enabled", True)),
        )
        return ResolutionSnapshot(
            filters=filters,
            sector_ids=sector_ids,
            records=records,
            tree=tree,
            aggregator=aggregator,
            resolver=resolver,
            metadata=self._metadata(filters),
        )

    # ── Per-division work ────────────────────────────────────────────

    def _division_value(self, snapshot: ResolutionSnapshot, division: Division) -> ImpactValue:
        match = snapshot.resolver.resolve(division, snapshot.records)
        self._ctx.strategy_counts.update(match.strategies.values())
        return snapshot.aggregator.aggregate(
            match.record_ids, snapshot.sector_ids, metadata=snapshot.metadata
        )

    async def _resolve_division(
        self,
        snapshot: ResolutionSnapshot,
        division: Division,
        values: dict[str, ImpactValue],
        limiter: asyncio.Semaphore | None,
    ) -> None:
        key = str(division.id)
        try:
            if limiter is not None:
                async with limiter:
                    await asyncio.sleep(0)
                    values[key] = self._division_value(snapshot, division)
            else:
                await asyncio.sleep(0)
                values[key] = self._division_value(snapshot, division)
        except Exception as exc:
            self._ctx.division_errors[key] = f"{type(exc).__name__}: {exc}"
            _log.error("Coordinator: division %s failed: %s", division.id, exc, exc_info=True)
            values[key] = ImpactValue(data_availability="no_data", metadata=snapshot.metadata)

    # ── Public API ───────────────────────────────────────────────────

    async def resolve_geographic_impact(
        self, filters: ImpactFilters | dict[str, Any]
    ) -> GeographicImpactResult:
        self._ctx = ResolutionContext(started_at=datetime.now(timezone.utc).isoformat())
        try:
            snapshot = self.prepare(filters)
        except InputError as exc:
            return GeographicImpactResult(success=False, error=str(exc))
        except Exception:
            _log.exception("Coordinator: failed to prepare geographic impact")
            return GeographicImpactResult(success=False, error=GENERIC_FAILURE)

        level = snapshot.filters.geographic_level
        targets = snapshot.tree.at_level(level) if level is not None else snapshot.tree.all()
        self._ctx.division_count = len(targets)
        if not targets:
            return GeographicImpactResult(
                success=True, error="No divisions found for the given criteria"
            )

        values: dict[str, ImpactValue] = {}
        max_tasks = int(self.flags.get("max_division_tasks") or 0)
        limiter = asyncio.Semaphore(max_tasks) if max_tasks > 0 else None

        self._notify("aggregate", "started", {"divisions": len(targets)})
        start = time.monotonic()
        await asyncio.gather(
            *(self._resolve_division(snapshot, d, values, limiter) for d in targets)
        )
        elapsed_ms = round((time.monotonic() - start) * 1000, 1)
        self._ctx.stage_diagnostics["aggregate"] = {
            "status": "partial" if self._ctx.division_errors else "ok",
            "elapsed_ms": elapsed_ms,
            "failed_divisions": len(self._ctx.division_errors),
        }
        self._notify("aggregate", "completed", {"elapsed_ms": elapsed_ms})
        self._ctx.finished_at = datetime.now(timezone.utc).isoformat()

        _log.info(
            "Coordinator: resolved %d divisions from %d records (strategies=%s, failed=%d)",
            len(targets),
            len(snapshot.records),
            dict(self._ctx.strategy_counts),
            len(self._ctx.division_errors),
        )
        return GeographicImpactResult(
            success=True,
            divisions=targets,
            values={str(d.id): values[str(d.id)] for d in targets},
        )

    async def fetch_division_impact(
        self, division_id: int, filters: ImpactFilters | dict[str, Any]
    ) -> ImpactValue:
        """Impact for a single division; ``no_data`` on any failure."""
        self._ctx = ResolutionContext(started_at=datetime.now(timezone.utc).isoformat())
        try:
            snapshot = self.prepare(filters)
        except Exception as exc:
            _log.error("Coordinator: cannot fetch impact for division %s: %s", division_id, exc)
            return ImpactValue(data_availability="no_data")

        division = snapshot.tree.get(division_id)
        if division is None:
            _log.warning("Coordinator: division %s not found", division_id)
            return ImpactValue(data_availability="no_data", metadata=snapshot.metadata)

        values: dict[str, ImpactValue] = {}
        await self._resolve_division(snapshot, division, values, None)
        return values[str(division_id)]

    def resolve(self, filters: ImpactFilters | dict[str, Any]) -> GeographicImpactResult:
        """Synchronous wrapper for callers without an event loop."""
        return asyncio.run(self.resolve_geographic_impact(filters))

    def to_geojson(self, result: GeographicImpactResult) -> dict[str, Any]:
        return to_geojson(result)
