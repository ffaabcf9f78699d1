"""Multi-strategy matching of disaster-record footprints to divisions.

For one target division the resolver tries, in priority order:

  1. **Explicit ids** – footprint division ids intersect the division's
     descendant set.
  2. **Named region** – a footprint geographic-level name equals a division
     display name (scoped to the division's subtree unless the global
     behavior is enabled).
  3. **Geometry** – the drawn shape or embedded feature touches the
     division polygon (containment for points, intersection otherwise).
  4. **Free text** – only when 1–3 matched nothing for the whole division,
     each record's ``location_desc`` is compared against the division ids
     and names.

Any strategy succeeding short-circuits the rest for that record. A record
whose footprint cannot be evaluated is logged and skipped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Literal

from shapely.geometry.base import BaseGeometry

from .config import EngineConfig
from .divisions import DivisionTree
from .errors import InputError
from .geometry import feature_shape, map_coords_shape, to_shape
from .models import (
    DisasterRecord,
    Division,
    ExplicitIds,
    GeoJSONFeatures,
    MapCoords,
    NamedRegion,
)
from .normalize import contains_phrase, normalize_place_name
from .similarity import match_confidence

_log = logging.getLogger(__name__)

MatchStrategy = Literal["explicit_ids", "named_region", "geometry", "text_fallback"]


@dataclass
class DivisionMatchResult:
    division_id: int
    record_ids: List[str] = field(default_factory=list)
    strategies: dict[str, MatchStrategy] = field(default_factory=dict)
    skipped: dict[str, str] = field(default_factory=dict)

    @property
    def used_fallback(self) -> bool:
        return any(s == "text_fallback" for s in self.strategies.values())


def _shape_hits(division_shape: BaseGeometry, footprint_shape: BaseGeometry) -> bool:
    if footprint_shape.is_empty:
        return False
    if footprint_shape.geom_type == "Point":
        return division_shape.covers(footprint_shape)
    if footprint_shape.geom_type == "MultiPoint":
        return any(division_shape.covers(p) for p in footprint_shape.geoms)
    return division_shape.intersects(footprint_shape)


class FootprintResolver:
    """Decides which records affect a division.

    Division shapes are built once per resolver and reused across records,
    so one resolver should serve a single resolution run.
    """

    def __init__(
        self,
        tree: DivisionTree,
        *,
        config: EngineConfig | None = None,
        named_region_global: bool = False,
        fallback_enabled: bool = True,
        repair_geometry: bool = True,
    ) -> None:
        self.tree = tree
        self.config = config if config is not None else EngineConfig()
        self.named_region_global = named_region_global
        self.fallback_enabled = fallback_enabled
        self.repair_geometry = repair_geometry
        self._shapes: dict[int, BaseGeometry | None] = {}
        self._known_names: set[str] | None = None

    # ── Division state ───────────────────────────────────────────────

    def division_shape(self, division: Division) -> BaseGeometry | None:
        if division.id not in self._shapes:
            self._shapes[division.id] = (
                to_shape(division.geometry, repair=self.repair_geometry)
                if division.geometry
                else None
            )
        return self._shapes[division.id]

    @property
    def known_names(self) -> set[str]:
        if self._known_names is None:
            self._known_names = self.tree.known_names()
        return self._known_names

    # ── Strategies ───────────────────────────────────────────────────

    def match_explicit_ids(self, record: DisasterRecord, descendant_ids: set[str]) -> bool:
        return any(
            isinstance(entry, ExplicitIds) and not descendant_ids.isdisjoint(entry.ids)
            for entry in record.spatial_footprint
        )

    def match_named_region(self, record: DisasterRecord, scoped_names: set[str]) -> bool:
        names = self.known_names if self.named_region_global else scoped_names
        return any(
            isinstance(entry, NamedRegion) and entry.name in names
            for entry in record.spatial_footprint
        )

    def match_geometry(self, record: DisasterRecord, division_shape: BaseGeometry | None) -> bool:
        if division_shape is None:
            return False
        for entry in record.spatial_footprint:
            if isinstance(entry, MapCoords):
                footprint = map_coords_shape(
                    entry, meters_per_degree=self.config.meters_per_degree
                )
                if _shape_hits(division_shape, footprint):
                    return True
            elif isinstance(entry, GeoJSONFeatures):
                for feature in entry.features:
                    if _shape_hits(division_shape, feature_shape(feature)):
                        return True
        return False

    def match_record(
        self,
        record: DisasterRecord,
        division: Division,
        descendant_ids: set[int],
        *,
        scoped_names: set[str] | None = None,
    ) -> MatchStrategy | None:
        """First strategy (1–3) that matches, or None."""
        if self.match_explicit_ids(record, {str(i) for i in descendant_ids}):
            return "explicit_ids"
        names = scoped_names if scoped_names is not None else self.tree.names_for(descendant_ids)
        if self.match_named_region(record, names):
            return "named_region"
        if self.match_geometry(record, self.division_shape(division)):
            return "geometry"
        return None

    def match_text(self, record: DisasterRecord, candidates: Iterable[Division]) -> bool:
        """Match ``location_desc`` against candidate ids and names.

        Besides word-boundary id or name containment, any candidate whose
        confidence clears the similarity threshold matches. The word bonus can
        lift a near-name to a positive: "north sub region" scores about 0.98
        against "South Sub" because both share "sub".
        """
        raw = (record.location_desc or "").strip()
        if not raw:
            return False
        location = normalize_place_name(raw)
        lowered = raw.lower()
        for division in candidates:
            division_id = str(division.id)
            if location == division_id or contains_phrase(lowered, division_id):
                return True
            normalized = self.tree.normalized(division)
            if normalized.normalized and contains_phrase(location, normalized.normalized):
                return True
            confidence = match_confidence(
                raw,
                normalized,
                word_bonus=self.config.word_bonus,
                min_word_length=self.config.min_word_length,
            )
            if confidence > self.config.similarity_threshold:
                return True
        return False

    # ── Division-level resolution ────────────────────────────────────

    def resolve(self, division: Division, records: Iterable[DisasterRecord]) -> DivisionMatchResult:
        """Record ids affecting ``division`` (including its descendants)."""
        records = list(records)
        descendant_ids = self.tree.resolve_descendants(division.id)
        scoped_names = self.tree.names_for(descendant_ids)
        result = DivisionMatchResult(division_id=division.id)

        for record in records:
            try:
                strategy = self.match_record(
                    record, division, descendant_ids, scoped_names=scoped_names
                )
            except (InputError, ValueError, TypeError, AttributeError) as exc:
                result.skipped[record.id] = f"{type(exc).__name__}: {exc}"
                _log.warning(
                    "Skipping footprint of record %s for division %s: %s",
                    record.id,
                    division.id,
                    exc,
                )
                continue
            if strategy is not None:
                result.record_ids.append(record.id)
                result.strategies[record.id] = strategy

        if result.record_ids or not self.fallback_enabled:
            return result

        candidates = [self.tree.get(i) for i in sorted(descendant_ids)]
        candidates = [d for d in candidates if d is not None]
        for record in records:
            if self.match_text(record, candidates):
                result.record_ids.append(record.id)
                result.strategies[record.id] = "text_fallback"

        if result.record_ids:
            _log.info(
                "Division %s resolved %d records via text fallback",
                division.id,
                len(result.record_ids),
            )
        return result
