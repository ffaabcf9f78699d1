"""Pydantic models for divisions, sectors, disaster records and impact results."""

from __future__ import annotations

import json
import logging
from typing import Annotated, Any, Dict, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

_log = logging.getLogger(__name__)

DataAvailability = Literal["available", "zero", "no_data"]
MapMode = Literal["markers", "lines", "circle", "rectangle", "polygon"]


class Division(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    parent_id: int | None = None
    name: Dict[str, str] = Field(min_length=1)
    level: int = Field(default=1, ge=1)
    geometry: Dict[str, Any] | None = None
    bbox: List[float] | None = None
    import_id: str | None = None

    @field_validator("geometry", mode="before")
    @classmethod
    def parse_geometry_text(cls, value: Any) -> Any:
        if isinstance(value, str):
            return json.loads(value) if value.strip() else None
        return value

    def display_name(self, langs: tuple[str, ...] | List[str] = ("en",)) -> str:
        for lang in langs:
            text = self.name.get(lang)
            if text:
                return text
        return next((v for v in self.name.values() if v), "")


class Sector(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    parent_id: int | None = None
    level: int = Field(default=1, ge=1)
    name: str = ""
    description: str | None = None


# ── Footprint entries (tagged union) ─────────────────────────────────


class ExplicitIds(BaseModel):
    kind: Literal["explicit_ids"] = "explicit_ids"
    ids: List[str] = Field(default_factory=list)


class NamedRegion(BaseModel):
    kind: Literal["named_region"] = "named_region"
    name: str


class MapCoords(BaseModel):
    """A shape drawn on the map. Coordinates are ``[lat, lng]`` pairs."""

    kind: Literal["map_coords"] = "map_coords"
    mode: MapMode
    coordinates: List[List[float]] = Field(default_factory=list)
    center: List[float] | None = None
    radius: float | None = Field(default=None, ge=0)


class GeoJSONFeatures(BaseModel):
    """Standard GeoJSON features. Coordinates are ``[lng, lat]``."""

    kind: Literal["geojson_features"] = "geojson_features"
    features: List[Dict[str, Any]] = Field(default_factory=list)


FootprintEntry = Annotated[
    Union[ExplicitIds, NamedRegion, MapCoords, GeoJSONFeatures],
    Field(discriminator="kind"),
]

_FOOTPRINT_ADAPTER: TypeAdapter[Any] = TypeAdapter(FootprintEntry)

_ENTRY_KINDS = {"explicit_ids", "named_region", "map_coords", "geojson_features"}
_MAP_MODES = {"markers", "lines", "circle", "rectangle", "polygon"}


def _id_strings(container: Any) -> List[str]:
    if not isinstance(container, dict):
        return []
    ids: list[str] = []
    single = container.get("division_id")
    if single not in (None, ""):
        ids.append(str(single))
    many = container.get("division_ids")
    if isinstance(many, list):
        ids.extend(str(v) for v in many if v not in (None, ""))
    return ids


def _as_json(value: Any) -> Any:
    if isinstance(value, str):
        text = value.strip()
        return json.loads(text) if text else None
    return value


def _json_field(raw: dict[str, Any], key: str) -> Any:
    try:
        return _as_json(raw.get(key))
    except json.JSONDecodeError:
        _log.warning("Ignoring footprint %s field with unreadable JSON", key)
        return None


def _geojson_features(geojson: dict[str, Any]) -> List[Dict[str, Any]]:
    kind = geojson.get("type")
    if kind == "FeatureCollection":
        return [f for f in geojson.get("features") or [] if isinstance(f, dict)]
    if kind == "Feature":
        return [geojson]
    if kind in {"Point", "LineString", "Polygon", "MultiPoint", "MultiLineString", "MultiPolygon"}:
        return [{"type": "Feature", "geometry": geojson, "properties": {}}]
    return []


def expand_footprint_entry(raw: dict[str, Any]) -> List[Dict[str, Any]]:
    """Split one stored footprint object into typed entry payloads.

    A stored entry may carry several signals at once (explicit ids, a
    geographic-level name, drawn map coordinates and GeoJSON features); each
    becomes its own tagged entry. Division ids are read from both the current
    ``properties`` path and the legacy ``dts_info`` path.
    """
    if raw.get("kind") in _ENTRY_KINDS:
        return [raw]

    entries: list[dict[str, Any]] = []
    geojson = _json_field(raw, "geojson")
    if isinstance(geojson, dict):
        ids = _id_strings(geojson.get("properties")) + _id_strings(geojson.get("dts_info"))
        features = _geojson_features(geojson)
        if geojson.get("type") == "FeatureCollection":
            for feature in features:
                ids += _id_strings(feature.get("properties")) + _id_strings(feature.get("dts_info"))
        features = [f for f in features if isinstance(f.get("geometry"), dict)]
        if ids:
            entries.append({"kind": "explicit_ids", "ids": list(dict.fromkeys(ids))})
        if features:
            entries.append({"kind": "geojson_features", "features": features})

    name = raw.get("geographic_level")
    if isinstance(name, str) and name.strip():
        entries.append({"kind": "named_region", "name": name.strip()})

    coords = _json_field(raw, "map_coords")
    if isinstance(coords, dict) and coords.get("mode"):
        if coords["mode"] in _MAP_MODES:
            entries.append({**coords, "kind": "map_coords"})
        else:
            _log.warning("Ignoring map coordinates with unsupported mode %r", coords["mode"])

    return entries


class DisasterRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    disaster_event_id: str | None = None
    approval_status: str = "draft"
    start_date: str | None = None
    end_date: str | None = None
    spatial_footprint: List[FootprintEntry] = Field(default_factory=list)
    hazard_type_id: str | None = None
    hazard_cluster_id: str | None = None
    specific_hazard_id: str | None = None
    location_desc: str | None = None

    @field_validator("spatial_footprint", mode="before")
    @classmethod
    def expand_footprint(cls, value: Any) -> Any:
        try:
            value = _as_json(value)
        except json.JSONDecodeError:
            _log.warning("Unreadable spatial footprint payload dropped")
            return []
        if value is None:
            return []
        if isinstance(value, dict):
            value = [value]
        if not isinstance(value, list):
            _log.warning("Spatial footprint of type %s dropped", type(value).__name__)
            return []
        expanded: list[Any] = []
        for item in value:
            expanded.extend(expand_footprint_entry(item) if isinstance(item, dict) else [item])

        entries: list[Any] = []
        for entry in expanded:
            try:
                entries.append(_FOOTPRINT_ADAPTER.validate_python(entry))
            except ValidationError as exc:
                _log.warning(
                    "Skipping invalid footprint entry: %s",
                    "; ".join(err["msg"] for err in exc.errors()),
                )
        return entries


# ── Damage / loss rows ───────────────────────────────────────────────


class SectorRelation(BaseModel):
    """Record/sector join row; ``damage_cost``/``losses_cost`` are manual overrides."""

    model_config = ConfigDict(extra="ignore")

    record_id: str
    sector_id: int
    with_damage: bool = False
    damage_cost: float | None = None
    damage_recovery_cost: float | None = None
    with_losses: bool = False
    losses_cost: float | None = None


class DamageRow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    record_id: str
    sector_id: int
    pd_damage_amount: float | None = None
    pd_repair_cost_unit: float | None = None
    td_damage_amount: float | None = None
    td_replacement_cost_unit: float | None = None
    total_repair_replacement: float | None = None
    total_repair_replacement_override: bool = False


class LossRow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    record_id: str
    sector_id: int
    public_units: float | None = None
    public_cost_unit: float | None = None
    public_cost_total: float | None = None
    public_cost_total_override: bool = False
    private_units: float | None = None
    private_cost_unit: float | None = None
    private_cost_total: float | None = None
    private_cost_total_override: bool = False


# ── Results ──────────────────────────────────────────────────────────


class ImpactMetadata(BaseModel):
    assessment_type: Literal["rapid", "detailed"] = "detailed"
    confidence_level: Literal["low", "medium", "high"] = "high"
    currency: str = "USD"
    assessment_date: str
    assessed_by: str = "DTS Analytics System"
    notes: str = "Automatically generated assessment based on database records"


class ImpactValue(BaseModel):
    total_damage: float | None = None
    total_loss: float | None = None
    data_availability: DataAvailability = "no_data"
    by_year: Dict[int, float] = Field(default_factory=dict)
    record_ids: List[str] = Field(default_factory=list)
    metadata: ImpactMetadata | None = None


class GeographicImpactResult(BaseModel):
    success: bool
    divisions: List[Division] = Field(default_factory=list)
    values: Dict[str, ImpactValue] = Field(default_factory=dict)
    error: str | None = None
