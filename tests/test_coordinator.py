"""End-to-end tests for ImpactCoordinator over the in-memory store."""

import asyncio
import json
from pathlib import Path

import pytest

from geo_impact.coordinator import ImpactCoordinator, ResolutionContext, to_geojson
from geo_impact.feature_flags import DEFAULT_FEATURE_FLAGS
from geo_impact.footprint import FootprintResolver
from geo_impact.models import GeographicImpactResult
from geo_impact.sources import InMemoryImpactStore

FIXTURE = Path(__file__).parent / "fixtures" / "sample_impact.json"


def _payload() -> dict:
    return json.loads(FIXTURE.read_text(encoding="utf-8"))


def _coordinator(payload: dict | None = None, **flag_overrides) -> ImpactCoordinator:
    store = InMemoryImpactStore.from_payload(payload or _payload())
    flags = {**DEFAULT_FEATURE_FLAGS, **flag_overrides}
    return ImpactCoordinator(store, flags=flags)


# ── Full resolution ──────────────────────────────────────────────────


def test_explicit_ids_roll_up_to_ancestors() -> None:
    result = _coordinator().resolve({"sector_id": 10})

    assert result.success
    assert result.values["1"].total_damage == 100
    assert result.values["2"].total_damage == 100
    assert result.values["1"].record_ids == ["r-explicit"]
    assert result.values["1"].by_year == {2023: 100}


def test_override_replaces_itemized_damage() -> None:
    result = _coordinator().resolve({"sector_id": 10})
    # r-explicit carries itemized damage of 999 and an override of 100.
    assert result.values["2"].total_damage == 100


def test_geometry_and_named_region_records() -> None:
    result = _coordinator().resolve({"sector_id": 10})

    coastal = result.values["3"]
    assert sorted(coastal.record_ids) == ["r-geometry", "r-named"]
    assert coastal.total_damage == 50
    assert coastal.total_loss == 20
    assert coastal.by_year == {2024: 70}
    assert coastal.data_availability == "available"
    assert result.values["4"].total_damage == 50


def test_draft_records_are_excluded() -> None:
    result = _coordinator().resolve({"sector_id": 10})
    assert all("r-draft" not in v.record_ids for v in result.values.values())


def test_text_fallback_matches_location_description() -> None:
    result = _coordinator().resolve({"sector_id": 20})

    assert result.success
    assert result.values["2"].record_ids == ["r-text"]
    assert result.values["1"].record_ids == ["r-text"]
    assert result.values["1"].total_loss == 7
    assert result.values["3"].data_availability == "no_data"
    assert result.values["3"].total_damage is None


def test_text_fallback_can_be_disabled() -> None:
    result = _coordinator(fallback_text_match_enabled=False).resolve({"sector_id": 20})
    assert all(v.data_availability == "no_data" for v in result.values.values())


def test_geographic_level_limits_divisions() -> None:
    result = _coordinator().resolve({"sector_id": 10, "geographic_level": 1})
    assert [d.id for d in result.divisions] == [1, 3]
    assert set(result.values) == {"1", "3"}


def test_missing_level_returns_empty_success() -> None:
    result = _coordinator().resolve({"sector_id": 10, "geographic_level": 9})
    assert result.success
    assert result.values == {}
    assert result.error


def test_unknown_sector_fails() -> None:
    result = _coordinator().resolve({"sector_id": 999})
    assert not result.success
    assert "Invalid sector" in (result.error or "")


def test_sub_sector_outside_sector_fails() -> None:
    result = _coordinator().resolve({"sector_id": 10, "sub_sector_id": 20})
    assert not result.success
    assert "not part of sector" in (result.error or "")


def test_sub_sector_narrows_expansion() -> None:
    result = _coordinator().resolve({"sector_id": 10, "sub_sector_id": 100101})
    assert result.values["1"].data_availability == "no_data"
    assert result.values["3"].total_damage == 50
    assert result.values["3"].total_loss == 0


def test_invalid_filters_fail_without_raising() -> None:
    result = _coordinator().resolve({"sector_id": 10, "from_date": "2024-13"})
    assert not result.success
    assert result.error.startswith("Invalid filters")


def test_hazard_and_date_filters() -> None:
    coord = _coordinator()
    result = coord.resolve({"sector_id": 10, "hazard_type_id": "meteo"})
    assert result.values["3"].record_ids == ["r-named"]

    result = coord.resolve({"sector_id": 10, "from_date": "2024"})
    assert result.values["1"].data_availability == "no_data"
    assert sorted(result.values["3"].record_ids) == ["r-geometry", "r-named"]


def test_metadata_is_attached() -> None:
    result = _coordinator().resolve(
        {"sector_id": 10, "assessment_type": "rapid", "confidence_level": "low"}
    )
    meta = result.values["1"].metadata
    assert meta is not None
    assert meta.assessment_type == "rapid"
    assert meta.confidence_level == "low"
    assert meta.assessed_by == "DTS Analytics System"
    assert meta.assessment_date


# ── Partial failure & diagnostics ────────────────────────────────────


def test_failing_division_does_not_abort_siblings(monkeypatch: pytest.MonkeyPatch) -> None:
    original = FootprintResolver.resolve

    def flaky(self, division, records):
        if division.id == 3:
            raise RuntimeError("boom")
        return original(self, division, records)

    monkeypatch.setattr(FootprintResolver, "resolve", flaky)
    coord = _coordinator()
    result = coord.resolve({"sector_id": 10})

    assert result.success
    assert result.values["3"].data_availability == "no_data"
    assert result.values["1"].total_damage == 100
    assert "3" in coord.ctx.division_errors
    assert coord.ctx.stage_diagnostics["aggregate"]["status"] == "partial"


def test_store_failure_reports_generic_error() -> None:
    class BrokenStore(InMemoryImpactStore):
        def list_divisions(self):
            raise OSError("disk gone")

    store = BrokenStore.from_payload(_payload())
    coord = ImpactCoordinator(store, flags=dict(DEFAULT_FEATURE_FLAGS))
    result = coord.resolve({"sector_id": 10})

    assert not result.success
    assert result.error == "Failed to process geographic impact data"
    assert coord.ctx.stage_errors["divisions"]


def test_progress_callback_and_stage_diagnostics() -> None:
    events: list[tuple[str, str]] = []
    store = InMemoryImpactStore.from_payload(_payload())
    coord = ImpactCoordinator(
        store,
        flags=dict(DEFAULT_FEATURE_FLAGS),
        on_progress=lambda stage, status, _: events.append((stage, status)),
    )
    coord.resolve({"sector_id": 10})

    assert ("sectors", "completed") in events
    assert ("aggregate", "completed") in events
    for stage in ("sectors", "records", "divisions", "costs", "aggregate"):
        assert coord.ctx.stage_diagnostics[stage]["status"] == "ok"
    assert coord.ctx.record_count == 3
    assert coord.ctx.strategy_counts["explicit_ids"] == 2


def test_task_limit_gives_same_result() -> None:
    unlimited = _coordinator().resolve({"sector_id": 10})
    limited = _coordinator(max_division_tasks=1).resolve({"sector_id": 10})
    assert set(limited.values) == set(unlimited.values)
    for key, value in unlimited.values.items():
        assert limited.values[key].total_damage == value.total_damage
        assert limited.values[key].record_ids == value.record_ids


def test_context_defaults() -> None:
    ctx = ResolutionContext()
    assert not ctx.has_errors
    ctx.division_errors["1"] = "boom"
    assert ctx.has_errors


# ── Single division & GeoJSON ────────────────────────────────────────


def test_fetch_division_impact() -> None:
    coord = _coordinator()
    value = asyncio.run(coord.fetch_division_impact(4, {"sector_id": 10}))
    assert value.total_damage == 50

    missing = asyncio.run(coord.fetch_division_impact(404, {"sector_id": 10}))
    assert missing.data_availability == "no_data"


def test_geojson_feature_collection() -> None:
    coord = _coordinator()
    collection = coord.to_geojson(coord.resolve({"sector_id": 10}))

    assert collection["type"] == "FeatureCollection"
    by_id = {f["properties"]["id"]: f for f in collection["features"]}
    assert by_id[2]["properties"]["parentId"] == 1
    assert by_id[2]["properties"]["totalDamage"] == 100
    assert by_id[2]["properties"]["dataAvailability"] == "available"
    assert by_id[3]["properties"]["totalLoss"] == 20
    assert by_id[1]["geometry"]["type"] == "Polygon"


def test_geojson_of_failed_result_is_empty() -> None:
    collection = to_geojson(GeographicImpactResult(success=False, error="Invalid sector id: 1"))
    assert collection == {"type": "FeatureCollection", "features": []}


def test_out_of_range_record_date_keeps_totals() -> None:
    payload = _payload()
    payload["records"][0]["start_date"] = "0000-05"
    coord = _coordinator(payload)

    result = coord.resolve({"sector_id": 10})
    assert result.values["1"].total_damage == 100
    assert result.values["1"].by_year == {}
    assert coord.ctx.division_errors == {}

    filtered = coord.resolve({"sector_id": 10, "from_date": "2020"})
    assert filtered.success
    assert filtered.values["2"].data_availability == "no_data"


def test_bad_footprint_entry_keeps_record() -> None:
    payload = _payload()
    payload["records"][0]["spatial_footprint"].append(
        {"map_coords": {"mode": "circle", "center": [1, 1], "radius": -5}}
    )
    result = _coordinator(payload).resolve({"sector_id": 10})
    assert result.values["2"].record_ids == ["r-explicit"]
    assert result.values["2"].total_damage == 100
