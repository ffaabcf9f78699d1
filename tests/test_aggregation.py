from geo_impact.aggregation import (
    ImpactAggregator,
    classify_availability,
    itemized_damage,
    itemized_loss,
)
from geo_impact.models import DamageRow, DisasterRecord, ImpactMetadata, LossRow, SectorRelation


def _records() -> list[DisasterRecord]:
    return [
        DisasterRecord(id="a", approval_status="published", start_date="2023-05-01"),
        DisasterRecord(id="b", approval_status="published", start_date="2024"),
        DisasterRecord(id="c", approval_status="published", start_date="sometime"),
    ]


def test_itemized_damage_and_row_override() -> None:
    row = DamageRow(
        record_id="a",
        sector_id=1,
        pd_damage_amount=2,
        pd_repair_cost_unit=10,
        td_damage_amount=1,
        td_replacement_cost_unit=30,
    )
    assert itemized_damage(row) == 50
    overridden = row.model_copy(
        update={"total_repair_replacement": 7, "total_repair_replacement_override": True}
    )
    assert itemized_damage(overridden) == 7


def test_itemized_loss_public_and_private() -> None:
    row = LossRow(
        record_id="a",
        sector_id=1,
        public_units=3,
        public_cost_unit=5,
        private_cost_total=40,
        private_cost_total_override=True,
    )
    assert itemized_loss(row) == 55


def test_classify_availability() -> None:
    assert classify_availability(0, 0, 0) == "no_data"
    assert classify_availability(2, 0, 0) == "zero"
    assert classify_availability(1, 0, 3) == "available"


def test_relation_override_replaces_itemized_rows() -> None:
    agg = ImpactAggregator(
        _records(),
        relations=[SectorRelation(record_id="a", sector_id=1, with_damage=True, damage_cost=50)],
        damages=[DamageRow(record_id="a", sector_id=1, pd_damage_amount=999, pd_repair_cost_unit=1)],
    )
    amounts = agg.pair_amounts("a", 1)
    assert amounts.damage == 50
    assert amounts.damage_overridden
    assert not amounts.loss_overridden


def test_override_ignored_when_flag_unset() -> None:
    agg = ImpactAggregator(
        _records(),
        relations=[SectorRelation(record_id="a", sector_id=1, with_damage=False, damage_cost=50)],
        damages=[DamageRow(record_id="a", sector_id=1, pd_damage_amount=4, pd_repair_cost_unit=2)],
    )
    assert agg.pair_amounts("a", 1).damage == 8


def test_aggregate_totals_and_years() -> None:
    agg = ImpactAggregator(
        _records(),
        relations=[SectorRelation(record_id="b", sector_id=2, with_losses=True, losses_cost=25)],
        damages=[
            DamageRow(record_id="a", sector_id=1, pd_damage_amount=1, pd_repair_cost_unit=100),
            DamageRow(record_id="c", sector_id=1, pd_damage_amount=1, pd_repair_cost_unit=5),
            DamageRow(record_id="a", sector_id=9, pd_damage_amount=1, pd_repair_cost_unit=1000),
        ],
    )
    meta = ImpactMetadata(assessment_date="2026-01-01T00:00:00+00:00")
    value = agg.aggregate(["a", "b", "c", "a"], {1, 2}, metadata=meta)

    assert value.total_damage == 105
    assert value.total_loss == 25
    assert value.by_year == {2023: 100, 2024: 25}
    assert value.record_ids == ["a", "b", "c"]
    assert value.data_availability == "available"
    assert value.metadata == meta


def test_aggregate_without_records_is_no_data() -> None:
    value = ImpactAggregator(_records()).aggregate([], {1})
    assert value.data_availability == "no_data"
    assert value.total_damage is None
    assert value.total_loss is None


def test_aggregate_records_without_costs_is_zero() -> None:
    value = ImpactAggregator(_records()).aggregate(["a"], {1})
    assert value.data_availability == "zero"
    assert value.total_damage == 0


def test_out_of_range_start_date_counts_in_totals_only() -> None:
    records = [DisasterRecord(id="old", approval_status="published", start_date="0000-05")]
    agg = ImpactAggregator(
        records,
        relations=[SectorRelation(record_id="old", sector_id=1, with_damage=True, damage_cost=100)],
    )
    value = agg.aggregate(["old"], {1})
    assert value.total_damage == 100
    assert value.by_year == {}
    assert value.data_availability == "available"
