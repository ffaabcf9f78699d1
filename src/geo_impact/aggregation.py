"""Damage and loss aggregation with override precedence and year bucketing."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable, Mapping

from .models import (
    DamageRow,
    DataAvailability,
    DisasterRecord,
    ImpactMetadata,
    ImpactValue,
    LossRow,
    SectorRelation,
)
from .time_utils import extract_year

_log = logging.getLogger(__name__)

Pair = tuple[str, int]


def _product(amount: float | None, unit_cost: float | None) -> float:
    return (amount or 0.0) * (unit_cost or 0.0)


def itemized_damage(row: DamageRow) -> float:
    """Repair plus replacement cost, or the row's total when it is overridden."""
    if row.total_repair_replacement_override and row.total_repair_replacement is not None:
        return row.total_repair_replacement
    return _product(row.pd_damage_amount, row.pd_repair_cost_unit) + _product(
        row.td_damage_amount, row.td_replacement_cost_unit
    )


def itemized_loss(row: LossRow) -> float:
    if row.public_cost_total_override and row.public_cost_total is not None:
        public = row.public_cost_total
    else:
        public = _product(row.public_units, row.public_cost_unit)
    if row.private_cost_total_override and row.private_cost_total is not None:
        private = row.private_cost_total
    else:
        private = _product(row.private_units, row.private_cost_unit)
    return public + private


def classify_availability(
    record_count: int, total_damage: float, total_loss: float
) -> DataAvailability:
    if record_count == 0:
        return "no_data"
    if total_damage == 0 and total_loss == 0:
        return "zero"
    return "available"


@dataclass
class PairAmounts:
    damage: float = 0.0
    loss: float = 0.0
    damage_overridden: bool = False
    loss_overridden: bool = False


class ImpactAggregator:
    """Sums damage/loss for record sets over a snapshot of cost rows.

    A manual override on the record/sector relation replaces the itemized
    rows for that pair entirely; the two are never added together.
    """

    def __init__(
        self,
        records: Mapping[str, DisasterRecord] | Iterable[DisasterRecord],
        relations: Iterable[SectorRelation] = (),
        damages: Iterable[DamageRow] = (),
        losses: Iterable[LossRow] = (),
    ) -> None:
        if isinstance(records, Mapping):
            self._records = dict(records)
        else:
            self._records = {r.id: r for r in records}

        self._relations: dict[Pair, list[SectorRelation]] = defaultdict(list)
        self._damages: dict[Pair, list[DamageRow]] = defaultdict(list)
        self._losses: dict[Pair, list[LossRow]] = defaultdict(list)
        self._sectors_by_record: dict[str, set[int]] = defaultdict(set)

        for rel in relations:
            self._relations[(rel.record_id, rel.sector_id)].append(rel)
            self._sectors_by_record[rel.record_id].add(rel.sector_id)
        for row in damages:
            self._damages[(row.record_id, row.sector_id)].append(row)
            self._sectors_by_record[row.record_id].add(row.sector_id)
        for row in losses:
            self._losses[(row.record_id, row.sector_id)].append(row)
            self._sectors_by_record[row.record_id].add(row.sector_id)

    def sectors_for(self, record_id: str) -> set[int]:
        return set(self._sectors_by_record.get(record_id, set()))

    def pair_amounts(self, record_id: str, sector_id: int) -> PairAmounts:
        pair = (record_id, sector_id)
        amounts = PairAmounts()
        relations = self._relations.get(pair, [])

        damage_override = next(
            (r.damage_cost for r in relations if r.with_damage and r.damage_cost is not None),
            None,
        )
        if damage_override is not None:
            amounts.damage = damage_override
            amounts.damage_overridden = True
        else:
            amounts.damage = sum(itemized_damage(row) for row in self._damages.get(pair, []))

        loss_override = next(
            (r.losses_cost for r in relations if r.with_losses and r.losses_cost is not None),
            None,
        )
        if loss_override is not None:
            amounts.loss = loss_override
            amounts.loss_overridden = True
        else:
            amounts.loss = sum(itemized_loss(row) for row in self._losses.get(pair, []))

        return amounts

    def aggregate(
        self,
        record_ids: Iterable[str],
        sector_ids: Iterable[int],
        *,
        metadata: ImpactMetadata | None = None,
    ) -> ImpactValue:
        record_ids = list(dict.fromkeys(record_ids))
        sector_ids = set(sector_ids)
        if not record_ids:
            return ImpactValue(data_availability="no_data", metadata=metadata)

        total_damage = 0.0
        total_loss = 0.0
        by_year: dict[int, float] = defaultdict(float)

        for record_id in record_ids:
            record = self._records.get(record_id)
            year = extract_year(record.start_date) if record is not None else None
            if record is not None and year is None and record.start_date:
                _log.debug("Record %s has unparseable start date %r", record_id, record.start_date)

            for sector_id in sorted(self.sectors_for(record_id) & sector_ids):
                amounts = self.pair_amounts(record_id, sector_id)
                total_damage += amounts.damage
                total_loss += amounts.loss
                if year is not None:
                    by_year[year] += amounts.damage + amounts.loss

        return ImpactValue(
            total_damage=total_damage,
            total_loss=total_loss,
            data_availability=classify_availability(len(record_ids), total_damage, total_loss),
            by_year=dict(sorted(by_year.items())),
            record_ids=record_ids,
            metadata=metadata,
        )
