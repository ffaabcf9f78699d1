"""Read interfaces consumed by the engine, and an in-memory implementation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Protocol, TypeVar

from pydantic import BaseModel, ValidationError

from .config import ImpactFilters
from .models import DamageRow, DisasterRecord, Division, LossRow, Sector, SectorRelation
from .time_utils import within_date_range

_log = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class DivisionSource(Protocol):
    def list_divisions(self) -> List[Division]: ...


class SectorSource(Protocol):
    def list_sectors(self) -> List[Sector]: ...


class RecordSource(Protocol):
    def query_records(
        self,
        filters: ImpactFilters,
        *,
        sector_ids: set[int],
        published_status: str = "published",
    ) -> List[DisasterRecord]: ...


class CostSource(Protocol):
    def list_relations(self, record_ids: Iterable[str], sector_ids: Iterable[int]) -> List[SectorRelation]: ...

    def list_damages(self, record_ids: Iterable[str], sector_ids: Iterable[int]) -> List[DamageRow]: ...

    def list_losses(self, record_ids: Iterable[str], sector_ids: Iterable[int]) -> List[LossRow]: ...


class ImpactStore(DivisionSource, SectorSource, RecordSource, CostSource, Protocol):
    """Everything the coordinator reads."""


def record_matches_filters(
    record: DisasterRecord,
    filters: ImpactFilters,
    *,
    published_status: str = "published",
) -> bool:
    """Status, hazard, event and date checks shared by every store."""
    if record.approval_status != published_status:
        return False
    if filters.hazard_type_id and record.hazard_type_id != filters.hazard_type_id:
        return False
    if filters.hazard_cluster_id and record.hazard_cluster_id != filters.hazard_cluster_id:
        return False
    if filters.specific_hazard_id and record.specific_hazard_id != filters.specific_hazard_id:
        return False
    if filters.disaster_event_id and record.disaster_event_id != filters.disaster_event_id:
        return False
    return within_date_range(
        record.start_date,
        record.end_date,
        from_date=filters.from_date,
        to_date=filters.to_date,
    )


def parse_rows(model: type[ModelT], rows: Iterable[Any], *, label: str) -> List[ModelT]:
    """Validate raw rows, skipping (and logging) the ones that do not parse."""
    parsed: list[ModelT] = []
    for index, row in enumerate(rows or []):
        try:
            parsed.append(model.model_validate(row))
        except ValidationError as exc:
            _log.warning("Skipping invalid %s row #%d: %s", label, index, exc.errors()[:1])
    return parsed


@dataclass
class InMemoryImpactStore:
    divisions: List[Division] = field(default_factory=list)
    sectors: List[Sector] = field(default_factory=list)
    records: List[DisasterRecord] = field(default_factory=list)
    relations: List[SectorRelation] = field(default_factory=list)
    damages: List[DamageRow] = field(default_factory=list)
    losses: List[LossRow] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "InMemoryImpactStore":
        return cls(
            divisions=parse_rows(Division, payload.get("divisions", []), label="division"),
            sectors=parse_rows(Sector, payload.get("sectors", []), label="sector"),
            records=parse_rows(DisasterRecord, payload.get("records", []), label="record"),
            relations=parse_rows(SectorRelation, payload.get("relations", []), label="relation"),
            damages=parse_rows(DamageRow, payload.get("damages", []), label="damage"),
            losses=parse_rows(LossRow, payload.get("losses", []), label="loss"),
        )

    def list_divisions(self) -> List[Division]:
        return list(self.divisions)

    def list_sectors(self) -> List[Sector]:
        return list(self.sectors)

    def _record_sectors(self) -> dict[str, set[int]]:
        index: dict[str, set[int]] = {}
        for row in [*self.relations, *self.damages, *self.losses]:
            index.setdefault(row.record_id, set()).add(row.sector_id)
        return index

    def query_records(
        self,
        filters: ImpactFilters,
        *,
        sector_ids: set[int],
        published_status: str = "published",
    ) -> List[DisasterRecord]:
        record_sectors = self._record_sectors()
        return [
            r
            for r in self.records
            if record_sectors.get(r.id, set()) & sector_ids
            and record_matches_filters(r, filters, published_status=published_status)
        ]

    def list_relations(self, record_ids: Iterable[str], sector_ids: Iterable[int]) -> List[SectorRelation]:
        rids, sids = set(record_ids), set(sector_ids)
        return [r for r in self.relations if r.record_id in rids and r.sector_id in sids]

    def list_damages(self, record_ids: Iterable[str], sector_ids: Iterable[int]) -> List[DamageRow]:
        rids, sids = set(record_ids), set(sector_ids)
        return [r for r in self.damages if r.record_id in rids and r.sector_id in sids]

    def list_losses(self, record_ids: Iterable[str], sector_ids: Iterable[int]) -> List[LossRow]:
        rids, sids = set(record_ids), set(sector_ids)
        return [r for r in self.losses if r.record_id in rids and r.sector_id in sids]
