"""SQLite persistence for divisions, sectors, records and cost rows using SQLModel."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable, List

from sqlmodel import Field, Session, SQLModel, create_engine, select

from .config import ImpactFilters
from .models import DamageRow, DisasterRecord, Division, LossRow, Sector, SectorRelation
from .settings import get_db_path
from .sources import parse_rows, record_matches_filters

_log = logging.getLogger(__name__)


class DivisionTable(SQLModel, table=True):
    id: int = Field(primary_key=True)
    parent_id: int | None = Field(default=None, index=True)
    level: int = Field(default=1, index=True)
    name_json: str
    geometry_json: str | None = None
    bbox_json: str | None = None
    import_id: str | None = None


class SectorTable(SQLModel, table=True):
    id: int = Field(primary_key=True)
    parent_id: int | None = Field(default=None, index=True)
    level: int = 1
    name: str = ""
    description: str | None = None


class DisasterRecordTable(SQLModel, table=True):
    id: str = Field(primary_key=True)
    disaster_event_id: str | None = Field(default=None, index=True)
    approval_status: str = Field(default="draft", index=True)
    start_date: str | None = None
    end_date: str | None = None
    hazard_type_id: str | None = None
    hazard_cluster_id: str | None = None
    specific_hazard_id: str | None = None
    location_desc: str | None = None
    spatial_footprint_json: str = "[]"


class SectorRelationTable(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    record_id: str = Field(index=True)
    sector_id: int = Field(index=True)
    with_damage: bool = False
    damage_cost: float | None = None
    damage_recovery_cost: float | None = None
    with_losses: bool = False
    losses_cost: float | None = None


class DamageTable(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    record_id: str = Field(index=True)
    sector_id: int = Field(index=True)
    pd_damage_amount: float | None = None
    pd_repair_cost_unit: float | None = None
    td_damage_amount: float | None = None
    td_replacement_cost_unit: float | None = None
    total_repair_replacement: float | None = None
    total_repair_replacement_override: bool = False


class LossTable(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    record_id: str = Field(index=True)
    sector_id: int = Field(index=True)
    public_units: float | None = None
    public_cost_unit: float | None = None
    public_cost_total: float | None = None
    public_cost_total_override: bool = False
    private_units: float | None = None
    private_cost_unit: float | None = None
    private_cost_total: float | None = None
    private_cost_total_override: bool = False


def default_db_path() -> Path:
    return get_db_path()


def build_engine(path: Path | None = None):
    db_path = path or default_db_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return create_engine(f"sqlite:///{db_path}")


def init_db(path: Path | None = None) -> None:
    engine = build_engine(path)
    SQLModel.metadata.create_all(engine)


def _dumps(value: Any) -> str | None:
    return json.dumps(value) if value is not None else None


def _loads(text: str | None) -> Any:
    return json.loads(text) if text else None


def import_payload(payload: dict[str, Any], path: Path | None = None) -> dict[str, int]:
    """Validate and upsert a JSON payload; returns row counts per table.

    Rows that fail validation are skipped with a warning. Cost rows for a
    record are replaced wholesale when the record's rows are re-imported.
    """
    divisions = parse_rows(Division, payload.get("divisions", []), label="division")
    sectors = parse_rows(Sector, payload.get("sectors", []), label="sector")
    records = parse_rows(DisasterRecord, payload.get("records", []), label="record")
    relations = parse_rows(SectorRelation, payload.get("relations", []), label="relation")
    damages = parse_rows(DamageRow, payload.get("damages", []), label="damage")
    losses = parse_rows(LossRow, payload.get("losses", []), label="loss")

    engine = build_engine(path)
    SQLModel.metadata.create_all(engine)

    with Session(engine) as session:
        for division in divisions:
            session.merge(
                DivisionTable(
                    id=division.id,
                    parent_id=division.parent_id,
                    level=division.level,
                    name_json=json.dumps(division.name, ensure_ascii=False),
                    geometry_json=_dumps(division.geometry),
                    bbox_json=_dumps(division.bbox),
                    import_id=division.import_id,
                )
            )
        for sector in sectors:
            session.merge(SectorTable(**sector.model_dump()))
        for record in records:
            session.merge(
                DisasterRecordTable(
                    **record.model_dump(exclude={"spatial_footprint"}),
                    spatial_footprint_json=json.dumps(
                        [entry.model_dump() for entry in record.spatial_footprint]
                    ),
                )
            )

        cost_tables = (
            (SectorRelationTable, relations),
            (DamageTable, damages),
            (LossTable, losses),
        )
        for table, rows in cost_tables:
            record_ids = {row.record_id for row in rows}
            if record_ids:
                stale = list(
                    session.exec(select(table).where(table.record_id.in_(sorted(record_ids))))
                )
                for existing in stale:
                    session.delete(existing)
            for row in rows:
                session.add(table(**row.model_dump()))

        session.commit()

    counts = {
        "divisions": len(divisions),
        "sectors": len(sectors),
        "records": len(records),
        "relations": len(relations),
        "damages": len(damages),
        "losses": len(losses),
    }
    _log.info("Imported payload: %s", counts)
    return counts


def _division_payload(row: DivisionTable) -> dict[str, Any] | None:
    try:
        return {
            "id": row.id,
            "parent_id": row.parent_id,
            "level": row.level,
            "name": _loads(row.name_json),
            "geometry": _loads(row.geometry_json),
            "bbox": _loads(row.bbox_json),
            "import_id": row.import_id,
        }
    except json.JSONDecodeError:
        _log.warning("Division %s has unreadable JSON columns", row.id)
        return None


def _record_payload(row: DisasterRecordTable) -> dict[str, Any]:
    payload = row.model_dump(exclude={"spatial_footprint_json"})
    # The record model drops an unreadable footprint on its own.
    payload["spatial_footprint"] = row.spatial_footprint_json
    return payload


class SqlImpactStore:
    """``ImpactStore`` backed by the SQLite tables above."""

    def __init__(self, engine) -> None:
        self.engine = engine

    @classmethod
    def from_path(cls, path: Path | None = None) -> "SqlImpactStore":
        engine = build_engine(path)
        SQLModel.metadata.create_all(engine)
        return cls(engine)

    def list_divisions(self) -> List[Division]:
        with Session(self.engine) as session:
            rows = list(session.exec(select(DivisionTable).order_by(DivisionTable.id)))
        payloads = [p for p in (_division_payload(r) for r in rows) if p is not None]
        return parse_rows(Division, payloads, label="division")

    def list_sectors(self) -> List[Sector]:
        with Session(self.engine) as session:
            rows = list(session.exec(select(SectorTable).order_by(SectorTable.id)))
        return parse_rows(Sector, [r.model_dump() for r in rows], label="sector")

    def query_records(
        self,
        filters: ImpactFilters,
        *,
        sector_ids: set[int],
        published_status: str = "published",
    ) -> List[DisasterRecord]:
        if not sector_ids:
            return []
        ids = list(sector_ids)
        with Session(self.engine) as session:
            record_ids: set[str] = set()
            for table in (SectorRelationTable, DamageTable, LossTable):
                record_ids.update(
                    session.exec(select(table.record_id).where(table.sector_id.in_(ids)))
                )
            if not record_ids:
                return []

            statement = select(DisasterRecordTable).where(
                DisasterRecordTable.id.in_(sorted(record_ids)),
                DisasterRecordTable.approval_status == published_status,
            )
            if filters.disaster_event_id:
                statement = statement.where(
                    DisasterRecordTable.disaster_event_id == filters.disaster_event_id
                )
            rows = list(session.exec(statement.order_by(DisasterRecordTable.id)))

        records = parse_rows(DisasterRecord, [_record_payload(r) for r in rows], label="record")
        return [
            r for r in records if record_matches_filters(r, filters, published_status=published_status)
        ]

    def _cost_rows(self, table, model, record_ids: Iterable[str], sector_ids: Iterable[int], label: str):
        rids, sids = list(record_ids), list(sector_ids)
        if not rids or not sids:
            return []
        with Session(self.engine) as session:
            rows = list(
                session.exec(
                    select(table).where(table.record_id.in_(rids), table.sector_id.in_(sids))
                )
            )
        return parse_rows(model, [r.model_dump(exclude={"id"}) for r in rows], label=label)

    def list_relations(self, record_ids: Iterable[str], sector_ids: Iterable[int]) -> List[SectorRelation]:
        return self._cost_rows(SectorRelationTable, SectorRelation, record_ids, sector_ids, "relation")

    def list_damages(self, record_ids: Iterable[str], sector_ids: Iterable[int]) -> List[DamageRow]:
        return self._cost_rows(DamageTable, DamageRow, record_ids, sector_ids, "damage")

    def list_losses(self, record_ids: Iterable[str], sector_ids: Iterable[int]) -> List[LossRow]:
        return self._cost_rows(LossTable, LossRow, record_ids, sector_ids, "loss")
