"""CLI entrypoint for importing data and resolving geographic impact."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, List

from pydantic import ValidationError

from .config import EngineConfig, ImpactFilters
from .coordinator import ImpactCoordinator
from .database import SqlImpactStore, import_payload, init_db
from .divisions import DivisionTree
from .replay import run_replay_fixture
from .settings import get_log_level, load_environment


def _db_path(args: argparse.Namespace) -> Path | None:
    raw = getattr(args, "db", None)
    return Path(raw).expanduser() if raw else None


def _print(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def _filters_from_args(args: argparse.Namespace) -> ImpactFilters:
    return ImpactFilters(
        sector_id=args.sector_id,
        sub_sector_id=args.sub_sector_id,
        hazard_type_id=args.hazard_type_id,
        hazard_cluster_id=args.hazard_cluster_id,
        specific_hazard_id=args.specific_hazard_id,
        disaster_event_id=args.disaster_event_id,
        from_date=args.from_date,
        to_date=args.to_date,
        geographic_level=args.level,
        assessment_type=args.assessment_type,
        confidence_level=args.confidence_level,
    )


def cmd_init_db(args: argparse.Namespace) -> int:
    init_db(_db_path(args))
    print("Initialized database")
    return 0


def cmd_import(args: argparse.Namespace) -> int:
    payload_path = Path(args.payload)
    if not payload_path.exists():
        print(f"Payload not found: {payload_path}")
        return 1
    payload = json.loads(payload_path.read_text(encoding="utf-8"))
    counts = import_payload(payload, _db_path(args))
    _print({"imported": counts})
    return 0


def cmd_impact(args: argparse.Namespace) -> int:
    try:
        filters = _filters_from_args(args)
    except ValidationError as exc:
        print(f"Invalid filters: {exc.errors()[0]['msg']}")
        return 1

    store = SqlImpactStore.from_path(_db_path(args))
    coordinator = ImpactCoordinator(store)
    result = coordinator.resolve(filters)
    if args.geojson:
        _print(coordinator.to_geojson(result))
    else:
        _print(result.model_dump(mode="json", exclude={"divisions"}))
    return 0 if result.success else 1


def cmd_breadcrumb(args: argparse.Namespace) -> int:
    store = SqlImpactStore.from_path(_db_path(args))
    tree = DivisionTree(store.list_divisions())
    chain = tree.breadcrumb(args.division_id)
    if not chain:
        print(f"Division not found: {args.division_id}")
        return 1
    _print([{"id": d.id, "name": d.name, "level": d.level} for d in chain])
    return 0


def cmd_match_location(args: argparse.Namespace) -> int:
    config = EngineConfig()
    store = SqlImpactStore.from_path(_db_path(args))
    tree = DivisionTree(store.list_divisions(), name_languages=config.name_languages)
    matches = tree.match_location(
        args.location,
        threshold=args.threshold if args.threshold is not None else config.similarity_threshold,
        word_bonus=config.word_bonus,
        min_word_length=config.min_word_length,
        level=args.level,
    )
    _print(
        [
            {
                "id": m.division.id,
                "name": m.division.original,
                "level": m.division.level,
                "confidence": round(m.confidence, 4),
            }
            for m in matches[: args.limit]
        ]
    )
    return 0


def cmd_replay_fixture(args: argparse.Namespace) -> int:
    result = run_replay_fixture(args.fixture)
    payload = {
        "summary": result.summary,
        "result": result.result.model_dump(mode="json", exclude={"divisions"}),
        "geojson": result.geojson,
    }
    _print(payload)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="geo-impact")
    parser.add_argument("--db", help="SQLite database path (defaults to GEO_IMPACT_DB_PATH)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser("init-db", help="Create database tables")
    init_parser.set_defaults(func=cmd_init_db)

    import_parser = subparsers.add_parser("import", help="Import divisions, sectors, records and cost rows")
    import_parser.add_argument("payload", help="JSON payload path")
    import_parser.set_defaults(func=cmd_import)

    impact_parser = subparsers.add_parser("impact", help="Resolve damage/loss per division")
    impact_parser.add_argument("--sector-id", type=int, required=True)
    impact_parser.add_argument("--sub-sector-id", type=int)
    impact_parser.add_argument("--hazard-type-id")
    impact_parser.add_argument("--hazard-cluster-id")
    impact_parser.add_argument("--specific-hazard-id")
    impact_parser.add_argument("--disaster-event-id")
    impact_parser.add_argument("--from-date", help="YYYY, YYYY-MM or YYYY-MM-DD")
    impact_parser.add_argument("--to-date", help="YYYY, YYYY-MM or YYYY-MM-DD")
    impact_parser.add_argument("--level", type=int, help="Only divisions at this level")
    impact_parser.add_argument("--assessment-type", choices=["rapid", "detailed"], default="detailed")
    impact_parser.add_argument("--confidence-level", choices=["low", "medium", "high"], default="high")
    impact_parser.add_argument("--geojson", action="store_true", help="Print a GeoJSON FeatureCollection")
    impact_parser.set_defaults(func=cmd_impact)

    crumb_parser = subparsers.add_parser("breadcrumb", help="Show the root-to-division chain")
    crumb_parser.add_argument("division_id", type=int)
    crumb_parser.set_defaults(func=cmd_breadcrumb)

    match_parser = subparsers.add_parser("match-location", help="Fuzzy-match free text to divisions")
    match_parser.add_argument("location")
    match_parser.add_argument("--level", type=int)
    match_parser.add_argument("--threshold", type=float)
    match_parser.add_argument("--limit", type=int, default=10)
    match_parser.set_defaults(func=cmd_match_location)

    replay_parser = subparsers.add_parser("replay", help="Run impact resolution on a JSON fixture")
    replay_parser.add_argument("fixture", help="Fixture JSON path")
    replay_parser.set_defaults(func=cmd_replay_fixture)

    return parser


def main(argv: List[str] | None = None) -> int:
    load_environment()
    logging.basicConfig(
        level=get_log_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
