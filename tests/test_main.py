import json
from pathlib import Path

import pytest

from geo_impact.main import build_parser, main

FIXTURE = Path(__file__).parent / "fixtures" / "sample_impact.json"


@pytest.fixture
def db_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    path = tmp_path / "impact.db"
    assert main(["--db", str(path), "init-db"]) == 0
    assert main(["--db", str(path), "import", str(FIXTURE)]) == 0
    return path


def test_parser_requires_command() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_impact_command(db_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    capsys.readouterr()
    assert main(["--db", str(db_path), "impact", "--sector-id", "10"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["success"] is True
    assert payload["values"]["2"]["total_damage"] == 100


def test_impact_geojson_command(db_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    capsys.readouterr()
    assert main(["--db", str(db_path), "impact", "--sector-id", "10", "--level", "1", "--geojson"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert [f["properties"]["id"] for f in payload["features"]] == [1, 3]


def test_impact_unknown_sector(db_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    capsys.readouterr()
    assert main(["--db", str(db_path), "impact", "--sector-id", "999"]) == 1
    assert "Invalid sector" in capsys.readouterr().out


def test_impact_bad_date(db_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    capsys.readouterr()
    assert main(["--db", str(db_path), "impact", "--sector-id", "10", "--from-date", "May"]) == 1
    assert "Invalid filters" in capsys.readouterr().out


def test_breadcrumb_command(db_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    capsys.readouterr()
    assert main(["--db", str(db_path), "breadcrumb", "4"]) == 0
    assert [d["id"] for d in json.loads(capsys.readouterr().out)] == [3, 4]
    assert main(["--db", str(db_path), "breadcrumb", "404"]) == 1


def test_match_location_command(db_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    capsys.readouterr()
    assert main(["--db", str(db_path), "match-location", "Coastal Bay Region"]) == 0
    matches = json.loads(capsys.readouterr().out)
    assert matches[0]["id"] == 4
    assert matches[0]["confidence"] == 1.0


def test_replay_command(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    monkeypatch.chdir(tmp_path)
    assert main(["replay", str(FIXTURE)]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["summary"].startswith("Replay complete")
    assert payload["geojson"]["type"] == "FeatureCollection"
