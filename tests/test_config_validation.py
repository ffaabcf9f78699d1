import pytest
from pydantic import ValidationError

from geo_impact.config import EngineConfig, ImpactFilters


def test_valid_filters() -> None:
    filters = ImpactFilters(sector_id=11, from_date="2020", to_date="2021-06-30", hazard_type_id="")
    assert filters.from_date == "2020"
    assert filters.hazard_type_id is None
    assert filters.assessment_type == "detailed"


def test_sector_id_is_required_and_positive() -> None:
    with pytest.raises(ValidationError):
        ImpactFilters()
    try:
        ImpactFilters(sector_id=0)
        assert False, "Expected ValidationError"
    except ValidationError as exc:
        assert "greater than or equal" in str(exc)


def test_invalid_flexible_date() -> None:
    try:
        ImpactFilters(sector_id=1, from_date="20-01-2024")
        assert False, "Expected ValidationError"
    except ValidationError as exc:
        assert "Invalid date" in str(exc)


def test_dates_must_be_ordered() -> None:
    try:
        ImpactFilters(sector_id=1, from_date="2024-02", to_date="2024-01-31")
        assert False, "Expected ValidationError"
    except ValidationError as exc:
        assert "from_date must not be after to_date" in str(exc)
    # Same month at different precision is fine.
    assert ImpactFilters(sector_id=1, from_date="2024-01-15", to_date="2024-01").to_date == "2024-01"


def test_engine_config_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("GEO_IMPACT_CURRENCY", raising=False)
    config = EngineConfig()
    assert config.similarity_threshold == 0.6
    assert config.word_bonus == 0.2
    assert config.leaf_sector_level == 4
    assert config.meters_per_degree == 111320
    assert config.currency == "USD"


def test_engine_config_currency_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GEO_IMPACT_CURRENCY", "php")
    assert EngineConfig().currency == "PHP"
    with pytest.raises(ValidationError):
        EngineConfig(currency="pesos")
