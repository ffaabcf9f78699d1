"""Query filters and engine tuning, validated with pydantic."""

from __future__ import annotations

from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .settings import get_default_currency
from .time_utils import flexible_date_bounds


class ImpactFilters(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    sector_id: int = Field(ge=1)
    sub_sector_id: int | None = Field(default=None, ge=1)
    hazard_type_id: str | None = None
    hazard_cluster_id: str | None = None
    specific_hazard_id: str | None = None
    disaster_event_id: str | None = None
    from_date: str | None = None
    to_date: str | None = None
    geographic_level: int | None = Field(default=None, ge=1)
    assessment_type: Literal["rapid", "detailed"] = "detailed"
    confidence_level: Literal["low", "medium", "high"] = "high"

    @field_validator("from_date", "to_date")
    @classmethod
    def validate_flexible_date(cls, value: str | None) -> str | None:
        if not value:
            return None
        if flexible_date_bounds(value) is None:
            raise ValueError(f"Invalid date {value!r}: expected YYYY, YYYY-MM or YYYY-MM-DD")
        return value

    @field_validator("hazard_type_id", "hazard_cluster_id", "specific_hazard_id", "disaster_event_id")
    @classmethod
    def blank_to_none(cls, value: str | None) -> str | None:
        return value or None

    @model_validator(mode="after")
    def validate_date_order(self) -> "ImpactFilters":
        if self.from_date and self.to_date:
            lower = flexible_date_bounds(self.from_date)
            upper = flexible_date_bounds(self.to_date)
            if lower and upper and lower[0] > upper[1]:
                raise ValueError("from_date must not be after to_date")
        return self


class EngineConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    similarity_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    word_bonus: float = Field(default=0.2, ge=0.0, le=1.0)
    min_word_length: int = Field(default=3, ge=1)
    leaf_sector_level: int = Field(default=4, ge=1)
    meters_per_degree: float = Field(default=111320.0, gt=0)
    published_status: str = "published"
    name_languages: List[str] = Field(default_factory=lambda: ["en"], min_length=1)
    currency: str = Field(default_factory=get_default_currency, pattern=r"^[A-Z]{3}$")
