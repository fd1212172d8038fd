"""Analytics domain models — per-entity, per-time-bucket observations.

An AnalyticsRecord summarises every opening of one entity that started
in one (year, month, weekday, hour) bucket.  Records are recomputed
wholesale from an event set; nothing here is updated incrementally.
"""

from __future__ import annotations

from datetime import datetime
from typing import NamedTuple

from pydantic import BaseModel, Field


def day_of_week(moment: datetime) -> int:
    """Weekday number with 1 = Sunday … 7 = Saturday."""
    return moment.isoweekday() % 7 + 1


class BucketKey(NamedTuple):
    """Grouping key for aggregation."""

    entity_id: str
    year: int
    month: int
    day_of_week: int
    hour: int

    @classmethod
    def for_time(cls, entity_id: str, moment: datetime) -> "BucketKey":
        return cls(entity_id, moment.year, moment.month, day_of_week(moment), moment.hour)

    @property
    def slice_key(self) -> tuple[str, int, int]:
        """(entity, weekday, hour) — the slice probabilities are normalised within."""
        return (self.entity_id, self.day_of_week, self.hour)

    def __str__(self) -> str:
        return f"{self.entity_id}-{self.year}-{self.month}-{self.day_of_week}-{self.hour}"


class AnalyticsRecord(BaseModel):
    """Immutable statistical summary of one entity's openings in one bucket."""

    entity_id: str
    entity_label: str = ""
    year: int
    month: int = Field(..., ge=1, le=12)
    day_of_week: int = Field(..., ge=1, le=7, description="1 = Sunday, 7 = Saturday")
    hour: int = Field(..., ge=0, le=23)

    opening_count: int = Field(..., ge=1)
    total_minutes_open: float = Field(..., ge=0.0)
    average_minutes_per_opening: float = Field(..., ge=0.0)
    longest_minutes: float = Field(..., ge=0.0)
    shortest_minutes: float = Field(..., ge=0.0)

    probability_of_opening: float = Field(..., ge=0.0, le=1.0)
    expected_duration: float = Field(..., ge=0.0)
    confidence: float = Field(..., ge=0.0, le=1.0)

    is_weekend_pattern: bool = False
    is_rush_hour_pattern: bool = False
    is_summer_pattern: bool = False

    model_config = {"frozen": True}

    @property
    def key(self) -> BucketKey:
        return BucketKey(self.entity_id, self.year, self.month, self.day_of_week, self.hour)

    def matches(self, entity_id: str, moment: datetime) -> bool:
        """True if *moment* falls in this record's month/weekday/hour for *entity_id*."""
        return (
            self.entity_id == entity_id
            and self.month == moment.month
            and self.day_of_week == day_of_week(moment)
            and self.hour == moment.hour
        )
