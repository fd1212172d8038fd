"""AnalyticsAggregator — per-entity, per-time-bucket statistics.

Design principles:
    1. Pure function: accepts events, returns a fresh list of records.
    2. No side effects, no state mutation, no I/O.
    3. Only observed buckets are materialised; nothing is zero-filled.
    4. Malformed events are skipped, never raised.

Per bucket B of entity e (year, month, weekday, hour of open time):
    opening_count   = n_B (open events included)
    total/avg/min/max over events with a known duration only
    probability     = n_B / Σ n over e's buckets with the same weekday + hour
    confidence      = min(1, n_B / minimum_sample_size)
    expected        = average × seasonal duration multiplier
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass

from cascade_forecast.domain.analytics import AnalyticsRecord, BucketKey
from cascade_forecast.domain.event import Event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SeasonalMultipliers:
    """Duration multipliers applied to a bucket's average opening length."""

    weekend: float = 1.2
    summer: float = 1.15
    rush_hour: float = 0.9


def is_weekend(day_of_week: int) -> bool:
    return day_of_week in (1, 7)


def is_rush_hour(day_of_week: int, hour: int) -> bool:
    return not is_weekend(day_of_week) and (7 <= hour <= 9 or 16 <= hour <= 18)


def is_summer(month: int) -> bool:
    return 5 <= month <= 9


class AnalyticsAggregator:
    """Stateless bucket aggregation over an event snapshot.

    Calling aggregate() twice on the same events yields equal output.
    """

    def __init__(
        self,
        minimum_sample_size: int = 10,
        multipliers: SeasonalMultipliers | None = None,
    ) -> None:
        if minimum_sample_size < 1:
            raise ValueError("minimum_sample_size must be at least 1")
        self._minimum_sample_size = minimum_sample_size
        self._multipliers = multipliers or SeasonalMultipliers()

    # ── Public API ───────────────────────────────────────────────────────

    def aggregate(self, events: list[Event]) -> list[AnalyticsRecord]:
        """Group *events* into buckets and summarise each observed bucket.

        Records are returned sorted by bucket key.
        """
        buckets: dict[BucketKey, list[Event]] = defaultdict(list)
        skipped = 0
        for event in events:
            if event.is_malformed:
                skipped += 1
                continue
            buckets[BucketKey.for_time(event.entity_id, event.open_time)].append(event)

        if skipped:
            logger.debug("Skipped %d malformed event(s) during aggregation", skipped)

        slice_totals: dict[tuple[str, int, int], int] = defaultdict(int)
        for key, members in buckets.items():
            slice_totals[key.slice_key] += len(members)

        records = [
            self._summarise(key, members, slice_totals[key.slice_key])
            for key, members in sorted(buckets.items())
        ]
        logger.debug("Aggregated %d event(s) into %d bucket(s)", len(events) - skipped, len(records))
        return records

    # ── Internals ────────────────────────────────────────────────────────

    def _summarise(self, key: BucketKey, members: list[Event], slice_total: int) -> AnalyticsRecord:
        n = len(members)
        durations = [d for d in (e.known_duration for e in members) if d is not None]

        total = sum(durations)
        average = total / len(durations) if durations else 0.0
        longest = max(durations) if durations else 0.0
        shortest = min(durations) if durations else 0.0

        weekend = is_weekend(key.day_of_week)
        rush = is_rush_hour(key.day_of_week, key.hour)
        summer = is_summer(key.month)

        probability = n / slice_total if slice_total else 0.0
        confidence = min(1.0, n / self._minimum_sample_size)

        return AnalyticsRecord(
            entity_id=key.entity_id,
            entity_label=members[0].entity_label,
            year=key.year,
            month=key.month,
            day_of_week=key.day_of_week,
            hour=key.hour,
            opening_count=n,
            total_minutes_open=total,
            average_minutes_per_opening=average,
            longest_minutes=longest,
            shortest_minutes=shortest,
            probability_of_opening=min(1.0, max(0.0, probability)),
            expected_duration=max(0.0, average * self._duration_multiplier(weekend, rush, summer)),
            confidence=confidence,
            is_weekend_pattern=weekend,
            is_rush_hour_pattern=rush,
            is_summer_pattern=summer,
        )

    def _duration_multiplier(self, weekend: bool, rush: bool, summer: bool) -> float:
        m = self._multipliers
        multiplier = 1.0
        if weekend:
            multiplier *= m.weekend
        if summer:
            multiplier *= m.summer
        if rush:
            multiplier *= m.rush_hour
        return multiplier


def aggregate(events: list[Event], minimum_sample_size: int = 10) -> list[AnalyticsRecord]:
    """Functional shorthand for AnalyticsAggregator(...).aggregate(events)."""
    return AnalyticsAggregator(minimum_sample_size=minimum_sample_size).aggregate(events)
