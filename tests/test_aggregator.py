"""Tests for the AnalyticsAggregator."""

from datetime import datetime, timedelta, timezone

import pytest

from cascade_forecast.core.aggregator import (
    AnalyticsAggregator,
    SeasonalMultipliers,
    aggregate,
    is_rush_hour,
    is_summer,
    is_weekend,
)
from cascade_forecast.domain.analytics import BucketKey, day_of_week
from cascade_forecast.domain.event import Event

from tests.test_event import _BASE, _event


class TestSeasonalFlags:
    def test_day_of_week_sunday_is_one(self) -> None:
        assert day_of_week(datetime(2026, 1, 4, tzinfo=timezone.utc)) == 1  # Sunday
        assert day_of_week(_BASE) == 5  # Thursday
        assert day_of_week(datetime(2026, 1, 3, tzinfo=timezone.utc)) == 7  # Saturday

    def test_weekend(self) -> None:
        assert is_weekend(1)
        assert is_weekend(7)
        assert not is_weekend(4)

    def test_rush_hour_weekdays_only(self) -> None:
        assert is_rush_hour(2, 8)
        assert is_rush_hour(6, 17)
        assert not is_rush_hour(2, 12)
        assert not is_rush_hour(1, 8)

    def test_summer_months(self) -> None:
        assert is_summer(5) and is_summer(9)
        assert not is_summer(4) and not is_summer(10)


class TestAggregation:
    def test_empty_input(self) -> None:
        assert aggregate([]) == []

    def test_single_bucket_statistics(self) -> None:
        events = [_event("A", m, duration=d) for m, d in [(0, 10.0), (10, 20.0), (20, 30.0)]]
        [record] = aggregate(events)
        assert record.key == BucketKey("A", 2026, 1, 5, 12)
        assert record.opening_count == 3
        assert record.total_minutes_open == pytest.approx(60.0)
        assert record.average_minutes_per_opening == pytest.approx(20.0)
        assert record.longest_minutes == 30.0
        assert record.shortest_minutes == 10.0
        assert record.probability_of_opening == pytest.approx(1.0)
        assert record.confidence == pytest.approx(0.3)
        # Thursday noon in January: no seasonal adjustment
        assert record.expected_duration == pytest.approx(20.0)

    def test_ten_events_in_one_bucket_give_full_confidence(self) -> None:
        events = [_event("A", i * 5) for i in range(10)]
        [record] = aggregate(events)
        assert record.opening_count == 10
        assert record.confidence == 1.0

    def test_fifty_events_split_across_two_buckets(self) -> None:
        noon = [_event("A", i * 2) for i in range(25)]
        afternoon = [_event("A", 180 + i * 2) for i in range(25)]
        records = aggregate(noon + afternoon)
        assert [r.hour for r in records] == [12, 15]
        assert [r.opening_count for r in records] == [25, 25]
        assert all(r.confidence == 1.0 for r in records)

    def test_probability_normalised_across_months(self) -> None:
        # 1 Jan and 5 Feb 2026 are both Thursdays
        jan = [_event("A", m) for m in (0, 10, 20)]
        feb = [_event("A", 35 * 24 * 60)]
        records = aggregate(jan + feb)
        assert len(records) == 2
        by_month = {r.month: r for r in records}
        assert by_month[1].probability_of_opening == pytest.approx(0.75)
        assert by_month[2].probability_of_opening == pytest.approx(0.25)
        assert sum(r.probability_of_opening for r in records) == pytest.approx(1.0)

    def test_open_events_counted_without_duration(self) -> None:
        events = [_event("A", 0, duration=12.0), _event("A", 5, duration=None)]
        [record] = aggregate(events)
        assert record.opening_count == 2
        assert record.average_minutes_per_opening == pytest.approx(12.0)

    def test_malformed_events_skipped(self) -> None:
        events = [_event("A", 0), _event("A", 5, duration=-4.0)]
        [record] = aggregate(events)
        assert record.opening_count == 1

    def test_weekend_multiplier(self) -> None:
        saturday = _event("A", 2 * 24 * 60, duration=10.0)  # 3 Jan 2026
        [record] = aggregate([saturday])
        assert record.is_weekend_pattern
        assert not record.is_rush_hour_pattern
        assert record.expected_duration == pytest.approx(12.0)

    def test_summer_rush_hour_multiplier(self) -> None:
        start = datetime(2026, 7, 6, 8, 0, tzinfo=timezone.utc)  # Monday
        event = Event(
            entity_id="A",
            open_time=start,
            close_time=start + timedelta(minutes=20),
            duration_minutes=20.0,
        )
        [record] = aggregate([event])
        assert record.day_of_week == 2
        assert record.is_summer_pattern and record.is_rush_hour_pattern
        assert record.expected_duration == pytest.approx(20.0 * 1.15 * 0.9)

    def test_custom_multipliers(self) -> None:
        agg = AnalyticsAggregator(multipliers=SeasonalMultipliers(weekend=2.0))
        [record] = agg.aggregate([_event("A", 2 * 24 * 60, duration=10.0)])
        assert record.expected_duration == pytest.approx(20.0)

    def test_entities_kept_apart(self) -> None:
        records = aggregate([_event("A", 0), _event("B", 0)])
        assert [r.entity_id for r in records] == ["A", "B"]
        assert all(r.probability_of_opening == 1.0 for r in records)

    def test_idempotent(self) -> None:
        events = [_event(e, m) for e in ("A", "B") for m in (0, 70, 1440, 2900)]
        assert aggregate(events) == aggregate(list(reversed(events)))

    def test_invalid_minimum_sample_size(self) -> None:
        with pytest.raises(ValueError):
            AnalyticsAggregator(minimum_sample_size=0)
