"""Tests for the Event and EntityLocation models."""

from datetime import datetime, timedelta, timezone

import pytest

from cascade_forecast.domain.event import (
    EntityLocation,
    Event,
    events_for_entity,
    locations_from_events,
)

_BASE = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)  # a Thursday

# Two points ~2 km apart and one ~10 km from the first
_LOC_A = (47.6000, -122.3000)
_LOC_B = (47.6180, -122.3000)
_LOC_FAR = (47.6900, -122.3000)


def _event(
    entity_id: str = "A",
    minutes: float = 0.0,
    duration: float | None = 10.0,
    lat: float = _LOC_A[0],
    lon: float = _LOC_A[1],
    label: str = "",
    **overrides,
) -> Event:
    """Event opening *minutes* after _BASE and lasting *duration* (None = still open)."""
    open_time = _BASE + timedelta(minutes=minutes)
    fields = {
        "entity_id": entity_id,
        "entity_label": label or f"Entity {entity_id}",
        "open_time": open_time,
        "close_time": open_time + timedelta(minutes=duration) if duration is not None else None,
        "duration_minutes": duration,
        "latitude": lat,
        "longitude": lon,
    }
    fields.update(overrides)
    return Event(**fields)


class TestEventValidation:
    def test_valid_event_parses(self) -> None:
        e = _event()
        assert e.entity_id == "A"
        assert e.known_duration == 10.0
        assert not e.is_open

    def test_integer_entity_id_coerced(self) -> None:
        e = _event(entity_id=42)
        assert e.entity_id == "42"

    def test_naive_timestamp_treated_as_utc(self) -> None:
        e = Event(entity_id="A", open_time=datetime(2026, 1, 1, 12, 0, 0))
        assert e.open_time.tzinfo is not None
        assert e.open_time == _BASE

    def test_latitude_out_of_range_rejected(self) -> None:
        with pytest.raises(Exception):
            _event(lat=91.0)

    def test_empty_entity_id_rejected(self) -> None:
        with pytest.raises(Exception):
            _event(entity_id="")

    def test_event_is_frozen(self) -> None:
        e = _event()
        with pytest.raises(Exception):
            e.entity_id = "B"  # type: ignore[misc]


class TestEventDerivedViews:
    def test_open_event_has_no_known_duration(self) -> None:
        e = _event(duration=None)
        assert e.is_open
        assert e.known_duration is None

    def test_negative_duration_is_malformed(self) -> None:
        e = _event(duration=-5.0, close_time=_BASE + timedelta(minutes=5))
        assert e.is_malformed
        assert e.known_duration is None

    def test_close_before_open_is_malformed(self) -> None:
        e = _event(duration=None, close_time=_BASE - timedelta(minutes=1))
        assert e.is_malformed

    def test_duration_derived_from_span(self) -> None:
        e = Event(entity_id="A", open_time=_BASE, close_time=_BASE + timedelta(minutes=7.5))
        assert e.known_duration == pytest.approx(7.5)

    def test_key_combines_entity_and_open_time(self) -> None:
        e = _event(entity_id="A")
        assert e.key == f"A-{_BASE.isoformat()}"

    def test_location_view(self) -> None:
        loc = _event(lat=10.0, lon=20.0).location
        assert loc == EntityLocation(entity_id="A", latitude=10.0, longitude=20.0)


class TestEventHelpers:
    def test_locations_from_events_keeps_first_seen(self) -> None:
        events = [
            _event("A", 0, lat=1.0, lon=1.0),
            _event("A", 60, lat=2.0, lon=2.0),
            _event("B", 30, lat=3.0, lon=3.0),
        ]
        locs = {loc.entity_id: loc for loc in locations_from_events(events)}
        assert set(locs) == {"A", "B"}
        assert locs["A"].latitude == 1.0

    def test_events_for_entity_sorted_and_filtered(self) -> None:
        events = [
            _event("A", 120),
            _event("B", 10),
            _event("A", 0),
            _event("A", 60, duration=-1.0, close_time=_BASE + timedelta(minutes=61)),
        ]
        result = events_for_entity(events, "A")
        assert [e.open_time for e in result] == [_BASE, _BASE + timedelta(minutes=120)]
