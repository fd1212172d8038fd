"""Tests for clock, cancellation, fingerprint, enums and settings."""

from datetime import datetime, timedelta, timezone

import pytest

from cascade_forecast.config import Settings
from cascade_forecast.domain.enums import ComputeTier
from cascade_forecast.foundation.cancellation import CancellationToken, is_cancelled
from cascade_forecast.foundation.clock import ensure_utc, minutes_between, utc_now
from cascade_forecast.foundation.fingerprint import fingerprint
from cascade_forecast.main import build_cascade_engine, build_prediction_engine

from tests.test_event import _BASE, _event


class TestClock:
    def test_utc_now_is_aware(self) -> None:
        assert utc_now().tzinfo is not None

    def test_ensure_utc_attaches_zone(self) -> None:
        assert ensure_utc(datetime(2026, 1, 1, 12)) == _BASE

    def test_ensure_utc_keeps_aware_values(self) -> None:
        plus_two = timezone(timedelta(hours=2))
        value = datetime(2026, 1, 1, 14, tzinfo=plus_two)
        assert ensure_utc(value) is value

    def test_minutes_between_is_signed(self) -> None:
        later = _BASE + timedelta(minutes=90)
        assert minutes_between(_BASE, later) == pytest.approx(90.0)
        assert minutes_between(later, _BASE) == pytest.approx(-90.0)


class TestCancellation:
    def test_token_lifecycle(self) -> None:
        token = CancellationToken()
        assert not token.cancelled
        token.cancel()
        assert token.cancelled
        assert "cancelled=True" in repr(token)

    def test_is_cancelled_accepts_none(self) -> None:
        assert not is_cancelled(None)


class TestFingerprint:
    def test_deterministic(self) -> None:
        assert fingerprint([_event("A", 0)], "x", 1) == fingerprint([_event("A", 0)], "x", 1)

    def test_collection_order_ignored(self) -> None:
        a, b = _event("A", 0), _event("B", 30)
        assert fingerprint([a, b]) == fingerprint([b, a])

    def test_scalars_are_positional(self) -> None:
        assert fingerprint("a", "b") != fingerprint("b", "a")

    def test_content_sensitive(self) -> None:
        assert fingerprint([_event("A", 0)]) != fingerprint([_event("A", 1)])


class TestComputeTier:
    def test_ordering(self) -> None:
        ranks = [t.rank for t in ComputeTier]
        assert ranks == sorted(ranks)
        assert ComputeTier.EXPERT.lower() == ComputeTier.ADVANCED
        assert ComputeTier.MINIMAL.lower() is None

    def test_coerce(self) -> None:
        assert ComputeTier.coerce("EXPERT") == ComputeTier.EXPERT
        assert ComputeTier.coerce(ComputeTier.MINIMAL) == ComputeTier.MINIMAL
        assert ComputeTier.coerce("unknown") == ComputeTier.STANDARD
        assert ComputeTier.coerce(None) == ComputeTier.STANDARD


class TestSettings:
    def test_defaults(self) -> None:
        s = Settings()
        assert s.minimum_sample_size == 10
        assert (s.cascade_window_min_minutes, s.cascade_window_max_minutes) == (30.0, 90.0)
        assert s.max_boosted_probability == 0.95

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CASCADE_MAX_DISTANCE_KM", "2.5")
        monkeypatch.setenv("CASCADE_LM_MAX_ITERATIONS", "5")
        s = Settings()
        assert s.max_distance_km == 2.5
        assert s.lm_max_iterations == 5

    def test_engines_built_from_settings(self) -> None:
        s = Settings(max_distance_km=3.0, forecast_horizon_minutes=30.0)
        assert build_cascade_engine(s).config.max_distance_km == 3.0
        assert build_prediction_engine(s).config.horizon_minutes == 30.0

    def test_invalid_window_fails_at_engine_construction(self) -> None:
        s = Settings(cascade_window_min_minutes=90.0, cascade_window_max_minutes=30.0)
        with pytest.raises(ValueError):
            build_cascade_engine(s)
