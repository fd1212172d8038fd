"""PredictionEngine — short-horizon opening forecasts for a single entity.

Design principles:
    1. Stateless: every call fits fresh models from the supplied history.
    2. The compute tier chooses the estimator, never the output shape.
    3. Numerical trouble degrades the tier instead of failing the call.
    4. Fewer than ``minimum_events`` usable openings yields None.

Signals:
    intervals   minutes between consecutive openings (ARMA fit)
    durations   minutes open for each closed opening (ARMA fit)

Probability:
    pressure    = (horizon + elapsed) / next_interval - 1
                = horizon / next_interval - (1 - elapsed / next_interval)
    probability = logistic(steepness * pressure)

    An entity whose next opening is forecast exactly at the horizon
    sits at 0.5.  Time already elapsed since the last opening raises
    pressure.

Confidence:
    fit_quality = mean of the interval and duration fit qualities
    with a matching analytics bucket:  0.5 * record.confidence + 0.5 * fit_quality
    without one:                       fit_quality * missing_prior_penalty

Cascade boost:
    For each cascade targeting this entity whose trigger entity opened
    within the lookback window before ``now``, the strongest match adds
    strength * boost_factor.  A boosted probability is capped at
    ``max_boosted_probability``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from cascade_forecast.core.arma import ArmaConfig, ArmaFit, fit_arma
from cascade_forecast.domain.analytics import AnalyticsRecord
from cascade_forecast.domain.cascade import CascadeRecord
from cascade_forecast.domain.enums import ComputeTier
from cascade_forecast.domain.event import Event, events_for_entity
from cascade_forecast.domain.forecast import Forecast
from cascade_forecast.foundation.cancellation import CancellationToken, is_cancelled
from cascade_forecast.foundation.clock import ensure_utc, minutes_between, utc_now

logger = logging.getLogger(__name__)

_DAY_NAMES = {1: "Sunday", 2: "Monday", 3: "Tuesday", 4: "Wednesday",
              5: "Thursday", 6: "Friday", 7: "Saturday"}


@dataclass(frozen=True)
class PredictionConfig:
    """Horizon, boost and confidence tunables."""

    horizon_minutes: float = 60.0
    minimum_events: int = 3
    cascade_window: tuple[float, float] = (30.0, 90.0)
    cascade_boost_factor: float = 0.15
    max_boosted_probability: float = 0.95
    missing_prior_penalty: float = 0.7
    pressure_steepness: float = 3.0
    # Floor on the forecast interval, in minutes
    min_interval_minutes: float = 1.0


@dataclass(frozen=True)
class _Boost:
    amount: float
    cascade: CascadeRecord


class PredictionEngine:
    """Stateless tiered ARMA forecaster."""

    def __init__(
        self,
        config: PredictionConfig | None = None,
        arma_config: ArmaConfig | None = None,
    ) -> None:
        self._config = config or PredictionConfig()
        self._arma = arma_config or ArmaConfig()

        c = self._config
        if c.horizon_minutes <= 0:
            raise ValueError("horizon_minutes must be positive")
        if c.minimum_events < 3:
            raise ValueError("minimum_events must be at least 3")
        if not 0.0 < c.max_boosted_probability <= 1.0:
            raise ValueError("max_boosted_probability must be in (0, 1]")
        if c.cascade_window[0] < 0 or c.cascade_window[1] <= c.cascade_window[0]:
            raise ValueError("cascade window must satisfy 0 <= min < max")

    @property
    def config(self) -> PredictionConfig:
        return self._config

    # ── Public API ───────────────────────────────────────────────────────

    def forecast(
        self,
        entity_id: str,
        events: Sequence[Event],
        analytics: Sequence[AnalyticsRecord] = (),
        cascades: Sequence[CascadeRecord] = (),
        tier: ComputeTier | str = ComputeTier.STANDARD,
        horizon: float | None = None,
        now: datetime | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> Forecast | None:
        """Forecast *entity_id*'s next opening within *horizon* minutes of *now*.

        A cascade whose trigger opened within the look-back window boosts the
        forecast.  *events* may also hold other entities' events; their recent
        openings count as triggers for any cascade targeting *entity_id*.
        """
        c = self._config
        entity_id = str(entity_id)
        requested = ComputeTier.coerce(tier)
        horizon = float(horizon) if horizon is not None else c.horizon_minutes
        if horizon <= 0:
            raise ValueError("horizon must be positive")
        now = ensure_utc(now) if now is not None else utc_now()

        history = [e for e in events_for_entity(list(events), entity_id) if e.open_time <= now]
        if len(history) < c.minimum_events:
            logger.debug("Entity %s has %d usable events; no forecast", entity_id, len(history))
            return None
        if is_cancelled(cancel_token):
            return None

        intervals = [
            minutes_between(prev.open_time, cur.open_time)
            for prev, cur in zip(history, history[1:])
        ]
        durations = [d for d in (e.known_duration for e in history) if d is not None]

        interval_fit = fit_arma(intervals, requested, self._arma, cancel_token)
        duration_fit = (
            fit_arma(durations, requested, self._arma, cancel_token) if durations else None
        )

        # Report the lower of the two tiers actually used
        used = interval_fit.tier
        if duration_fit is not None and duration_fit.tier.rank < used.rank:
            used = duration_fit.tier
        if used != requested:
            logger.info("Forecast for %s degraded from %s to %s", entity_id, requested.value, used.value)

        next_interval = max(interval_fit.predict_next(), c.min_interval_minutes)
        elapsed = max(minutes_between(history[-1].open_time, now), 0.0)
        pressure = (horizon + elapsed) / next_interval - 1.0
        probability = _logistic(c.pressure_steepness * pressure)

        record = _matching_record(analytics, entity_id, now)
        if duration_fit is not None:
            expected_duration = max(duration_fit.predict_next(), 0.0)
        elif record is not None:
            expected_duration = record.expected_duration
        else:
            expected_duration = 0.0

        qualities = [interval_fit.fit_quality]
        if duration_fit is not None:
            qualities.append(duration_fit.fit_quality)
        fit_quality = sum(qualities) / len(qualities)
        if record is not None:
            confidence = 0.5 * record.confidence + 0.5 * fit_quality
        else:
            confidence = fit_quality * c.missing_prior_penalty

        boost = self._cascade_boost(entity_id, events, cascades, now)
        if boost is not None:
            probability = min(probability + boost.amount, c.max_boosted_probability)

        return Forecast(
            entity_id=entity_id,
            probability=_clamp(probability),
            expected_duration_minutes=expected_duration,
            confidence=_clamp(confidence),
            model_tier=used,
            rationale=_rationale(
                used, interval_fit, len(history), next_interval, elapsed, record, boost,
            ),
            horizon_minutes=horizon,
            ar_order=interval_fit.order,
            ma_coefficient=interval_fit.ma,
            rmse=interval_fit.rmse,
            cascade_boost=boost.amount if boost is not None else 0.0,
        )

    # ── Internals ────────────────────────────────────────────────────────

    def _cascade_boost(
        self,
        entity_id: str,
        events: Sequence[Event],
        cascades: Sequence[CascadeRecord],
        now: datetime,
    ) -> _Boost | None:
        incoming = [cas for cas in cascades if cas.target_entity_id == entity_id]
        if not incoming:
            return None

        lookback = self._config.cascade_window[1]
        active = {
            e.entity_id
            for e in events
            if e.entity_id != entity_id
            and not e.is_malformed
            and 0.0 <= minutes_between(e.open_time, now) <= lookback
        }

        best: CascadeRecord | None = None
        for cas in incoming:
            recent = 0.0 <= minutes_between(cas.trigger_time, now) <= lookback
            if not recent and cas.trigger_entity_id not in active:
                continue
            if best is None or cas.strength > best.strength:
                best = cas
        if best is None:
            return None
        return _Boost(amount=best.strength * self._config.cascade_boost_factor, cascade=best)


# ── Helpers ──────────────────────────────────────────────────────────────────

def _clamp(value: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return max(lo, min(hi, value))


def _logistic(x: float) -> float:
    x = max(-50.0, min(50.0, x))
    return 1.0 / (1.0 + math.exp(-x))


def _matching_record(
    analytics: Sequence[AnalyticsRecord],
    entity_id: str,
    now: datetime,
) -> AnalyticsRecord | None:
    matches = [r for r in analytics if r.matches(entity_id, now)]
    if not matches:
        return None
    return max(matches, key=lambda r: (r.confidence, r.year))


def _rationale(
    tier: ComputeTier,
    fit: ArmaFit,
    observations: int,
    next_interval: float,
    elapsed: float,
    record: AnalyticsRecord | None,
    boost: _Boost | None,
) -> str:
    parts = [
        f"{tier.value} ARMA({fit.order},1) fit on {observations} openings: "
        f"next opening expected about {next_interval:.0f} min after the last, "
        f"{elapsed:.0f} min elapsed."
    ]
    if record is not None:
        parts.append(
            f"Historical bucket ({_DAY_NAMES[record.day_of_week]} {record.hour:02d}:00) "
            f"has {record.opening_count} openings at {record.confidence:.0%} confidence."
        )
    else:
        parts.append("No historical bucket matches the current time.")
    if boost is not None:
        trigger = boost.cascade.trigger_label or boost.cascade.trigger_entity_id
        parts.append(
            f"Boosted by {boost.amount:.2f} after a recent opening of {trigger} "
            f"({boost.cascade.trigger_entity_id})."
        )
    return " ".join(parts)


_default_engine = PredictionEngine()


def forecast(
    entity_id: str,
    events: Sequence[Event],
    analytics: Sequence[AnalyticsRecord] = (),
    cascades: Sequence[CascadeRecord] = (),
    tier: ComputeTier | str = ComputeTier.STANDARD,
    horizon: float = 60.0,
    now: datetime | None = None,
    cascade_window: tuple[float, float] = (30.0, 90.0),
    cancel_token: CancellationToken | None = None,
) -> Forecast | None:
    """Functional form of PredictionEngine.forecast with default tunables."""
    engine = _default_engine
    if tuple(cascade_window) != engine.config.cascade_window:
        engine = PredictionEngine(PredictionConfig(cascade_window=tuple(cascade_window)))
    return engine.forecast(
        entity_id, events, analytics, cascades, tier,
        horizon=horizon, now=now, cancel_token=cancel_token,
    )
