"""CascadeEngine — spatial-temporal cascade detection.

Design principles:
    1. Pure function: accepts events + locations, returns CascadeRecords.
    2. No side effects, no I/O; the historical prior lives only for one call.
    3. All weights and windows are explicit and configurable.
    4. Cooperative cancellation: a cancelled scan returns what it has.

Candidate pairs:
    trigger E, target F with F's entity adjacent to E's entity in the
    proximity graph and  window_min <= F.open - E.open <= window_max.

Strength formula (weights normalised to sum to 1):
    strength = w_t * temporal + w_s * spatial + w_d * duration + w_h * historical

    temporal   = 1 - 0.5 * |delay - mid| / half_width     (1 at mid, 0.5 at edges)
    spatial    = clamp(1 - distance / max_distance_km)
    duration   = clamp(1 - |dE - dF| / max(dE, dF, 1))
    historical = qualified / seen for the ordered (E, F) entity pair,
                 0.5 before any pair has been seen

    A candidate qualifies when its non-historical score reaches
    ``qualifying_score``.  With analytics supplied, strength is scaled
    by 0.5 + 0.5 * confidence of the target's bucket.

Classification:
    strength band from quantile cut points over this run's strengths;
    timing tag IMMEDIATE when delay < immediate_delay_minutes.
"""

from __future__ import annotations

import bisect
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Sequence

from cascade_forecast.core.geo import build_proximity_graph, edge_distance
from cascade_forecast.core.thresholds import DEFAULT_QUANTILES, StrengthThresholds
from cascade_forecast.domain.analytics import AnalyticsRecord, BucketKey
from cascade_forecast.domain.cascade import CascadeRecord
from cascade_forecast.domain.enums import CascadeClassification
from cascade_forecast.domain.event import EntityLocation, Event
from cascade_forecast.foundation.cancellation import CancellationToken, is_cancelled
from cascade_forecast.foundation.clock import minutes_between

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CascadeWeights:
    """Weights of the four strength factors.  Normalised internally."""

    temporal: float = 0.25
    spatial: float = 0.25
    duration: float = 0.25
    historical: float = 0.25


@dataclass(frozen=True)
class CascadeConfig:
    """Windows and thresholds for cascade detection."""

    window_min_minutes: float = 30.0
    window_max_minutes: float = 90.0
    max_distance_km: float = 5.0
    immediate_delay_minutes: float = 35.0
    qualifying_score: float = 0.5
    strength_quantiles: tuple[float, float, float] = DEFAULT_QUANTILES
    # Triggers scanned between cancellation checks
    cancel_check_interval: int = 64


@dataclass(frozen=True)
class _Candidate:
    trigger: Event
    target: Event
    delay_minutes: float
    distance_km: float
    strength: float


class CascadeEngine:
    """Stateless cascade detection over an event snapshot."""

    def __init__(
        self,
        config: CascadeConfig | None = None,
        weights: CascadeWeights | None = None,
    ) -> None:
        self._config = config or CascadeConfig()
        self._weights = weights or CascadeWeights()

        c = self._config
        if c.window_min_minutes < 0 or c.window_max_minutes <= c.window_min_minutes:
            raise ValueError("cascade window must satisfy 0 <= min < max")
        if c.max_distance_km <= 0:
            raise ValueError("max_distance_km must be positive")
        w = self._weights
        if min(w.temporal, w.spatial, w.duration, w.historical) < 0:
            raise ValueError("cascade weights must be non-negative")
        if w.temporal + w.spatial + w.duration + w.historical <= 0:
            raise ValueError("at least one cascade weight must be positive")

    @property
    def config(self) -> CascadeConfig:
        return self._config

    # ── Public API ───────────────────────────────────────────────────────

    def detect_cascades(
        self,
        events: Sequence[Event],
        locations: Sequence[EntityLocation],
        analytics: Sequence[AnalyticsRecord] | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> list[CascadeRecord]:
        """Detect cascade relationships among *events*.

        Returns an empty list when there are fewer than two events, no
        locations, or no entities within range of each other.
        """
        if len(events) < 2 or not locations:
            return []

        c = self._config
        graph = build_proximity_graph(locations, c.max_distance_km)
        if graph.number_of_edges() == 0:
            logger.debug("No entity pairs within %.2f km; no cascades possible", c.max_distance_km)
            return []

        usable = sorted(
            (
                e for e in events
                if not e.is_malformed
                and e.entity_id in graph
                and graph.degree(e.entity_id) > 0
            ),
            key=lambda e: (e.open_time, e.entity_id),
        )
        if len(usable) < 2:
            return []

        confidence_by_bucket = (
            {record.key: record.confidence for record in analytics} if analytics else None
        )
        candidates = self._scan(usable, graph, confidence_by_bucket, cancel_token)
        records = self._classify(candidates)

        logger.info(
            "Cascade detection: %d event(s), %d edge(s), %d cascade(s)",
            len(usable), graph.number_of_edges(), len(records),
        )
        return records

    # ── Scanning ─────────────────────────────────────────────────────────

    def _scan(
        self,
        usable: list[Event],
        graph,
        confidence_by_bucket: dict[BucketKey, float] | None,
        cancel_token: CancellationToken | None,
    ) -> list[_Candidate]:
        c = self._config
        times = [e.open_time.timestamp() for e in usable]
        history: dict[tuple[str, str], list[int]] = defaultdict(lambda: [0, 0])
        candidates: list[_Candidate] = []

        for i, trigger in enumerate(usable):
            if i % c.cancel_check_interval == 0 and is_cancelled(cancel_token):
                logger.info("Cascade scan cancelled after %d of %d trigger(s)", i, len(usable))
                break

            start = times[i]
            lo = bisect.bisect_left(times, start + c.window_min_minutes * 60.0, lo=i + 1)
            hi = bisect.bisect_right(times, start + c.window_max_minutes * 60.0, lo=lo)

            for target in usable[lo:hi]:
                if target.entity_id == trigger.entity_id:
                    continue
                distance = edge_distance(graph, trigger.entity_id, target.entity_id)
                if distance is None:
                    continue
                delay = minutes_between(trigger.open_time, target.open_time)
                if delay <= 0:
                    continue

                pair = (trigger.entity_id, target.entity_id)
                qualified, seen = history[pair]
                historical = qualified / seen if seen else 0.5

                temporal = self._temporal_factor(delay)
                spatial = _clamp(1.0 - distance / c.max_distance_km)
                duration = duration_correlation(
                    trigger.known_duration or 0.0, target.known_duration or 0.0,
                )
                strength = self._combine(temporal, spatial, duration, historical)

                history[pair][1] += 1
                if self._base_score(temporal, spatial, duration) >= c.qualifying_score:
                    history[pair][0] += 1

                if confidence_by_bucket is not None:
                    bucket = BucketKey.for_time(target.entity_id, target.open_time)
                    conf = confidence_by_bucket.get(bucket)
                    if conf is not None:
                        strength *= 0.5 + 0.5 * conf

                candidates.append(_Candidate(trigger, target, delay, distance, _clamp(strength)))

        return candidates

    # ── Scoring ──────────────────────────────────────────────────────────

    def _temporal_factor(self, delay: float) -> float:
        c = self._config
        mid = (c.window_min_minutes + c.window_max_minutes) / 2.0
        half_width = (c.window_max_minutes - c.window_min_minutes) / 2.0
        return _clamp(1.0 - 0.5 * abs(delay - mid) / half_width)

    def _base_score(self, temporal: float, spatial: float, duration: float) -> float:
        w = self._weights
        total = w.temporal + w.spatial + w.duration
        if total <= 0:
            return 0.5
        return (w.temporal * temporal + w.spatial * spatial + w.duration * duration) / total

    def _combine(self, temporal: float, spatial: float, duration: float, historical: float) -> float:
        w = self._weights
        total = w.temporal + w.spatial + w.duration + w.historical
        raw = (
            w.temporal * temporal
            + w.spatial * spatial
            + w.duration * duration
            + w.historical * historical
        )
        return _clamp(raw / total)

    # ── Classification ───────────────────────────────────────────────────

    def _classify(self, candidates: list[_Candidate]) -> list[CascadeRecord]:
        c = self._config
        thresholds = StrengthThresholds.from_samples(
            (cand.strength for cand in candidates), c.strength_quantiles,
        )
        records: list[CascadeRecord] = []
        for cand in candidates:
            timing = (
                CascadeClassification.IMMEDIATE
                if cand.delay_minutes < c.immediate_delay_minutes
                else CascadeClassification.DELAYED
            )
            records.append(CascadeRecord(
                trigger_entity_id=cand.trigger.entity_id,
                trigger_label=cand.trigger.entity_label,
                trigger_time=cand.trigger.open_time,
                trigger_duration=cand.trigger.known_duration or 0.0,
                target_entity_id=cand.target.entity_id,
                target_label=cand.target.entity_label,
                target_time=cand.target.open_time,
                target_duration=cand.target.known_duration or 0.0,
                delay_minutes=cand.delay_minutes,
                distance_km=cand.distance_km,
                strength=cand.strength,
                classification=thresholds.classify(cand.strength),
                timing=timing,
            ))
        return records


# ── Helpers ──────────────────────────────────────────────────────────────────

def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(value, high))


def duration_correlation(first: float, second: float) -> float:
    """Similarity of two opening durations in [0, 1]."""
    return _clamp(1.0 - abs(first - second) / max(first, second, 1.0))


def detect_cascades(
    events: Sequence[Event],
    locations: Sequence[EntityLocation],
    window: tuple[float, float] = (30.0, 90.0),
    max_distance_km: float = 5.0,
    analytics: Sequence[AnalyticsRecord] | None = None,
    cancel_token: CancellationToken | None = None,
) -> list[CascadeRecord]:
    """Functional shorthand for CascadeEngine(...).detect_cascades(...)."""
    engine = CascadeEngine(CascadeConfig(
        window_min_minutes=window[0],
        window_max_minutes=window[1],
        max_distance_km=max_distance_km,
    ))
    return engine.detect_cascades(events, locations, analytics=analytics, cancel_token=cancel_token)
