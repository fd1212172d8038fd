"""Read-only projections over detected cascades.

These helpers summarise a list of CascadeRecords for consumers: per-entity
influence/susceptibility profiles, short human-readable insights, and
near-term alerts derived from recent trigger activity.  They never modify
their inputs and never re-run detection.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Sequence

from cascade_forecast.core.thresholds import StrengthThresholds
from cascade_forecast.domain.cascade import CascadeAlert, CascadeProfile, CascadeRecord
from cascade_forecast.domain.event import Event
from cascade_forecast.foundation.clock import ensure_utc, minutes_between

logger = logging.getLogger(__name__)

HIGH_INFLUENCE = 0.5
HIGH_SUSCEPTIBILITY = 0.5


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _most_common(ids: list[str]) -> str | None:
    if not ids:
        return None
    # Ties resolve to the smallest id so output is deterministic
    counts = Counter(ids)
    best = max(counts.values())
    return min(i for i, n in counts.items() if n == best)


def cascade_profiles(cascades: Sequence[CascadeRecord]) -> list[CascadeProfile]:
    """One profile per entity that appears in *cascades*, sorted by entity id."""
    triggered: dict[str, list[CascadeRecord]] = defaultdict(list)
    received: dict[str, list[CascadeRecord]] = defaultdict(list)
    labels: dict[str, str] = {}

    for c in cascades:
        triggered[c.trigger_entity_id].append(c)
        received[c.target_entity_id].append(c)
        labels.setdefault(c.trigger_entity_id, c.trigger_label)
        labels.setdefault(c.target_entity_id, c.target_label)

    profiles: list[CascadeProfile] = []
    for entity_id in sorted(set(triggered) | set(received)):
        out = triggered.get(entity_id, [])
        inc = received.get(entity_id, [])

        primary_target = _most_common([c.target_entity_id for c in out])
        primary_delay = _mean([c.delay_minutes for c in out if c.target_entity_id == primary_target])

        profiles.append(CascadeProfile(
            entity_id=entity_id,
            entity_label=labels.get(entity_id, ""),
            triggered_count=len(out),
            received_count=len(inc),
            influence=_mean([c.strength for c in out]),
            susceptibility=_mean([c.strength for c in inc]),
            primary_target_id=primary_target,
            primary_target_delay_minutes=primary_delay,
            primary_trigger_id=_most_common([c.trigger_entity_id for c in inc]),
        ))
    return profiles


def cascade_insights(entity_id: str, cascades: Sequence[CascadeRecord]) -> list[str]:
    """Short observations about how *entity_id* takes part in cascades."""
    insights: list[str] = []
    out = [c for c in cascades if c.trigger_entity_id == entity_id]
    inc = [c for c in cascades if c.target_entity_id == entity_id]

    if out:
        if _mean([c.strength for c in out]) > HIGH_INFLUENCE:
            insights.append("High cascade influence: frequently precedes nearby openings")
        target = _most_common([c.target_entity_id for c in out])
        target_label = next((c.target_label for c in out if c.target_entity_id == target), "") or target
        count = sum(1 for c in out if c.target_entity_id == target)
        insights.append(f"Most frequently triggers {target_label} ({count} cascade events)")

    if inc:
        if _mean([c.strength for c in inc]) > HIGH_SUSCEPTIBILITY:
            insights.append("High cascade susceptibility: often opens after nearby entities")
        trigger = _most_common([c.trigger_entity_id for c in inc])
        trigger_label = next((c.trigger_label for c in inc if c.trigger_entity_id == trigger), "") or trigger
        count = sum(1 for c in inc if c.trigger_entity_id == trigger)
        insights.append(f"Most frequently triggered by {trigger_label} ({count} cascade events)")

    immediate = [c for c in out if c.is_immediate]
    if out and len(immediate) * 2 > len(out):
        insights.append("Tends to trigger immediate cascade responses")

    return insights


def cascade_alerts(
    recent_events: Sequence[Event],
    cascades: Sequence[CascadeRecord],
    now: datetime,
    lookahead_minutes: float = 15.0,
    recent_window_minutes: float = 30.0,
) -> list[CascadeAlert]:
    """Openings expected within *lookahead_minutes* of *now*.

    A completed event that opened within *recent_window_minutes* acts as a
    trigger.  For every target it has historically cascaded into with at
    least moderate strength, the expected opening time is the trigger's
    open time plus the mean historical delay.  Alerts are sorted by
    expected time.
    """
    if not cascades:
        return []

    now = ensure_utc(now)
    thresholds = StrengthThresholds.from_samples(c.strength for c in cascades)
    by_pair: dict[tuple[str, str], list[CascadeRecord]] = defaultdict(list)
    for c in cascades:
        if c.strength >= thresholds.lower:
            by_pair[(c.trigger_entity_id, c.target_entity_id)].append(c)

    alerts: list[CascadeAlert] = []
    for event in recent_events:
        if event.is_open or event.is_malformed:
            continue
        age = minutes_between(event.open_time, now)
        if not 0 <= age < recent_window_minutes:
            continue

        for (trigger_id, target_id), history in sorted(by_pair.items()):
            if trigger_id != event.entity_id:
                continue
            expected = event.open_time + timedelta(minutes=_mean([c.delay_minutes for c in history]))
            until = minutes_between(now, expected)
            if not 0 < until <= lookahead_minutes:
                continue
            strength = _mean([c.strength for c in history])
            alerts.append(CascadeAlert(
                target_entity_id=target_id,
                target_label=history[0].target_label,
                trigger_entity_id=trigger_id,
                trigger_label=event.entity_label,
                expected_time=expected,
                probability=strength,
                classification=thresholds.classify(strength),
            ))

    logger.debug("Generated %d cascade alert(s)", len(alerts))
    return sorted(alerts, key=lambda a: (a.expected_time, a.target_entity_id))
