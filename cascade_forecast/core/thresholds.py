"""Quantile-based thresholds — data-driven cut points instead of constants.

Cut points are computed from the empirical distribution of each run, so
classification adapts to how strong relationships or how long openings
actually are in a given deployment.

Quantile rule:
    thresholds[q] = sorted(samples)[floor((n - 1) * q)]

The rule picks an observed sample (no interpolation), is invariant to
input order, and is non-decreasing in q.  Empty input yields 0.0 for
every requested quantile.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Sequence

from cascade_forecast.domain.enums import CascadeClassification, ImpactSeverity
from cascade_forecast.domain.event import Event

DEFAULT_QUANTILES: tuple[float, float, float] = (0.25, 0.50, 0.75)


def quantile_thresholds(samples: Iterable[float], quantiles: Sequence[float]) -> list[float]:
    """Return one cut point per requested quantile."""
    ordered = sorted(float(s) for s in samples if math.isfinite(s))
    if not ordered:
        return [0.0 for _ in quantiles]

    last = len(ordered) - 1
    cuts: list[float] = []
    for q in quantiles:
        q = min(max(float(q), 0.0), 1.0)
        cuts.append(ordered[math.floor(last * q)])
    return cuts


@dataclass(frozen=True)
class StrengthThresholds:
    """Weak / moderate / strong / very-strong cut points for one run."""

    lower: float = 0.0
    median: float = 0.0
    upper: float = 0.0

    @classmethod
    def from_samples(
        cls,
        samples: Iterable[float],
        quantiles: Sequence[float] = DEFAULT_QUANTILES,
    ) -> "StrengthThresholds":
        lower, median, upper = quantile_thresholds(samples, quantiles)
        return cls(lower=lower, median=median, upper=upper)

    def classify(self, strength: float) -> CascadeClassification:
        # Values in the top quartile (strong and very strong) share one label
        if strength >= self.upper:
            return CascadeClassification.STRONG
        if strength >= self.lower:
            return CascadeClassification.MODERATE
        return CascadeClassification.WEAK


# ── Severity classification ──────────────────────────────────────────────────

def classify_severity(
    events: Iterable[Event],
    quantiles: Sequence[float] = DEFAULT_QUANTILES,
) -> dict[str, ImpactSeverity]:
    """Map each closed, well-formed event (by key) to a duration severity.

    Quartiles are computed over the durations of the events passed in,
    so severity is relative to the dataset, not to fixed minute values.
    """
    closed = [(e.key, e.known_duration) for e in events]
    closed = [(key, d) for key, d in closed if d is not None]
    lower, median, upper = quantile_thresholds((d for _, d in closed), quantiles)

    result: dict[str, ImpactSeverity] = {}
    for key, duration in closed:
        if duration > upper:
            result[key] = ImpactSeverity.HIGH
        elif duration > median:
            result[key] = ImpactSeverity.MODERATE
        elif duration > lower:
            result[key] = ImpactSeverity.LOW
        else:
            result[key] = ImpactSeverity.MINIMAL
    return result


def severity_breakdown(events: Iterable[Event]) -> dict[ImpactSeverity, int]:
    """Count of classified events per severity level; every level is present."""
    counts = {level: 0 for level in ImpactSeverity}
    for level in classify_severity(events).values():
        counts[level] += 1
    return counts
