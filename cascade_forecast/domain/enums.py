"""Controlled enumerations for the cascade-forecast domain.

Every categorical field in the domain MUST reference an enum defined here.
Free-form strings are not acceptable for classification fields.
"""

from __future__ import annotations

from enum import Enum


class CascadeClassification(str, Enum):
    """Labels attached to a detected cascade.

    WEAK / MODERATE / STRONG describe the strength band relative to the
    run's own strength distribution.  IMMEDIATE / DELAYED describe timing
    and are assigned independently of strength.
    """

    WEAK = "weak"
    MODERATE = "moderate"
    STRONG = "strong"
    IMMEDIATE = "immediate"
    DELAYED = "delayed"


class ImpactSeverity(str, Enum):
    """Relative disruption of a single opening, by duration quartile."""

    MINIMAL = "minimal"
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"


class ComputeTier(str, Enum):
    """Caller-supplied processing budget, lowest to highest.

    The prediction engine treats this as an opaque ordinal; values it
    does not recognise are handled like STANDARD.
    """

    MINIMAL = "minimal"
    STANDARD = "standard"
    ADVANCED = "advanced"
    EXPERT = "expert"

    @property
    def rank(self) -> int:
        return _TIER_ORDER.index(self)

    def lower(self) -> "ComputeTier | None":
        """The next-lower tier, or None for MINIMAL."""
        idx = self.rank
        return _TIER_ORDER[idx - 1] if idx > 0 else None

    @classmethod
    def coerce(cls, value: object) -> "ComputeTier":
        """Map arbitrary input onto a tier, defaulting to STANDARD."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.STANDARD


_TIER_ORDER = [
    ComputeTier.MINIMAL,
    ComputeTier.STANDARD,
    ComputeTier.ADVANCED,
    ComputeTier.EXPERT,
]
