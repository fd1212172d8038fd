"""Event and EntityLocation — the inputs the core consumes.

An Event is one open/close span of a single entity.  Events are produced
by an external collaborator (network or storage layer) and are never
mutated here.  The model is deliberately permissive about durations: a
negative duration or an inverted span does not fail validation, it marks
the event as malformed so the engines can skip it without aborting the
rest of the dataset.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from cascade_forecast.foundation.clock import ensure_utc, minutes_between


def _entity_id(v: object) -> object:
    # Upstream feeds commonly use integer ids
    if isinstance(v, int) and not isinstance(v, bool):
        return str(v)
    return v


# ── Entity Location ──────────────────────────────────────────────────────────

class EntityLocation(BaseModel):
    """Static coordinates of an entity, used to build the proximity graph."""

    entity_id: str = Field(..., min_length=1, max_length=256)
    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)

    model_config = {"frozen": True}

    @field_validator("entity_id", mode="before")
    @classmethod
    def entity_id_as_string(cls, v: object) -> object:
        return _entity_id(v)


# ── Event ────────────────────────────────────────────────────────────────────

class Event(BaseModel):
    """A single entity open/close occurrence.

    Immutable after creation.  ``close_time`` is None while the entity is
    still open; ``duration_minutes`` is only meaningful once closed.
    """

    entity_id: str = Field(..., min_length=1, max_length=256)
    entity_label: str = Field(default="", max_length=256)
    open_time: datetime = Field(..., description="When the entity opened (UTC-aware)")
    close_time: Optional[datetime] = Field(
        default=None,
        description="When the entity closed, or None if still open",
    )
    duration_minutes: Optional[float] = Field(
        default=None,
        description="Minutes open; derived from the span when omitted",
    )
    latitude: float = Field(default=0.0, ge=-90.0, le=90.0)
    longitude: float = Field(default=0.0, ge=-180.0, le=180.0)

    model_config = {"frozen": True}

    # ── Validators ───────────────────────────────────────────────────────

    @field_validator("entity_id", mode="before")
    @classmethod
    def entity_id_as_string(cls, v: object) -> object:
        return _entity_id(v)

    @field_validator("open_time", "close_time")
    @classmethod
    def timestamps_must_be_aware(cls, v: datetime | None) -> datetime | None:
        if v is None:
            return v
        return ensure_utc(v)

    # ── Derived views ────────────────────────────────────────────────────

    @property
    def is_open(self) -> bool:
        return self.close_time is None

    @property
    def is_malformed(self) -> bool:
        """True for negative durations or a close time before the open time."""
        if self.duration_minutes is not None and self.duration_minutes < 0:
            return True
        if self.close_time is not None and self.close_time < self.open_time:
            return True
        return False

    @property
    def known_duration(self) -> float | None:
        """Minutes open, or None while open or when malformed."""
        if self.close_time is None or self.is_malformed:
            return None
        if self.duration_minutes is not None:
            return self.duration_minutes
        return minutes_between(self.open_time, self.close_time)

    @property
    def key(self) -> str:
        """Identity of this occurrence: entity plus open timestamp."""
        return f"{self.entity_id}-{self.open_time.isoformat()}"

    @property
    def location(self) -> EntityLocation:
        return EntityLocation(
            entity_id=self.entity_id,
            latitude=self.latitude,
            longitude=self.longitude,
        )


def locations_from_events(events: list[Event]) -> list[EntityLocation]:
    """First-seen coordinates for every distinct entity in *events*."""
    seen: dict[str, EntityLocation] = {}
    for event in events:
        if event.entity_id not in seen:
            seen[event.entity_id] = event.location
    return list(seen.values())


def events_for_entity(events: list[Event], entity_id: str) -> list[Event]:
    """Well-formed events of one entity, oldest first."""
    return sorted(
        (e for e in events if e.entity_id == entity_id and not e.is_malformed),
        key=lambda e: e.open_time,
    )
