"""Cascade domain models — directed relationships between nearby entities.

A CascadeRecord is one observed instance of entity A opening and entity
B opening shortly afterwards while both are close to each other.  It is
an observation with a strength score, not a claim of causation.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from cascade_forecast.domain.enums import CascadeClassification


class CascadeRecord(BaseModel):
    """Immutable description of one trigger → target relationship instance."""

    trigger_entity_id: str
    trigger_label: str = ""
    trigger_time: datetime
    trigger_duration: float = Field(..., ge=0.0)
    target_entity_id: str
    target_label: str = ""
    target_time: datetime
    target_duration: float = Field(..., ge=0.0)
    delay_minutes: float = Field(..., gt=0.0)
    distance_km: float = Field(default=0.0, ge=0.0)
    strength: float = Field(..., ge=0.0, le=1.0)
    classification: CascadeClassification = Field(
        ..., description="Strength band: weak, moderate or strong",
    )
    timing: CascadeClassification = Field(
        ..., description="Timing tag: immediate or delayed",
    )

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def endpoints_must_differ(self) -> "CascadeRecord":
        if self.trigger_entity_id == self.target_entity_id:
            raise ValueError("trigger and target must be different entities")
        if self.target_time <= self.trigger_time:
            raise ValueError("target_time must be after trigger_time")
        return self

    @property
    def key(self) -> str:
        return (
            f"{self.trigger_entity_id}-{self.target_entity_id}-"
            f"{int(self.trigger_time.timestamp())}"
        )

    @property
    def is_immediate(self) -> bool:
        return self.timing == CascadeClassification.IMMEDIATE


class CascadeProfile(BaseModel):
    """How strongly one entity participates in cascades, as trigger and as target."""

    entity_id: str
    entity_label: str = ""
    triggered_count: int = 0
    received_count: int = 0
    influence: float = Field(default=0.0, ge=0.0, le=1.0)
    susceptibility: float = Field(default=0.0, ge=0.0, le=1.0)
    primary_target_id: Optional[str] = None
    primary_target_delay_minutes: float = 0.0
    primary_trigger_id: Optional[str] = None

    model_config = {"frozen": True}


class CascadeAlert(BaseModel):
    """An expected near-term opening inferred from a recent trigger."""

    target_entity_id: str
    target_label: str = ""
    trigger_entity_id: str
    trigger_label: str = ""
    expected_time: datetime
    probability: float = Field(..., ge=0.0, le=1.0)
    classification: CascadeClassification

    model_config = {"frozen": True}

    def minutes_until(self, now: datetime) -> float:
        return (self.expected_time - now).total_seconds() / 60.0
