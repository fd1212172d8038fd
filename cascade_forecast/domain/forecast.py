"""Forecast — the prediction engine's output for one entity.

A Forecast is a short-horizon estimate: how likely the entity is to open
within the horizon, for how long, and how much the estimate can be
trusted.  The rationale is a plain sentence built from the inputs that
produced the numbers.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from cascade_forecast.domain.enums import ComputeTier


class Forecast(BaseModel):
    """Immutable short-horizon forecast for one entity."""

    entity_id: str
    probability: float = Field(..., ge=0.0, le=1.0)
    expected_duration_minutes: float = Field(..., ge=0.0)
    confidence: float = Field(..., ge=0.0, le=1.0)
    model_tier: ComputeTier
    rationale: str
    horizon_minutes: float = Field(default=60.0, gt=0.0)

    # Fit diagnostics
    ar_order: int = Field(default=1, ge=1)
    ma_coefficient: float = 0.0
    rmse: float = Field(default=0.0, ge=0.0)
    cascade_boost: float = Field(default=0.0, ge=0.0)

    model_config = {"frozen": True}

    @property
    def probability_label(self) -> str:
        p = self.probability
        if p < 0.15:
            return "Very Low"
        if p < 0.35:
            return "Low"
        if p < 0.65:
            return "Moderate"
        if p < 0.85:
            return "High"
        return "Very High"

    @property
    def confidence_label(self) -> str:
        if self.confidence < 0.6:
            return "Low Confidence"
        if self.confidence < 0.8:
            return "Medium Confidence"
        return "High Confidence"

    @property
    def duration_text(self) -> str:
        minutes = self.expected_duration_minutes
        if minutes < 1:
            return "< 1 min"
        if minutes < 60:
            return f"{int(minutes)} min"
        return f"{int(minutes // 60)}h {int(minutes % 60)}m"

    @property
    def model_label(self) -> str:
        return f"ARMA({self.ar_order},1)"
