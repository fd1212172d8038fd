"""Graph runner — clean interface for invoking the pipeline graph.

Usage:
    from cascade_forecast.graph.runner import run_pipeline

    result = run_pipeline(events, locations, tier="expert")

The runner builds the graph, seeds the initial state, invokes LangGraph,
and returns a PipelineResult.  No side effects.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Sequence

from pydantic import BaseModel, Field

from cascade_forecast.config import settings
from cascade_forecast.core.aggregator import AnalyticsAggregator
from cascade_forecast.core.cascade_engine import CascadeEngine
from cascade_forecast.core.prediction_engine import PredictionEngine
from cascade_forecast.domain.analytics import AnalyticsRecord
from cascade_forecast.domain.cascade import CascadeRecord
from cascade_forecast.domain.enums import ComputeTier
from cascade_forecast.domain.event import EntityLocation, Event
from cascade_forecast.domain.forecast import Forecast
from cascade_forecast.foundation.cancellation import CancellationToken
from cascade_forecast.foundation.clock import ensure_utc, utc_now
from cascade_forecast.graph.builder import build_pipeline_graph
from cascade_forecast.graph.state import PipelineState
from cascade_forecast.main import (
    build_aggregator,
    build_cascade_engine,
    build_prediction_engine,
)
from cascade_forecast.store.result_cache import ResultCache

logger = logging.getLogger(__name__)


class PipelineResult(BaseModel):
    """Everything one pipeline run produced."""

    analytics: list[AnalyticsRecord] = Field(default_factory=list)
    cascades: list[CascadeRecord] = Field(default_factory=list)
    forecasts: list[Forecast] = Field(default_factory=list)
    tier: ComputeTier
    generated_at: datetime

    model_config = {"frozen": True}

    def forecast_for(self, entity_id: str) -> Forecast | None:
        return next((f for f in self.forecasts if f.entity_id == entity_id), None)


def run_pipeline(
    events: Sequence[Event],
    locations: Sequence[EntityLocation] = (),
    tier: ComputeTier | str = ComputeTier.STANDARD,
    *,
    entity_ids: Sequence[str] | None = None,
    horizon_minutes: float | None = None,
    now: datetime | None = None,
    cancel_token: CancellationToken | None = None,
    aggregator: AnalyticsAggregator | None = None,
    cascade_engine: CascadeEngine | None = None,
    prediction_engine: PredictionEngine | None = None,
) -> PipelineResult:
    """Aggregate, detect cascades and forecast in one pass.

    Args:
        events: Input events, any order.
        locations: Entity coordinates.  Empty skips cascade detection.
        tier: Compute budget for forecasting.
        entity_ids: Entities to forecast; every entity in *events* when omitted.
        horizon_minutes: Override the configured forecast horizon.
        now: Reference time for forecasts; current UTC time when omitted.
        cancel_token: Cooperative cancellation shared by every stage.
        aggregator, cascade_engine, prediction_engine: Engine overrides;
            built from settings when omitted.
    """
    tier = ComputeTier.coerce(tier)
    now = ensure_utc(now) if now is not None else utc_now()

    initial_state: PipelineState = {
        "events": list(events),
        "locations": list(locations),
        "entity_ids": [str(e) for e in entity_ids] if entity_ids else [],
        "tier": tier,
        "horizon_minutes": horizon_minutes or settings.forecast_horizon_minutes,
        "now": now,
        "cancel_token": cancel_token,
        "analytics": [],
        "cascades": [],
        "forecasts": [],
    }

    compiled_graph = build_pipeline_graph(
        aggregator or build_aggregator(),
        cascade_engine or build_cascade_engine(),
        prediction_engine or build_prediction_engine(),
    )
    logger.info(
        "Running pipeline over %d events, %d locations (tier=%s)",
        len(initial_state["events"]), len(initial_state["locations"]), tier.value,
    )

    final_state = compiled_graph.invoke(initial_state)

    result = PipelineResult(
        analytics=final_state.get("analytics", []),
        cascades=final_state.get("cascades", []),
        forecasts=final_state.get("forecasts", []),
        tier=tier,
        generated_at=now,
    )
    logger.info(
        "Pipeline complete: analytics=%d cascades=%d forecasts=%d",
        len(result.analytics), len(result.cascades), len(result.forecasts),
    )
    return result


async def run_pipeline_cached(
    cache: ResultCache,
    events: Sequence[Event],
    locations: Sequence[EntityLocation] = (),
    tier: ComputeTier | str = ComputeTier.STANDARD,
    *,
    entity_ids: Sequence[str] | None = None,
    horizon_minutes: float | None = None,
    now: datetime | None = None,
    **engines,
) -> PipelineResult:
    """run_pipeline() memoised in *cache* by input fingerprint.

    Event and location order does not affect the key.  When *now* is
    omitted it is left out of the key and the pipeline runs at the current
    time of the first caller, so concurrent callers share one run.
    Cancelling every awaiting caller signals the running pipeline to stop
    early.
    """
    tier = ComputeTier.coerce(tier)
    now = ensure_utc(now) if now is not None else None
    horizon = horizon_minutes or settings.forecast_horizon_minutes
    ids = [str(e) for e in entity_ids] if entity_ids else []
    key = cache.key_for(
        list(events), list(locations), ids, tier.value, horizon,
        now.isoformat() if now is not None else "",
    )

    def compute(token: CancellationToken) -> PipelineResult:
        return run_pipeline(
            events, locations, tier,
            entity_ids=ids or None,
            horizon_minutes=horizon,
            now=now,
            cancel_token=token,
            **engines,
        )

    return await cache.get_or_compute(key, compute)
