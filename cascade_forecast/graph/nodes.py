"""LangGraph nodes — thin wrappers that run one engine over PipelineState.

Each node:
    - Receives the full PipelineState
    - Returns a partial dict update
    - Holds no state between invocations

Engines are injected through the make_* factories so the graph can be
built with any configuration.
"""

from __future__ import annotations

import logging

from cascade_forecast.core.aggregator import AnalyticsAggregator
from cascade_forecast.core.cascade_engine import CascadeEngine
from cascade_forecast.core.prediction_engine import PredictionEngine
from cascade_forecast.foundation.cancellation import is_cancelled
from cascade_forecast.graph.state import PipelineState

logger = logging.getLogger(__name__)


# ── 1. aggregate ─────────────────────────────────────────────────────────────

def make_aggregate(aggregator: AnalyticsAggregator):
    def aggregate(state: PipelineState) -> dict:
        """Bucket the events into analytics records."""
        records = aggregator.aggregate(state.get("events", []))
        logger.debug("Aggregated %d analytics records", len(records))
        return {"analytics": records}

    return aggregate


# ── 2. detect_cascades ───────────────────────────────────────────────────────

def make_detect_cascades(engine: CascadeEngine):
    def detect_cascades(state: PipelineState) -> dict:
        """Find cascade relationships, using analytics confidence as a weight."""
        cascades = engine.detect_cascades(
            state.get("events", []),
            state.get("locations", []),
            analytics=state.get("analytics"),
            cancel_token=state.get("cancel_token"),
        )
        return {"cascades": cascades}

    return detect_cascades


def route_after_aggregate(state: PipelineState) -> str:
    """Skip cascade detection when there is nothing to locate."""
    if not state.get("locations") or is_cancelled(state.get("cancel_token")):
        return "skip"
    return "detect"


# ── 3. forecast ──────────────────────────────────────────────────────────────

def make_forecast(engine: PredictionEngine):
    def forecast(state: PipelineState) -> dict:
        """Forecast every requested entity; entities with too little history are omitted."""
        events = state.get("events", [])
        token = state.get("cancel_token")
        entity_ids = state.get("entity_ids") or sorted({e.entity_id for e in events})

        forecasts = []
        for entity_id in entity_ids:
            if is_cancelled(token):
                logger.debug("Forecasting cancelled after %d entities", len(forecasts))
                break
            result = engine.forecast(
                entity_id,
                events,
                state.get("analytics", []),
                state.get("cascades", []),
                state.get("tier"),
                horizon=state.get("horizon_minutes"),
                now=state.get("now"),
                cancel_token=token,
            )
            if result is not None:
                forecasts.append(result)
        return {"forecasts": forecasts}

    return forecast
