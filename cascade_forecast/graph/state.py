"""PipelineState — the sole state object that LangGraph nodes read and write.

Every node receives the full state and returns a partial update.  Nodes
never reach outside this state except through the engines injected when
the graph is built.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, TypedDict

from cascade_forecast.domain.analytics import AnalyticsRecord
from cascade_forecast.domain.cascade import CascadeRecord
from cascade_forecast.domain.enums import ComputeTier
from cascade_forecast.domain.event import EntityLocation, Event
from cascade_forecast.domain.forecast import Forecast
from cascade_forecast.foundation.cancellation import CancellationToken


class PipelineState(TypedDict, total=False):
    """LangGraph state for one aggregate → detect → forecast run.

    Fields:
        events: Input events, any order, any entity.
        locations: Entity coordinates; empty means cascade detection is skipped.
        entity_ids: Entities to forecast; defaults to every entity in events.
        tier: Compute budget for forecasting.
        horizon_minutes: Forecast horizon.
        now: Reference time for forecasts.
        cancel_token: Shared cooperative cancellation flag.
        analytics: Output of the aggregate node.
        cascades: Output of the detect_cascades node.
        forecasts: Output of the forecast node, entities without enough
                   history omitted.
    """

    events: list[Event]
    locations: list[EntityLocation]
    entity_ids: list[str]
    tier: ComputeTier
    horizon_minutes: float
    now: datetime
    cancel_token: Optional[CancellationToken]

    analytics: list[AnalyticsRecord]
    cascades: list[CascadeRecord]
    forecasts: list[Forecast]
