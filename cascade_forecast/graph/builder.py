"""Graph builder — constructs the LangGraph pipeline topology.

Topology:

    START → aggregate
               ├── "detect" → detect_cascades → forecast
               └── "skip"   → forecast
          forecast → END

The graph is compiled once and can be invoked many times.
"""

from __future__ import annotations

from langgraph.graph import END, START, StateGraph

from cascade_forecast.core.aggregator import AnalyticsAggregator
from cascade_forecast.core.cascade_engine import CascadeEngine
from cascade_forecast.core.prediction_engine import PredictionEngine
from cascade_forecast.graph.nodes import (
    make_aggregate,
    make_detect_cascades,
    make_forecast,
    route_after_aggregate,
)
from cascade_forecast.graph.state import PipelineState


def build_pipeline_graph(
    aggregator: AnalyticsAggregator,
    cascade_engine: CascadeEngine,
    prediction_engine: PredictionEngine,
):
    """Construct and compile the pipeline graph.

    Returns:
        A compiled LangGraph application.
    """
    graph = StateGraph(PipelineState)

    # ── Register nodes ───────────────────────────────────────────────────
    graph.add_node("aggregate", make_aggregate(aggregator))
    graph.add_node("detect_cascades", make_detect_cascades(cascade_engine))
    graph.add_node("forecast", make_forecast(prediction_engine))

    # ── Edges ────────────────────────────────────────────────────────────
    graph.add_edge(START, "aggregate")
    graph.add_conditional_edges(
        "aggregate",
        route_after_aggregate,
        {
            "detect": "detect_cascades",
            "skip": "forecast",
        },
    )
    graph.add_edge("detect_cascades", "forecast")
    graph.add_edge("forecast", END)

    return graph.compile()
