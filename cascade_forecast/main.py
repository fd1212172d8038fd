"""cascade-forecast — analytics aggregation, cascade detection and forecasting.

This module wires the engines together from ``settings``.  Hosts call
configure_logging() once at start-up and then use the builders (or the
pipeline runner, which uses them) to obtain configured engines.
"""

from __future__ import annotations

import logging

from cascade_forecast.config import Settings, settings
from cascade_forecast.core.aggregator import AnalyticsAggregator
from cascade_forecast.core.arma import ArmaConfig
from cascade_forecast.core.cascade_engine import CascadeConfig, CascadeEngine, CascadeWeights
from cascade_forecast.core.prediction_engine import PredictionConfig, PredictionEngine
from cascade_forecast.store.result_cache import ResultCache

# ── Logging ──────────────────────────────────────────────────────────────────

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def configure_logging(cfg: Settings = settings) -> None:
    logging.basicConfig(
        level="DEBUG" if cfg.debug else cfg.log_level,
        format=LOG_FORMAT,
    )


# ── Engines ──────────────────────────────────────────────────────────────────

def build_aggregator(cfg: Settings = settings) -> AnalyticsAggregator:
    return AnalyticsAggregator(minimum_sample_size=cfg.minimum_sample_size)


def build_cascade_engine(cfg: Settings = settings) -> CascadeEngine:
    return CascadeEngine(
        config=CascadeConfig(
            window_min_minutes=cfg.cascade_window_min_minutes,
            window_max_minutes=cfg.cascade_window_max_minutes,
            max_distance_km=cfg.max_distance_km,
            immediate_delay_minutes=cfg.immediate_delay_minutes,
            strength_quantiles=tuple(cfg.strength_quantiles),
        ),
        weights=CascadeWeights(
            temporal=cfg.cascade_weight_temporal,
            spatial=cfg.cascade_weight_spatial,
            duration=cfg.cascade_weight_duration,
            historical=cfg.cascade_weight_historical,
        ),
    )


def build_prediction_engine(cfg: Settings = settings) -> PredictionEngine:
    return PredictionEngine(
        config=PredictionConfig(
            horizon_minutes=cfg.forecast_horizon_minutes,
            minimum_events=cfg.minimum_forecast_events,
            cascade_window=(cfg.cascade_window_min_minutes, cfg.cascade_window_max_minutes),
            cascade_boost_factor=cfg.cascade_boost_factor,
            max_boosted_probability=cfg.max_boosted_probability,
            missing_prior_penalty=cfg.missing_prior_penalty,
        ),
        arma_config=ArmaConfig(
            default_ma_coefficient=cfg.default_ma_coefficient,
            lm_max_iterations=cfg.lm_max_iterations,
            lm_tolerance=cfg.lm_tolerance,
            condition_threshold=cfg.condition_threshold,
        ),
    )


def build_result_cache(cfg: Settings = settings) -> ResultCache:
    return ResultCache(max_entries=cfg.cache_max_entries)
