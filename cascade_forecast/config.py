"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "cascade-forecast"
    debug: bool = False
    log_level: str = "INFO"

    # Analytics aggregation
    minimum_sample_size: int = 10

    # Cascade detection
    cascade_window_min_minutes: float = 30.0
    cascade_window_max_minutes: float = 90.0
    max_distance_km: float = 5.0
    immediate_delay_minutes: float = 35.0
    cascade_weight_temporal: float = 0.25
    cascade_weight_spatial: float = 0.25
    cascade_weight_duration: float = 0.25
    cascade_weight_historical: float = 0.25
    strength_quantiles: tuple[float, float, float] = (0.25, 0.50, 0.75)

    # Forecasting
    forecast_horizon_minutes: float = 60.0
    minimum_forecast_events: int = 3
    cascade_boost_factor: float = 0.15
    max_boosted_probability: float = 0.95
    missing_prior_penalty: float = 0.7
    default_ma_coefficient: float = 0.3
    lm_max_iterations: int = 20
    lm_tolerance: float = 1e-6
    condition_threshold: float = 1e-8

    # Result cache
    cache_max_entries: int = 256

    model_config = {"env_prefix": "CASCADE_"}


settings = Settings()
