"""Tests for tiered ARMA fitting."""

import numpy as np
import pytest

from cascade_forecast.core.arma import AR_ORDER_BY_TIER, ArmaConfig, fit_arma
from cascade_forecast.domain.enums import ComputeTier
from cascade_forecast.foundation.cancellation import CancellationToken


def _ar_series(n: int = 200, phi: tuple[float, ...] = (0.6, -0.2), mean: float = 60.0, seed: int = 1) -> np.ndarray:
    rng = np.random.default_rng(seed)
    z = np.zeros(n)
    noise = rng.normal(0.0, 5.0, n)
    for t in range(n):
        z[t] = noise[t] + sum(p * z[t - i - 1] for i, p in enumerate(phi) if t - i - 1 >= 0)
    return mean + z


class TestTierDispatch:
    @pytest.mark.parametrize("tier", list(ComputeTier))
    def test_order_matches_tier(self, tier: ComputeTier) -> None:
        fit = fit_arma(_ar_series(), tier)
        assert fit.tier == tier
        assert fit.order == AR_ORDER_BY_TIER[tier]

    def test_minimal_uses_default_ma(self) -> None:
        fit = fit_arma(_ar_series(), ComputeTier.MINIMAL)
        assert fit.ma == pytest.approx(0.3)

    def test_minimal_ma_configurable(self) -> None:
        fit = fit_arma(_ar_series(), ComputeTier.MINIMAL, ArmaConfig(default_ma_coefficient=0.1))
        assert fit.ma == pytest.approx(0.1)

    def test_unknown_tier_behaves_like_standard(self) -> None:
        fit = fit_arma(_ar_series(), "turbo")
        assert fit.tier == ComputeTier.STANDARD


class TestEstimation:
    def test_yule_walker_recovers_coefficients(self) -> None:
        fit = fit_arma(_ar_series(n=2000), ComputeTier.STANDARD)
        assert fit.ar[0] == pytest.approx(0.6, abs=0.1)
        assert fit.ar[1] == pytest.approx(-0.2, abs=0.1)
        assert fit.mean == pytest.approx(60.0, abs=1.0)

    def test_expert_not_worse_than_start(self) -> None:
        series = _ar_series(n=300)
        standard = fit_arma(series, ComputeTier.ADVANCED)
        expert = fit_arma(series, ComputeTier.EXPERT)
        assert np.isfinite(expert.rmse)
        assert expert.rmse <= standard.rmse * 1.05

    def test_fit_quality_in_unit_interval(self) -> None:
        for tier in ComputeTier:
            fit = fit_arma(_ar_series(), tier)
            assert 0.0 <= fit.fit_quality <= 1.0

    def test_prediction_is_finite(self) -> None:
        for tier in ComputeTier:
            assert np.isfinite(fit_arma(_ar_series(), tier).predict_next())


class TestDegradation:
    def test_short_series_falls_back(self) -> None:
        fit = fit_arma([10.0, 14.0, 9.0, 13.0], ComputeTier.EXPERT)
        # four points cannot support AR(2) or higher
        assert fit.tier == ComputeTier.MINIMAL

    def test_two_points_still_fit(self) -> None:
        fit = fit_arma([30.0, 40.0], ComputeTier.EXPERT)
        assert fit.tier == ComputeTier.MINIMAL
        assert np.isfinite(fit.predict_next())

    def test_constant_series(self) -> None:
        fit = fit_arma([45.0] * 20, ComputeTier.EXPERT)
        assert fit.predict_next() == pytest.approx(45.0)
        assert fit.rmse == 0.0
        assert fit.fit_quality == 1.0

    def test_empty_series(self) -> None:
        fit = fit_arma([], ComputeTier.STANDARD)
        assert fit.predict_next() == 0.0

    def test_collinear_jacobian_degrades_expert(self) -> None:
        # A pure period-2 oscillation makes every lag column collinear
        series = [10.0, 20.0] * 30
        fit = fit_arma(series, ComputeTier.EXPERT)
        assert fit.tier != ComputeTier.EXPERT
        assert np.isfinite(fit.predict_next())

    def test_ill_conditioned_toeplitz_degrades_to_minimal(self) -> None:
        strict = ArmaConfig(condition_threshold=0.5)
        fit = fit_arma(_ar_series(), ComputeTier.ADVANCED, strict)
        assert fit.tier == ComputeTier.MINIMAL

    def test_non_finite_values_dropped(self) -> None:
        series = list(_ar_series(n=50))
        series[10] = float("nan")
        fit = fit_arma(series, ComputeTier.STANDARD)
        assert fit.observations == 49


class TestCancellation:
    def test_cancelled_expert_fit_still_returns(self) -> None:
        token = CancellationToken()
        token.cancel()
        fit = fit_arma(_ar_series(), ComputeTier.EXPERT, cancel_token=token)
        assert fit.tier == ComputeTier.EXPERT
        assert np.isfinite(fit.predict_next())
