"""Tiered ARMA(p, 1) fitting for short event series.

Estimation method by compute tier:

    MINIMAL   AR(1) from the lag-1 autocorrelation; MA fixed at a default
    STANDARD  AR(2) from the Yule-Walker equations; MA from residual lag-1
              autocorrelation
    ADVANCED  AR(3), same method as STANDARD
    EXPERT    AR(4) Yule-Walker start, then AR and MA refined jointly by
              damped Gauss-Newton (Levenberg-Marquardt) on the residual
              sum of squares

Numerical safety:
    Any solve whose matrix has a reciprocal condition number below
    ``condition_threshold``, or that yields non-finite coefficients,
    raises NumericalInstability internally.  fit_arma() catches it and
    retries with the next-lower tier.  MINIMAL never raises, so a fit is
    always returned.

Model (on the mean-removed series z):
    z[t] = Σ phi[i] * z[t-i] + theta * e[t-1] + e[t]
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from cascade_forecast.domain.enums import ComputeTier
from cascade_forecast.foundation.cancellation import CancellationToken, is_cancelled

logger = logging.getLogger(__name__)

AR_ORDER_BY_TIER: dict[ComputeTier, int] = {
    ComputeTier.MINIMAL: 1,
    ComputeTier.STANDARD: 2,
    ComputeTier.ADVANCED: 3,
    ComputeTier.EXPERT: 4,
}

_MAX_AR = 0.99
_MAX_MA = 0.95
_LAMBDA_START = 1e-2
_LAMBDA_MAX = 1e8


class NumericalInstability(Exception):
    """Raised when a solve is too ill-conditioned to trust."""


@dataclass(frozen=True)
class ArmaConfig:
    """Tunables for ARMA estimation."""

    default_ma_coefficient: float = 0.3
    lm_max_iterations: int = 20
    lm_tolerance: float = 1e-6
    condition_threshold: float = 1e-8


@dataclass(frozen=True)
class ArmaFit:
    """A fitted model plus its in-sample diagnostics."""

    tier: ComputeTier
    mean: float
    ar: tuple[float, ...]
    ma: float
    rmse: float
    scale: float
    last_values: tuple[float, ...]
    last_residual: float
    observations: int

    @property
    def order(self) -> int:
        return len(self.ar)

    @property
    def fit_quality(self) -> float:
        """1 - RMSE / standard deviation of the series, clamped to [0, 1]."""
        if self.scale <= 0.0:
            return 1.0
        return float(min(1.0, max(0.0, 1.0 - self.rmse / self.scale)))

    def predict_next(self) -> float:
        """One-step-ahead forecast in the original units."""
        z_next = sum(phi * z for phi, z in zip(self.ar, self.last_values))
        z_next += self.ma * self.last_residual
        value = self.mean + z_next
        return value if np.isfinite(value) else self.mean


# ── Public API ───────────────────────────────────────────────────────────────

def fit_arma(
    series,
    tier: ComputeTier,
    config: ArmaConfig | None = None,
    cancel_token: CancellationToken | None = None,
) -> ArmaFit:
    """Fit the requested tier, degrading one tier at a time on instability."""
    cfg = config or ArmaConfig()
    x = np.asarray(series, dtype=float)
    x = x[np.isfinite(x)]

    current: ComputeTier | None = ComputeTier.coerce(tier)
    while current is not None:
        try:
            return _fit_tier(x, current, cfg, cancel_token)
        except NumericalInstability as exc:
            lower = current.lower()
            logger.debug("ARMA %s fit unstable (%s); falling back to %s", current.value, exc, lower)
            current = lower

    # MINIMAL does not raise; reaching here means the series is degenerate
    return _constant_fit(x, ComputeTier.MINIMAL)


# ── Tier dispatch ────────────────────────────────────────────────────────────

def _fit_tier(
    x: np.ndarray,
    tier: ComputeTier,
    cfg: ArmaConfig,
    cancel_token: CancellationToken | None,
) -> ArmaFit:
    n = len(x)
    if n < 2 or _variance(x) <= 1e-12:
        return _constant_fit(x, tier)

    if tier == ComputeTier.MINIMAL:
        return _fit_minimal(x, cfg)

    p = AR_ORDER_BY_TIER[tier]
    if n <= 2 * p:
        raise NumericalInstability(f"{n} observations are too few for AR({p})")

    mean = float(x.mean())
    z = x - mean
    phi = _yule_walker(z, p, cfg.condition_threshold)
    theta = _residual_ma(z, phi)

    if tier == ComputeTier.EXPERT:
        phi, theta = _levenberg_marquardt(z, phi, theta, cfg, cancel_token)

    return _build_fit(tier, mean, z, phi, theta)


def _fit_minimal(x: np.ndarray, cfg: ArmaConfig) -> ArmaFit:
    mean = float(x.mean())
    z = x - mean
    gamma = _autocovariance(z, 1)
    phi1 = gamma[1] / gamma[0] if gamma[0] > 0 else 0.0
    phi = np.array([float(np.clip(phi1, -_MAX_AR, _MAX_AR))])
    return _build_fit(ComputeTier.MINIMAL, mean, z, phi, cfg.default_ma_coefficient)


def _constant_fit(x: np.ndarray, tier: ComputeTier) -> ArmaFit:
    mean = float(x.mean()) if len(x) else 0.0
    last = float(x[-1] - mean) if len(x) else 0.0
    return ArmaFit(
        tier=tier,
        mean=mean,
        ar=(0.0,),
        ma=0.0,
        rmse=0.0,
        scale=0.0,
        last_values=(last,),
        last_residual=0.0,
        observations=len(x),
    )


# ── Estimation ───────────────────────────────────────────────────────────────

def _variance(x: np.ndarray) -> float:
    return float(np.var(x)) if len(x) else 0.0


def _autocovariance(z: np.ndarray, max_lag: int) -> np.ndarray:
    """Biased autocovariance (divides by n), lags 0..max_lag."""
    n = len(z)
    return np.array([
        float(np.dot(z[k:], z[:n - k])) / n if k < n else 0.0
        for k in range(max_lag + 1)
    ])


def _check_conditioning(matrix: np.ndarray, threshold: float) -> None:
    try:
        cond = np.linalg.cond(matrix)
    except np.linalg.LinAlgError as exc:
        raise NumericalInstability(str(exc)) from exc
    if not np.isfinite(cond) or cond <= 0 or 1.0 / cond < threshold:
        raise NumericalInstability(f"condition number {cond:.3g}")


def _yule_walker(z: np.ndarray, p: int, threshold: float) -> np.ndarray:
    gamma = _autocovariance(z, p)
    if gamma[0] <= 0:
        raise NumericalInstability("zero variance")
    r = gamma / gamma[0]
    toeplitz = np.array([[r[abs(i - j)] for j in range(p)] for i in range(p)])
    _check_conditioning(toeplitz, threshold)
    try:
        phi = np.linalg.solve(toeplitz, r[1:p + 1])
    except np.linalg.LinAlgError as exc:
        raise NumericalInstability(str(exc)) from exc
    if not np.all(np.isfinite(phi)):
        raise NumericalInstability("non-finite Yule-Walker coefficients")
    return np.clip(phi, -_MAX_AR, _MAX_AR)


def _ar_residuals(z: np.ndarray, phi: np.ndarray) -> np.ndarray:
    p = len(phi)
    return np.array([
        z[t] - float(np.dot(phi, z[t - p:t][::-1]))
        for t in range(p, len(z))
    ])


def _residual_ma(z: np.ndarray, phi: np.ndarray) -> float:
    """MA(1) coefficient approximated by the lag-1 autocorrelation of AR residuals."""
    e = _ar_residuals(z, phi)
    if len(e) < 2:
        return 0.0
    e = e - e.mean()
    gamma = _autocovariance(e, 1)
    if gamma[0] <= 0:
        return 0.0
    return float(np.clip(gamma[1] / gamma[0], -_MAX_MA, _MAX_MA))


def _arma_residuals(z: np.ndarray, phi: np.ndarray, theta: float) -> np.ndarray:
    p = len(phi)
    e = np.zeros(len(z) - p)
    prev = 0.0
    for idx, t in enumerate(range(p, len(z))):
        prev = z[t] - float(np.dot(phi, z[t - p:t][::-1])) - theta * prev
        e[idx] = prev
    return e


def _arma_jacobian(z: np.ndarray, phi: np.ndarray, theta: float, e: np.ndarray) -> np.ndarray:
    """d e[t] / d (phi_1..phi_p, theta), built by the residual recursion."""
    p = len(phi)
    m = len(e)
    jac = np.zeros((m, p + 1))
    prev_grad = np.zeros(p + 1)
    prev_e = 0.0
    for idx, t in enumerate(range(p, len(z))):
        grad = np.empty(p + 1)
        grad[:p] = -z[t - p:t][::-1]
        grad[p] = -prev_e
        grad -= theta * prev_grad
        jac[idx] = grad
        prev_grad = grad
        prev_e = e[idx]
    return jac


def _levenberg_marquardt(
    z: np.ndarray,
    phi: np.ndarray,
    theta: float,
    cfg: ArmaConfig,
    cancel_token: CancellationToken | None,
) -> tuple[np.ndarray, float]:
    """Refine (phi, theta) jointly; iteration count is capped by the config."""
    p = len(phi)
    beta = np.append(phi, theta)
    e = _arma_residuals(z, beta[:p], beta[p])
    rss = float(e @ e)
    lam = _LAMBDA_START

    for iteration in range(cfg.lm_max_iterations):
        if is_cancelled(cancel_token):
            logger.debug("LM refinement cancelled at iteration %d", iteration)
            break

        jac = _arma_jacobian(z, beta[:p], beta[p], e)
        normal = jac.T @ jac
        gradient = jac.T @ e
        if iteration == 0:
            _check_conditioning(normal, cfg.condition_threshold)

        damping = np.diag(np.diag(normal))
        damping[damping == 0] = 1.0
        accepted = False
        while lam <= _LAMBDA_MAX:
            try:
                step = np.linalg.solve(normal + lam * damping, -gradient)
            except np.linalg.LinAlgError:
                lam *= 10.0
                continue
            trial = beta + step
            trial[:p] = np.clip(trial[:p], -_MAX_AR, _MAX_AR)
            trial[p] = float(np.clip(trial[p], -_MAX_MA, _MAX_MA))
            trial_e = _arma_residuals(z, trial[:p], trial[p])
            trial_rss = float(trial_e @ trial_e)
            if np.isfinite(trial_rss) and trial_rss < rss:
                accepted = True
                break
            lam *= 10.0

        if not accepted:
            break

        improvement = (rss - trial_rss) / max(rss, 1e-12)
        beta, e, rss = trial, trial_e, trial_rss
        lam = max(lam / 10.0, 1e-12)
        if improvement < cfg.lm_tolerance:
            break

    if not np.all(np.isfinite(beta)):
        raise NumericalInstability("non-finite LM coefficients")
    return beta[:p], float(beta[p])


def _build_fit(tier: ComputeTier, mean: float, z: np.ndarray, phi, theta: float) -> ArmaFit:
    phi = np.asarray(phi, dtype=float)
    p = len(phi)
    e = _arma_residuals(z, phi, theta)
    rmse = float(np.sqrt(np.mean(e ** 2))) if len(e) else 0.0
    return ArmaFit(
        tier=tier,
        mean=mean,
        ar=tuple(float(v) for v in phi),
        ma=float(theta),
        rmse=rmse if np.isfinite(rmse) else 0.0,
        scale=float(np.std(z)),
        last_values=tuple(float(v) for v in z[-p:][::-1]),
        last_residual=float(e[-1]) if len(e) else 0.0,
        observations=len(z),
    )
