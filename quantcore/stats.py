"""Statistical primitives shared by the pairs, basket and backtest engines.

All dispersion measures use the population convention (divide by N),
matching the rest of the analytics stack.

Regression:
    ols(x, y)        y = alpha + beta * x             (closed form)
    multi_ols(X, y)  y = alpha + X @ beta             (normal equations)
"""

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd
from numpy.typing import ArrayLike, NDArray

logger = logging.getLogger(__name__)

# Below this a window is treated as flat and its Z-score pinned to zero
MIN_STD = 1e-10

# Regressor spread (relative to its level) below which OLS slope is undefined
REL_VAR_TOL = 1e-12


@dataclass(frozen=True)
class RegressionResult:
    """Ordinary least squares fit.

    Attributes:
        beta: Slope (float) or coefficient vector (one per regressor)
        alpha: Intercept
    """

    beta: float | NDArray[np.float64]
    alpha: float

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        beta = self.beta.tolist() if isinstance(self.beta, np.ndarray) else self.beta
        return {"beta": beta, "alpha": self.alpha}


def mean(xs: ArrayLike) -> float:
    """Arithmetic mean."""
    return float(np.mean(np.asarray(xs, dtype=np.float64)))


def std(xs: ArrayLike) -> float:
    """Population standard deviation (divides by N, not N-1)."""
    return float(np.std(np.asarray(xs, dtype=np.float64), ddof=0))


def ols(x: ArrayLike, y: ArrayLike) -> RegressionResult:
    """Fit y = alpha + beta * x by ordinary least squares.

    Uses the closed-form slope/intercept. A regressor with zero variance
    has no defined slope: beta is returned as NaN and the caller decides
    what that means (e.g. the half-life sentinel).

    Args:
        x: Regressor values
        y: Dependent values, same length as x

    Returns:
        RegressionResult with scalar beta

    Raises:
        ValueError: On mismatched lengths or fewer than 2 observations

    Example:
        >>> fit = ols([1, 2, 3, 4], [5, 7, 9, 11])
        >>> round(fit.beta, 6), round(fit.alpha, 6)
        (2.0, 3.0)
    """
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)

    if len(x) != len(y):
        raise ValueError("x and y must have same length")
    if len(x) < 2:
        raise ValueError("Need at least 2 observations for OLS")

    mean_x = x.mean()
    mean_y = y.mean()
    dx = x - mean_x

    num = float(np.sum(dx * (y - mean_y)))
    den = float(np.sum(dx * dx))

    # Rounding in the mean leaves a tiny nonzero den for constant x
    scale = max(1.0, abs(float(mean_x)))
    if np.ptp(x) == 0 or den <= len(x) * (REL_VAR_TOL * scale) ** 2:
        return RegressionResult(beta=float("nan"), alpha=float("nan"))

    beta = num / den
    return RegressionResult(beta=beta, alpha=float(mean_y - beta * mean_x))


def multi_ols(X: ArrayLike, y: ArrayLike) -> RegressionResult:
    """Fit y = alpha + X @ beta with the normal equations.

    Builds the design matrix [1, X] and solves beta = (X'X)^-1 X'y.

    Args:
        X: Regressors, shape (n_obs, n_regressors)
        y: Dependent values, shape (n_obs,)

    Returns:
        RegressionResult with a coefficient vector (intercept excluded)

    Raises:
        ValueError: On shape mismatch, too few observations, or a
            singular X'X (collinear regressors)
    """
    X = np.asarray(X, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)

    if X.ndim == 1:
        X = X.reshape(-1, 1)
    if X.shape[0] != len(y):
        raise ValueError("X and y must have same number of observations")

    design = np.column_stack([np.ones(len(y)), X])
    n_obs, n_cols = design.shape

    if n_obs <= n_cols:
        raise ValueError(
            f"Need more than {n_cols} observations for {n_cols - 1} regressors, got {n_obs}"
        )

    if np.linalg.matrix_rank(design) < n_cols:
        raise ValueError("Singular design matrix: regressors are collinear")

    xtx = design.T @ design
    try:
        coefs = np.linalg.inv(xtx) @ (design.T @ y)
    except np.linalg.LinAlgError as e:
        raise ValueError(f"Singular design matrix: {e}") from e

    return RegressionResult(beta=coefs[1:], alpha=float(coefs[0]))


def zscore(series: ArrayLike, window: int | None = None) -> NDArray[np.float64]:
    """Normalise a series to Z-scores.

    With no window the whole-series mean/std are used. With a window the
    statistics are rolling: expanding until `window` observations exist,
    then an exact trailing window. Flat windows (std < MIN_STD) give 0.

    Args:
        series: Input values
        window: Rolling window length, or None for full history

    Returns:
        Z-score per index, same length as the input
    """
    values = np.asarray(series, dtype=np.float64)

    if window is None:
        mu = values.mean()
        sd = values.std(ddof=0)
        if sd < MIN_STD:
            return np.zeros_like(values)
        return (values - mu) / sd

    if window < 1:
        raise ValueError("window must be a positive integer")

    s = pd.Series(values)
    rolling = s.rolling(window=window, min_periods=1)
    mu = rolling.mean().to_numpy()
    sd = rolling.std(ddof=0).to_numpy()

    flat = ~(sd >= MIN_STD)
    z = np.divide(values - mu, sd, out=np.zeros_like(values), where=~flat)
    return z
