"""Random-weight efficient frontier for a set of assets.

Asset statistics come from periodic log returns, annualised by the number
of periods per year (12 for monthly bars). Portfolio points are seeded with
single-asset corners and pairwise 50/50, 75/25 and 25/75 mixes so the
frontier reaches the edges, then filled with normalised random weights.
"""

import logging
import math
from dataclasses import dataclass
from itertools import combinations
from typing import Any, Mapping, Sequence

import numpy as np
from numpy.typing import ArrayLike, NDArray

logger = logging.getLogger(__name__)

DEFAULT_RISK_FREE_RATE = 0.045
PAIR_MIXES = ((0.5, 0.5), (0.75, 0.25), (0.25, 0.75))


@dataclass(frozen=True)
class Asset:
    """Annualised return/risk of one asset."""

    symbol: str
    mean_return: float
    volatility: float
    name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "name": self.name or self.symbol,
            "mean_return": self.mean_return,
            "volatility": self.volatility,
        }


@dataclass
class PortfolioPoint:
    """One candidate allocation."""

    returns: float
    volatility: float
    sharpe_ratio: float
    weights: list[float]

    def to_dict(self) -> dict[str, Any]:
        return {
            "returns": self.returns,
            "volatility": self.volatility,
            "sharpe_ratio": self.sharpe_ratio,
            "weights": self.weights,
        }


@dataclass
class OptimizationResult:
    """All simulated allocations plus the two optima."""

    simulations: list[PortfolioPoint]
    max_sharpe: PortfolioPoint
    min_vol: PortfolioPoint

    def to_dict(self) -> dict[str, Any]:
        return {
            "simulations": [p.to_dict() for p in self.simulations],
            "max_sharpe": self.max_sharpe.to_dict(),
            "min_vol": self.min_vol.to_dict(),
        }


def log_returns(prices: ArrayLike) -> NDArray[np.float64]:
    """Bar-over-bar log returns, skipping non-positive or non-finite prices."""
    p = np.asarray(prices, dtype=np.float64)
    p = p[np.isfinite(p) & (p > 0)]
    if len(p) < 2:
        return np.array([])
    return np.diff(np.log(p))


def asset_statistics(
    prices: Mapping[str, ArrayLike],
    periods_per_year: int = 12,
) -> tuple[list[Asset], dict[str, NDArray[np.float64]]]:
    """Annualised mean and volatility of each price series.

    Uses the sample standard deviation (N - 1) of log returns. Series with
    fewer than two returns get zero mean and volatility.

    Returns:
        (assets in input order, symbol -> log returns)
    """
    assets = []
    returns_map = {}

    for symbol, series in prices.items():
        rets = log_returns(series)
        if len(rets) < 2:
            logger.warning(f"Not enough returns for {symbol}, using zero statistics")
            rets = np.array([])
            mean, sd = 0.0, 0.0
        else:
            mean = float(rets.mean())
            sd = float(rets.std(ddof=1))

        returns_map[symbol] = rets
        assets.append(Asset(
            symbol=symbol,
            mean_return=mean * periods_per_year,
            volatility=sd * math.sqrt(periods_per_year),
        ))

    return assets, returns_map


def correlation_matrix(
    returns: Mapping[str, ArrayLike],
    symbols: Sequence[str] | None = None,
) -> NDArray[np.float64]:
    """Pearson correlations over the common prefix of the return series.

    The diagonal is 1. A flat series has undefined correlation, reported as
    0. With fewer than two common returns the matrix is all zeros.
    """
    symbols = list(symbols) if symbols is not None else list(returns)
    n = len(symbols)
    matrix = np.zeros((n, n))

    min_len = min((len(returns[s]) for s in symbols), default=0)
    if min_len < 2:
        return matrix

    rets = np.array([np.asarray(returns[s], dtype=np.float64)[:min_len] for s in symbols])
    dev = rets - rets.mean(axis=1, keepdims=True)
    ss = np.sum(dev * dev, axis=1)

    for i in range(n):
        for j in range(n):
            if i == j:
                matrix[i, j] = 1.0
            elif ss[i] == 0 or ss[j] == 0:
                matrix[i, j] = 0.0
            else:
                matrix[i, j] = np.sum(dev[i] * dev[j]) / math.sqrt(ss[i] * ss[j])

    return matrix


def _seed_weights(n_assets: int) -> list[NDArray[np.float64]]:
    corners = [np.eye(n_assets)[i] for i in range(n_assets)]
    mixes = []
    for i, j in combinations(range(n_assets), 2):
        for wi, wj in PAIR_MIXES:
            w = np.zeros(n_assets)
            w[i], w[j] = wi, wj
            mixes.append(w)
    return corners + mixes


def run_portfolio_simulation(
    assets: Sequence[Asset],
    num_simulations: int = 5000,
    correlations: ArrayLike | None = None,
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
    seed: int | None = None,
) -> OptimizationResult:
    """Evaluate corner, pairwise and random allocations.

    Args:
        assets: Assets with annualised return and volatility
        num_simulations: Total points including the seeded corners/mixes
        correlations: Correlation matrix (identity if None)
        risk_free_rate: Rate subtracted in the Sharpe ratio
        seed: Seed for the random weights

    Returns:
        OptimizationResult with every point, the max-Sharpe and the min-vol point

    Raises:
        ValueError: On an empty asset list or a mis-shaped correlation matrix
    """
    n = len(assets)
    if n == 0:
        raise ValueError("Need at least one asset")

    corr = np.eye(n) if correlations is None else np.asarray(correlations, dtype=np.float64)
    if corr.shape != (n, n):
        raise ValueError(f"Correlation matrix must be {n}x{n}, got {corr.shape}")

    mu = np.array([a.mean_return for a in assets])
    vol = np.array([a.volatility for a in assets])
    cov = corr * np.outer(vol, vol)

    seeded = _seed_weights(n)
    rng = np.random.default_rng(seed)
    remaining = max(0, num_simulations - len(seeded))
    raw = rng.random((remaining, n))
    random_weights = raw / raw.sum(axis=1, keepdims=True)

    weights = np.vstack(seeded + [random_weights]) if remaining else np.vstack(seeded)

    port_returns = weights @ mu
    port_vol = np.sqrt(np.maximum(np.einsum("ij,jk,ik->i", weights, cov, weights), 0.0))
    with np.errstate(divide="ignore", invalid="ignore"):
        sharpe = np.where(port_vol > 0, (port_returns - risk_free_rate) / port_vol, 0.0)

    points = [
        PortfolioPoint(
            returns=float(r),
            volatility=float(v),
            sharpe_ratio=float(s),
            weights=w.tolist(),
        )
        for r, v, s, w in zip(port_returns, port_vol, sharpe, weights)
    ]

    # argmax/argmin return the first occurrence of ties
    max_sharpe = points[int(np.argmax(sharpe))]
    min_vol = points[int(np.argmin(port_vol))]

    logger.info(
        f"Portfolio simulation over {n} assets, {len(points)} points: "
        f"max Sharpe {max_sharpe.sharpe_ratio:.3f}, min vol {min_vol.volatility:.4f}"
    )

    return OptimizationResult(simulations=points, max_sharpe=max_sharpe, min_vol=min_vol)
