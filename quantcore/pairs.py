"""Pairs and basket cointegration analysis.

Pipeline for a pair (A, B):
    1. Log prices
    2. OLS of log A on log B -> hedge ratio β and intercept α
    3. Spread = log A - β·log B - α
    4. Half-life of mean reversion from an AR(1) fit of the spread
    5. Cointegrated when 0 < half-life < 60 bars
    6. Z-score of the spread (global or rolling)
    7. Backtest of the Z-score strategy

A basket generalises step 2 to a multivariate regression of one dependent
series on all the others.
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from itertools import combinations
from typing import Any, Mapping, Sequence

import numpy as np
import pandas as pd
from numpy.typing import ArrayLike, NDArray

from quantcore import stats
from quantcore.backtest import BacktestConfig, BacktestEngine, BacktestResult

logger = logging.getLogger(__name__)

# Half-life reported for a spread that does not mean-revert
NO_MEAN_REVERSION = 999.0
MAX_COINTEGRATED_HALF_LIFE = 60.0
MIN_OBSERVATIONS = 3


@dataclass
class SpreadStats:
    """Summary of a spread and the last observed leg prices."""

    mean_spread: float
    std_spread: float
    last_prices: dict[str, float]

    def to_dict(self) -> dict[str, Any]:
        return {
            "mean_spread": self.mean_spread,
            "std_spread": self.std_spread,
            "last_prices": self.last_prices,
        }


@dataclass
class PairsAnalysisResult:
    """Cointegration analysis of two series.

    Attributes:
        symbols: (A, B) leg names
        hedge_ratio: β of log A on log B
        alpha: Regression intercept
        spread: Residual spread per bar
        z_score: Spread Z-score per bar
        current_z_score: Last Z-score
        half_life: Mean-reversion half-life in bars (999 = none)
        is_cointegrated: 0 < half-life < 60
        stats: Spread mean/std and last prices
        backtest: Strategy backtest on the Z-score
    """

    symbols: tuple[str, str]
    hedge_ratio: float
    alpha: float
    spread: NDArray[np.float64]
    z_score: NDArray[np.float64]
    current_z_score: float
    half_life: float
    is_cointegrated: bool
    stats: SpreadStats
    backtest: BacktestResult

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbols": list(self.symbols),
            "hedge_ratio": self.hedge_ratio,
            "alpha": self.alpha,
            "spread": self.spread.tolist(),
            "z_score": self.z_score.tolist(),
            "current_z_score": self.current_z_score,
            "half_life": self.half_life,
            "is_cointegrated": self.is_cointegrated,
            "stats": self.stats.to_dict(),
            "backtest": self.backtest.to_dict(),
        }


@dataclass
class BasketAnalysisResult:
    """Cointegration analysis of a basket.

    Attributes:
        dependent: Symbol regressed on the others
        weights: Spread weight per symbol (1 for the dependent, -coef otherwise)
        alpha: Regression intercept
        spread: Regression residual per bar
        z_score: Spread Z-score per bar
        current_z_score: Last Z-score
        half_life: Mean-reversion half-life in bars (999 = none)
        is_cointegrated: 0 < half-life < 60
        stats: Spread mean/std and last prices
        backtest: Strategy backtest across all legs
    """

    dependent: str
    weights: dict[str, float]
    alpha: float
    spread: NDArray[np.float64]
    z_score: NDArray[np.float64]
    current_z_score: float
    half_life: float
    is_cointegrated: bool
    stats: SpreadStats
    backtest: BacktestResult

    def to_dict(self) -> dict[str, Any]:
        return {
            "dependent": self.dependent,
            "weights": self.weights,
            "alpha": self.alpha,
            "spread": self.spread.tolist(),
            "z_score": self.z_score.tolist(),
            "current_z_score": self.current_z_score,
            "half_life": self.half_life,
            "is_cointegrated": self.is_cointegrated,
            "stats": self.stats.to_dict(),
            "backtest": self.backtest.to_dict(),
        }


@dataclass
class ScannerResult:
    """One row of a pair scan."""

    symbol_a: str
    symbol_b: str
    is_cointegrated: bool
    half_life: float
    current_z_score: float
    hedge_ratio: float
    observations: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol_a": self.symbol_a,
            "symbol_b": self.symbol_b,
            "is_cointegrated": self.is_cointegrated,
            "half_life": self.half_life,
            "current_z_score": self.current_z_score,
            "hedge_ratio": self.hedge_ratio,
            "observations": self.observations,
        }


def _validate_series(
    series: Mapping[str, ArrayLike],
    dates: Sequence,
    min_observations: int = MIN_OBSERVATIONS,
) -> dict[str, NDArray[np.float64]]:
    """Check aligned, positive, finite series over strictly increasing dates."""
    arrays = {name: np.asarray(values, dtype=np.float64) for name, values in series.items()}

    for name, values in arrays.items():
        if values.ndim != 1:
            raise ValueError(f"Series {name} must be one-dimensional")
        if len(values) != len(dates):
            raise ValueError(
                f"Series {name} has {len(values)} prices but there are {len(dates)} dates"
            )
        if not np.all(np.isfinite(values)) or np.any(values <= 0):
            raise ValueError(f"Series {name} must contain finite, positive prices")

    if len(dates) < min_observations:
        raise ValueError(f"Need at least {min_observations} observations, got {len(dates)}")

    index = pd.Index(pd.to_datetime(list(dates)))
    if not (index.is_monotonic_increasing and index.is_unique):
        raise ValueError("dates must be strictly increasing")

    return arrays


def calculate_half_life(spread: ArrayLike) -> float:
    """Half-life of mean reversion in bars.

    Fits spread[t] = c + φ·spread[t-1]; a stationary AR(1) decays with
    half-life ln 2 / -ln φ. Returns 999 when φ is outside (0, 1) or the
    fit is undefined.

    Example:
        >>> calculate_half_life([1, 2, 4, 8, 16])  # explosive, φ = 2
        999.0
    """
    spread = np.asarray(spread, dtype=np.float64)
    if len(spread) < 3:
        return NO_MEAN_REVERSION

    phi = stats.ols(spread[:-1], spread[1:]).beta
    if not math.isfinite(phi) or phi >= 1 or phi <= 0:
        return NO_MEAN_REVERSION

    return math.log(2) / -math.log(phi)


def _is_cointegrated(half_life: float) -> bool:
    return 0 < half_life < MAX_COINTEGRATED_HALF_LIFE


def analyze_pairs(
    prices_a: ArrayLike,
    prices_b: ArrayLike,
    dates: Sequence,
    config: BacktestConfig | None = None,
    symbols: tuple[str, str] = ("A", "B"),
) -> PairsAnalysisResult:
    """Run the full pairs pipeline on two aligned price series.

    Args:
        prices_a: Prices of the dependent leg
        prices_b: Prices of the hedge leg
        dates: Bar dates, strictly increasing
        config: Backtest configuration (defaults if None)
        symbols: Leg names used in trade records

    Returns:
        PairsAnalysisResult

    Raises:
        ValueError: On misaligned or non-positive input, or a constant B
    """
    config = config or BacktestConfig()
    sym_a, sym_b = symbols
    if sym_a == sym_b:
        raise ValueError("Pair legs must have distinct symbols")

    arrays = _validate_series({sym_a: prices_a, sym_b: prices_b}, dates)
    pa, pb = arrays[sym_a], arrays[sym_b]
    log_a, log_b = np.log(pa), np.log(pb)

    fit = stats.ols(log_b, log_a)
    if not math.isfinite(fit.beta):
        raise ValueError(f"Cannot regress on {sym_b}: log prices have zero variance")

    spread = log_a - fit.beta * log_b - fit.alpha
    z = stats.zscore(spread, config.rolling_window)
    half_life = calculate_half_life(spread)

    engine = BacktestEngine(config, weights=[1.0, -fit.beta], symbols=[sym_a, sym_b])
    backtest = engine.run(z, np.column_stack([pa, pb]), [str(d) for d in dates])

    logger.info(
        f"Pair {sym_a}/{sym_b}: beta={fit.beta:.4f}, half-life={half_life:.2f}, "
        f"z={z[-1]:.2f}, {backtest.trades} trades"
    )

    return PairsAnalysisResult(
        symbols=(sym_a, sym_b),
        hedge_ratio=float(fit.beta),
        alpha=float(fit.alpha),
        spread=spread,
        z_score=z,
        current_z_score=float(z[-1]),
        half_life=half_life,
        is_cointegrated=_is_cointegrated(half_life),
        stats=SpreadStats(
            mean_spread=stats.mean(spread),
            std_spread=stats.std(spread),
            last_prices={sym_a: float(pa[-1]), sym_b: float(pb[-1])},
        ),
        backtest=backtest,
    )


def analyze_basket(
    prices: Mapping[str, ArrayLike],
    dates: Sequence,
    config: BacktestConfig | None = None,
    dependent: str | None = None,
) -> BasketAnalysisResult:
    """Run the cointegration pipeline on a basket of aligned series.

    Args:
        prices: Symbol -> prices, all aligned to `dates`
        dates: Bar dates, strictly increasing
        config: Backtest configuration (defaults if None)
        dependent: Symbol regressed on the others (first key if None)

    Returns:
        BasketAnalysisResult

    Raises:
        ValueError: On fewer than 2 assets, misaligned input, an unknown
            dependent, or collinear regressors
    """
    config = config or BacktestConfig()
    if len(prices) < 2:
        raise ValueError("A basket needs at least 2 assets")

    symbols = list(prices)
    dependent = dependent if dependent is not None else symbols[0]
    if dependent not in prices:
        raise ValueError(f"Dependent symbol {dependent!r} not in basket")

    arrays = _validate_series(prices, dates)
    others = [s for s in symbols if s != dependent]
    ordered = [dependent] + others

    log_y = np.log(arrays[dependent])
    log_x = np.column_stack([np.log(arrays[s]) for s in others])

    fit = stats.multi_ols(log_x, log_y)
    spread = log_y - log_x @ fit.beta - fit.alpha
    z = stats.zscore(spread, config.rolling_window)
    half_life = calculate_half_life(spread)

    weights = {dependent: 1.0}
    weights.update({s: float(-coef) for s, coef in zip(others, fit.beta)})

    engine = BacktestEngine(config, weights=[weights[s] for s in ordered], symbols=ordered)
    backtest = engine.run(
        z, np.column_stack([arrays[s] for s in ordered]), [str(d) for d in dates]
    )

    logger.info(
        f"Basket {'/'.join(ordered)}: half-life={half_life:.2f}, "
        f"z={z[-1]:.2f}, {backtest.trades} trades"
    )

    return BasketAnalysisResult(
        dependent=dependent,
        weights=weights,
        alpha=float(fit.alpha),
        spread=spread,
        z_score=z,
        current_z_score=float(z[-1]),
        half_life=half_life,
        is_cointegrated=_is_cointegrated(half_life),
        stats=SpreadStats(
            mean_spread=stats.mean(spread),
            std_spread=stats.std(spread),
            last_prices={s: float(arrays[s][-1]) for s in ordered},
        ),
        backtest=backtest,
    )


def scan_pairs(
    prices: Mapping[str, ArrayLike],
    dates: Sequence,
    config: BacktestConfig | None = None,
    min_observations: int = 100,
    max_workers: int | None = None,
) -> list[ScannerResult]:
    """Analyse every pair of symbols in a universe.

    Series share one date index; missing observations are NaN and each pair
    keeps only the bars where both legs are priced. Pairs with fewer than
    `min_observations` common bars, or whose analysis fails, are skipped.

    Args:
        prices: Symbol -> prices aligned to `dates` (NaN where missing)
        dates: Shared date index
        config: Backtest configuration for each pair
        min_observations: Minimum common bars per pair
        max_workers: Analyse pairs in a thread pool when set

    Returns:
        ScannerResult per analysed pair, in combination order
    """
    frame = pd.DataFrame(
        {s: np.asarray(v, dtype=np.float64) for s, v in prices.items()},
        index=list(dates),
    )

    def scan_one(pair: tuple[str, str]) -> ScannerResult | None:
        sym_a, sym_b = pair
        common = frame[[sym_a, sym_b]].dropna()
        if len(common) < min_observations:
            logger.debug(f"Skipping {sym_a}/{sym_b}: {len(common)} common bars")
            return None
        try:
            analysis = analyze_pairs(
                common[sym_a].to_numpy(),
                common[sym_b].to_numpy(),
                list(common.index),
                config=config,
                symbols=(sym_a, sym_b),
            )
        except ValueError as e:
            logger.warning(f"Skipping {sym_a}/{sym_b}: {e}")
            return None

        return ScannerResult(
            symbol_a=sym_a,
            symbol_b=sym_b,
            is_cointegrated=analysis.is_cointegrated,
            half_life=analysis.half_life,
            current_z_score=analysis.current_z_score,
            hedge_ratio=analysis.hedge_ratio,
            observations=len(common),
        )

    pairs = list(combinations(frame.columns, 2))

    if max_workers:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            rows = list(pool.map(scan_one, pairs))
    else:
        rows = [scan_one(pair) for pair in pairs]

    results = [r for r in rows if r is not None]
    logger.info(
        f"Scanned {len(pairs)} pairs: {len(results)} analysed, "
        f"{sum(r.is_cointegrated for r in results)} cointegrated"
    )
    return results
