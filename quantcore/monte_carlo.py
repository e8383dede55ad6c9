"""Monte-Carlo simulation of geometric Brownian motion price paths.

    S[t] = S[t-1] · exp((μ - σ²/2)·dt + σ·√dt·Z),   Z ~ N(0, 1)

Normals come from the Box-Muller transform of two independent uniforms.
All paths are generated at once as an (n_paths, steps + 1) array.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any

import numpy as np
from numpy.typing import NDArray

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SimulationInputs:
    """Simulation parameters.

    Attributes:
        initial_price: Price at t = 0
        expected_return: Annualised drift μ (decimal)
        volatility: Annualised volatility σ (decimal)
        time_horizon: Horizon in years
        time_steps: Steps per path
        num_simulations: Number of paths
    """

    initial_price: float
    expected_return: float
    volatility: float
    time_horizon: float
    time_steps: int = 252
    num_simulations: int = 1000

    def __post_init__(self):
        if self.initial_price <= 0:
            raise ValueError("initial_price must be positive")
        if self.volatility < 0:
            raise ValueError("volatility cannot be negative")
        if self.time_horizon <= 0:
            raise ValueError("time_horizon must be positive")
        if self.time_steps < 1:
            raise ValueError("time_steps must be at least 1")
        if self.num_simulations < 1:
            raise ValueError("num_simulations must be at least 1")


@dataclass
class SimulationStats:
    """Terminal price distribution statistics."""

    mean: float
    median: float
    min: float
    max: float
    var95: float
    var99: float

    def to_dict(self) -> dict[str, float]:
        return {
            "mean": self.mean,
            "median": self.median,
            "min": self.min,
            "max": self.max,
            "var95": self.var95,
            "var99": self.var99,
        }


@dataclass
class SimulationResult:
    """Simulated paths and terminal statistics.

    Attributes:
        paths: Array of shape (num_simulations, time_steps + 1)
        final_prices: Terminal price per path, in path order
        stats: Distribution statistics over the terminal prices
    """

    paths: NDArray[np.float64]
    final_prices: NDArray[np.float64]
    stats: SimulationStats = field(default=None)

    def to_dict(self, max_paths: int | None = None) -> dict[str, Any]:
        """Convert to dictionary, optionally truncating the stored paths."""
        paths = self.paths if max_paths is None else self.paths[:max_paths]
        return {
            "paths": paths.tolist(),
            "final_prices": self.final_prices.tolist(),
            "stats": self.stats.to_dict(),
        }


def box_muller(rng: np.random.Generator, size: tuple[int, ...]) -> NDArray[np.float64]:
    """Standard normals from two independent uniforms on (0, 1]."""
    u = 1.0 - rng.random(size)
    v = 1.0 - rng.random(size)
    return np.sqrt(-2.0 * np.log(u)) * np.cos(2.0 * np.pi * v)


def terminal_stats(final_prices: NDArray[np.float64], initial_price: float) -> SimulationStats:
    """Mean, median, range and historical VaR of terminal prices.

    VaR is the loss versus the initial price at the 5th/1st percentile
    order statistic, floored at zero.
    """
    ordered = np.sort(final_prices)
    n = len(ordered)

    var95 = initial_price - ordered[math.floor(n * 0.05)]
    var99 = initial_price - ordered[math.floor(n * 0.01)]

    return SimulationStats(
        mean=float(ordered.mean()),
        median=float(ordered[n // 2]),
        min=float(ordered[0]),
        max=float(ordered[-1]),
        var95=float(max(0.0, var95)),
        var99=float(max(0.0, var99)),
    )


def run_monte_carlo_simulation(
    inputs: SimulationInputs,
    seed: int | None = None,
) -> SimulationResult:
    """Simulate GBM paths and summarise the terminal distribution.

    Args:
        inputs: Simulation parameters
        seed: Seed for reproducible paths (random if None)

    Returns:
        SimulationResult

    Example:
        >>> inputs = SimulationInputs(100, 0.08, 0.2, 1.0, time_steps=252, num_simulations=1000)
        >>> result = run_monte_carlo_simulation(inputs, seed=42)
        >>> print(f"VaR95: {result.stats.var95:.2f}")
    """
    n_paths, n_steps = inputs.num_simulations, inputs.time_steps

    dt = inputs.time_horizon / n_steps
    drift = (inputs.expected_return - 0.5 * inputs.volatility**2) * dt
    vol_sq_dt = inputs.volatility * math.sqrt(dt)

    rng = np.random.default_rng(seed)
    shocks = box_muller(rng, (n_paths, n_steps))

    log_steps = drift + vol_sq_dt * shocks
    log_paths = np.concatenate(
        [np.zeros((n_paths, 1)), np.cumsum(log_steps, axis=1)], axis=1
    )
    paths = inputs.initial_price * np.exp(log_paths)
    # Keep the starting column exact
    paths[:, 0] = inputs.initial_price

    final_prices = paths[:, -1].copy()
    stats = terminal_stats(final_prices, inputs.initial_price)

    logger.info(
        f"Simulated {n_paths} paths x {n_steps} steps: mean={stats.mean:.2f}, "
        f"VaR95={stats.var95:.2f}, VaR99={stats.var99:.2f}"
    )

    return SimulationResult(paths=paths, final_prices=final_prices, stats=stats)
