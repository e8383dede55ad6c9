"""Quantitative analytics core.

Statistical arbitrage:
- stats: mean/std, OLS, Z-scores
- pairs: pairs and basket cointegration, half-life, pair scanner
- backtest: FLAT / LONG_SPREAD / SHORT_SPREAD backtest state machine

Option analytics:
- black_scholes: closed-form pricing, Greeks, implied volatility
- surface: option chain -> implied volatility surface points
- svi_fitter: SVI slice fitting and surface grid generation
- arbitrage: static arbitrage scanner over surface points

Simulation and allocation:
- monte_carlo: GBM path simulation with VaR
- portfolio: random-weight efficient frontier

Example:
    >>> from quantcore import analyze_pairs, BlackScholes, run_monte_carlo_simulation
    >>>
    >>> result = analyze_pairs(prices_a, prices_b, dates)
    >>> print(f"Half-life: {result.half_life:.1f} bars")
    >>>
    >>> bs = BlackScholes(spot=100, rate=0.05)
    >>> price = bs.price(strike=100, expiry=0.25, vol=0.2, option_type="call")
"""

from quantcore.arbitrage import (
    ArbitrageOpportunity,
    ArbitrageResult,
    ArbitrageType,
    scan_for_arbitrage,
)
from quantcore.backtest import (
    STRATEGY_PRESETS,
    BacktestConfig,
    BacktestEngine,
    BacktestResult,
    Direction,
    ExitReason,
    PositionState,
    Trade,
)
from quantcore.black_scholes import (
    BlackScholes,
    BlackScholesInputs,
    Greeks,
    ImpliedVolatilityInputs,
    ImpliedVolResult,
    OptionType,
    calculate_black_scholes,
    calculate_implied_volatility,
)
from quantcore.monte_carlo import (
    SimulationInputs,
    SimulationResult,
    run_monte_carlo_simulation,
)
from quantcore.pairs import (
    BasketAnalysisResult,
    PairsAnalysisResult,
    ScannerResult,
    analyze_basket,
    analyze_pairs,
    calculate_half_life,
    scan_pairs,
)
from quantcore.portfolio import (
    Asset,
    OptimizationResult,
    PortfolioPoint,
    asset_statistics,
    correlation_matrix,
    run_portfolio_simulation,
)
from quantcore.stats import RegressionResult, multi_ols, ols, zscore
from quantcore.surface import SurfacePoint, VolatilitySurfaceData, build_surface
from quantcore.svi_fitter import (
    SVIFitResult,
    SVIFitter,
    SVIParams,
    SVISurfaceGrid,
    fit_svi_slice,
    generate_svi_surface,
    interpolate_svi_surface,
)

__all__ = [
    # Statistics
    "RegressionResult",
    "ols",
    "multi_ols",
    "zscore",
    # Pairs / basket
    "analyze_pairs",
    "analyze_basket",
    "calculate_half_life",
    "scan_pairs",
    "PairsAnalysisResult",
    "BasketAnalysisResult",
    "ScannerResult",
    # Backtest
    "BacktestConfig",
    "BacktestEngine",
    "BacktestResult",
    "Direction",
    "ExitReason",
    "PositionState",
    "Trade",
    "STRATEGY_PRESETS",
    # Black-Scholes
    "BlackScholes",
    "BlackScholesInputs",
    "ImpliedVolatilityInputs",
    "ImpliedVolResult",
    "Greeks",
    "OptionType",
    "calculate_black_scholes",
    "calculate_implied_volatility",
    # Surface / SVI
    "SurfacePoint",
    "VolatilitySurfaceData",
    "build_surface",
    "SVIFitter",
    "SVIParams",
    "SVIFitResult",
    "SVISurfaceGrid",
    "fit_svi_slice",
    "generate_svi_surface",
    "interpolate_svi_surface",
    # Arbitrage
    "ArbitrageType",
    "ArbitrageOpportunity",
    "ArbitrageResult",
    "scan_for_arbitrage",
    # Monte-Carlo
    "SimulationInputs",
    "SimulationResult",
    "run_monte_carlo_simulation",
    # Portfolio
    "Asset",
    "PortfolioPoint",
    "OptimizationResult",
    "asset_statistics",
    "correlation_matrix",
    "run_portfolio_simulation",
]
