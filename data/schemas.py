"""Pydantic schemas for API request/response validation."""

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from quantcore.black_scholes import OptionType

PresetName = Literal["default", "conservative", "moderate", "aggressive"]


class BacktestConfigSchema(BaseModel):
    """Backtest strategy parameters. Null disables an optional rule."""

    entry_threshold_upper: float = Field(default=2.0, description="Z to short the spread")
    entry_threshold_lower: float = Field(default=-2.0, description="Z to buy the spread")
    exit_threshold: float = Field(default=0.0, description="Z that closes a position")
    stop_loss_percent: float | None = Field(None, gt=0, description="Stop-loss in % of notional")
    trailing_stop_percent: float | None = Field(
        None, gt=0, description="Trailing stop in % below peak PnL"
    )
    capital_per_leg: float = Field(default=1000.0, gt=0, description="$ per unit leg weight")
    rolling_window: int | None = Field(None, ge=1, description="Rolling Z-score window")
    max_holding_period: int | None = Field(None, ge=1, description="Max bars in a trade")
    initial_capital: float = Field(default=10000.0, gt=0, description="Starting equity")


class StrategyRequest(BaseModel):
    """Common backtest selection: explicit config wins over a preset."""

    config: BacktestConfigSchema | None = Field(None, description="Explicit backtest config")
    preset: PresetName | None = Field(None, description="Named strategy preset")


class PairsRequest(StrategyRequest):
    """Request for a pairs analysis on two aligned series."""

    prices_a: list[float] = Field(..., min_length=3, description="Prices of leg A")
    prices_b: list[float] = Field(..., min_length=3, description="Prices of leg B")
    dates: list[str] = Field(..., min_length=3, description="Bar dates, increasing")
    symbols: tuple[str, str] = Field(default=("A", "B"), description="Leg names")


class BasketRequest(StrategyRequest):
    """Request for a basket analysis."""

    prices: dict[str, list[float]] = Field(..., description="Symbol -> aligned prices")
    dates: list[str] = Field(..., min_length=3, description="Bar dates, increasing")
    dependent: str | None = Field(None, description="Regressed symbol (first if omitted)")


class ScanRequest(StrategyRequest):
    """Request to scan every pair in a universe."""

    prices: dict[str, list[float | None]] = Field(
        ..., description="Symbol -> prices on the shared dates (null where missing)"
    )
    dates: list[str] = Field(..., description="Shared date index")
    min_observations: int | None = Field(None, ge=3, description="Minimum common bars")


class GreeksSchema(BaseModel):
    """Schema for option Greeks."""

    delta: float = Field(..., description="Delta")
    gamma: float = Field(..., description="Gamma")
    vega: float = Field(..., description="Vega (per 1% vol)")
    theta: float = Field(..., description="Theta (per day)")
    rho: float = Field(..., description="Rho (per 1% rate)")


class PriceRequest(BaseModel):
    """Request for option pricing."""

    spot: float = Field(..., gt=0, description="Spot price")
    strike: float = Field(..., gt=0, description="Strike price")
    expiry_years: float = Field(..., ge=0, description="Time to expiry in years")
    vol: float = Field(..., ge=0, description="Volatility")
    rate: float | None = Field(None, description="Risk-free rate (settings default)")
    option_type: OptionType = Field(default=OptionType.CALL, description="call or put")


class PriceResponse(BaseModel):
    """Option price and Greeks."""

    price: float
    greeks: GreeksSchema
    inputs: dict[str, Any]


class ImpliedVolRequest(BaseModel):
    """Request to back out implied volatility from a price."""

    option_price: float = Field(..., description="Observed option price")
    spot: float = Field(..., gt=0, description="Spot price")
    strike: float = Field(..., gt=0, description="Strike price")
    expiry_years: float = Field(..., description="Time to expiry in years")
    rate: float | None = Field(None, description="Risk-free rate (settings default)")
    option_type: OptionType = Field(default=OptionType.CALL, description="call or put")


class ImpliedVolResponse(BaseModel):
    """Implied volatility solve outcome."""

    iv: float
    converged: bool
    iterations: int


class OptionQuoteSchema(BaseModel):
    """One contract of an already-fetched option chain."""

    strike: float = Field(..., gt=0, description="Strike price")
    expiration: date = Field(..., description="Expiration date")
    option_type: str = Field(..., description="call/put (c/p accepted)")
    last: float | None = Field(None, ge=0, description="Last traded price")
    bid: float | None = Field(None, ge=0, description="Bid")
    ask: float | None = Field(None, ge=0, description="Ask")
    volume: int | None = Field(None, ge=0, description="Volume")
    open_interest: int | None = Field(None, ge=0, description="Open interest")


class ChainRequest(BaseModel):
    """Option chain snapshot supplied by the caller."""

    ticker: str = Field(..., description="Underlying symbol")
    spot_price: float = Field(..., gt=0, description="Underlying price")
    options: list[OptionQuoteSchema] = Field(..., min_length=1, description="Chain contracts")
    as_of: date | None = Field(None, description="Valuation date (today if omitted)")
    rate: float | None = Field(None, description="Risk-free rate (settings default)")


class SurfaceRequest(ChainRequest):
    """Request to build an implied volatility surface."""

    include_grid: bool = Field(default=True, description="Fit SVI and return a grid")
    resolution: int | None = Field(None, ge=1, le=200, description="Grid steps per axis")


class MonteCarloRequest(BaseModel):
    """Request for a GBM Monte-Carlo simulation."""

    initial_price: float = Field(..., gt=0, description="Price at t=0")
    expected_return: float = Field(..., description="Annual drift (decimal)")
    volatility: float = Field(..., ge=0, description="Annual volatility (decimal)")
    time_horizon: float = Field(..., gt=0, description="Horizon in years")
    time_steps: int = Field(default=252, ge=1, le=10000, description="Steps per path")
    num_simulations: int = Field(default=1000, ge=1, le=100000, description="Number of paths")
    seed: int | None = Field(None, description="Random seed")
    max_paths: int | None = Field(None, ge=0, description="Paths to include in the response")


class PortfolioRequest(BaseModel):
    """Request for an efficient-frontier simulation from price histories."""

    prices: dict[str, list[float]] = Field(..., min_length=1, description="Symbol -> prices")
    num_simulations: int = Field(default=5000, ge=1, le=100000, description="Points to evaluate")
    periods_per_year: int | None = Field(None, ge=1, description="Return periods per year")
    risk_free_rate: float | None = Field(None, description="Sharpe risk-free rate")
    seed: int | None = Field(None, description="Random seed")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Current timestamp")
    version: str = Field(..., description="API version")
