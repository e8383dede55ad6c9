"""Application configuration using Pydantic settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # API Settings
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")

    # Option analytics
    risk_free_rate: float = Field(
        default=0.045,
        description="Continuous risk-free rate for option pricing and IV",
    )
    iv_lower_bound: float = Field(
        default=0.01,
        description="Implied vols at or below this are discarded",
    )
    iv_upper_bound: float = Field(
        default=3.0,
        description="Implied vols at or above this are discarded",
    )
    max_expiries: int = Field(
        default=12,
        description="Nearest expiries processed when building a surface",
    )
    svi_min_r2: float = Field(
        default=0.3,
        description="Minimum R² for an SVI slice to enter the surface grid",
    )
    surface_resolution: int = Field(
        default=30,
        description="Steps per axis of the SVI surface grid",
    )
    svi_max_workers: int | None = Field(
        default=None,
        description="Thread pool size for per-expiry SVI fits (None = serial)",
    )

    # Pairs trading
    default_strategy_preset: Literal["default", "conservative", "moderate", "aggressive"] = Field(
        default="default",
        description="Backtest preset used when a request carries no config",
    )
    scanner_min_observations: int = Field(
        default=100,
        description="Minimum common bars for a pair to be scanned",
    )
    scanner_max_workers: int | None = Field(
        default=None,
        description="Thread pool size for the pair scanner (None = serial)",
    )

    # Simulation
    monte_carlo_seed: int | None = Field(
        default=None,
        description="Seed for Monte-Carlo paths (None = random)",
    )
    monte_carlo_max_paths_returned: int = Field(
        default=100,
        description="Paths included in API responses",
    )

    # Portfolio
    portfolio_risk_free_rate: float = Field(
        default=0.045,
        description="Risk-free rate in portfolio Sharpe ratios",
    )
    portfolio_periods_per_year: int = Field(
        default=12,
        description="Return periods per year for annualising asset statistics",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    @property
    def iv_bounds(self) -> tuple[float, float]:
        return (self.iv_lower_bound, self.iv_upper_bound)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings: Application settings

    Example:
        >>> settings = get_settings()
        >>> settings.risk_free_rate
        0.045
    """
    return Settings()
