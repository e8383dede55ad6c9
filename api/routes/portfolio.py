"""Portfolio allocation API endpoints."""

import logging
from typing import Any

from fastapi import APIRouter

from config.settings import get_settings
from data.schemas import PortfolioRequest
from quantcore.portfolio import asset_statistics, correlation_matrix, run_portfolio_simulation

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/frontier")
async def efficient_frontier(request: PortfolioRequest) -> dict[str, Any]:
    """Simulate the efficient frontier of a set of assets.

    Args:
        request: Price history per symbol and simulation options

    Returns:
        Asset statistics, correlation matrix, every simulated allocation and
        the max-Sharpe / min-volatility points
    """
    settings = get_settings()
    periods = request.periods_per_year or settings.portfolio_periods_per_year
    rf = (
        request.risk_free_rate
        if request.risk_free_rate is not None
        else settings.portfolio_risk_free_rate
    )

    assets, returns_map = asset_statistics(request.prices, periods_per_year=periods)
    symbols = [a.symbol for a in assets]
    corr = correlation_matrix(returns_map, symbols)

    logger.info(f"Frontier for {symbols} ({request.num_simulations} points)")

    result = run_portfolio_simulation(
        assets,
        num_simulations=request.num_simulations,
        correlations=corr,
        risk_free_rate=rf,
        seed=request.seed,
    )

    return {
        "assets": [a.to_dict() for a in assets],
        "symbols": symbols,
        "correlations": corr.tolist(),
        **result.to_dict(),
    }
