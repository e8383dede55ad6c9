"""Statistical arbitrage API endpoints.

Provides endpoints for:
- Pairs cointegration analysis with backtest
- Basket (multi-asset) cointegration analysis
- Scanning a universe for cointegrated pairs
"""

import logging
from typing import Any

from fastapi import APIRouter

from config.settings import get_settings
from data.schemas import BasketRequest, PairsRequest, ScanRequest, StrategyRequest
from quantcore.backtest import BacktestConfig, STRATEGY_PRESETS
from quantcore.pairs import analyze_basket, analyze_pairs, scan_pairs

logger = logging.getLogger(__name__)
router = APIRouter()


def resolve_config(request: StrategyRequest) -> BacktestConfig:
    """Explicit config first, then the requested preset, then the default preset."""
    if request.config is not None:
        return BacktestConfig(**request.config.model_dump())
    return BacktestConfig.from_preset(request.preset or get_settings().default_strategy_preset)


@router.get("/presets")
async def get_presets() -> dict[str, Any]:
    """List the named backtest presets."""
    return {name: config.to_dict() for name, config in STRATEGY_PRESETS.items()}


@router.post("/analyze")
async def analyze_pair(request: PairsRequest) -> dict[str, Any]:
    """Analyse a pair of aligned price series.

    Args:
        request: Prices, dates, leg names and backtest selection

    Returns:
        Hedge ratio, spread, Z-scores, half-life, cointegration flag and backtest
    """
    config = resolve_config(request)
    logger.info(f"Analysing pair {request.symbols[0]}/{request.symbols[1]} ({len(request.dates)} bars)")

    result = analyze_pairs(
        request.prices_a,
        request.prices_b,
        request.dates,
        config=config,
        symbols=request.symbols,
    )
    return {"config": config.to_dict(), **result.to_dict()}


@router.post("/basket")
async def analyze_basket_endpoint(request: BasketRequest) -> dict[str, Any]:
    """Analyse a basket of aligned price series.

    Args:
        request: Symbol -> prices, dates, dependent symbol and backtest selection

    Returns:
        Spread weights, spread, Z-scores, half-life, cointegration flag and backtest
    """
    config = resolve_config(request)
    logger.info(f"Analysing basket {sorted(request.prices)} ({len(request.dates)} bars)")

    result = analyze_basket(
        request.prices,
        request.dates,
        config=config,
        dependent=request.dependent,
    )
    return {"config": config.to_dict(), **result.to_dict()}


@router.post("/scan")
async def scan_universe(request: ScanRequest) -> dict[str, Any]:
    """Scan every pair of a universe for cointegration.

    Args:
        request: Symbol -> prices on a shared date index

    Returns:
        One row per analysed pair plus counts
    """
    settings = get_settings()
    config = resolve_config(request)
    min_obs = request.min_observations or settings.scanner_min_observations

    prices = {
        symbol: [float("nan") if p is None else p for p in series]
        for symbol, series in request.prices.items()
    }
    for symbol, series in prices.items():
        if len(series) != len(request.dates):
            raise ValueError(f"Series {symbol} has {len(series)} prices for {len(request.dates)} dates")

    results = scan_pairs(
        prices,
        request.dates,
        config=config,
        min_observations=min_obs,
        max_workers=settings.scanner_max_workers,
    )

    return {
        "results": [r.to_dict() for r in results],
        "pairs_analysed": len(results),
        "cointegrated": sum(r.is_cointegrated for r in results),
        "min_observations": min_obs,
    }
