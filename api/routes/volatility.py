"""Option analytics API endpoints.

Provides endpoints for:
- Black-Scholes pricing and Greeks
- Implied volatility
- Implied volatility surface with SVI grid
- Static arbitrage scan of a chain
"""

import logging
from datetime import date, datetime
from typing import Any

from fastapi import APIRouter

from config.settings import get_settings
from data.chain import OptionsChain
from data.schemas import (
    ChainRequest,
    ImpliedVolRequest,
    ImpliedVolResponse,
    PriceRequest,
    PriceResponse,
    SurfaceRequest,
)
from quantcore.arbitrage import scan_for_arbitrage
from quantcore.black_scholes import BlackScholes
from quantcore.surface import VolatilitySurfaceData, build_surface
from quantcore.svi_fitter import generate_svi_surface

logger = logging.getLogger(__name__)
router = APIRouter()


def _surface_from_chain(request: ChainRequest) -> VolatilitySurfaceData:
    settings = get_settings()
    as_of = request.as_of or date.today()

    chain = OptionsChain.from_records(
        request.ticker.upper(),
        request.spot_price,
        [o.model_dump() for o in request.options],
        timestamp=datetime.combine(as_of, datetime.min.time()),
    )

    return build_surface(
        chain,
        rate=request.rate if request.rate is not None else settings.risk_free_rate,
        as_of=as_of,
        max_expiries=settings.max_expiries,
        iv_bounds=settings.iv_bounds,
    )


@router.post("/price", response_model=PriceResponse)
async def calculate_price(request: PriceRequest) -> dict[str, Any]:
    """Calculate Black-Scholes option price and Greeks.

    Args:
        request: Pricing request with spot, strike, expiry, vol, etc.

    Returns:
        Option price and all Greeks
    """
    rate = request.rate if request.rate is not None else get_settings().risk_free_rate
    bs = BlackScholes(spot=request.spot, rate=rate)

    result = bs.evaluate(
        strike=request.strike,
        expiry=request.expiry_years,
        vol=request.vol,
        option_type=request.option_type,
    )

    return {
        "price": result.price,
        "greeks": result.greeks.to_dict(),
        "inputs": {
            "spot": request.spot,
            "strike": request.strike,
            "expiry_years": request.expiry_years,
            "vol": request.vol,
            "rate": rate,
            "option_type": request.option_type.value,
        },
    }


@router.post("/implied-vol", response_model=ImpliedVolResponse)
async def implied_vol(request: ImpliedVolRequest) -> dict[str, Any]:
    """Back out implied volatility from an option price.

    Non-convergence is reported in the body, not as an error.
    """
    rate = request.rate if request.rate is not None else get_settings().risk_free_rate
    bs = BlackScholes(spot=request.spot, rate=rate)

    result = bs.implied_volatility(
        request.option_price,
        strike=request.strike,
        expiry=request.expiry_years,
        option_type=request.option_type,
    )
    return result.to_dict()


@router.post("/surface")
async def get_surface(request: SurfaceRequest) -> dict[str, Any]:
    """Build the implied volatility surface of a chain snapshot.

    Args:
        request: Chain contracts, spot, valuation date and grid options

    Returns:
        Surface points and summary stats, plus the SVI grid when requested
    """
    settings = get_settings()
    surface = _surface_from_chain(request)
    response = surface.to_dict()

    if request.include_grid:
        days = [p.days_to_expiry for p in surface.points]
        grid = generate_svi_surface(
            surface.points,
            surface.spot_price,
            strike_range=(min(surface.strikes), max(surface.strikes)),
            expiry_range=(min(days), max(days)),
            resolution=request.resolution or settings.surface_resolution,
            min_r2=settings.svi_min_r2,
            max_workers=settings.svi_max_workers,
        )
        response["grid"] = grid.to_dict()

    return response


@router.post("/arbitrage")
async def get_arbitrage(request: ChainRequest) -> dict[str, Any]:
    """Scan a chain snapshot for static arbitrage.

    Returns:
        Opportunities ordered by severity with per-type counts
    """
    surface = _surface_from_chain(request)
    result = scan_for_arbitrage(surface.points, surface.spot_price)

    return {
        "symbol": surface.symbol,
        "spot_price": surface.spot_price,
        **result.to_dict(),
    }
