"""API route modules."""

from api.routes.pairs import router as pairs_router
from api.routes.portfolio import router as portfolio_router
from api.routes.simulation import router as simulation_router
from api.routes.volatility import router as volatility_router

__all__ = ["pairs_router", "volatility_router", "simulation_router", "portfolio_router"]
