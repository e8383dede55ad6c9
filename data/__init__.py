"""Option chain containers and API schemas."""

from data.chain import OptionsChain, clean_chain, create_synthetic_chain
from data.schemas import (
    BacktestConfigSchema,
    BasketRequest,
    ChainRequest,
    ImpliedVolRequest,
    MonteCarloRequest,
    PairsRequest,
    PortfolioRequest,
    PriceRequest,
    ScanRequest,
    SurfaceRequest,
)

__all__ = [
    "OptionsChain",
    "clean_chain",
    "create_synthetic_chain",
    "BacktestConfigSchema",
    "PairsRequest",
    "BasketRequest",
    "ScanRequest",
    "PriceRequest",
    "ImpliedVolRequest",
    "ChainRequest",
    "SurfaceRequest",
    "MonteCarloRequest",
    "PortfolioRequest",
]
