"""FastAPI application entry point.

Provides REST API for the quantitative analytics core:
- Pairs and basket cointegration with backtests
- Option pricing, implied volatility and volatility surfaces
- Static arbitrage scanning
- Monte-Carlo simulation
- Efficient-frontier portfolio simulation
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routes import pairs_router, portfolio_router, simulation_router, volatility_router
from config.settings import get_settings

API_VERSION = "1.0.0"

# Configure logging
logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings = get_settings()
    logger.info(
        f"Starting Quant Core API (risk-free rate {settings.risk_free_rate}, "
        f"log level {settings.log_level})"
    )

    yield

    logger.info("Shutting down API")


app = FastAPI(
    title="Quant Core",
    description=(
        "Quantitative analytics service. Pairs and basket cointegration, "
        "Black-Scholes pricing, SVI volatility surfaces, arbitrage scanning, "
        "Monte-Carlo simulation and portfolio frontiers."
    ),
    version=API_VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers
@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    """Handle validation errors."""
    return JSONResponse(
        status_code=400,
        content={"detail": str(exc), "type": "validation_error"},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected errors."""
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": "server_error"},
    )


# Include routers
app.include_router(pairs_router, prefix="/api/v1/pairs", tags=["Pairs"])
app.include_router(volatility_router, prefix="/api/v1/volatility", tags=["Volatility"])
app.include_router(simulation_router, prefix="/api/v1/simulation", tags=["Simulation"])
app.include_router(portfolio_router, prefix="/api/v1/portfolio", tags=["Portfolio"])


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Quant Core",
        "version": API_VERSION,
        "description": "Statistical arbitrage, option analytics and simulation API",
        "docs": "/docs",
        "endpoints": {
            "pairs": "/api/v1/pairs",
            "volatility": "/api/v1/volatility",
            "simulation": "/api/v1/simulation",
            "portfolio": "/api/v1/portfolio",
        },
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "version": API_VERSION,
    }


def create_app() -> FastAPI:
    """Factory function to create the FastAPI app."""
    return app


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True,
    )
