"""Monte-Carlo simulation API endpoints."""

import logging
from typing import Any

from fastapi import APIRouter

from config.settings import get_settings
from data.schemas import MonteCarloRequest
from quantcore.monte_carlo import SimulationInputs, run_monte_carlo_simulation

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/monte-carlo")
async def monte_carlo(request: MonteCarloRequest) -> dict[str, Any]:
    """Simulate GBM price paths.

    Only the first `max_paths` paths are returned to keep responses small;
    terminal prices and statistics always cover every path.

    Args:
        request: Price, drift, volatility, horizon and path counts

    Returns:
        Paths, terminal prices and distribution statistics
    """
    settings = get_settings()
    inputs = SimulationInputs(
        initial_price=request.initial_price,
        expected_return=request.expected_return,
        volatility=request.volatility,
        time_horizon=request.time_horizon,
        time_steps=request.time_steps,
        num_simulations=request.num_simulations,
    )
    seed = request.seed if request.seed is not None else settings.monte_carlo_seed
    max_paths = (
        request.max_paths
        if request.max_paths is not None
        else settings.monte_carlo_max_paths_returned
    )

    result = run_monte_carlo_simulation(inputs, seed=seed)

    return {
        "num_simulations": inputs.num_simulations,
        "time_steps": inputs.time_steps,
        **result.to_dict(max_paths=max_paths),
    }
