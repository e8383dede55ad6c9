"""Tests for GBM Monte-Carlo simulation."""

import numpy as np
import pytest

from quantcore.monte_carlo import (
    SimulationInputs,
    box_muller,
    run_monte_carlo_simulation,
    terminal_stats,
)


class TestSimulationInputs:
    @pytest.mark.parametrize("field,value", [
        ("initial_price", 0.0),
        ("volatility", -0.1),
        ("time_horizon", 0.0),
        ("time_steps", 0),
        ("num_simulations", 0),
    ])
    def test_invalid(self, field, value):
        params = dict(initial_price=100.0, expected_return=0.05, volatility=0.2, time_horizon=1.0)
        params[field] = value
        with pytest.raises(ValueError):
            SimulationInputs(**params)


class TestSimulation:
    """Tests for path generation and terminal statistics."""

    @pytest.fixture
    def inputs(self):
        return SimulationInputs(
            initial_price=100.0,
            expected_return=0.08,
            volatility=0.2,
            time_horizon=1.0,
            time_steps=50,
            num_simulations=2000,
        )

    def test_shapes(self, inputs):
        result = run_monte_carlo_simulation(inputs, seed=1)

        assert result.paths.shape == (2000, 51)
        assert result.final_prices.shape == (2000,)
        assert np.all(result.paths[:, 0] == 100.0)
        assert np.array_equal(result.final_prices, result.paths[:, -1])

    def test_prices_positive(self, inputs):
        result = run_monte_carlo_simulation(inputs, seed=2)
        assert np.all(result.paths > 0)

    def test_seed_reproducible(self, inputs):
        a = run_monte_carlo_simulation(inputs, seed=42)
        b = run_monte_carlo_simulation(inputs, seed=42)
        c = run_monte_carlo_simulation(inputs, seed=43)

        assert np.array_equal(a.paths, b.paths)
        assert not np.array_equal(a.paths, c.paths)

    def test_zero_volatility_is_deterministic(self):
        inputs = SimulationInputs(100.0, 0.1, 0.0, 2.0, time_steps=10, num_simulations=5)
        result = run_monte_carlo_simulation(inputs, seed=0)

        assert np.allclose(result.final_prices, 100.0 * np.exp(0.1 * 2.0))

    def test_degenerate_process(self):
        """μ = 0 and σ = 0: every price stays at S0, VaR is zero."""
        inputs = SimulationInputs(50.0, 0.0, 0.0, 1.0, time_steps=20, num_simulations=10)
        result = run_monte_carlo_simulation(inputs, seed=0)

        assert np.all(result.paths == 50.0)
        assert result.stats.mean == 50.0
        assert result.stats.var95 == 0.0
        assert result.stats.var99 == 0.0

    def test_terminal_mean_matches_drift(self, inputs):
        result = run_monte_carlo_simulation(inputs, seed=7)
        expected = 100.0 * np.exp(0.08)
        # Standard error of the mean is ~0.45 for 2000 paths
        assert result.stats.mean == pytest.approx(expected, abs=2.0)

    def test_var_ordering(self, inputs):
        stats = run_monte_carlo_simulation(inputs, seed=3).stats

        assert stats.var99 >= stats.var95 >= 0
        assert stats.min <= stats.median <= stats.max

    def test_to_dict_truncates_paths(self, inputs):
        d = run_monte_carlo_simulation(inputs, seed=1).to_dict(max_paths=10)

        assert len(d["paths"]) == 10
        assert len(d["final_prices"]) == 2000
        assert set(d["stats"]) == {"mean", "median", "min", "max", "var95", "var99"}


class TestHelpers:
    def test_box_muller_moments(self):
        z = box_muller(np.random.default_rng(0), (200000,))

        assert abs(z.mean()) < 0.01
        assert abs(z.std() - 1.0) < 0.01
        assert np.all(np.isfinite(z))

    def test_terminal_stats_order_statistics(self):
        finals = np.arange(1.0, 101.0)  # 1..100
        stats = terminal_stats(finals[::-1].copy(), initial_price=50.0)

        assert stats.median == 51.0
        assert stats.min == 1.0 and stats.max == 100.0
        # 5th order statistic (index 5) is 6; 1st (index 1) is 2
        assert stats.var95 == 44.0
        assert stats.var99 == 48.0

    def test_var_floored_at_zero(self):
        stats = terminal_stats(np.array([110.0, 120.0, 130.0]), initial_price=100.0)
        assert stats.var95 == 0.0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
