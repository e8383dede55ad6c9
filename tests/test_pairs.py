"""Tests for pairs, basket and universe cointegration analysis."""

import math

import numpy as np
import pandas as pd
import pytest

from quantcore.backtest import BacktestConfig
from quantcore.pairs import (
    analyze_basket,
    analyze_pairs,
    calculate_half_life,
    scan_pairs,
)


def make_dates(n):
    return [d.strftime("%Y-%m-%d") for d in pd.date_range("2020-01-01", periods=n)]


def ar1(rng, n, phi, sd):
    """Stationary AR(1) noise."""
    x = np.zeros(n)
    shocks = rng.normal(0, sd, n)
    for t in range(1, n):
        x[t] = phi * x[t - 1] + shocks[t]
    return x


@pytest.fixture
def cointegrated_pair():
    """log A = 1.2 log B + 0.1 + AR(1) noise with φ = 0.5."""
    rng = np.random.default_rng(1)
    n = 300
    log_b = np.log(50) + np.cumsum(rng.normal(0, 0.01, n))
    log_a = 1.2 * log_b + 0.1 + ar1(rng, n, 0.5, 0.01)
    return np.exp(log_a), np.exp(log_b), make_dates(n)


class TestHalfLife:
    """Tests for the AR(1) half-life estimate."""

    def test_ar1_recovers_half_life(self):
        rng = np.random.default_rng(3)
        spread = ar1(rng, 5000, 0.9, 1.0)

        expected = math.log(2) / -math.log(0.9)  # ≈ 6.58
        assert calculate_half_life(spread) == pytest.approx(expected, abs=1.0)

    def test_explosive_series(self):
        assert calculate_half_life([1, 2, 4, 8, 16]) == 999.0

    def test_alternating_series(self):
        """Negative φ does not mean-revert in the half-life sense."""
        assert calculate_half_life([1, -1, 1, -1, 1, -1]) == 999.0

    def test_constant_series(self):
        assert calculate_half_life([0.5, 0.5, 0.5, 0.5]) == 999.0

    def test_constant_log_spread(self):
        assert calculate_half_life(np.log(np.full(250, 7.0))) == 999.0

    def test_too_short(self):
        assert calculate_half_life([1.0, 0.5]) == 999.0


class TestAnalyzePairs:
    """Tests for the pairs pipeline."""

    def test_cointegrated_pair(self, cointegrated_pair):
        pa, pb, dates = cointegrated_pair
        result = analyze_pairs(pa, pb, dates, symbols=("AAA", "BBB"))

        assert result.hedge_ratio == pytest.approx(1.2, abs=0.1)
        assert result.is_cointegrated
        assert 0 < result.half_life < 60
        assert len(result.spread) == len(pa)
        assert len(result.z_score) == len(pa)
        assert result.current_z_score == result.z_score[-1]
        assert result.stats.last_prices == {"AAA": pa[-1], "BBB": pb[-1]}

    def test_spread_is_centred(self, cointegrated_pair):
        pa, pb, dates = cointegrated_pair
        result = analyze_pairs(pa, pb, dates)

        assert abs(result.stats.mean_spread) < 1e-10
        assert np.isclose(np.mean(result.z_score), 0.0, atol=1e-8)
        assert np.isclose(np.std(result.z_score), 1.0)

    def test_backtest_attached(self, cointegrated_pair):
        pa, pb, dates = cointegrated_pair
        result = analyze_pairs(pa, pb, dates, config=BacktestConfig(entry_threshold_upper=1.5,
                                                                    entry_threshold_lower=-1.5))

        assert len(result.backtest.equity_curve) == len(pa)
        assert result.backtest.trades > 0
        assert all(
            [leg.symbol for leg in t.legs] == ["A", "B"] for t in result.backtest.history
        )

    def test_rolling_window(self, cointegrated_pair):
        pa, pb, dates = cointegrated_pair
        full = analyze_pairs(pa, pb, dates)
        rolling = analyze_pairs(pa, pb, dates, config=BacktestConfig(rolling_window=20))

        assert rolling.z_score[0] == 0.0
        assert not np.allclose(full.z_score, rolling.z_score)

    def test_proportional_prices(self):
        """A = 2B exactly: flat spread, zero Z, no trades."""
        pb = np.linspace(50, 25, 40)
        result = analyze_pairs(2 * pb, pb, make_dates(40))

        assert result.hedge_ratio == pytest.approx(1.0)
        assert result.alpha == pytest.approx(math.log(2))
        assert np.all(result.z_score == 0)
        assert result.current_z_score == 0
        assert result.backtest.trades == 0

    def test_constant_hedge_leg(self):
        with pytest.raises(ValueError, match="zero variance"):
            analyze_pairs([10, 11, 12, 13], [5, 5, 5, 5], make_dates(4))

    def test_constant_hedge_leg_long_series(self, cointegrated_pair):
        """Demeaning equal log prices must not yield a huge finite beta."""
        pa, _, dates = cointegrated_pair
        with pytest.raises(ValueError, match="zero variance"):
            analyze_pairs(pa, np.full(len(dates), 7.0), dates)

    def test_length_mismatch(self):
        with pytest.raises(ValueError, match="dates"):
            analyze_pairs([10, 11, 12], [5, 6, 7, 8], make_dates(3))

    def test_non_positive_prices(self):
        with pytest.raises(ValueError, match="positive"):
            analyze_pairs([10, 0, 12], [5, 6, 7], make_dates(3))

    def test_unordered_dates(self):
        with pytest.raises(ValueError, match="strictly increasing"):
            analyze_pairs([10, 11, 12], [5, 6, 7], ["2024-01-02", "2024-01-01", "2024-01-03"])

    def test_duplicate_dates(self):
        with pytest.raises(ValueError, match="strictly increasing"):
            analyze_pairs([10, 11, 12], [5, 6, 7], ["2024-01-01", "2024-01-01", "2024-01-03"])

    def test_too_few_observations(self):
        with pytest.raises(ValueError, match="at least 3"):
            analyze_pairs([10, 11], [5, 6], make_dates(2))

    def test_same_symbols(self, cointegrated_pair):
        pa, pb, dates = cointegrated_pair
        with pytest.raises(ValueError, match="distinct"):
            analyze_pairs(pa, pb, dates, symbols=("X", "X"))

    def test_to_dict(self, cointegrated_pair):
        pa, pb, dates = cointegrated_pair
        d = analyze_pairs(pa, pb, dates).to_dict()

        assert d["symbols"] == ["A", "B"]
        assert isinstance(d["spread"], list)
        assert "equity_curve" in d["backtest"]


class TestAnalyzeBasket:
    """Tests for the basket pipeline."""

    @pytest.fixture
    def basket(self):
        rng = np.random.default_rng(5)
        n = 400
        log_a = np.log(80) + np.cumsum(rng.normal(0, 0.01, n))
        log_b = np.log(30) + np.cumsum(rng.normal(0, 0.01, n))
        log_c = 0.5 * log_a + 0.3 * log_b + 0.2 + ar1(rng, n, 0.5, 0.005)
        return {"A": np.exp(log_a), "B": np.exp(log_b), "C": np.exp(log_c)}, make_dates(n)

    def test_recovers_weights(self, basket):
        prices, dates = basket
        result = analyze_basket(prices, dates, dependent="C")

        assert result.dependent == "C"
        assert result.weights["C"] == 1.0
        assert result.weights["A"] == pytest.approx(-0.5, abs=0.1)
        assert result.weights["B"] == pytest.approx(-0.3, abs=0.1)
        assert result.is_cointegrated
        assert list(result.stats.last_prices) == ["C", "A", "B"]

    def test_default_dependent_is_first(self, basket):
        prices, dates = basket
        result = analyze_basket(prices, dates)

        assert result.dependent == "A"
        assert len(result.backtest.equity_curve) == len(dates)

    def test_unknown_dependent(self, basket):
        prices, dates = basket
        with pytest.raises(ValueError, match="not in basket"):
            analyze_basket(prices, dates, dependent="Z")

    def test_single_asset(self):
        with pytest.raises(ValueError, match="at least 2"):
            analyze_basket({"A": [1, 2, 3]}, make_dates(3))

    def test_collinear_basket(self, basket):
        prices, dates = basket
        prices = {**prices, "D": prices["A"] * 3}
        with pytest.raises(ValueError, match="collinear"):
            analyze_basket(prices, dates, dependent="C")


class TestScanPairs:
    """Tests for the universe scanner."""

    @pytest.fixture
    def universe(self, cointegrated_pair):
        pa, pb, dates = cointegrated_pair
        n = len(dates)
        rng = np.random.default_rng(9)

        c = 40 * np.exp(np.cumsum(rng.normal(0, 0.01, n)))
        c[:30] = np.nan
        d = np.full(n, np.nan)
        d[-50:] = 20 + rng.random(50)

        return {"A": pa, "B": pb, "C": c, "D": d}, dates

    def test_scan(self, universe):
        prices, dates = universe
        results = scan_pairs(prices, dates, min_observations=100)

        pairs = [(r.symbol_a, r.symbol_b) for r in results]
        assert pairs == [("A", "B"), ("A", "C"), ("B", "C")]

        ab = results[0]
        assert ab.is_cointegrated
        assert ab.observations == len(dates)
        assert results[1].observations == len(dates) - 30

    def test_min_observations(self, universe):
        prices, dates = universe
        results = scan_pairs(prices, dates, min_observations=len(dates))
        assert [(r.symbol_a, r.symbol_b) for r in results] == [("A", "B")]

    def test_failed_pair_is_skipped(self, universe):
        prices, dates = universe
        prices = {"A": prices["A"], "B": prices["B"], "F": np.full(len(dates), 7.0)}

        results = scan_pairs(prices, dates, min_observations=10)
        assert [(r.symbol_a, r.symbol_b) for r in results] == [("A", "B")]

    def test_thread_pool_matches_serial(self, universe):
        prices, dates = universe
        serial = scan_pairs(prices, dates, min_observations=100)
        pooled = scan_pairs(prices, dates, min_observations=100, max_workers=4)

        assert [r.to_dict() for r in serial] == [r.to_dict() for r in pooled]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
