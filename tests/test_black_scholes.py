"""Tests for Black-Scholes pricing, Greeks and implied volatility."""

import math

import numpy as np
import pytest

from quantcore.black_scholes import (
    BlackScholes,
    BlackScholesInputs,
    Greeks,
    ImpliedVolatilityInputs,
    OptionType,
    calculate_black_scholes,
    calculate_implied_volatility,
)


class TestBlackScholesPrice:
    """Tests for BS pricing."""

    @pytest.fixture
    def bs(self):
        """Standard BS calculator."""
        return BlackScholes(spot=100, rate=0.05)

    def test_call_price_atm(self, bs):
        """Test ATM call price is reasonable."""
        price = bs.price(strike=100, expiry=0.25, vol=0.2, option_type="call")
        # ATM call with 20% vol, 3 month expiry should be roughly $4-5
        assert 3 < price < 7

    def test_known_value(self, bs):
        """S=100, K=100, T=1, r=5%, σ=20% is the textbook 10.4506 call."""
        price = bs.price(strike=100, expiry=1.0, vol=0.2, option_type="call")
        assert np.isclose(price, 10.4506, atol=1e-4)

    def test_put_price_atm(self, bs):
        """ATM put is cheaper than the call with positive rates."""
        put = bs.price(strike=100, expiry=0.25, vol=0.2, option_type="put")
        call = bs.price(strike=100, expiry=0.25, vol=0.2, option_type="call")
        assert put < call

    @pytest.mark.parametrize("strike", [80, 95, 100, 105, 130])
    @pytest.mark.parametrize("expiry", [0.05, 0.5, 2.0])
    @pytest.mark.parametrize("vol", [0.1, 0.35, 0.8])
    def test_put_call_parity(self, bs, strike, expiry, vol):
        """C - P = S - K*exp(-r*T)."""
        call = bs.price(strike, expiry, vol, "call")
        put = bs.price(strike, expiry, vol, "put")

        expected_diff = bs.spot - strike * np.exp(-bs.rate * expiry)
        assert np.isclose(call - put, expected_diff, atol=1e-9)

    def test_call_approaches_intrinsic_itm(self, bs):
        """Deep ITM call should approach intrinsic value."""
        price = bs.price(strike=50, expiry=0.01, vol=0.2, option_type="call")
        assert np.isclose(price, 50, atol=1)

    def test_put_approaches_zero_far_otm(self, bs):
        """Far OTM put should be nearly worthless."""
        price = bs.price(strike=50, expiry=0.1, vol=0.2, option_type="put")
        assert price < 0.01

    def test_expired_option_is_intrinsic(self, bs):
        """T <= 0 gives intrinsic value and zero Greeks."""
        result = bs.evaluate(strike=90, expiry=0.0, vol=0.2, option_type="call")
        assert result.price == 10
        assert result.greeks.to_dict() == {
            "delta": 0.0, "gamma": 0.0, "vega": 0.0, "theta": 0.0, "rho": 0.0,
        }

        put = bs.evaluate(strike=90, expiry=-1.0, vol=0.2, option_type="put")
        assert put.price == 0

    def test_zero_vol_is_intrinsic(self, bs):
        """σ <= 0 gives intrinsic value with a step delta."""
        call_itm = bs.evaluate(strike=90, expiry=0.5, vol=0.0, option_type="call")
        call_otm = bs.evaluate(strike=110, expiry=0.5, vol=0.0, option_type="call")
        put_itm = bs.evaluate(strike=110, expiry=0.5, vol=0.0, option_type="put")

        assert call_itm.price == 10 and call_itm.greeks.delta == 1.0
        assert call_otm.price == 0 and call_otm.greeks.delta == 0.0
        assert put_itm.price == 10 and put_itm.greeks.delta == -1.0
        assert call_itm.greeks.gamma == 0.0

    def test_option_type_enum_and_case(self, bs):
        """OptionType members and upper-case strings are accepted."""
        assert bs.price(100, 0.25, 0.2, OptionType.PUT) == bs.price(100, 0.25, 0.2, "PUT")

    def test_invalid_option_type(self, bs):
        with pytest.raises(ValueError, match="option_type"):
            bs.price(100, 0.25, 0.2, "straddle")

    def test_forward_price(self, bs):
        assert np.isclose(bs.forward_price(1.0), 100 * math.exp(0.05))


class TestBlackScholesGreeks:
    """Tests for BS Greeks."""

    @pytest.fixture
    def bs(self):
        return BlackScholes(spot=100, rate=0.05)

    def test_call_delta_range(self, bs):
        """Call delta should be between 0 and 1."""
        for strike in [80, 100, 120]:
            delta = bs.delta(strike, 0.25, 0.2, "call")
            assert 0 <= delta <= 1

    def test_put_delta_range(self, bs):
        """Put delta should be between -1 and 0."""
        for strike in [80, 100, 120]:
            delta = bs.delta(strike, 0.25, 0.2, "put")
            assert -1 <= delta <= 0

    @pytest.mark.parametrize("strike", [80, 100, 120])
    def test_put_delta_is_call_delta_minus_one(self, bs, strike):
        """Put delta is N(d1) - 1."""
        T, vol = 0.5, 0.25
        d1 = (math.log(100 / strike) + (0.05 + vol**2 / 2) * T) / (vol * math.sqrt(T))
        expected = 0.5 * (1 + math.erf(d1 / math.sqrt(2))) - 1

        assert np.isclose(bs.delta(strike, T, vol, "put"), expected, atol=1e-12)
        assert np.isclose(
            bs.delta(strike, T, vol, "put"), bs.delta(strike, T, vol, "call") - 1, atol=1e-12
        )

    def test_put_delta_matches_finite_difference(self):
        h = 1e-4
        up = BlackScholes(100 + h, 0.05).price(100, 0.5, 0.2, "put")
        down = BlackScholes(100 - h, 0.05).price(100, 0.5, 0.2, "put")
        delta = BlackScholes(100, 0.05).delta(100, 0.5, 0.2, "put")
        assert np.isclose(delta, (up - down) / (2 * h), rtol=1e-6)

    def test_atm_delta_approximately_half(self, bs):
        """ATM call delta should be slightly above 0.5 due to drift."""
        delta = bs.delta(strike=100, expiry=0.25, vol=0.2, option_type="call")
        assert 0.45 < delta < 0.65

    def test_gamma_maximum_near_atm(self, bs):
        gamma_itm = bs.gamma(80, 0.25, 0.2)
        gamma_atm = bs.gamma(100, 0.25, 0.2)
        gamma_otm = bs.gamma(120, 0.25, 0.2)

        assert gamma_atm > gamma_itm
        assert gamma_atm > gamma_otm

    def test_vega_matches_finite_difference(self, bs):
        """Vega is quoted per 1 vol point."""
        h = 1e-4
        bumped = (bs.price(100, 0.5, 0.2 + h) - bs.price(100, 0.5, 0.2 - h)) / (2 * h)
        assert np.isclose(bs.vega(100, 0.5, 0.2), bumped / 100, rtol=1e-5)

    def test_theta_is_per_day(self, bs):
        """Theta approximates the one-day price change."""
        one_day = 1 / 365
        decay = bs.price(100, 0.5 - one_day, 0.2) - bs.price(100, 0.5, 0.2)
        assert np.isclose(bs.theta(100, 0.5, 0.2, "call"), decay, rtol=1e-2)
        assert bs.theta(100, 0.5, 0.2, "call") < 0

    def test_rho_matches_finite_difference(self):
        """Rho is quoted per 1 rate point."""
        h = 1e-5
        up = BlackScholes(100, 0.05 + h).price(100, 1.0, 0.2, "put")
        down = BlackScholes(100, 0.05 - h).price(100, 1.0, 0.2, "put")
        rho = BlackScholes(100, 0.05).rho(100, 1.0, 0.2, "put")
        assert np.isclose(rho, (up - down) / (2 * h) / 100, rtol=1e-5)
        assert rho < 0

    def test_greeks_object(self, bs):
        """Test Greeks object creation and serialization."""
        greeks = bs.greeks(100, 0.25, 0.2, "call")

        assert isinstance(greeks, Greeks)
        assert greeks.delta > 0
        assert greeks.gamma > 0
        assert greeks.vega > 0

        d = greeks.to_dict()
        assert set(d) == {"delta", "gamma", "vega", "theta", "rho"}


class TestImpliedVolatility:
    """Tests for IV calculation."""

    @pytest.fixture
    def bs(self):
        return BlackScholes(spot=100, rate=0.05)

    @pytest.mark.parametrize("sigma", [0.1, 0.2, 0.5])
    @pytest.mark.parametrize("option_type", ["call", "put"])
    def test_iv_round_trip(self, bs, sigma, option_type):
        """Price at σ, recover σ within 1e-4."""
        price = bs.price(100, 0.25, sigma, option_type)
        result = bs.implied_volatility(price, 100, 0.25, option_type)

        assert result.converged
        assert abs(result.iv - sigma) < 1e-4

    @pytest.mark.parametrize("strike", [70, 90, 110, 140])
    def test_iv_round_trip_off_the_money(self, bs, strike):
        price = bs.price(strike, 1.0, 0.3, "call")
        result = bs.implied_volatility(price, strike, 1.0, "call")

        assert result.converged
        assert abs(result.iv - 0.3) < 1e-4

    def test_rejects_expired(self, bs):
        result = bs.implied_volatility(5.0, 100, 0.0, "call")
        assert not result.converged
        assert result.iterations == 0

    def test_rejects_non_positive_price(self, bs):
        assert not bs.implied_volatility(0.0, 100, 0.25, "call").converged
        assert not bs.implied_volatility(-1.0, 100, 0.25, "put").converged

    def test_rejects_price_below_intrinsic(self, bs):
        """A deep ITM call quoted well under intrinsic has no IV."""
        result = bs.implied_volatility(5.0, 80, 0.25, "call")
        assert not result.converged

    def test_price_above_any_vol_does_not_converge(self, bs):
        """A call cannot be worth more than the spot."""
        result = bs.implied_volatility(200, 100, 0.25, "call")
        assert not result.converged

    def test_short_dated_otm_high_vol(self):
        """Short-dated OTM options at high vol still solve."""
        bs = BlackScholes(spot=100, rate=0.0)
        price = bs.price(130, 0.02, 1.5, "call")
        result = bs.implied_volatility(price, 130, 0.02, "call")

        assert result.converged
        assert abs(result.iv - 1.5) < 1e-3


class TestFunctionalInterface:
    """Tests for the input-record entry points."""

    def test_calculate_black_scholes(self):
        inputs = BlackScholesInputs(S=100, K=105, T=0.5, r=0.03, sigma=0.25)
        result = calculate_black_scholes(inputs, "put")

        bs = BlackScholes(100, 0.03)
        assert np.isclose(result.price, bs.price(105, 0.5, 0.25, "put"))
        assert result.to_dict()["greeks"]["delta"] < 0

    def test_calculate_implied_volatility(self):
        price = BlackScholes(100, 0.03).price(95, 0.75, 0.22, "call")
        inputs = ImpliedVolatilityInputs(
            option_price=price, S=100, K=95, T=0.75, r=0.03, option_type="call"
        )
        result = calculate_implied_volatility(inputs)

        assert result.converged
        assert np.isclose(result.iv, 0.22, atol=1e-4)
        assert result.to_dict()["converged"] is True


class TestAgainstQuantLib:
    """Cross-check the closed form against QuantLib's analytic European engine."""

    @pytest.fixture
    def ql(self):
        return pytest.importorskip("QuantLib")

    def _quantlib_price(self, ql, S, K, T_days, r, sigma, option_type):
        today = ql.Date(15, ql.January, 2024)
        ql.Settings.instance().evaluationDate = today
        day_count = ql.Actual365Fixed()
        calendar = ql.NullCalendar()

        process = ql.BlackScholesProcess(
            ql.QuoteHandle(ql.SimpleQuote(S)),
            ql.YieldTermStructureHandle(ql.FlatForward(today, r, day_count)),
            ql.BlackVolTermStructureHandle(ql.BlackConstantVol(today, calendar, sigma, day_count)),
        )
        ql_type = ql.Option.Call if option_type == "call" else ql.Option.Put
        option = ql.VanillaOption(
            ql.PlainVanillaPayoff(ql_type, K),
            ql.EuropeanExercise(today + T_days),
        )
        option.setPricingEngine(ql.AnalyticEuropeanEngine(process))
        return option.NPV(), option.delta(), option.gamma()

    @pytest.mark.parametrize("strike,option_type", [(90, "call"), (100, "put"), (115, "call")])
    def test_matches_quantlib(self, ql, strike, option_type):
        T_days = 182
        npv, delta, gamma = self._quantlib_price(ql, 100, strike, T_days, 0.04, 0.25, option_type)

        result = BlackScholes(100, 0.04).evaluate(strike, T_days / 365, 0.25, option_type)
        assert np.isclose(result.price, npv, rtol=1e-6)
        assert np.isclose(result.greeks.delta, delta, rtol=1e-6)
        assert np.isclose(result.greeks.gamma, gamma, rtol=1e-6)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
