"""Black-Scholes option pricing, Greeks and implied volatility.

Closed-form European pricing with no dividends:

    d1 = [ln(S/K) + (r + σ²/2)T] / (σ√T)
    d2 = d1 - σ√T

    Call = S·N(d1) - K·e^(-rT)·N(d2)
    Put  = K·e^(-rT)·N(-d2) - S·N(-d1)

Greek conventions:
    - vega per 1% move in volatility
    - rho per 1% move in rate
    - theta per calendar day

Implied volatility is solved with Newton-Raphson seeded by the
Brenner-Subrahmanyam approximation, falling back to bisection when vega
vanishes or Newton fails to converge.

Example:
    >>> bs = BlackScholes(spot=100, rate=0.05)
    >>> price = bs.price(strike=100, expiry=0.25, vol=0.2, option_type="call")
    >>> result = bs.implied_volatility(price, strike=100, expiry=0.25, option_type="call")
    >>> result.converged
    True
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Literal

from scipy.stats import norm

logger = logging.getLogger(__name__)

# Newton-Raphson
NEWTON_MAX_ITERATIONS = 100
NEWTON_PRECISION = 1e-7
MIN_VEGA = 1e-10
NEWTON_VOL_BOUNDS = (0.001, 10.0)

# Bisection fallback
BISECTION_MAX_ITERATIONS = 100
BISECTION_PRECISION = 1e-6
BISECTION_VOL_BOUNDS = (0.001, 5.0)

# Brenner-Subrahmanyam seed clamp
SEED_VOL_BOUNDS = (0.01, 5.0)


class OptionType(str, Enum):
    """Option type enumeration."""

    CALL = "call"
    PUT = "put"


def _normalize_type(option_type: str | OptionType) -> str:
    if isinstance(option_type, OptionType):
        return option_type.value
    option_type = option_type.lower()
    if option_type not in ("call", "put"):
        raise ValueError(f"option_type must be 'call' or 'put', got {option_type!r}")
    return option_type


@dataclass
class Greeks:
    """Option Greeks container.

    Attributes:
        delta: ∂V/∂S - Sensitivity to underlying price
        gamma: ∂²V/∂S² - Rate of change of delta
        vega: ∂V/∂σ - Sensitivity to volatility (per 1% move)
        theta: ∂V/∂t - Time decay (per day)
        rho: ∂V/∂r - Sensitivity to interest rate (per 1% move)
    """

    delta: float
    gamma: float
    vega: float
    theta: float
    rho: float

    def to_dict(self) -> dict[str, float]:
        """Convert to dictionary."""
        return {
            "delta": self.delta,
            "gamma": self.gamma,
            "vega": self.vega,
            "theta": self.theta,
            "rho": self.rho,
        }


@dataclass(frozen=True)
class BlackScholesInputs:
    """Inputs to the closed-form pricer.

    Attributes:
        S: Spot price
        K: Strike price
        T: Time to expiry in years
        r: Risk-free rate (continuous, decimal)
        sigma: Volatility (annualised, decimal)
    """

    S: float
    K: float
    T: float
    r: float
    sigma: float


@dataclass
class BlackScholesResult:
    """Price and Greeks for one option."""

    price: float
    greeks: Greeks

    def to_dict(self) -> dict:
        return {"price": self.price, "greeks": self.greeks.to_dict()}


@dataclass(frozen=True)
class ImpliedVolatilityInputs:
    """Inputs to the implied volatility solver.

    Attributes:
        option_price: Observed market price
        S: Spot price
        K: Strike price
        T: Time to expiry in years
        r: Risk-free rate
        option_type: 'call' or 'put'
    """

    option_price: float
    S: float
    K: float
    T: float
    r: float
    option_type: Literal["call", "put"] | OptionType = OptionType.CALL


@dataclass
class ImpliedVolResult:
    """Outcome of an implied volatility solve.

    Callers must check `converged`; a non-converged result carries a
    best-effort `iv` that is not a valid market vol.
    """

    iv: float
    converged: bool
    iterations: int

    def to_dict(self) -> dict:
        return {"iv": self.iv, "converged": self.converged, "iterations": self.iterations}


def _d1_d2(S: float, K: float, T: float, r: float, sigma: float) -> tuple[float, float]:
    sqrt_t = math.sqrt(T)
    d1 = (math.log(S / K) + (r + 0.5 * sigma * sigma) * T) / (sigma * sqrt_t)
    return d1, d1 - sigma * sqrt_t


def _intrinsic(S: float, K: float, option_type: str) -> float:
    return max(0.0, S - K) if option_type == "call" else max(0.0, K - S)


class BlackScholes:
    """Closed-form Black-Scholes calculator for European options.

    Holds the market parameters (spot, rate) so strikes, expiries and vols
    can be varied per call.

    Example:
        >>> bs = BlackScholes(spot=100, rate=0.05)
        >>>
        >>> # Price a call option
        >>> price = bs.price(strike=105, expiry=0.25, vol=0.2, option_type="call")
        >>> print(f"Call price: ${price:.2f}")
        >>>
        >>> # Get all Greeks
        >>> greeks = bs.greeks(strike=105, expiry=0.25, vol=0.2, option_type="call")
        >>> print(f"Delta: {greeks.delta:.3f}, Gamma: {greeks.gamma:.4f}")
    """

    def __init__(self, spot: float, rate: float = 0.0):
        """Initialize Black-Scholes calculator.

        Args:
            spot: Current spot price of the underlying
            rate: Risk-free interest rate (annualized, continuous)
        """
        self.spot = spot
        self.rate = rate

    def evaluate(
        self,
        strike: float,
        expiry: float,
        vol: float,
        option_type: Literal["call", "put"] | OptionType = OptionType.CALL,
    ) -> BlackScholesResult:
        """Price an option and compute all Greeks in one pass.

        Boundary handling:
            - expiry <= 0: intrinsic value, all Greeks zero
            - vol <= 0: intrinsic value, delta 0/±1, other Greeks zero

        Args:
            strike: Strike price
            expiry: Time to expiry in years
            vol: Implied volatility (annualized)
            option_type: 'call' or 'put'

        Returns:
            BlackScholesResult with price and Greeks
        """
        option_type = _normalize_type(option_type)
        S, K, T, r = self.spot, strike, expiry, self.rate

        if T <= 0:
            return BlackScholesResult(
                price=_intrinsic(S, K, option_type),
                greeks=Greeks(delta=0.0, gamma=0.0, vega=0.0, theta=0.0, rho=0.0),
            )
        if vol <= 0:
            if option_type == "call":
                delta = 1.0 if S > K else 0.0
            else:
                delta = -1.0 if S < K else 0.0
            return BlackScholesResult(
                price=_intrinsic(S, K, option_type),
                greeks=Greeks(delta=delta, gamma=0.0, vega=0.0, theta=0.0, rho=0.0),
            )

        sqrt_t = math.sqrt(T)
        d1, d2 = _d1_d2(S, K, T, r, vol)
        pdf_d1 = float(norm.pdf(d1))
        discount = math.exp(-r * T)

        gamma = pdf_d1 / (S * vol * sqrt_t)
        vega = S * sqrt_t * pdf_d1 / 100
        decay = -(S * pdf_d1 * vol) / (2 * sqrt_t)

        if option_type == "call":
            cdf_d1 = float(norm.cdf(d1))
            cdf_d2 = float(norm.cdf(d2))
            price = S * cdf_d1 - K * discount * cdf_d2
            delta = cdf_d1
            theta = decay - r * K * discount * cdf_d2
            rho = K * T * discount * cdf_d2 / 100
        else:
            cdf_neg_d1 = float(norm.cdf(-d1))
            cdf_neg_d2 = float(norm.cdf(-d2))
            price = K * discount * cdf_neg_d2 - S * cdf_neg_d1
            delta = float(norm.cdf(d1)) - 1
            theta = decay + r * K * discount * cdf_neg_d2
            rho = -K * T * discount * cdf_neg_d2 / 100

        return BlackScholesResult(
            price=price,
            greeks=Greeks(
                delta=delta,
                gamma=gamma,
                vega=vega,
                theta=theta / 365,  # Per day
                rho=rho,
            ),
        )

    def price(
        self,
        strike: float,
        expiry: float,
        vol: float,
        option_type: Literal["call", "put"] | OptionType = OptionType.CALL,
    ) -> float:
        """Calculate option price.

        Args:
            strike: Strike price
            expiry: Time to expiry in years
            vol: Implied volatility (annualized)
            option_type: 'call' or 'put'

        Returns:
            Option price

        Example:
            >>> bs = BlackScholes(spot=100, rate=0.05)
            >>> call_price = bs.price(100, 0.25, 0.2, "call")
            >>> put_price = bs.price(100, 0.25, 0.2, "put")
        """
        return self.evaluate(strike, expiry, vol, option_type).price

    def delta(
        self,
        strike: float,
        expiry: float,
        vol: float,
        option_type: Literal["call", "put"] | OptionType = OptionType.CALL,
    ) -> float:
        """Delta = ∂V/∂S (call: 0 to 1, put: -1 to 0)."""
        return self.evaluate(strike, expiry, vol, option_type).greeks.delta

    def gamma(self, strike: float, expiry: float, vol: float) -> float:
        """Gamma = ∂²V/∂S², identical for calls and puts."""
        return self.evaluate(strike, expiry, vol, "call").greeks.gamma

    def vega(self, strike: float, expiry: float, vol: float) -> float:
        """Vega per 1% move in volatility, identical for calls and puts."""
        return self.evaluate(strike, expiry, vol, "call").greeks.vega

    def theta(
        self,
        strike: float,
        expiry: float,
        vol: float,
        option_type: Literal["call", "put"] | OptionType = OptionType.CALL,
    ) -> float:
        """Theta per calendar day (usually negative)."""
        return self.evaluate(strike, expiry, vol, option_type).greeks.theta

    def rho(
        self,
        strike: float,
        expiry: float,
        vol: float,
        option_type: Literal["call", "put"] | OptionType = OptionType.CALL,
    ) -> float:
        """Rho per 1% move in rate."""
        return self.evaluate(strike, expiry, vol, option_type).greeks.rho

    def greeks(
        self,
        strike: float,
        expiry: float,
        vol: float,
        option_type: Literal["call", "put"] | OptionType = OptionType.CALL,
    ) -> Greeks:
        """Calculate all Greeks for an option.

        Example:
            >>> bs = BlackScholes(spot=100, rate=0.05)
            >>> g = bs.greeks(100, 0.25, 0.2, "call")
            >>> print(f"Delta: {g.delta:.3f}")
            >>> print(f"Vega:  {g.vega:.2f}")
        """
        return self.evaluate(strike, expiry, vol, option_type).greeks

    def forward_price(self, expiry: float) -> float:
        """Forward price F = S × exp(r × T)."""
        return self.spot * math.exp(self.rate * expiry)

    def implied_volatility(
        self,
        market_price: float,
        strike: float,
        expiry: float,
        option_type: Literal["call", "put"] | OptionType = OptionType.CALL,
    ) -> ImpliedVolResult:
        """Solve for the volatility that reproduces a market price.

        The solve is rejected (converged=False, iv=0) when expiry <= 0,
        market_price <= 0, or the price sits below 99% of the discounted
        intrinsic value, since no volatility can reproduce it.

        Args:
            market_price: Observed option price
            strike: Strike price
            expiry: Time to expiry in years
            option_type: 'call' or 'put'

        Returns:
            ImpliedVolResult with iv, converged flag and iteration count

        Example:
            >>> bs = BlackScholes(spot=100, rate=0.05)
            >>> result = bs.implied_volatility(5.50, 100, 0.25, "call")
            >>> if result.converged:
            ...     print(f"Implied Vol: {result.iv:.2%}")
        """
        option_type = _normalize_type(option_type)
        S, K, T, r = self.spot, strike, expiry, self.rate

        if T <= 0 or market_price <= 0:
            return ImpliedVolResult(iv=0.0, converged=False, iterations=0)

        discounted_strike = K * math.exp(-r * T)
        if option_type == "call":
            intrinsic = max(0.0, S - discounted_strike)
        else:
            intrinsic = max(0.0, discounted_strike - S)

        if market_price < intrinsic * 0.99:
            logger.debug(
                f"Price {market_price:.4f} below intrinsic {intrinsic:.4f} for K={K}, no IV"
            )
            return ImpliedVolResult(iv=0.0, converged=False, iterations=0)

        # Brenner-Subrahmanyam seed
        sigma = math.sqrt(2 * math.pi / T) * market_price / S
        sigma = min(max(sigma, SEED_VOL_BOUNDS[0]), SEED_VOL_BOUNDS[1])

        sqrt_t = math.sqrt(T)
        for i in range(NEWTON_MAX_ITERATIONS):
            diff = self.price(K, T, sigma, option_type) - market_price

            if abs(diff) < NEWTON_PRECISION:
                return ImpliedVolResult(iv=sigma, converged=True, iterations=i + 1)

            # Unscaled vega for the Newton step
            d1, _ = _d1_d2(S, K, T, r, sigma)
            vega = S * sqrt_t * float(norm.pdf(d1))

            if abs(vega) < MIN_VEGA:
                logger.debug(f"Vega vanished at sigma={sigma:.4f}, switching to bisection")
                return self._bisection_iv(market_price, K, T, option_type)

            sigma = sigma - diff / vega
            sigma = min(max(sigma, NEWTON_VOL_BOUNDS[0]), NEWTON_VOL_BOUNDS[1])

        logger.debug(f"Newton-Raphson did not converge for K={K}, T={T:.4f}; bisecting")
        return self._bisection_iv(market_price, K, T, option_type)

    def _bisection_iv(
        self,
        market_price: float,
        strike: float,
        expiry: float,
        option_type: str,
    ) -> ImpliedVolResult:
        """Bisection over [0.001, 5.0]. Slower than Newton but always brackets."""
        low, high = BISECTION_VOL_BOUNDS

        # Price is monotone in vol: a target outside [price(low), price(high)] has no root
        if not (
            self.price(strike, expiry, low, option_type)
            <= market_price
            <= self.price(strike, expiry, high, option_type)
        ):
            logger.debug(f"Price {market_price:.4f} not bracketed by vol range {low}-{high}")
            return ImpliedVolResult(iv=0.0, converged=False, iterations=0)

        for i in range(BISECTION_MAX_ITERATIONS):
            mid = (low + high) / 2
            diff = self.price(strike, expiry, mid, option_type) - market_price

            if abs(diff) < BISECTION_PRECISION or (high - low) < BISECTION_PRECISION:
                return ImpliedVolResult(iv=mid, converged=True, iterations=i + 1)

            if diff > 0:
                high = mid
            else:
                low = mid

        return ImpliedVolResult(
            iv=(low + high) / 2, converged=False, iterations=BISECTION_MAX_ITERATIONS
        )


def calculate_black_scholes(
    inputs: BlackScholesInputs,
    option_type: Literal["call", "put"] | OptionType = OptionType.CALL,
) -> BlackScholesResult:
    """Price and Greeks for a single option."""
    bs = BlackScholes(spot=inputs.S, rate=inputs.r)
    return bs.evaluate(inputs.K, inputs.T, inputs.sigma, option_type)


def calculate_implied_volatility(inputs: ImpliedVolatilityInputs) -> ImpliedVolResult:
    """Implied volatility for a single market price."""
    bs = BlackScholes(spot=inputs.S, rate=inputs.r)
    return bs.implied_volatility(inputs.option_price, inputs.K, inputs.T, inputs.option_type)
