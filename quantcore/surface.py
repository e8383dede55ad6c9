"""Implied volatility surface assembly from an option chain snapshot.

Each call with a traded price is paired with the put at the same strike;
both are inverted to implied volatility and Greeks are evaluated at the
accepted vol. The resulting points feed the SVI fitter and the arbitrage
scanner.
"""

import logging
import math
from dataclasses import asdict, dataclass, field
from datetime import date, datetime

import numpy as np
import pandas as pd

from quantcore.black_scholes import BlackScholes

logger = logging.getLogger(__name__)

DEFAULT_IV_BOUNDS = (0.01, 3.0)
SKEW_MONEYNESS = 0.05


@dataclass(frozen=True)
class SurfacePoint:
    """One strike on one expiry with call/put implied vols and Greeks.

    Attributes:
        strike: Strike price
        expiry: Expiration date (ISO string)
        days_to_expiry: Calendar days from the snapshot
        moneyness: Log-moneyness ln(K/S)
        call_iv / put_iv: Accepted implied vols (None when rejected)
        call_price / put_price: Last traded prices (0 when missing)
        gamma / vega: From the call when its IV was accepted, else the put
    """

    strike: float
    expiry: str
    days_to_expiry: int
    moneyness: float
    call_iv: float | None = None
    put_iv: float | None = None
    call_price: float = 0.0
    put_price: float = 0.0
    call_bid: float = 0.0
    call_ask: float = 0.0
    put_bid: float = 0.0
    put_ask: float = 0.0
    call_volume: int = 0
    put_volume: int = 0
    call_oi: int = 0
    put_oi: int = 0
    call_delta: float | None = None
    put_delta: float | None = None
    gamma: float | None = None
    vega: float | None = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "SurfacePoint":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class SurfaceStats:
    """Summary statistics of a volatility surface.

    Attributes:
        atm_iv: IV of the point nearest the money on the shortest expiry
        iv_min / iv_max: Range over all accepted IVs
        skew_index: (mean OTM put IV - mean OTM call IV) in vol points
        term_slope: (longest-expiry ATM IV - shortest-expiry ATM IV) in vol points
    """

    atm_iv: float | None
    iv_min: float
    iv_max: float
    skew_index: float | None
    term_slope: float | None

    def to_dict(self) -> dict:
        return {
            "atm_iv": self.atm_iv,
            "iv_range": {"min": self.iv_min, "max": self.iv_max},
            "skew_index": self.skew_index,
            "term_slope": self.term_slope,
        }


@dataclass
class VolatilitySurfaceData:
    """Implied volatility surface for one underlying at one snapshot."""

    symbol: str
    spot_price: float
    risk_free_rate: float
    timestamp: datetime
    points: list[SurfacePoint]
    expiry_dates: list[str]
    strikes: list[float]
    stats: SurfaceStats = field(default=None)

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "spot_price": self.spot_price,
            "risk_free_rate": self.risk_free_rate,
            "timestamp": self.timestamp.isoformat(),
            "points": [p.to_dict() for p in self.points],
            "expiry_dates": self.expiry_dates,
            "strikes": self.strikes,
            "stats": self.stats.to_dict() if self.stats else None,
        }


def _value(row: pd.Series | None, column: str, default: float = 0.0) -> float:
    if row is None or column not in row.index:
        return default
    val = row[column]
    if val is None or pd.isna(val):
        return default
    return float(val)


def _solve(
    bs: BlackScholes,
    price: float,
    strike: float,
    expiry_years: float,
    option_type: str,
    iv_bounds: tuple[float, float],
):
    """Implied vol and Greeks at that vol, or (None, None) when rejected."""
    if price <= 0:
        return None, None

    result = bs.implied_volatility(price, strike, expiry_years, option_type)
    if not (result.converged and iv_bounds[0] < result.iv < iv_bounds[1]):
        logger.debug(
            f"Rejected {option_type} K={strike} T={expiry_years:.4f}: "
            f"iv={result.iv:.4f}, converged={result.converged}"
        )
        return None, None

    return result.iv, bs.greeks(strike, expiry_years, result.iv, option_type)


def _expiry_points(
    bs: BlackScholes,
    calls: pd.DataFrame,
    puts: pd.DataFrame,
    expiry: date,
    days: int,
    iv_bounds: tuple[float, float],
) -> tuple[list[SurfacePoint], set[float]]:
    T = days / 365
    put_by_strike = {float(row["strike"]): row for _, row in puts.iterrows()}
    points = []
    strikes = set()

    for _, call in calls.iterrows():
        strike = float(call["strike"])
        call_price = _value(call, "last")
        if call_price <= 0:
            continue

        strikes.add(strike)
        put = put_by_strike.get(strike)
        put_price = _value(put, "last")

        call_iv, call_greeks = _solve(bs, call_price, strike, T, "call", iv_bounds)
        put_iv, put_greeks = _solve(bs, put_price, strike, T, "put", iv_bounds)

        if call_iv is None and put_iv is None:
            continue

        shared = call_greeks or put_greeks
        points.append(SurfacePoint(
            strike=strike,
            expiry=expiry.isoformat(),
            days_to_expiry=days,
            moneyness=math.log(strike / bs.spot),
            call_iv=call_iv,
            put_iv=put_iv,
            call_price=call_price,
            put_price=put_price,
            call_bid=_value(call, "bid"),
            call_ask=_value(call, "ask"),
            put_bid=_value(put, "bid"),
            put_ask=_value(put, "ask"),
            call_volume=int(_value(call, "volume")),
            put_volume=int(_value(put, "volume")),
            call_oi=int(_value(call, "open_interest")),
            put_oi=int(_value(put, "open_interest")),
            call_delta=call_greeks.delta if call_greeks else None,
            put_delta=put_greeks.delta if put_greeks else None,
            gamma=shared.gamma,
            vega=shared.vega,
        ))

    return points, strikes


def _atm_iv(points: list[SurfacePoint]) -> float | None:
    if not points:
        return None
    atm = min(points, key=lambda p: abs(p.moneyness))
    return atm.call_iv if atm.call_iv is not None else atm.put_iv


def calculate_surface_stats(points: list[SurfacePoint], n_expiries: int) -> SurfaceStats:
    """Summarise a surface: ATM level, IV range, skew and term slope."""
    ivs = [iv for p in points for iv in (p.call_iv, p.put_iv) if iv is not None]
    if not ivs:
        raise ValueError("No implied volatilities to summarise")

    days = sorted({p.days_to_expiry for p in points})
    shortest = [p for p in points if p.days_to_expiry == days[0]]
    longest = [p for p in points if p.days_to_expiry == days[-1]]

    atm_iv = _atm_iv(shortest)

    skew_index = None
    if len(shortest) >= 3:
        otm_puts = [p.put_iv for p in shortest if p.moneyness < -SKEW_MONEYNESS and p.put_iv]
        otm_calls = [p.call_iv for p in shortest if p.moneyness > SKEW_MONEYNESS and p.call_iv]
        if otm_puts and otm_calls:
            skew_index = (float(np.mean(otm_puts)) - float(np.mean(otm_calls))) * 100

    term_slope = None
    if n_expiries >= 2:
        long_atm_iv = _atm_iv(longest)
        if atm_iv is not None and long_atm_iv is not None:
            term_slope = (long_atm_iv - atm_iv) * 100

    return SurfaceStats(
        atm_iv=atm_iv,
        iv_min=min(ivs),
        iv_max=max(ivs),
        skew_index=skew_index,
        term_slope=term_slope,
    )


def build_surface(
    chain,
    rate: float = 0.045,
    as_of: date | None = None,
    max_expiries: int = 12,
    iv_bounds: tuple[float, float] = DEFAULT_IV_BOUNDS,
) -> VolatilitySurfaceData:
    """Compute the implied volatility surface of an option chain.

    Args:
        chain: OptionsChain snapshot (standardised columns)
        rate: Risk-free rate, continuous
        as_of: Valuation date for days-to-expiry (defaults to the chain date)
        max_expiries: Number of nearest expiries to process
        iv_bounds: Open interval of acceptable implied vols

    Returns:
        VolatilitySurfaceData with points, axes and summary stats

    Raises:
        ValueError: If no implied volatility could be accepted

    Example:
        >>> chain = create_synthetic_chain(spot=100, seed=1)
        >>> surface = build_surface(chain, rate=0.045)
        >>> print(f"ATM IV: {surface.stats.atm_iv:.2%}")
    """
    as_of = as_of or chain.timestamp.date()
    bs = BlackScholes(spot=chain.spot_price, rate=rate)

    points: list[SurfacePoint] = []
    all_strikes: set[float] = set()
    expiry_dates: list[str] = []

    for expiry in chain.expiries[:max_expiries]:
        days = (expiry - as_of).days
        if days <= 0:
            logger.debug(f"Skipping expired {expiry}")
            continue

        expiry_dates.append(expiry.isoformat())
        calls = chain.calls[chain.calls["expiration"] == expiry]
        puts = chain.puts[chain.puts["expiration"] == expiry]

        expiry_points, strikes = _expiry_points(bs, calls, puts, expiry, days, iv_bounds)
        points.extend(expiry_points)
        all_strikes |= strikes

    if not points:
        raise ValueError(f"No valid IV data could be calculated for {chain.ticker}")

    stats = calculate_surface_stats(points, len(expiry_dates))

    logger.info(
        f"Built surface for {chain.ticker}: {len(points)} points over "
        f"{len(expiry_dates)} expiries, ATM IV={stats.atm_iv}"
    )

    return VolatilitySurfaceData(
        symbol=chain.ticker.upper(),
        spot_price=chain.spot_price,
        risk_free_rate=rate,
        timestamp=chain.timestamp,
        points=points,
        expiry_dates=sorted(set(expiry_dates)),
        strikes=sorted(all_strikes),
        stats=stats,
    )
