"""Option chain container and normalisation.

Chains arrive already fetched, as provider records (JSON rows or a
DataFrame) with provider-specific column names. This module maps them onto
one standard schema so the surface builder can treat every source alike:

    strike, expiration, option_type, bid, ask, last, mid, volume,
    open_interest, implied_volatility
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Iterable

import numpy as np
import pandas as pd

from quantcore.black_scholes import BlackScholes

logger = logging.getLogger(__name__)

# Column name mappings for standardization
COLUMN_MAPPINGS = {
    "strike": ["strike", "strike_price", "strikePrice"],
    "expiration": ["expiration", "expiry", "expirationDate"],
    "bid": ["bid", "bidPrice"],
    "ask": ["ask", "askPrice"],
    "last": ["last", "lastPrice", "lastTradePrice"],
    "volume": ["volume", "totalVolume"],
    "open_interest": ["open_interest", "openInterest", "oi"],
    "implied_volatility": ["implied_volatility", "impliedVolatility", "iv"],
    "option_type": ["option_type", "optionType", "type", "contractType"],
}

NUMERIC_COLUMNS = ["strike", "bid", "ask", "last", "mid", "volume", "open_interest", "implied_volatility"]


@dataclass
class OptionsChain:
    """Processed options chain data.

    Attributes:
        ticker: Underlying symbol
        timestamp: When the snapshot was taken
        spot_price: Underlying price at the snapshot
        expiries: Available expiration dates, ascending
        chain_data: DataFrame with the full standardised chain
        calls: DataFrame filtered to calls
        puts: DataFrame filtered to puts
    """

    ticker: str
    timestamp: datetime
    spot_price: float
    expiries: list[date]
    chain_data: pd.DataFrame
    calls: pd.DataFrame
    puts: pd.DataFrame

    @classmethod
    def from_frame(
        cls,
        ticker: str,
        spot_price: float,
        df: pd.DataFrame,
        timestamp: datetime | None = None,
    ) -> "OptionsChain":
        """Build a chain from a raw provider DataFrame.

        Raises:
            ValueError: If the spot is not positive, the frame is empty or
                required columns are missing
        """
        if spot_price <= 0:
            raise ValueError(f"spot_price must be positive, got {spot_price}")
        if len(df) == 0:
            raise ValueError(f"No options data for {ticker}")

        df = clean_chain(df)
        calls = df[df["option_type"] == "call"].copy()
        puts = df[df["option_type"] == "put"].copy()
        expiries = sorted(df["expiration"].unique())

        logger.debug(
            f"Loaded {len(df)} options for {ticker}: "
            f"{len(calls)} calls, {len(puts)} puts, {len(expiries)} expiries"
        )

        return cls(
            ticker=ticker,
            timestamp=timestamp or datetime.now(),
            spot_price=float(spot_price),
            expiries=expiries,
            chain_data=df,
            calls=calls,
            puts=puts,
        )

    @classmethod
    def from_records(
        cls,
        ticker: str,
        spot_price: float,
        records: Iterable[dict[str, Any]],
        timestamp: datetime | None = None,
    ) -> "OptionsChain":
        """Build a chain from provider rows (one dict per contract)."""
        return cls.from_frame(ticker, spot_price, pd.DataFrame(list(records)), timestamp)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        chain_records = []
        for _, row in self.chain_data.iterrows():
            record = {}
            for col, val in row.items():
                if pd.isna(val):
                    record[col] = None
                elif hasattr(val, "isoformat"):
                    record[col] = val.isoformat()
                elif isinstance(val, np.integer):
                    record[col] = int(val)
                elif isinstance(val, np.floating):
                    record[col] = float(val)
                else:
                    record[col] = val
            chain_records.append(record)

        return {
            "ticker": self.ticker,
            "timestamp": self.timestamp.isoformat(),
            "spot_price": self.spot_price,
            "expiries": [e.isoformat() for e in self.expiries],
            "chain_data": chain_records,
        }


def standardize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Standardize column names across providers."""
    df = df.copy()

    for standard_name, variants in COLUMN_MAPPINGS.items():
        for variant in variants:
            if variant in df.columns and standard_name not in df.columns:
                df.rename(columns={variant: standard_name}, inplace=True)
                break

    return df


def clean_chain(df: pd.DataFrame) -> pd.DataFrame:
    """Clean and validate options chain data."""
    df = standardize_columns(df)

    required = ["strike", "expiration", "option_type"]
    missing = [col for col in required if col not in df.columns]
    if missing:
        raise ValueError(f"Missing required columns: {missing}")

    if not all(isinstance(v, date) and not isinstance(v, datetime) for v in df["expiration"]):
        df["expiration"] = pd.to_datetime(df["expiration"]).dt.date

    df["option_type"] = df["option_type"].astype(str).str.lower()
    df["option_type"] = df["option_type"].replace({
        "c": "call",
        "p": "put",
    })

    unknown = set(df["option_type"]) - {"call", "put"}
    if unknown:
        raise ValueError(f"Unknown option types: {sorted(unknown)}")

    for col in NUMERIC_COLUMNS:
        if col in df.columns:
            df[col] = pd.to_numeric(df[col], errors="coerce")

    if "mid" not in df.columns and "bid" in df.columns and "ask" in df.columns:
        df["mid"] = (df["bid"] + df["ask"]) / 2

    # Fall back to the quote midpoint when no trade price was supplied
    if "mid" in df.columns:
        df["last"] = df["last"].fillna(df["mid"]) if "last" in df.columns else df["mid"]

    if "last" not in df.columns:
        raise ValueError("Chain has neither last prices nor bid/ask quotes")

    df = df[df["strike"] > 0]
    if "bid" in df.columns:
        df = df[df["bid"].isna() | (df["bid"] >= 0)]

    return df.sort_values(["expiration", "strike"]).reset_index(drop=True)


def create_synthetic_chain(
    ticker: str = "SYNTH",
    spot: float = 100.0,
    atm_vol: float = 0.20,
    skew: float = -0.05,
    rate: float = 0.045,
    expiry_days: list[int] | None = None,
    n_strikes: int = 21,
    as_of: date | None = None,
    seed: int | None = None,
) -> OptionsChain:
    """Create a synthetic options chain for testing.

    Prices are exact Black-Scholes values under a simple skew model
    σ(k) = atm_vol + skew * k, so implied volatilities backed out of the
    chain recover the model smile.

    Args:
        ticker: Symbol name
        spot: Spot price
        atm_vol: ATM implied volatility
        skew: Skew coefficient
        rate: Risk-free rate used for pricing
        expiry_days: List of days to expiry
        n_strikes: Number of strikes per expiry
        as_of: Snapshot date (defaults to today)
        seed: Seed for the volume/open-interest draws

    Returns:
        OptionsChain with synthetic data
    """
    if expiry_days is None:
        expiry_days = [7, 14, 30, 60, 90, 180]

    as_of = as_of or date.today()
    rng = np.random.default_rng(seed)
    bs = BlackScholes(spot=spot, rate=rate)
    all_data = []

    for days in expiry_days:
        expiry = as_of + timedelta(days=days)
        T = days / 365

        strikes = np.linspace(spot * 0.8, spot * 1.2, n_strikes)
        ivs = atm_vol + skew * np.log(strikes / spot)

        for strike, iv in zip(strikes, ivs):
            for opt_type in ["call", "put"]:
                price = bs.price(float(strike), T, float(iv), opt_type)
                mid = max(0.01, price)

                all_data.append({
                    "strike": float(strike),
                    "expiration": expiry,
                    "option_type": opt_type,
                    "bid": mid * 0.95,
                    "ask": mid * 1.05,
                    "last": price,
                    "implied_volatility": float(iv),
                    "volume": int(rng.exponential(1000)),
                    "open_interest": int(rng.exponential(5000)),
                })

    return OptionsChain.from_frame(
        ticker,
        spot,
        pd.DataFrame(all_data),
        timestamp=datetime.combine(as_of, datetime.min.time()),
    )
