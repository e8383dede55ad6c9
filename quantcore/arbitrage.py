"""Static arbitrage scanner for an implied volatility surface.

Checks applied to the surface points of one snapshot:

1. Butterfly: within an expiry, a middle-strike call IV rising above the
   average of its neighbours (convexity violation)
2. Calendar: far-dated IV below 85% of the near-dated IV at the same strike
3. Put-call: call and put IV diverging at the same strike
4. Vertical: call prices rising with strike, or put prices falling with it

Each opportunity carries the legs of the trade that would capture it.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Sequence

from quantcore.surface import SurfacePoint

logger = logging.getLogger(__name__)

BUTTERFLY_THRESHOLD = 0.02
BUTTERFLY_TIERS = (0.05, 0.03)
CALENDAR_RATIO = 0.85
CALENDAR_HIGH = 0.05
PUT_CALL_THRESHOLD = 0.03
PUT_CALL_TIERS = (0.08, 0.05)
VERTICAL_THRESHOLD = 0.01
VERTICAL_TIERS = (0.50, 0.10)


class ArbitrageType(str, Enum):
    """Kind of static arbitrage violation."""

    BUTTERFLY = "butterfly"
    CALENDAR = "calendar"
    PUT_CALL = "put_call"
    VERTICAL = "vertical"


class Severity(str, Enum):
    """Severity of a detected violation."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


SEVERITY_ORDER = {Severity.HIGH: 0, Severity.MEDIUM: 1, Severity.LOW: 2}


def _tier(value: float, high: float, medium: float) -> Severity:
    if value > high:
        return Severity.HIGH
    if value > medium:
        return Severity.MEDIUM
    return Severity.LOW


@dataclass(frozen=True)
class TradeLeg:
    """One option leg of an arbitrage trade."""

    action: str  # 'buy' or 'sell'
    option_type: str  # 'call' or 'put'
    strike: float
    expiry: str
    price: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "option_type": self.option_type,
            "strike": self.strike,
            "expiry": self.expiry,
            "price": self.price,
        }


@dataclass
class ArbitrageDetails:
    """Strikes and expiries involved plus the size of the violation."""

    strikes: list[float] = field(default_factory=list)
    expiries: list[str] = field(default_factory=list)
    iv_diff: float | None = None
    price_diff: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "strikes": self.strikes,
            "expiries": self.expiries,
            "iv_diff": self.iv_diff,
            "price_diff": self.price_diff,
        }


@dataclass
class ArbitrageOpportunity:
    """A detected violation with a human-readable description."""

    type: ArbitrageType
    severity: Severity
    description: str
    details: ArbitrageDetails
    legs: list[TradeLeg]

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "severity": self.severity.value,
            "description": self.description,
            "details": self.details.to_dict(),
            "legs": [leg.to_dict() for leg in self.legs],
        }


@dataclass
class ArbitrageResult:
    """All opportunities, most severe first, with per-type counts."""

    opportunities: list[ArbitrageOpportunity]

    def count(self, arb_type: ArbitrageType) -> int:
        return sum(1 for o in self.opportunities if o.type == arb_type)

    @property
    def butterfly_count(self) -> int:
        return self.count(ArbitrageType.BUTTERFLY)

    @property
    def calendar_count(self) -> int:
        return self.count(ArbitrageType.CALENDAR)

    @property
    def put_call_count(self) -> int:
        return self.count(ArbitrageType.PUT_CALL)

    @property
    def vertical_count(self) -> int:
        return self.count(ArbitrageType.VERTICAL)

    @property
    def total_count(self) -> int:
        return len(self.opportunities)

    def to_dict(self) -> dict[str, Any]:
        return {
            "opportunities": [o.to_dict() for o in self.opportunities],
            "butterfly_count": self.butterfly_count,
            "calendar_count": self.calendar_count,
            "put_call_count": self.put_call_count,
            "vertical_count": self.vertical_count,
            "total_count": self.total_count,
        }


def _group_by_expiry(points: Sequence[SurfacePoint]) -> dict[str, list[SurfacePoint]]:
    by_expiry: dict[str, list[SurfacePoint]] = {}
    for p in points:
        by_expiry.setdefault(p.expiry, []).append(p)
    return by_expiry


def _butterflies(expiry: str, points: list[SurfacePoint]) -> list[ArbitrageOpportunity]:
    found = []
    by_strike = sorted(points, key=lambda p: p.strike)

    for left, mid, right in zip(by_strike, by_strike[1:], by_strike[2:]):
        if left.call_iv is None or mid.call_iv is None or right.call_iv is None:
            continue

        violation = mid.call_iv - (left.call_iv + right.call_iv) / 2
        if violation <= BUTTERFLY_THRESHOLD:
            continue

        found.append(ArbitrageOpportunity(
            type=ArbitrageType.BUTTERFLY,
            severity=_tier(violation, *BUTTERFLY_TIERS),
            description=(
                f"Butterfly arbitrage: Middle strike IV too high "
                f"({violation * 100:.1f}% premium)"
            ),
            details=ArbitrageDetails(
                strikes=[left.strike, mid.strike, right.strike],
                expiries=[expiry],
                iv_diff=violation,
            ),
            legs=[
                TradeLeg("buy", "call", left.strike, expiry),
                TradeLeg("sell", "call", mid.strike, expiry),
                TradeLeg("sell", "call", mid.strike, expiry),
                TradeLeg("buy", "call", right.strike, expiry),
            ],
        ))

    return found


def _calendars(by_expiry: dict[str, list[SurfacePoint]]) -> list[ArbitrageOpportunity]:
    found = []
    # ISO dates sort chronologically
    expiries = sorted(by_expiry)

    for near_expiry, far_expiry in zip(expiries, expiries[1:]):
        near_by_strike = {p.strike: p for p in by_expiry[near_expiry]}

        for far in by_expiry[far_expiry]:
            near = near_by_strike.get(far.strike)
            if near is None:
                continue

            near_iv = near.call_iv if near.call_iv is not None else near.put_iv
            far_iv = far.call_iv if far.call_iv is not None else far.put_iv
            if near_iv is None or far_iv is None or far_iv >= near_iv * CALENDAR_RATIO:
                continue

            iv_diff = near_iv - far_iv
            found.append(ArbitrageOpportunity(
                type=ArbitrageType.CALENDAR,
                severity=Severity.HIGH if iv_diff > CALENDAR_HIGH else Severity.MEDIUM,
                description=(
                    f"Calendar spread: Near-term IV {iv_diff * 100:.1f}% higher "
                    f"than far-term at ${far.strike}"
                ),
                details=ArbitrageDetails(
                    strikes=[far.strike],
                    expiries=[near_expiry, far_expiry],
                    iv_diff=iv_diff,
                ),
                legs=[
                    TradeLeg("sell", "call", far.strike, near_expiry),
                    TradeLeg("buy", "call", far.strike, far_expiry),
                ],
            ))

    return found


def _put_call(point: SurfacePoint) -> ArbitrageOpportunity | None:
    if point.call_iv is None or point.put_iv is None:
        return None

    iv_diff = abs(point.call_iv - point.put_iv)
    if iv_diff <= PUT_CALL_THRESHOLD:
        return None

    call_cheaper = point.call_iv < point.put_iv
    cheap, rich = ("call", "put") if call_cheaper else ("put", "call")

    return ArbitrageOpportunity(
        type=ArbitrageType.PUT_CALL,
        severity=_tier(iv_diff, *PUT_CALL_TIERS),
        description=(
            f"Put-Call parity: {cheap.capitalize()} is {iv_diff * 100:.1f}% "
            f"cheaper at ${point.strike}"
        ),
        details=ArbitrageDetails(
            strikes=[point.strike],
            expiries=[point.expiry],
            iv_diff=iv_diff,
        ),
        legs=[
            TradeLeg("buy", cheap, point.strike, point.expiry),
            TradeLeg("sell", rich, point.strike, point.expiry),
        ],
    )


def _verticals(expiry: str, points: list[SurfacePoint]) -> list[ArbitrageOpportunity]:
    """Monotonicity in strike: calls non-increasing, puts non-decreasing."""
    found = []
    by_strike = sorted(points, key=lambda p: p.strike)

    for low, high in zip(by_strike, by_strike[1:]):
        checks = (
            # (option type, cheaper leg, richer leg, price rise against monotonicity)
            ("call", low, high, high.call_price - low.call_price,
             low.call_price > 0 and high.call_price > 0),
            ("put", high, low, low.put_price - high.put_price,
             low.put_price > 0 and high.put_price > 0),
        )
        for option_type, cheap, rich, rise, priced in checks:
            if not priced or rise <= VERTICAL_THRESHOLD:
                continue

            cheap_price = cheap.call_price if option_type == "call" else cheap.put_price
            rich_price = rich.call_price if option_type == "call" else rich.put_price

            found.append(ArbitrageOpportunity(
                type=ArbitrageType.VERTICAL,
                severity=_tier(rise, *VERTICAL_TIERS),
                description=(
                    f"Vertical spread: {option_type.capitalize()} at ${rich.strike} "
                    f"priced ${rise:.2f} above ${cheap.strike}"
                ),
                details=ArbitrageDetails(
                    strikes=[low.strike, high.strike],
                    expiries=[expiry],
                    price_diff=rise,
                ),
                legs=[
                    TradeLeg("buy", option_type, cheap.strike, expiry, cheap_price),
                    TradeLeg("sell", option_type, rich.strike, expiry, rich_price),
                ],
            ))

    return found


def scan_for_arbitrage(
    points: Sequence[SurfacePoint],
    spot_price: float | None = None,
) -> ArbitrageResult:
    """Scan surface points for static arbitrage.

    Args:
        points: Surface points from one chain snapshot
        spot_price: Underlying price (informational)

    Returns:
        ArbitrageResult with opportunities ordered high, medium, low;
        detection order is preserved within a severity
    """
    by_expiry = _group_by_expiry(points)
    opportunities: list[ArbitrageOpportunity] = []

    for expiry, expiry_points in by_expiry.items():
        opportunities.extend(_butterflies(expiry, expiry_points))

    opportunities.extend(_calendars(by_expiry))

    for point in points:
        opp = _put_call(point)
        if opp is not None:
            opportunities.append(opp)

    for expiry, expiry_points in by_expiry.items():
        opportunities.extend(_verticals(expiry, expiry_points))

    opportunities.sort(key=lambda o: SEVERITY_ORDER[o.severity])
    result = ArbitrageResult(opportunities=opportunities)

    logger.info(
        f"Arbitrage scan over {len(points)} points"
        f"{f' (spot {spot_price})' if spot_price else ''}: "
        f"{result.butterfly_count} butterfly, {result.calendar_count} calendar, "
        f"{result.put_call_count} put-call, {result.vertical_count} vertical"
    )

    return result
