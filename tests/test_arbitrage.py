"""Tests for the static arbitrage scanner."""

import math

import pytest

from quantcore.arbitrage import ArbitrageType, Severity, scan_for_arbitrage
from quantcore.surface import SurfacePoint

NEAR = "2024-02-16"
FAR = "2024-03-15"


def make_point(strike, expiry=NEAR, call_iv=None, put_iv=None, call_price=0.0, put_price=0.0, days=30):
    return SurfacePoint(
        strike=strike,
        expiry=expiry,
        days_to_expiry=days,
        moneyness=math.log(strike / 100),
        call_iv=call_iv,
        put_iv=put_iv,
        call_price=call_price,
        put_price=put_price,
    )


class TestButterfly:
    """Tests for convexity violations across strikes."""

    def test_clean_smile_has_none(self):
        points = [make_point(k, call_iv=iv) for k, iv in [(95, 0.22), (100, 0.20), (105, 0.21)]]
        assert scan_for_arbitrage(points).butterfly_count == 0

    def test_middle_strike_spike(self):
        points = [make_point(k, call_iv=iv) for k, iv in [(95, 0.20), (100, 0.26), (105, 0.20)]]
        result = scan_for_arbitrage(points)

        assert result.butterfly_count == 1
        opp = result.opportunities[0]
        assert opp.type == ArbitrageType.BUTTERFLY
        assert opp.severity == Severity.HIGH
        assert opp.details.strikes == [95, 100, 105]
        assert opp.details.iv_diff == pytest.approx(0.06)
        assert [leg.action for leg in opp.legs] == ["buy", "sell", "sell", "buy"]

    def test_medium_and_low_tiers(self):
        medium = [make_point(k, call_iv=iv) for k, iv in [(95, 0.20), (100, 0.24), (105, 0.20)]]
        low = [make_point(k, call_iv=iv) for k, iv in [(95, 0.20), (100, 0.225), (105, 0.20)]]

        assert scan_for_arbitrage(medium).opportunities[0].severity == Severity.MEDIUM
        assert scan_for_arbitrage(low).opportunities[0].severity == Severity.LOW

    def test_missing_call_iv_skipped(self):
        points = [make_point(95, call_iv=0.20), make_point(100, put_iv=0.30), make_point(105, call_iv=0.20)]
        assert scan_for_arbitrage(points).butterfly_count == 0


class TestCalendar:
    """Tests for term-structure violations at a strike."""

    def test_far_iv_collapse(self):
        points = [
            make_point(100, NEAR, call_iv=0.30),
            make_point(100, FAR, call_iv=0.20, days=60),
        ]
        result = scan_for_arbitrage(points)

        assert result.calendar_count == 1
        opp = result.opportunities[0]
        assert opp.severity == Severity.HIGH
        assert opp.details.expiries == [NEAR, FAR]
        assert opp.legs[0].action == "sell" and opp.legs[0].expiry == NEAR
        assert opp.legs[1].action == "buy" and opp.legs[1].expiry == FAR

    def test_small_inversion_is_medium(self):
        points = [
            make_point(100, NEAR, call_iv=0.20),
            make_point(100, FAR, call_iv=0.16, days=60),
        ]
        result = scan_for_arbitrage(points)
        assert result.opportunities[0].severity == Severity.MEDIUM

    def test_within_ratio_not_flagged(self):
        points = [
            make_point(100, NEAR, call_iv=0.20),
            make_point(100, FAR, call_iv=0.18, days=60),
        ]
        assert scan_for_arbitrage(points).calendar_count == 0

    def test_falls_back_to_put_iv(self):
        points = [
            make_point(100, NEAR, put_iv=0.30),
            make_point(100, FAR, put_iv=0.20, days=60),
        ]
        assert scan_for_arbitrage(points).calendar_count == 1


class TestPutCall:
    """Tests for call/put IV divergence."""

    def test_divergence_flagged(self):
        result = scan_for_arbitrage([make_point(100, call_iv=0.20, put_iv=0.30)])

        assert result.put_call_count == 1
        opp = result.opportunities[0]
        assert opp.severity == Severity.HIGH
        assert opp.legs[0].action == "buy" and opp.legs[0].option_type == "call"
        assert opp.legs[1].action == "sell" and opp.legs[1].option_type == "put"

    def test_small_divergence_ignored(self):
        assert scan_for_arbitrage([make_point(100, call_iv=0.20, put_iv=0.22)]).total_count == 0


class TestVertical:
    """Tests for price monotonicity in strike."""

    def test_call_price_rising_with_strike(self):
        points = [
            make_point(95, call_iv=0.2, call_price=5.0),
            make_point(100, call_iv=0.2, call_price=5.6),
        ]
        result = scan_for_arbitrage(points)

        assert result.vertical_count == 1
        opp = result.opportunities[0]
        assert opp.severity == Severity.HIGH
        assert opp.details.price_diff == pytest.approx(0.6)
        assert opp.legs[0].action == "buy" and opp.legs[0].strike == 95
        assert opp.legs[1].action == "sell" and opp.legs[1].strike == 100

    def test_put_price_falling_with_strike(self):
        points = [
            make_point(95, put_iv=0.2, put_price=3.2),
            make_point(100, put_iv=0.2, put_price=3.0),
        ]
        result = scan_for_arbitrage(points)

        assert result.vertical_count == 1
        assert result.opportunities[0].severity == Severity.MEDIUM

    def test_monotone_prices_clean(self):
        points = [
            make_point(95, call_iv=0.2, put_iv=0.2, call_price=6.0, put_price=1.0),
            make_point(100, call_iv=0.2, put_iv=0.2, call_price=3.0, put_price=3.0),
        ]
        assert scan_for_arbitrage(points).vertical_count == 0

    def test_unpriced_legs_skipped(self):
        points = [make_point(95, call_iv=0.2, call_price=0.0), make_point(100, call_iv=0.2, call_price=1.0)]
        assert scan_for_arbitrage(points).vertical_count == 0


class TestScan:
    def test_empty_input(self):
        result = scan_for_arbitrage([])
        assert result.total_count == 0
        assert result.to_dict()["opportunities"] == []

    def test_sorted_by_severity(self):
        points = [
            # Low butterfly on the near expiry
            make_point(95, call_iv=0.20),
            make_point(100, call_iv=0.225),
            make_point(105, call_iv=0.20),
            # High put-call divergence
            make_point(110, call_iv=0.20, put_iv=0.30),
        ]
        result = scan_for_arbitrage(points)
        severities = [o.severity for o in result.opportunities]

        assert severities == sorted(severities, key=["high", "medium", "low"].index)
        assert severities[0] == Severity.HIGH

    def test_to_dict_counts(self):
        points = [make_point(100, call_iv=0.20, put_iv=0.30)]
        d = scan_for_arbitrage(points, spot_price=100.0).to_dict()

        assert d["total_count"] == 1
        assert d["put_call_count"] == 1
        assert d["opportunities"][0]["type"] == "put_call"
        assert d["opportunities"][0]["severity"] == "high"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
