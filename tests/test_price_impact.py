"""
Tests for the constant-product price impact estimate.

Tests cover:
- Reference computation
- Direction of the price move for buys and sells
- None for unusable pools, balances and percentages
"""

import math

import pytest

from comp_trader.strategies.price_impact import estimate_impact


class TestReferenceValues:
    """Known numbers worked out by hand."""

    def test_buy_reference(self):
        """10% of a 1000 balance into a 10000/10000 pool."""
        price = estimate_impact(10000, 10000, 1000, 10, True)

        new_stable = 10000 + 100 * 0.997
        new_token = 10000 * 10000 / new_stable
        assert price == pytest.approx(new_stable / new_token)
        assert price == pytest.approx(1.02004, abs=1e-5)

    def test_sell_reference(self):
        price = estimate_impact(10000, 10000, 1000, 10, False)

        new_token = 10000 + 100 * 0.997
        new_stable = 10000 * 10000 / new_token
        assert price == pytest.approx(new_stable / new_token)

    def test_custom_fee_multiplier(self):
        no_fee = estimate_impact(10000, 10000, 1000, 10, True, fee_multiplier=1.0)
        assert no_fee == pytest.approx(10100 ** 2 / 10000 ** 2)


class TestDirection:
    """Buys push stable/token up, sells push it down."""

    @pytest.mark.parametrize("base,quote,balance,pct", [
        (10000, 10000, 1000, 10),
        (5000, 250000, 42.5, 0.01),
        (1e24, 3e22, 1e20, 100),
        (1, 1, 1, 50),
    ])
    def test_buy_raises_price_sell_lowers_it(self, base, quote, balance, pct):
        spot = base / quote
        buy = estimate_impact(base, quote, balance, pct, True)
        sell = estimate_impact(base, quote, balance, pct, False)

        assert buy is not None and math.isfinite(buy) and buy > 0
        assert sell is not None and math.isfinite(sell) and sell > 0
        assert buy > spot
        assert sell < spot

    def test_bigger_trade_moves_price_more(self):
        small = estimate_impact(10000, 10000, 1000, 1, True)
        large = estimate_impact(10000, 10000, 1000, 10, True)
        assert large > small


class TestNotComputable:
    """Never raises; None whenever the estimate makes no sense."""

    @pytest.mark.parametrize("base,quote", [(0, 10000), (10000, 0), (-1, 10000), (10000, -5)])
    def test_non_positive_reserves(self, base, quote):
        assert estimate_impact(base, quote, 1000, 10, True) is None
        assert estimate_impact(base, quote, 1000, 10, False) is None

    @pytest.mark.parametrize("balance", [0, -100])
    def test_non_positive_balance(self, balance):
        assert estimate_impact(10000, 10000, balance, 10, True) is None

    @pytest.mark.parametrize("pct", [0, -1, 100.5, 150])
    def test_percentage_outside_range(self, pct):
        assert estimate_impact(10000, 10000, 1000, pct, True) is None

    @pytest.mark.parametrize("bad", [float("nan"), float("inf")])
    def test_non_finite_inputs(self, bad):
        assert estimate_impact(bad, 10000, 1000, 10, True) is None
        assert estimate_impact(10000, 10000, bad, 10, False) is None

    def test_non_numeric_input(self):
        assert estimate_impact("10000", 10000, 1000, 10, True) is None
