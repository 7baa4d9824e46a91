"""Unit tests for the spread and slippage models."""

import pytest

from fxreplay.services.backtest.friction import (
    apply_friction,
    classify_session,
    compute_slippage,
    compute_spread,
    fill_price,
    quote_friction,
    volatility_multiplier,
)
from fxreplay.services.backtest.types import Session, Side


class TestClassifySession:
    @pytest.mark.parametrize(
        "hour,session",
        [
            (0, Session.ROLLOVER),
            (1, Session.ASIAN),
            (6, Session.ASIAN),
            (7, Session.LONDON_OPEN),
            (11, Session.LONDON_OPEN),
            (12, Session.NY_OVERLAP),
            (16, Session.NY_OVERLAP),
            (17, Session.LATE_NY),
            (20, Session.LATE_NY),
            (21, Session.ROLLOVER),
            (23, Session.ROLLOVER),
        ],
    )
    def test_boundaries(self, hour, session):
        assert classify_session(hour) == session


class TestVolatilityMultiplier:
    @pytest.mark.parametrize(
        "atr,avg_atr,expected",
        [(1.0, 0.0, 1.0), (0.5, 1.0, 0.90), (1.0, 1.0, 1.00), (1.5, 1.0, 1.15), (2.0, 1.0, 1.35)],
    )
    def test_bands(self, atr, avg_atr, expected):
        assert volatility_multiplier(atr, avg_atr) == expected


class TestSpread:
    def test_known_value(self):
        # seed 0 -> sin(0) = 0 -> jitter floor 0.92
        quote = compute_spread("EUR_USD", 9, atr=0.001, avg_atr=0.001, seed=0)
        assert quote.spread_pips == pytest.approx(0.6 * 0.85 * 1.0 * 0.92)
        assert quote.spread_price == pytest.approx(quote.spread_pips * 0.0001)

    def test_deterministic(self):
        a = compute_spread("GBP_JPY", 3, 0.12, 0.10, seed=4242)
        b = compute_spread("GBP_JPY", 3, 0.12, 0.10, seed=4242)
        assert a == b

    def test_rollover_wider_than_london(self):
        london = compute_spread("EUR_USD", 8, 0.001, 0.001, seed=17)
        rollover = compute_spread("EUR_USD", 22, 0.001, 0.001, seed=17)
        assert rollover.spread_pips > london.spread_pips
        assert rollover.spread_pips / london.spread_pips == pytest.approx(1.80 / 0.85)

    def test_jpy_pip_scaling(self):
        quote = compute_spread("USD_JPY", 13, 0.1, 0.1, seed=5)
        assert quote.spread_price == pytest.approx(quote.spread_pips * 0.01)


class TestSlippage:
    @pytest.mark.parametrize("hour", range(24))
    def test_never_negative(self, hour):
        for seed in (0, 1, 99, 12345):
            quote = compute_slippage("EUR_USD", hour, atr=0.0005, avg_atr=0.001, seed=seed)
            assert quote.slippage_pips >= 0.0

    def test_volatility_term_only_above_average(self):
        calm = compute_slippage("EUR_USD", 13, atr=0.0005, avg_atr=0.001, seed=3)
        hot = compute_slippage("EUR_USD", 13, atr=0.002, avg_atr=0.001, seed=3)
        assert calm.volatility_adjustment == 0.0
        assert hot.volatility_adjustment == pytest.approx(0.1)
        assert hot.slippage_pips > calm.slippage_pips

    def test_quote_uses_offset_seed_for_slippage(self):
        quote = quote_friction("EUR_USD", 14, 0.001, 0.001, seed=10)
        assert quote.slippage == compute_slippage("EUR_USD", 14, 0.001, 0.001, seed=11)
        assert quote.spread == compute_spread("EUR_USD", 14, 0.001, 0.001, seed=10)
        assert quote.session == Session.NY_OVERLAP


class TestFillPrice:
    def test_friction_always_hurts(self):
        mid = 1.1000
        for hour in (0, 3, 9, 14, 19):
            quote = quote_friction("EUR_USD", hour, 0.001, 0.0008, seed=hour)
            assert apply_friction(Side.LONG, mid, quote) >= mid
            assert apply_friction(Side.SHORT, mid, quote) <= mid

    def test_half_spread_plus_slippage(self):
        assert fill_price(Side.LONG, 1.0, 0.0002, 0.00005) == pytest.approx(1.00015)
        assert fill_price(Side.SHORT, 1.0, 0.0002, 0.00005) == pytest.approx(0.99985)
