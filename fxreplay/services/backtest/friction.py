"""Spread and slippage models for backtest execution realism.

Deterministic and session-aware. Jitter is a closed-form function of an
integer seed (sin/cos), never a stateful generator, so a quote can be
reproduced from (instrument, hour, atr, avg_atr, seed) alone.
"""

from __future__ import annotations

import math

from fxreplay.utils.instruments import pip_size, spread_baseline

from .thresholds import FrictionThresholds
from .types import FrictionQuote, Session, Side, SlippageQuote, SpreadQuote

_DEFAULT = FrictionThresholds()


def classify_session(utc_hour: int) -> Session:
    """Map a UTC hour to its liquidity session."""
    if utc_hour >= 21 or utc_hour < 1:
        return Session.ROLLOVER
    if utc_hour < 7:
        return Session.ASIAN
    if utc_hour < 12:
        return Session.LONDON_OPEN
    if utc_hour < 17:
        return Session.NY_OVERLAP
    return Session.LATE_NY


def atr_ratio(atr: float, avg_atr: float) -> float:
    """Current ATR relative to its longer average; 1.0 when undefined."""
    if avg_atr <= 0:
        return 1.0
    return atr / avg_atr


def volatility_multiplier(
    atr: float, avg_atr: float, thresholds: FrictionThresholds = _DEFAULT
) -> float:
    """Four-step spread multiplier: low / normal / elevated / high volatility."""
    if avg_atr <= 0:
        return 1.0
    ratio = atr / avg_atr
    for upper, multiplier in thresholds.volatility_bands:
        if ratio < upper:
            return multiplier
    return thresholds.volatility_ceiling_multiplier


def compute_spread(
    instrument: str,
    utc_hour: int,
    atr: float,
    avg_atr: float,
    seed: int = 0,
    thresholds: FrictionThresholds = _DEFAULT,
) -> SpreadQuote:
    session = classify_session(utc_hour)
    session_mult = thresholds.session_spread_multipliers[session]
    vol_mult = volatility_multiplier(atr, avg_atr, thresholds)
    jitter = thresholds.spread_jitter_floor + (
        abs(math.sin(seed * 12345.6789)) * thresholds.spread_jitter_span
    )

    spread_pips = spread_baseline(instrument) * session_mult * vol_mult * jitter
    return SpreadQuote(
        spread_pips=spread_pips,
        spread_price=spread_pips * pip_size(instrument),
        session_multiplier=session_mult,
        volatility_multiplier=vol_mult,
    )


def compute_slippage(
    instrument: str,
    utc_hour: int,
    atr: float,
    avg_atr: float,
    seed: int = 0,
    thresholds: FrictionThresholds = _DEFAULT,
) -> SlippageQuote:
    """Slippage in pips: base + volatility term + session adjustment, floored at 0.

    Rollover carries the largest session penalty; london-open the only discount.
    """
    session = classify_session(utc_hour)

    base_pips = spread_baseline(instrument) * thresholds.slippage_base_fraction
    vol_adj = max(0.0, (atr_ratio(atr, avg_atr) - 1) * thresholds.slippage_volatility_slope)
    session_adj = thresholds.session_slippage_adjustments[session]
    jitter = thresholds.slippage_jitter_floor + (
        abs(math.cos(seed * 54321.9876)) * thresholds.slippage_jitter_span
    )

    slippage_pips = max(0.0, (base_pips + vol_adj + session_adj) * jitter)
    return SlippageQuote(
        slippage_pips=slippage_pips,
        slippage_price=slippage_pips * pip_size(instrument),
        base_pips=base_pips,
        volatility_adjustment=vol_adj,
        session_adjustment=session_adj,
    )


def quote_friction(
    instrument: str,
    utc_hour: int,
    atr: float,
    avg_atr: float,
    seed: int,
    thresholds: FrictionThresholds = _DEFAULT,
) -> FrictionQuote:
    """Spread and slippage for one fill. Slippage jitter uses seed + 1."""
    return FrictionQuote(
        session=classify_session(utc_hour),
        spread=compute_spread(instrument, utc_hour, atr, avg_atr, seed, thresholds),
        slippage=compute_slippage(instrument, utc_hour, atr, avg_atr, seed + 1, thresholds),
    )


def fill_price(side: Side, mid_price: float, spread_price: float, slippage_price: float) -> float:
    """Buys fill at ask + slippage, sells at bid - slippage. Friction never helps."""
    half_spread = spread_price / 2
    if side == Side.LONG:
        return mid_price + half_spread + slippage_price
    return mid_price - half_spread - slippage_price


def apply_friction(side: Side, mid_price: float, quote: FrictionQuote) -> float:
    return fill_price(
        side, mid_price, quote.spread.spread_price, quote.slippage.slippage_price
    )
