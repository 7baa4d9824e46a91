"""Candle provider: synthetic generation, timeframe aggregation, ATR."""

from __future__ import annotations

from bisect import bisect_right
from datetime import datetime, timedelta
from typing import Sequence, Union

import numpy as np
import pandas as pd

from fxreplay.utils.instruments import base_price, pip_size, synthetic_atr_pips
from fxreplay.utils.time import ensure_utc, epoch_seconds, from_epoch_seconds

from .rng import candle_stream
from .types import BASE_TIMEFRAME, Candle, CandleBundle, Timeframe


def generate_candles(
    instrument: str,
    timeframe: Union[Timeframe, str],
    start: datetime,
    end: datetime,
    seed: int = 0,
) -> list[Candle]:
    """Generate a plausible OHLCV path for [start, end), skipping weekends.

    Pure function of its arguments. The path is seeded from (instrument,
    timeframe, start, seed) only, so extending `end` keeps the existing
    prefix unchanged. Price carries across weekend gaps without a jump.
    """
    tf = Timeframe(timeframe)
    start = ensure_utc(start)
    end = ensure_utc(end)
    if start >= end:
        return []

    index = pd.date_range(
        start=start, end=end, freq=f"{tf.minutes}min", inclusive="left"
    )
    index = index[index.dayofweek < 5]
    n = len(index)
    if n == 0:
        return []

    rng = candle_stream(instrument, tf.value, start.isoformat(), seed)
    u = rng.random((n, 5))

    atr_price = synthetic_atr_pips(instrument) * pip_size(instrument)
    anchor = base_price(instrument)

    drift = (u[:, 0] - 0.48) * atr_price * 0.3
    volatility = atr_price * (0.3 + u[:, 1] * 0.7)
    closes = anchor + np.cumsum(drift)
    opens = np.concatenate(([anchor], closes[:-1]))
    highs = np.maximum(opens, closes) + u[:, 2] * volatility * 0.5
    lows = np.minimum(opens, closes) - u[:, 3] * volatility * 0.5
    volumes = np.round(500 + u[:, 4] * 2000)

    return [
        Candle(
            ts=ts.to_pydatetime(),
            open=float(o),
            high=float(h),
            low=float(lo),
            close=float(c),
            volume=float(v),
        )
        for ts, o, h, lo, c, v in zip(index, opens, highs, lows, closes, volumes)
    ]


def aggregate_candles(candles: Sequence[Candle], target_minutes: int) -> list[Candle]:
    """Bucket candles into fixed windows aligned to the epoch.

    Buckets are anchored to absolute time (a 1h bucket always starts on the
    hour), not to the first input candle. The aggregated bar is stamped with
    its bucket start. A partial trailing bucket is flushed as-is.
    """
    if target_minutes <= 0:
        raise ValueError(f"target_minutes must be positive, got {target_minutes}")
    if not candles:
        return []

    step = target_minutes * 60
    aggregated: list[Candle] = []

    bucket_key = None
    o = h = lo = c = v = 0.0
    for candle in candles:
        key = epoch_seconds(candle.ts) // step
        if key != bucket_key:
            if bucket_key is not None:
                aggregated.append(
                    Candle(from_epoch_seconds(bucket_key * step), o, h, lo, c, v)
                )
            bucket_key = key
            o, h, lo, c, v = (
                candle.open,
                candle.high,
                candle.low,
                candle.close,
                candle.volume,
            )
        else:
            h = max(h, candle.high)
            lo = min(lo, candle.low)
            c = candle.close
            v += candle.volume

    aggregated.append(Candle(from_epoch_seconds(bucket_key * step), o, h, lo, c, v))
    return aggregated


def true_ranges(candles: Sequence[Candle]) -> list[float]:
    """True range per candle. The first has no previous close: high - low."""
    trs: list[float] = []
    prev_close = None
    for c in candles:
        if prev_close is None:
            trs.append(c.high - c.low)
        else:
            trs.append(
                max(c.high - c.low, abs(c.high - prev_close), abs(c.low - prev_close))
            )
        prev_close = c.close
    return trs


def compute_atr(candles: Sequence[Candle], period: int = 14) -> float:
    """Wilder-smoothed ATR over the given candles.

    Seeds with the mean of the first `period` true ranges, then applies
    Wilder smoothing through the rest. Returns 0.0 when fewer than
    period + 1 candles are available; 0.0 means "insufficient data",
    not "no volatility".
    """
    if period <= 0 or len(candles) < period + 1:
        return 0.0

    trs = true_ranges(candles)
    atr = sum(trs[:period]) / period
    for tr in trs[period:]:
        atr = (atr * (period - 1) + tr) / period
    return atr


class ClosedBarIndex:
    """Causal lookup of completed higher-timeframe bars.

    A bar is visible only once its whole bucket has elapsed, so a decision
    made at the close of a 15m bar never sees a still-forming 1h bar.
    """

    def __init__(self, candles: Sequence[Candle], timeframe: Timeframe):
        self._candles = candles
        span = timedelta(minutes=timeframe.minutes)
        self._close_times = [c.ts + span for c in candles]

    def last_closed(self, as_of: datetime):
        """Most recent bar whose bucket ended at or before `as_of`, or None."""
        idx = bisect_right(self._close_times, as_of) - 1
        if idx < 0:
            return None
        return self._candles[idx]


def build_bundle_from_candles(instrument: str, base: Sequence[Candle]) -> CandleBundle:
    """Derive all tiers from one base series so they stay consistent."""
    base = tuple(base)
    return CandleBundle(
        instrument=instrument,
        candles_15m=base,
        candles_1h=tuple(aggregate_candles(base, Timeframe.H1.minutes)),
        candles_4h=tuple(aggregate_candles(base, Timeframe.H4.minutes)),
        candles_1d=tuple(aggregate_candles(base, Timeframe.D1.minutes)),
    )


def build_bundle(
    instrument: str, start: datetime, end: datetime, seed: int = 0
) -> CandleBundle:
    """Synthetic 15m base for the range, aggregated up to 1h/4h/1d."""
    base = generate_candles(instrument, BASE_TIMEFRAME, start, end, seed)
    return build_bundle_from_candles(instrument, base)
