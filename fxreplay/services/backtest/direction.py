"""Directional bias from higher-timeframe candle geometry."""

from __future__ import annotations

from typing import Optional

import numpy as np

from .thresholds import DirectionThresholds
from .types import Bias, Candle, DirectionCall, Timeframe

_DEFAULT = DirectionThresholds()


def body_efficiency(candle: Candle) -> float:
    """|close - open| / (high - low); 0 for a zero-range bar."""
    rng = candle.high - candle.low
    if rng <= 0:
        return 0.0
    return abs(candle.close - candle.open) / rng


def classify_direction(
    confirmation: Candle,
    decision_1h: Optional[Candle],
    decision_4h: Optional[Candle],
    rng: np.random.Generator,
    thresholds: DirectionThresholds = _DEFAULT,
) -> DirectionCall:
    """Bias from the last closed 1h bar (4h if no 1h bar yet), confirmed on 15m.

    Low body efficiency means indecision: NEUTRAL with a fixed low
    confidence, and no jitter is drawn.
    """
    t = thresholds
    if decision_1h is not None:
        source, tf_used = decision_1h, Timeframe.H1
    elif decision_4h is not None:
        source, tf_used = decision_4h, Timeframe.H4
    else:
        return DirectionCall(Bias.NEUTRAL, t.neutral_confidence, None)

    efficiency = body_efficiency(source)
    if efficiency < t.efficiency_cutoff:
        return DirectionCall(Bias.NEUTRAL, t.neutral_confidence, tf_used)

    bias = Bias.BULLISH if source.close > source.open else Bias.BEARISH
    confirm = Bias.BULLISH if confirmation.close > confirmation.open else Bias.BEARISH
    aligned = confirm == bias

    confidence = min(
        t.confidence_cap,
        t.confidence_base
        + efficiency * t.efficiency_weight
        + (t.alignment_bonus if aligned else 0.0)
        + rng.random() * t.jitter_span,
    )
    return DirectionCall(bias, confidence, tf_used)
