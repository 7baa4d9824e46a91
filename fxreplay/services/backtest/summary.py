"""Summary statistics over a closed trade list.

Pure reduction, recomputed wholesale from the final trade list. Degenerate
inputs resolve to explicit sentinels so no NaN/inf reaches a summary.
"""

from __future__ import annotations

import math
from dataclasses import asdict
from typing import Any, Callable, Sequence

import numpy as np

from .types import BacktestSummary, BucketStats, Outcome, TradeRecord

# Sharpe annualization: ~4 trades per day, 252 trading days
ANNUALIZATION_FACTOR = math.sqrt(252 * 4)

# Reported when there is profit and no meaningful loss
PROFIT_FACTOR_CAP = 999.0

_EPSILON = 1e-9


def profit_factor(pnls: Sequence[float]) -> float:
    gross_profit = sum(p for p in pnls if p > 0)
    gross_loss = abs(sum(p for p in pnls if p <= 0))
    if gross_loss > _EPSILON:
        return gross_profit / gross_loss
    return PROFIT_FACTOR_CAP if gross_profit > _EPSILON else 0.0


def max_drawdown(pnls: Sequence[float]) -> float:
    """Largest peak-to-trough drop of the cumulative curve, starting from 0."""
    if len(pnls) == 0:
        return 0.0
    curve = np.concatenate(([0.0], np.cumsum(pnls)))
    peaks = np.maximum.accumulate(curve)
    return float(np.max(peaks - curve))


def sharpe_ratio(pnls: Sequence[float], annualization: float = ANNUALIZATION_FACTOR) -> float:
    """Mean over sample standard deviation, annualized. 0.0 when undefined."""
    if len(pnls) < 2:
        return 0.0
    arr = np.asarray(pnls, dtype=float)
    std = float(np.std(arr, ddof=1))
    if std < _EPSILON:
        return 0.0
    return float(np.mean(arr)) / std * annualization


def longest_streaks(outcomes: Sequence[Outcome]) -> tuple[int, int]:
    """(longest win streak, longest loss streak)."""
    best_win = best_loss = win = loss = 0
    for outcome in outcomes:
        if outcome == Outcome.WIN:
            win += 1
            loss = 0
            best_win = max(best_win, win)
        else:
            loss += 1
            win = 0
            best_loss = max(best_loss, loss)
    return best_win, best_loss


def breakdown(
    trades: Sequence[TradeRecord], key: Callable[[TradeRecord], str]
) -> dict[str, BucketStats]:
    buckets: dict[str, BucketStats] = {}
    for t in trades:
        b = buckets.setdefault(key(t), BucketStats())
        b.trades += 1
        if t.outcome == Outcome.WIN:
            b.wins += 1
        b.net_pips += t.pnl_pips
    for b in buckets.values():
        b.expectancy = b.net_pips / b.trades
        b.win_rate = b.wins / b.trades
    return buckets


def compute_summary(trades: Sequence[TradeRecord]) -> BacktestSummary:
    if not trades:
        return BacktestSummary(
            total_trades=0,
            win_rate=0.0,
            expectancy_pips=0.0,
            net_pips=0.0,
            profit_factor=0.0,
            max_drawdown_pips=0.0,
            sharpe=0.0,
            longest_win_streak=0,
            longest_loss_streak=0,
            avg_duration_minutes=0.0,
            total_r=0.0,
        )

    pnls = [t.pnl_pips for t in trades]
    n = len(trades)
    net = float(sum(pnls))
    wins = sum(1 for t in trades if t.outcome == Outcome.WIN)
    win_streak, loss_streak = longest_streaks([t.outcome for t in trades])

    return BacktestSummary(
        total_trades=n,
        win_rate=wins / n,
        expectancy_pips=net / n,
        net_pips=net,
        profit_factor=profit_factor(pnls),
        max_drawdown_pips=max_drawdown(pnls),
        sharpe=sharpe_ratio(pnls),
        longest_win_streak=win_streak,
        longest_loss_streak=loss_streak,
        avg_duration_minutes=sum(t.duration_minutes for t in trades) / n,
        total_r=float(sum(t.r_multiple for t in trades)),
        by_instrument=breakdown(trades, lambda t: t.instrument),
        by_session=breakdown(trades, lambda t: t.session.value),
        by_regime=breakdown(trades, lambda t: t.regime.value),
    )


def summary_to_dict(summary: BacktestSummary) -> dict[str, Any]:
    return asdict(summary)
