"""Unit tests for summary statistics."""

import math
import statistics

import pytest

from fxreplay.services.backtest.summary import (
    ANNUALIZATION_FACTOR,
    PROFIT_FACTOR_CAP,
    compute_summary,
    longest_streaks,
    max_drawdown,
    profit_factor,
    sharpe_ratio,
    summary_to_dict,
)
from fxreplay.services.backtest.types import Outcome, Regime, Session


class TestComputeSummary:
    def test_reference_sequence(self, trade_factory):
        pnls = [10, -5, 3, -2, 8]
        trades = [trade_factory(p, index=i) for i, p in enumerate(pnls)]

        s = compute_summary(trades)

        assert s.total_trades == 5
        assert s.win_rate == pytest.approx(0.6)
        assert s.net_pips == pytest.approx(14.0)
        assert s.expectancy_pips == pytest.approx(2.8)
        assert s.profit_factor == pytest.approx(3.0)
        assert s.max_drawdown_pips == pytest.approx(5.0)
        assert s.longest_win_streak == 1
        assert s.longest_loss_streak == 1
        assert s.avg_duration_minutes == pytest.approx(30.0)
        assert s.total_r == pytest.approx(14.0 / 7.0)
        assert s.sharpe == pytest.approx(2.8 / statistics.stdev(pnls) * math.sqrt(1008))

    def test_empty(self):
        s = compute_summary([])
        assert s.total_trades == 0
        assert s.profit_factor == 0.0
        assert s.sharpe == 0.0
        assert s.by_instrument == {}

    def test_no_nan_or_inf_for_degenerate_inputs(self, trade_factory):
        for pnls in ([5.0], [3.0, 3.0, 3.0], [0.0, 0.0], [-1.0, -1.0]):
            s = compute_summary([trade_factory(p, index=i) for i, p in enumerate(pnls)])
            for value in (s.win_rate, s.expectancy_pips, s.profit_factor, s.sharpe):
                assert math.isfinite(value)

    def test_breakdowns(self, trade_factory):
        trades = [
            trade_factory(10, instrument="EUR_USD", session=Session.LONDON_OPEN),
            trade_factory(-4, instrument="EUR_USD", session=Session.ASIAN, regime=Regime.IGNITION),
            trade_factory(6, instrument="USD_JPY", session=Session.LONDON_OPEN),
        ]
        s = compute_summary(trades)

        eur = s.by_instrument["EUR_USD"]
        assert (eur.trades, eur.wins) == (2, 1)
        assert eur.net_pips == pytest.approx(6.0)
        assert eur.expectancy == pytest.approx(3.0)
        assert eur.win_rate == pytest.approx(0.5)
        assert s.by_session["london-open"].trades == 2
        assert s.by_regime["ignition"].net_pips == pytest.approx(-4.0)

    def test_to_dict(self, trade_factory):
        d = summary_to_dict(compute_summary([trade_factory(4.0)]))
        assert d["total_trades"] == 1
        assert d["by_instrument"]["EUR_USD"]["wins"] == 1


class TestStatistics:
    def test_profit_factor_sentinels(self):
        assert profit_factor([5.0, 2.0]) == PROFIT_FACTOR_CAP
        assert profit_factor([0.0, 0.0]) == 0.0
        assert profit_factor([]) == 0.0
        assert profit_factor([-1.0]) == 0.0

    def test_drawdown_starts_from_zero(self):
        assert max_drawdown([-3.0, -4.0]) == pytest.approx(7.0)
        assert max_drawdown([1.0, 2.0, 3.0]) == 0.0
        assert max_drawdown([]) == 0.0

    def test_sharpe_sentinels(self):
        assert sharpe_ratio([4.0]) == 0.0
        assert sharpe_ratio([2.0, 2.0, 2.0]) == 0.0

    def test_sharpe_uses_sample_deviation(self):
        pnls = [1.0, 3.0]
        expected = 2.0 / statistics.stdev(pnls) * ANNUALIZATION_FACTOR
        assert sharpe_ratio(pnls) == pytest.approx(expected)

    def test_streaks(self):
        W, L = Outcome.WIN, Outcome.LOSS
        seq = [W, W, L, W, L, L, L]
        assert longest_streaks(seq) == (2, 3)
        assert longest_streaks([]) == (0, 0)
