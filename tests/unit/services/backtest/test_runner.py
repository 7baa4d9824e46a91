"""Unit tests for the backtest runner."""

import json
import threading
from datetime import datetime, timedelta, timezone

import pytest

from fxreplay.services.backtest.candles import build_bundle_from_candles
from fxreplay.services.backtest.runner import coerce_config, result_to_dict, run_backtest
from fxreplay.services.backtest.types import (
    DEFAULT_INSTRUMENTS,
    BacktestConfig,
    BacktestConfigError,
)


def _raw_config(**overrides):
    config = {
        "instruments": ["EUR_USD", "USD_JPY"],
        "start": "2024-03-04T00:00:00Z",
        "end": "2024-03-09T00:00:00Z",
    }
    config.update(overrides)
    return config


class TestConfigValidation:
    def test_defaults(self):
        config = coerce_config(_raw_config(instruments=[" eur_usd "]))
        assert config.instruments == ["EUR_USD"]
        assert config.tp_pips == 15.0
        assert config.sl_pips == 7.0
        assert config.risk_fraction == 0.005
        assert config.variant_id == "baseline"
        assert config.agent_label == "engine"
        assert config.start.tzinfo is not None

    def test_default_instruments(self):
        config = coerce_config({k: v for k, v in _raw_config().items() if k != "instruments"})
        assert tuple(config.instruments) == DEFAULT_INSTRUMENTS

    @pytest.mark.parametrize(
        "overrides",
        [
            {"instruments": []},
            {"instruments": ["EURUSD"]},
            {"instruments": ["EUR_USD", "EUR_USD"]},
            {"risk_fraction": 0},
            {"risk_fraction": -0.01},
            {"tp_pips": 0},
            {"sl_pips": 0},
            {"sl_pips": -7.0},
            {"account_balance": 0},
            {"account_balance": -1000.0},
            {"max_duration_bars": 0},
            {"variant_id": ""},
            {"account_balance": "inf"},
            {"tp_pips": "inf"},
            {"sl_pips": "inf"},
            {"risk_fraction": "nan"},
            {"start": "2024-03-09T00:00:00Z", "end": "2024-03-04T00:00:00Z"},
            {"start": "2024-03-04T00:00:00"},
        ],
    )
    def test_invalid_config_rejected_before_work(self, overrides):
        with pytest.raises(BacktestConfigError) as exc_info:
            run_backtest(_raw_config(**overrides))
        assert exc_info.value.code == "INVALID_CONFIG"
        assert exc_info.value.details["errors"]

    def test_validated_config_passes_through(self, week_config):
        assert coerce_config(week_config) is week_config


class TestRunBacktest:
    def test_same_config_same_result(self):
        first = result_to_dict(run_backtest(_raw_config()))
        second = result_to_dict(run_backtest(_raw_config()))
        assert first == second
        assert first["trades"]

    def test_sequential_equals_parallel(self, week_config):
        sequential = run_backtest(week_config, max_workers=1)
        parallel = run_backtest(week_config, max_workers=4)
        assert sequential.trades == parallel.trades
        assert sequential.summary == parallel.summary

    def test_trades_sorted_by_entry_then_instrument(self, week_config):
        result = run_backtest(week_config)
        keys = [(t.entry_ts, t.instrument) for t in result.trades]
        assert keys == sorted(keys)
        assert {t.instrument for t in result.trades} == {"EUR_USD", "USD_JPY"}

    def test_summary_matches_trades(self, week_config):
        result = run_backtest(week_config)
        s = result.summary
        assert s.total_trades == len(result.trades)
        assert s.net_pips == pytest.approx(sum(t.pnl_pips for t in result.trades))
        assert sum(b.trades for b in s.by_instrument.values()) == s.total_trades

    def test_instrument_results_independent_of_companions(self, week_config):
        both = run_backtest(week_config)
        alone = run_backtest(week_config.model_copy(update={"instruments": ["EUR_USD"]}))
        assert [t for t in both.trades if t.instrument == "EUR_USD"] == alone.trades

    def test_variant_tags_trades(self, week_config):
        result = run_backtest(week_config.model_copy(update={"variant_id": "v2"}))
        assert result.trades
        assert all(t.variant_id == "v2" and "-v2-" in t.trade_id for t in result.trades)
        assert len({t.trade_id for t in result.trades}) == len(result.trades)

    def test_supplied_bundle_with_too_few_bars_is_skipped(self, make_candles, monday):
        config = BacktestConfig(
            instruments=["EUR_USD", "GBP_USD"], start=monday, end=monday + timedelta(days=3)
        )
        bundles = {"EUR_USD": build_bundle_from_candles("EUR_USD", make_candles(10))}

        result = run_backtest(config, bundles=bundles)

        assert result.skipped_instruments == ["EUR_USD"]
        assert any("EUR_USD" in w and "insufficient" in w for w in result.warnings)
        assert all(t.instrument == "GBP_USD" for t in result.trades)
        assert not result.cancelled

    def test_cancel_before_start(self, week_config):
        cancel = threading.Event()
        cancel.set()

        result = run_backtest(week_config, cancel_event=cancel)

        assert result.cancelled
        assert result.trades == []
        assert result.summary.total_trades == 0
        assert any("Cancelled" in w for w in result.warnings)

    def test_result_to_dict_is_json_ready(self, week_config):
        payload = result_to_dict(run_backtest(week_config))
        encoded = json.loads(json.dumps(payload))
        assert encoded["summary"]["total_trades"] == len(encoded["trades"])
        if encoded["trades"]:
            trade = encoded["trades"][0]
            assert trade["direction"] in ("long", "short")
            assert trade["confirmation_tf_used"] == "15m"
            assert trade["exit_reason"].startswith("closed_")


@pytest.mark.slow
class TestFullUniverse:
    def test_four_weeks_all_pairs(self):
        start = datetime(2024, 2, 5, tzinfo=timezone.utc)
        config = BacktestConfig(start=start, end=start + timedelta(weeks=4))

        result = run_backtest(config, max_workers=4)

        assert result.skipped_instruments == []
        assert set(result.summary.by_instrument) <= set(DEFAULT_INSTRUMENTS)
        assert result.summary.total_trades == len(result.trades) > 0
