"""Deterministic FX trade-replay backtest engine."""

from fxreplay.services.backtest.candles import (
    aggregate_candles,
    build_bundle,
    build_bundle_from_candles,
    compute_atr,
    generate_candles,
)
from fxreplay.services.backtest.data import OHLCVParseError, parse_ohlcv_csv
from fxreplay.services.backtest.runner import coerce_config, result_to_dict, run_backtest
from fxreplay.services.backtest.summary import compute_summary
from fxreplay.services.backtest.thresholds import DEFAULT_THRESHOLDS, EngineThresholds
from fxreplay.services.backtest.types import (
    BacktestConfig,
    BacktestConfigError,
    BacktestRunResult,
    BacktestSummary,
    Candle,
    CandleBundle,
    TradeRecord,
)

__all__ = [
    "BacktestConfig",
    "BacktestConfigError",
    "BacktestRunResult",
    "BacktestSummary",
    "Candle",
    "CandleBundle",
    "DEFAULT_THRESHOLDS",
    "EngineThresholds",
    "OHLCVParseError",
    "TradeRecord",
    "aggregate_candles",
    "build_bundle",
    "build_bundle_from_candles",
    "coerce_config",
    "compute_atr",
    "compute_summary",
    "generate_candles",
    "parse_ohlcv_csv",
    "result_to_dict",
    "run_backtest",
]
