"""Backtest runner - validates config, walks each instrument, merges, summarizes."""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Mapping, Optional, Union

import structlog
from pydantic import ValidationError

from .candles import build_bundle
from .summary import compute_summary, summary_to_dict
from .thresholds import DEFAULT_THRESHOLDS, EngineThresholds
from .types import (
    BacktestConfig,
    BacktestConfigError,
    BacktestRunResult,
    CandleBundle,
)
from .walker import InstrumentWalk, walk_instrument

logger = structlog.get_logger(__name__)


def coerce_config(config: Union[BacktestConfig, Mapping[str, Any]]) -> BacktestConfig:
    """Accept a validated config or raw mapping; reject bad input up front."""
    if isinstance(config, BacktestConfig):
        return config
    try:
        return BacktestConfig.model_validate(config)
    except ValidationError as e:
        errors = e.errors(include_url=False, include_context=False, include_input=False)
        raise BacktestConfigError(
            f"Invalid backtest configuration ({e.error_count()} errors)",
            details={"errors": errors},
        )


def run_backtest(
    config: Union[BacktestConfig, Mapping[str, Any]],
    *,
    bundles: Optional[Mapping[str, CandleBundle]] = None,
    thresholds: EngineThresholds = DEFAULT_THRESHOLDS,
    max_workers: int = 1,
    cancel_event: Optional[threading.Event] = None,
) -> BacktestRunResult:
    """
    Run a backtest across all configured instruments.

    Instruments are independent: each walk reads only its own bundle and
    its own seeded streams, so sequential and threaded runs return the same
    trades. Cancellation is honoured between instrument walks only.

    Args:
        config: Run configuration (BacktestConfig or a raw mapping)
        bundles: Optional pre-built candle bundles keyed by instrument;
            instruments without one get a synthetic bundle
        thresholds: Engine threshold table
        max_workers: Threads for the per-instrument fan-out (1 = sequential)
        cancel_event: When set, instruments not yet started are skipped

    Returns:
        BacktestRunResult with trades sorted by entry time and the summary

    Raises:
        BacktestConfigError: If the configuration is invalid
    """
    cfg = coerce_config(config)
    started = time.perf_counter()

    logger.info(
        "Starting backtest",
        instrument_count=len(cfg.instruments),
        variant_id=cfg.variant_id,
        agent_id=cfg.agent_label,
        start=cfg.start.isoformat(),
        end=cfg.end.isoformat(),
        workers=max_workers,
    )

    def _walk_one(instrument: str) -> Optional[InstrumentWalk]:
        if cancel_event is not None and cancel_event.is_set():
            return None
        bundle = bundles.get(instrument) if bundles else None
        if bundle is None:
            bundle = build_bundle(instrument, cfg.start, cfg.end, cfg.data_seed)
        return walk_instrument(bundle, cfg, thresholds)

    if max_workers <= 1 or len(cfg.instruments) == 1:
        walks = [_walk_one(instrument) for instrument in cfg.instruments]
    else:
        with ThreadPoolExecutor(max_workers=min(max_workers, len(cfg.instruments))) as pool:
            walks = list(pool.map(_walk_one, cfg.instruments))

    trades = []
    warnings: list[str] = []
    skipped: list[str] = []
    not_started: list[str] = []
    for instrument, walk in zip(cfg.instruments, walks):
        if walk is None:
            not_started.append(instrument)
            continue
        trades.extend(walk.trades)
        warnings.extend(walk.warnings)
        if walk.skipped:
            skipped.append(instrument)

    if not_started:
        logger.warning("Backtest cancelled", instruments_not_run=not_started)
        warnings.append(f"Cancelled before walking: {', '.join(not_started)}")

    trades.sort(key=lambda t: (t.entry_ts, t.instrument))
    summary = compute_summary(trades)

    logger.info(
        "Backtest complete",
        variant_id=cfg.variant_id,
        trade_count=summary.total_trades,
        win_rate=round(summary.win_rate, 4),
        net_pips=round(summary.net_pips, 2),
        skipped=len(skipped),
        elapsed_ms=round((time.perf_counter() - started) * 1000, 1),
    )

    return BacktestRunResult(
        trades=trades,
        summary=summary,
        warnings=warnings,
        skipped_instruments=skipped,
        cancelled=bool(not_started),
    )


def result_to_dict(result: BacktestRunResult) -> dict[str, Any]:
    """JSON-ready view of a run."""
    return {
        "trades": [t.to_dict() for t in result.trades],
        "summary": summary_to_dict(result.summary),
        "warnings": list(result.warnings),
        "skipped_instruments": list(result.skipped_instruments),
        "cancelled": result.cancelled,
    }
