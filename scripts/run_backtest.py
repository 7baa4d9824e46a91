#!/usr/bin/env python3
"""
CLI script to run FX trade-replay backtests.

Usage:
    python scripts/run_backtest.py --start 2024-03-04 --end 2024-03-30

CSV format expected for --csv (15m bars, UTC timestamps):
    date,open,high,low,close,volume
    2024-03-04 00:00:00,1.08512,1.08540,1.08490,1.08533,1240
"""

import argparse
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

import structlog

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from fxreplay.config import get_settings
from fxreplay.services.backtest.candles import build_bundle_from_candles
from fxreplay.services.backtest.data import OHLCVParseError, parse_ohlcv_csv
from fxreplay.services.backtest.runner import coerce_config, result_to_dict, run_backtest
from fxreplay.services.backtest.types import (
    DEFAULT_INSTRUMENTS,
    BacktestConfigError,
    BacktestRunResult,
)


def _parse_date(value: str) -> datetime:
    """ISO date or datetime; naive values are taken as UTC."""
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_csv_arg(value: str) -> tuple[str, Path]:
    instrument, sep, path = value.partition("=")
    if not sep or not instrument or not path:
        raise argparse.ArgumentTypeError(f"Expected INSTRUMENT=path, got {value!r}")
    return instrument.strip().upper(), Path(path)


def format_report(result: BacktestRunResult) -> str:
    """Human-readable run report."""
    s = result.summary
    lines = [
        "",
        "=" * 60,
        "FX REPLAY BACKTEST",
        "=" * 60,
        f"Trades:          {s.total_trades}",
        f"Win rate:        {s.win_rate * 100:.1f}%",
        f"Net pips:        {s.net_pips:+.1f}",
        f"Expectancy:      {s.expectancy_pips:+.2f} pips/trade",
        f"Profit factor:   {s.profit_factor:.2f}",
        f"Max drawdown:    {s.max_drawdown_pips:.1f} pips",
        f"Sharpe:          {s.sharpe:.2f}",
        f"Total R:         {s.total_r:+.2f}",
        f"Streaks (W/L):   {s.longest_win_streak}/{s.longest_loss_streak}",
        f"Avg duration:    {s.avg_duration_minutes:.0f} min",
    ]

    for title, buckets in (
        ("By instrument", s.by_instrument),
        ("By session", s.by_session),
        ("By regime", s.by_regime),
    ):
        if not buckets:
            continue
        lines.append("")
        lines.append(f"{title}:")
        for key in sorted(buckets):
            b = buckets[key]
            lines.append(
                f"  {key:<12} trades={b.trades:<4} win={b.win_rate * 100:5.1f}% "
                f"net={b.net_pips:+8.1f} exp={b.expectancy:+6.2f}"
            )

    if result.warnings:
        lines.append("")
        lines.append("Warnings:")
        lines.extend(f"  - {w}" for w in result.warnings)

    lines.append("=" * 60)
    return "\n".join(lines)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=logging.DEBUG if verbose else logging.INFO,
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="%H:%M:%S"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def main():
    settings = get_settings()

    parser = argparse.ArgumentParser(
        description="Run a deterministic FX trade-replay backtest",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Synthetic data, default eight pairs
    python scripts/run_backtest.py --start 2024-03-04 --end 2024-03-30

    # Two pairs, wider target, JSON output
    python scripts/run_backtest.py --instruments EUR_USD USD_JPY --tp-pips 20 \\
        --start 2024-03-04 --end 2024-03-30 --json

    # Replay recorded 15m bars for one pair
    python scripts/run_backtest.py --instruments EUR_USD --csv EUR_USD=data/eurusd_15m.csv \\
        --start 2024-03-04 --end 2024-03-30
        """,
    )
    parser.add_argument(
        "--instruments",
        nargs="+",
        default=list(DEFAULT_INSTRUMENTS),
        help="Instruments to replay (default: eight majors and crosses)",
    )
    parser.add_argument("--start", type=_parse_date, required=True, help="Range start (ISO, UTC)")
    parser.add_argument("--end", type=_parse_date, required=True, help="Range end, exclusive")
    parser.add_argument("--tp-pips", type=float, default=15.0, help="Take profit (default: 15)")
    parser.add_argument("--sl-pips", type=float, default=7.0, help="Stop loss (default: 7)")
    parser.add_argument(
        "--max-duration-bars",
        type=int,
        default=48,
        help="Time exit after this many 15m bars (default: 48)",
    )
    parser.add_argument("--balance", type=float, default=100_000.0, help="Account balance")
    parser.add_argument(
        "--risk-fraction", type=float, default=0.005, help="Risk per trade (default: 0.005)"
    )
    parser.add_argument("--variant", default="baseline", help="Variant id (default: baseline)")
    parser.add_argument("--agent", default=None, help="Agent id (seeds per-agent streams)")
    parser.add_argument(
        "--seed", type=int, default=0, help="Seed for synthetic candle paths (default: 0)"
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=settings.backtest_max_workers,
        help=f"Instrument fan-out threads (default: {settings.backtest_max_workers})",
    )
    parser.add_argument(
        "--csv",
        action="append",
        type=_parse_csv_arg,
        default=[],
        metavar="INSTRUMENT=PATH",
        help="Replay recorded 15m bars for an instrument (repeatable)",
    )
    parser.add_argument("--json", action="store_true", help="Print the full result as JSON")
    parser.add_argument("--output", "-o", help="Write output to file instead of stdout")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    args = parser.parse_args()
    _configure_logging(args.verbose)

    try:
        config = coerce_config(
            {
                "instruments": args.instruments,
                "start": args.start,
                "end": args.end,
                "tp_pips": args.tp_pips,
                "sl_pips": args.sl_pips,
                "max_duration_bars": args.max_duration_bars,
                "account_balance": args.balance,
                "risk_fraction": args.risk_fraction,
                "variant_id": args.variant,
                "agent_id": args.agent,
                "data_seed": args.seed,
            }
        )
    except BacktestConfigError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        for err in e.details.get("errors", []):
            loc = ".".join(str(p) for p in err.get("loc", ()))
            print(f"  {loc}: {err.get('msg')}", file=sys.stderr)
        sys.exit(2)

    bundles = {}
    for instrument, path in args.csv:
        if instrument not in config.instruments:
            parser.error(f"--csv {instrument} is not in --instruments")
        try:
            parsed = parse_ohlcv_csv(
                path.read_bytes(), filename=path.name, date_from=config.start, date_to=config.end
            )
        except OSError as e:
            parser.error(f"Cannot read {path}: {e}")
        except OHLCVParseError as e:
            print(f"Error: {path}: {e.message}", file=sys.stderr)
            sys.exit(1)
        for warning in parsed.warnings:
            print(f"  {path.name}: {warning}", file=sys.stderr)
        bundles[instrument] = build_bundle_from_candles(instrument, parsed.candles)

    result = run_backtest(config, bundles=bundles, max_workers=args.workers)

    if args.json:
        output = json.dumps(result_to_dict(result), indent=2)
    else:
        output = format_report(result)

    if args.output:
        Path(args.output).write_text(output)
        print(f"Results written to {args.output}", file=sys.stderr)
    else:
        print(output)


if __name__ == "__main__":
    main()
