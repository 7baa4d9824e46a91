"""OHLCV CSV loading for replaying recorded history instead of synthetic paths."""

from dataclasses import dataclass, field
from datetime import datetime
from io import StringIO
from typing import Optional

import pandas as pd
import structlog

from fxreplay.utils.time import ensure_utc

from .types import Candle

logger = structlog.get_logger(__name__)

REQUIRED_COLUMNS = {"date", "open", "high", "low", "close", "volume"}

COLUMN_ALIASES = {
    "timestamp": "date",
    "datetime": "date",
    "time": "date",
    "o": "open",
    "h": "high",
    "l": "low",
    "c": "close",
    "v": "volume",
    "vol": "volume",
}

PRICE_COLUMNS = ("open", "high", "low", "close")

MIN_ROWS = 10


@dataclass
class OHLCVParseResult:
    """Parsed candles plus whatever was silently repaired along the way."""

    candles: list[Candle]
    row_count: int
    date_min: datetime
    date_max: datetime
    warnings: list[str] = field(default_factory=list)


class OHLCVParseError(Exception):
    """Error parsing OHLCV data."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


def _read_frame(file_content: bytes, warnings: list[str]) -> pd.DataFrame:
    try:
        text = file_content.decode("utf-8")
    except UnicodeDecodeError:
        warnings.append("File decoded as latin-1 (non-UTF8)")
        text = file_content.decode("latin-1")
    try:
        return pd.read_csv(StringIO(text))
    except pd.errors.EmptyDataError:
        raise OHLCVParseError("CSV file is empty")
    except (ValueError, pd.errors.ParserError) as e:
        raise OHLCVParseError(f"Failed to parse CSV: {e}")


def _normalise_columns(df: pd.DataFrame, warnings: list[str]) -> pd.DataFrame:
    df.columns = [str(c).strip().lower() for c in df.columns]
    aliased = {c: COLUMN_ALIASES[c] for c in df.columns if c in COLUMN_ALIASES}
    warnings.extend(f"Column '{src}' mapped to '{dst}'" for src, dst in aliased.items())
    df = df.rename(columns=aliased)

    missing = sorted(REQUIRED_COLUMNS - set(df.columns))
    if missing:
        raise OHLCVParseError(
            f"Missing required columns: {', '.join(missing)}",
            {"missing_columns": missing, "found_columns": list(df.columns)},
        )
    return df


def _coerce_values(df: pd.DataFrame, warnings: list[str]) -> pd.DataFrame:
    try:
        df["date"] = pd.to_datetime(df["date"], utc=True)
    except (ValueError, TypeError) as e:
        raise OHLCVParseError(
            f"Unparseable timestamps: {e}",
            {"sample_values": [str(v) for v in df["date"].head(5)]},
        )

    df[list(PRICE_COLUMNS)] = df[list(PRICE_COLUMNS)].apply(pd.to_numeric, errors="coerce")
    df["volume"] = pd.to_numeric(df["volume"], errors="coerce")

    valid = df[[*PRICE_COLUMNS, "volume"]].notna().all(axis=1)
    dropped = int((~valid).sum())
    if dropped:
        warnings.append(f"Dropped {dropped} rows with NaN values in OHLCV columns")
    df = df[valid]

    if (df[list(PRICE_COLUMNS)] <= 0).to_numpy().any():
        raise OHLCVParseError("Prices must be positive")
    inverted = int((df["high"] < df["low"]).sum())
    if inverted:
        raise OHLCVParseError(f"{inverted} rows have high < low", {"invalid_rows": inverted})

    body = df[["open", "close"]]
    outside = body.gt(df["high"], axis=0).any(axis=1) | body.lt(df["low"], axis=0).any(axis=1)
    if outside.any():
        count = int(outside.sum())
        raise OHLCVParseError(
            f"{count} rows have open/close outside the high-low range",
            {
                "invalid_rows": count,
                "sample_dates": [str(d) for d in df.loc[outside, "date"].head(5)],
            },
        )
    return df


def parse_ohlcv_csv(
    file_content: bytes,
    filename: str = "data.csv",
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
) -> OHLCVParseResult:
    """
    Parse base-timeframe OHLCV CSV data into candles.

    Timestamps are parsed as UTC. Rows with unparseable numbers are dropped,
    the series is sorted and de-duplicated on timestamp, and weekend rows
    are kept (the walker skips them).

    Args:
        file_content: Raw CSV bytes
        filename: Original filename (for log context)
        date_from: Optional filter - only include rows >= this instant
        date_to: Optional filter - only include rows < this instant

    Returns:
        OHLCVParseResult with candles and metadata

    Raises:
        OHLCVParseError: If data is unusable
    """
    warnings: list[str] = []

    df = _read_frame(file_content, warnings)
    if df.empty:
        raise OHLCVParseError("CSV has no data rows")
    df = _coerce_values(_normalise_columns(df, warnings), warnings)

    if not df["date"].is_monotonic_increasing:
        warnings.append("Data was sorted by date (was not in chronological order)")
        df = df.sort_values("date", kind="stable")

    deduped = df.drop_duplicates(subset=["date"], keep="last")
    if len(deduped) < len(df):
        warnings.append(f"Removed {len(df) - len(deduped)} duplicate timestamps")
    df = deduped

    if date_from is not None:
        df = df[df["date"] >= pd.Timestamp(ensure_utc(date_from))]
    if date_to is not None:
        df = df[df["date"] < pd.Timestamp(ensure_utc(date_to))]

    if len(df) < MIN_ROWS:
        raise OHLCVParseError(
            f"Insufficient data: only {len(df)} rows (minimum {MIN_ROWS} required)",
            {"row_count": len(df)},
        )

    candles = [
        Candle(
            ts=row.date.to_pydatetime(),
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
        )
        for row in df.itertuples(index=False)
    ]

    logger.info(
        "Parsed OHLCV data",
        filename=filename,
        row_count=len(candles),
        date_min=candles[0].ts.isoformat(),
        date_max=candles[-1].ts.isoformat(),
        warnings_count=len(warnings),
    )

    return OHLCVParseResult(
        candles=candles,
        row_count=len(candles),
        date_min=candles[0].ts,
        date_max=candles[-1].ts,
        warnings=warnings,
    )
