"""
UTC helpers for bar timestamps.

Every candle timestamp in the engine is a tz-aware UTC datetime. FX sessions
are defined on the UTC clock, so no exchange-local conversion is needed;
this module is the single normalization point.
"""

from datetime import datetime, timezone

_UTC = timezone.utc


def ensure_utc(ts: datetime) -> datetime:
    """Validate that a datetime is tz-aware and convert to UTC.

    Use at ingestion boundaries (config parsing, CSV loaders) to guarantee
    every timestamp entering the engine is tz-aware UTC.

    Args:
        ts: A timezone-aware datetime (any timezone).

    Returns:
        The same instant as a UTC-aware datetime.

    Raises:
        ValueError: If ts is naive (no tzinfo).
    """
    if ts.tzinfo is None:
        raise ValueError(
            "ensure_utc requires a tz-aware datetime, got naive. "
            "Hint: use datetime(..., tzinfo=timezone.utc) for UTC timestamps."
        )
    return ts.astimezone(_UTC)


def utc_hour(ts: datetime) -> int:
    """Hour of day (0-23) on the UTC clock."""
    return ensure_utc(ts).hour


def is_weekend(ts: datetime) -> bool:
    """True for Saturday and Sunday (UTC), when the FX market is closed."""
    return ensure_utc(ts).weekday() >= 5


def epoch_seconds(ts: datetime) -> int:
    """Whole seconds since the Unix epoch."""
    return int(ensure_utc(ts).timestamp())


def from_epoch_seconds(seconds: int) -> datetime:
    """Inverse of epoch_seconds, as a UTC-aware datetime."""
    return datetime.fromtimestamp(seconds, tz=_UTC)
