"""Unit tests for OHLCV CSV loading."""

from datetime import datetime, timedelta, timezone

import pytest

from fxreplay.services.backtest.data import (
    MIN_ROWS,
    OHLCVParseError,
    OHLCVParseResult,
    parse_ohlcv_csv,
)


def _csv(rows: int, header: str = "date,open,high,low,close,volume") -> bytes:
    base = datetime(2024, 3, 4, tzinfo=timezone.utc)
    lines = [header]
    for i in range(rows):
        ts = base + timedelta(minutes=15 * i)
        lines.append(f"{ts:%Y-%m-%d %H:%M:%S},1.0850,1.0860,1.0840,1.0855,{1000 + i}")
    return ("\n".join(lines) + "\n").encode()


class TestParseOhlcvCsv:
    def test_valid_csv(self):
        result = parse_ohlcv_csv(_csv(20), filename="eurusd.csv")

        assert isinstance(result, OHLCVParseResult)
        assert result.row_count == 20
        assert result.warnings == []
        first = result.candles[0]
        assert first.ts == datetime(2024, 3, 4, tzinfo=timezone.utc)
        assert first.ts.tzinfo is not None
        assert first.open == pytest.approx(1.0850)
        assert result.date_max == datetime(2024, 3, 4, 4, 45, tzinfo=timezone.utc)

    def test_missing_column(self):
        content = b"date,open,high,low,volume\n2024-03-04 00:00:00,1,1,1,1\n"
        with pytest.raises(OHLCVParseError) as exc_info:
            parse_ohlcv_csv(content)
        assert "close" in exc_info.value.details["missing_columns"]

    def test_aliases_mapped_with_warning(self):
        result = parse_ohlcv_csv(_csv(12, header="Timestamp,Open,High,Low,Close,Vol"))
        assert result.row_count == 12
        assert any("timestamp" in w for w in result.warnings)

    def test_unsorted_and_duplicate_rows(self):
        lines = _csv(12).decode().strip().split("\n")
        header, rows = lines[0], lines[1:]
        shuffled = [header] + rows[::-1] + [rows[3]]
        result = parse_ohlcv_csv(("\n".join(shuffled) + "\n").encode())

        stamps = [c.ts for c in result.candles]
        assert stamps == sorted(stamps)
        assert len(stamps) == 12
        assert any("sorted" in w for w in result.warnings)
        assert any("duplicate" in w for w in result.warnings)

    def test_nan_rows_dropped(self):
        content = _csv(12) + b"2024-03-05 00:00:00,abc,1.1,1.0,1.05,10\n"
        result = parse_ohlcv_csv(content)
        assert result.row_count == 12
        assert any("NaN" in w for w in result.warnings)

    def test_high_below_low_rejected(self):
        content = _csv(12) + b"2024-03-05 00:00:00,1.05,1.00,1.10,1.05,10\n"
        with pytest.raises(OHLCVParseError, match="high < low"):
            parse_ohlcv_csv(content)

    @pytest.mark.parametrize(
        "row",
        [
            b"2024-03-05 00:00:00,1.0870,1.0860,1.0840,1.0855,10\n",
            b"2024-03-05 00:00:00,1.0850,1.0860,1.0840,1.0830,10\n",
        ],
    )
    def test_open_or_close_outside_range_rejected(self, row):
        with pytest.raises(OHLCVParseError, match="outside the high-low range") as exc_info:
            parse_ohlcv_csv(_csv(12) + row)
        assert exc_info.value.details["invalid_rows"] == 1

    def test_date_filter_end_exclusive(self):
        result = parse_ohlcv_csv(
            _csv(40),
            date_from=datetime(2024, 3, 4, 1, tzinfo=timezone.utc),
            date_to=datetime(2024, 3, 4, 5, tzinfo=timezone.utc),
        )
        assert result.row_count == 16
        assert result.date_min == datetime(2024, 3, 4, 1, tzinfo=timezone.utc)
        assert result.date_max == datetime(2024, 3, 4, 4, 45, tzinfo=timezone.utc)

    def test_too_few_rows(self):
        with pytest.raises(OHLCVParseError, match="Insufficient data"):
            parse_ohlcv_csv(_csv(MIN_ROWS - 1))

    def test_empty_file(self):
        with pytest.raises(OHLCVParseError):
            parse_ohlcv_csv(b"")
