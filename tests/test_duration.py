"""Tests for duration and billing arithmetic."""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from shiftclock.core.duration import (
    billable_amount,
    elapsed_seconds,
    finalize_duration,
    format_duration,
    format_human,
    hours,
    parse_manual_duration,
)
from shiftclock.core.errors import ValidationError

START = datetime(2024, 3, 4, 9, 0, 0)


class TestElapsed:
    """Test elapsed-time measurement."""

    def test_whole_seconds(self) -> None:
        assert elapsed_seconds(START, START + timedelta(seconds=90, milliseconds=999)) == 90

    def test_same_instant(self) -> None:
        assert elapsed_seconds(START, START) == 0

    def test_clock_skew_clamps_to_zero(self, caplog: pytest.LogCaptureFixture) -> None:
        """A clock that runs backwards never yields a negative duration."""
        assert elapsed_seconds(START, START - timedelta(minutes=5)) == 0
        assert "Clock skew" in caplog.text

    def test_finalize_matches_elapsed(self) -> None:
        end = START + timedelta(hours=8, minutes=1)
        assert finalize_duration(START, end) == elapsed_seconds(START, end) == 28860


class TestManualDuration:
    """Test parsing typed durations."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("2:30", 9000),
            ("02:30:15", 9015),
            ("0:01", 60),
            ("100:00", 360000),
            (" 1:05 ", 3900),
            ("0:00", 0),
        ],
    )
    def test_valid(self, text: str, expected: int) -> None:
        assert parse_manual_duration(text) == expected

    @pytest.mark.parametrize(
        "text",
        [None, "", "  ", "90", "1:60", "1:00:60", "a:b", "1:-5", "1.5:00", "1:2:3:4", "²:00", "1:٣٠"],
    )
    def test_invalid(self, text: str) -> None:
        with pytest.raises(ValidationError):
            parse_manual_duration(text)

    @pytest.mark.parametrize("seconds", [0, 59, 3600, 9015, 360000])
    def test_format_is_inverse_of_parse(self, seconds: int) -> None:
        assert parse_manual_duration(format_duration(seconds)) == seconds


class TestFormatting:
    """Test display helpers."""

    def test_format_duration(self) -> None:
        assert format_duration(3725) == "01:02:05"
        assert format_duration(-5) == "00:00:00"

    @pytest.mark.parametrize(
        "seconds,expected",
        [(None, "ongoing"), (45, "45s"), (125, "2m 5s"), (7380, "2h 3m")],
    )
    def test_format_human(self, seconds: int, expected: str) -> None:
        assert format_human(seconds) == expected

    def test_hours(self) -> None:
        assert hours(5400) == 1.5
        assert hours(None) == 0


class TestBillableAmount:
    """Test amount calculation."""

    def test_one_hour(self) -> None:
        assert billable_amount(3600, Decimal("50")) == Decimal("50.00")

    def test_rounds_half_up_to_cents(self) -> None:
        # 1s at 18/h is exactly 0.005
        assert billable_amount(1, 18) == Decimal("0.01")
        assert billable_amount(1000, "33.33") == Decimal("9.26")

    def test_zero_rate(self) -> None:
        assert billable_amount(3600, 0) == Decimal("0.00")
        assert billable_amount(3600, None) == Decimal("0.00")  # type: ignore[arg-type]

    def test_float_rate_does_not_leak_binary_error(self) -> None:
        assert billable_amount(9000, 40.0) == Decimal("100.00")
