"""Duration and billing arithmetic.

Every duration or amount in the engine goes through these functions; nothing
else re-derives the formulas. All functions are pure apart from logging.
"""

import logging
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

from shiftclock.core.errors import ValidationError

logger = logging.getLogger(__name__)

SECONDS_PER_HOUR = 3600
CENT = Decimal("0.01")

Rate = Union[Decimal, int, float, str]


def elapsed_seconds(start: datetime, now: datetime) -> int:
    """Whole seconds elapsed between start and now.

    Args:
        start: Session start
        now: Current time

    Returns:
        floor((now - start) / 1s), clamped to 0 if now precedes start
    """
    delta = now - start
    if delta < timedelta(0):
        logger.warning(
            f"Clock skew detected: now ({now.isoformat()}) is before start "
            f"({start.isoformat()}); clamping elapsed time to 0"
        )
        return 0
    return int(delta // timedelta(seconds=1))


def finalize_duration(start: datetime, end: datetime) -> int:
    """Duration in seconds of a finished span, same rules as elapsed_seconds."""
    return elapsed_seconds(start, end)


def parse_manual_duration(text: Optional[str]) -> int:
    """Parse a manually entered duration.

    Accepts ``HH:MM:SS`` or ``HH:MM``. Hours are unbounded, minutes and
    seconds must be below 60.

    Args:
        text: Duration text

    Returns:
        Duration in seconds

    Raises:
        ValidationError: If the text is empty or malformed
    """
    if text is None or not text.strip():
        raise ValidationError("Duration is required (HH:MM or HH:MM:SS)")

    parts = text.strip().split(":")
    if len(parts) not in (2, 3):
        raise ValidationError(f"Invalid duration {text!r}: expected HH:MM or HH:MM:SS")

    values = []
    for part in parts:
        part = part.strip()
        if part.startswith("-"):
            raise ValidationError(f"Invalid duration {text!r}: components must not be negative")
        if not (part.isascii() and part.isdigit()):
            raise ValidationError(f"Invalid duration {text!r}: components must be numeric")
        values.append(int(part))

    hours, minutes = values[0], values[1]
    seconds = values[2] if len(values) == 3 else 0
    if minutes >= 60 or seconds >= 60:
        raise ValidationError(f"Invalid duration {text!r}: minutes and seconds must be below 60")

    return hours * SECONDS_PER_HOUR + minutes * 60 + seconds


def format_duration(seconds: int) -> str:
    """Format seconds as HH:MM:SS (inverse of parse_manual_duration)."""
    seconds = max(0, int(seconds))
    hours = seconds // SECONDS_PER_HOUR
    minutes = (seconds % SECONDS_PER_HOUR) // 60
    secs = seconds % 60
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def format_human(seconds: Optional[int]) -> str:
    """Format duration in seconds to a short human-readable string."""
    if seconds is None:
        return "ongoing"

    hours = seconds // SECONDS_PER_HOUR
    minutes = (seconds % SECONDS_PER_HOUR) // 60
    secs = seconds % 60

    if hours > 0:
        return f"{hours}h {minutes}m"
    elif minutes > 0:
        return f"{minutes}m {secs}s"
    else:
        return f"{secs}s"


def hours(seconds: Union[int, float, None]) -> float:
    """Convert seconds to fractional hours."""
    return (seconds or 0) / SECONDS_PER_HOUR


def billable_amount(duration_seconds: int, hourly_rate: Rate) -> Decimal:
    """Amount charged for a duration at an hourly rate.

    Args:
        duration_seconds: Billed duration
        hourly_rate: Rate per hour

    Returns:
        (duration / 3600) * rate, rounded half-up to 2 decimal places
    """
    rate = Decimal(str(hourly_rate or 0))
    amount = Decimal(int(duration_seconds)) * rate / Decimal(SECONDS_PER_HOUR)
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)
