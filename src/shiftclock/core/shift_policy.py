"""Shift policy: tracking type resolution and per-type rules."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from shiftclock.core.errors import ConfigurationError, ValidationError
from shiftclock.core.models import TrackingType, UserRecord

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 3600


@dataclass(frozen=True)
class ShiftRules:
    """Validation and display rules for one tracking type.

    Attributes:
        tracking_type: Type these rules apply to
        min_granularity_seconds: Smallest meaningful unit of recorded time
        allows_multi_day: Whether a single entry may span more than 24 hours
        working_days: Display label for the expected working pattern
        expected_hours: Expected hours per period (hour, day, week, month)
    """

    tracking_type: TrackingType
    min_granularity_seconds: int
    allows_multi_day: bool
    working_days: str
    expected_hours: float


_RULES = {
    TrackingType.HOURLY: ShiftRules(TrackingType.HOURLY, 1, False, "Variable", 1.0),
    TrackingType.DAILY: ShiftRules(TrackingType.DAILY, 60, False, "Mon-Fri", 8.0),
    TrackingType.WEEKLY: ShiftRules(TrackingType.WEEKLY, 60, True, "Flexible", 40.0),
    TrackingType.MONTHLY: ShiftRules(TrackingType.MONTHLY, 60, True, "Project-based", 160.0),
}

_DESCRIPTIONS = {
    TrackingType.HOURLY: "Track time by the hour - best for detailed work",
    TrackingType.DAILY: "Track time by the day - for full-day projects",
    TrackingType.WEEKLY: "Track time by the week - for long-term assignments",
    TrackingType.MONTHLY: "Track time by the month - for ongoing responsibilities",
}


@dataclass(frozen=True)
class ShiftAuditRecord:
    """A user whose shift could not be resolved and fell back to a default."""

    user_id: str
    reason: str
    fallback: TrackingType
    recorded_at: datetime


class ShiftPolicy:
    """Derive a user's tracking type and the rules that apply to it.

    The policy holds no session state; the only thing it accumulates is the
    audit log of users whose shift had to be defaulted.
    """

    def __init__(self, default_tracking_type: TrackingType = TrackingType.HOURLY):
        self.default_tracking_type = default_tracking_type
        self.audit_log: list[ShiftAuditRecord] = []

    def resolve_tracking_type(self, user: UserRecord) -> TrackingType:
        """Map a user's configured shift to a tracking type.

        Raises:
            ConfigurationError: If the user has no shift or an unknown one
        """
        if not user.shift:
            raise ConfigurationError(f"User {user.id} has no assigned shift", user_id=user.id)
        try:
            return TrackingType.parse(user.shift)
        except ValueError:
            raise ConfigurationError(
                f"User {user.id} has unknown shift {user.shift!r}", user_id=user.id
            )

    def resolve_or_default(
        self,
        user: UserRecord,
        default: Optional[TrackingType] = None,
    ) -> TrackingType:
        """Resolve the tracking type, falling back to a default on bad data.

        The fallback is logged and recorded in ``audit_log`` so that missing
        shift assignments stay visible.
        """
        fallback = default or self.default_tracking_type
        try:
            return self.resolve_tracking_type(user)
        except ConfigurationError as e:
            logger.warning(f"Shift data-quality issue: {e}; using {fallback.value}")
            self.audit_log.append(
                ShiftAuditRecord(
                    user_id=user.id,
                    reason=str(e),
                    fallback=fallback,
                    recorded_at=datetime.now(),
                )
            )
            return fallback

    @staticmethod
    def describe(tracking_type: TrackingType) -> str:
        """Human-readable guidance for a tracking type."""
        return _DESCRIPTIONS.get(tracking_type, "Track your work time")

    @staticmethod
    def rules(tracking_type: TrackingType) -> ShiftRules:
        return _RULES[tracking_type]

    def validate_span(self, tracking_type: TrackingType, duration_seconds: int) -> None:
        """Check that a recorded span is legal for the tracking type.

        Raises:
            ValidationError: If the span is negative or crosses the multi-day limit
        """
        if duration_seconds < 0:
            raise ValidationError("Duration must not be negative")
        rules = self.rules(tracking_type)
        if not rules.allows_multi_day and duration_seconds > SECONDS_PER_DAY:
            raise ValidationError(
                f"{tracking_type.value} tracking does not allow entries longer than 24 hours"
            )

    @staticmethod
    def classify_hours(hours_worked: float) -> TrackingType:
        """Guess the shift type a block of hours corresponds to."""
        if hours_worked >= 160:
            return TrackingType.MONTHLY
        if hours_worked >= 35:
            return TrackingType.WEEKLY
        if hours_worked >= 6:
            return TrackingType.DAILY
        return TrackingType.HOURLY
