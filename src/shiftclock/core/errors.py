"""Error taxonomy for the time-tracking engine."""

from typing import Any, Optional


class ShiftclockError(Exception):
    """Base class for all engine errors."""


class ValidationError(ShiftclockError):
    """A command was rejected because its input is incomplete or malformed.

    Raised before any state changes, so the caller can correct the input and
    retry.
    """


class ConflictError(ShiftclockError):
    """A command conflicts with the current session state.

    Raised when starting while a session is already active, when stopping a
    session that is not active, or when a command is issued while another
    persistence call for the same user is still in flight.
    """


class ConfigurationError(ShiftclockError):
    """A user record has no resolvable shift / tracking type."""

    def __init__(self, message: str, user_id: Optional[str] = None):
        super().__init__(message)
        self.user_id = user_id


class TransportError(ShiftclockError):
    """The time-entry service could not be reached (network failure or timeout)."""


class RemoteRejectionError(ShiftclockError):
    """The service was reachable and explicitly rejected the operation.

    Attributes:
        status_code: HTTP status returned by the service
        details: Structured error body, if any
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Any] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class NotFoundError(RemoteRejectionError):
    """The service does not know the referenced time entry."""

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message, status_code=404, details=details)
