"""Shift directory backed by a static user table (usually the config file)."""

from typing import Mapping

from shiftclock.core.errors import NotFoundError
from shiftclock.core.models import UserRecord
from shiftclock.service.base import ShiftDirectory


class StaticShiftDirectory(ShiftDirectory):
    """Look users up in a fixed mapping.

    Unknown ids resolve to a bare record with no shift, so the shift policy's
    default-and-audit path handles them instead of the command failing.
    """

    def __init__(self, users: Mapping[str, UserRecord], strict: bool = False):
        self.users = dict(users)
        self.strict = strict

    async def get_user(self, user_id: str) -> UserRecord:
        user = self.users.get(user_id)
        if user is None:
            if self.strict:
                raise NotFoundError(f"User not found: {user_id}")
            return UserRecord(id=user_id)
        return user
