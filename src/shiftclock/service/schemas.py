"""Pydantic models for the time-entry service wire format.

The service speaks camelCase JSON with Mongo-style ``_id`` keys and wraps
most responses in a ``{"success": ..., "data": ...}`` envelope. These models
validate what comes back and convert it to and from the core dataclasses.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_serializer

from shiftclock.core.errors import RemoteRejectionError
from shiftclock.core.models import (
    EntryStatus,
    TimeEntry,
    TrackingType,
    Unresolved,
    make_reference,
    reference_to_wire,
)


def _to_local_naive(value: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware timestamp to naive local time, as the engine uses."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


class TimeEntryPayload(BaseModel):
    """Time entry as exchanged with the service."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = Field(
        None, validation_alias=AliasChoices("_id", "id"), serialization_alias="_id"
    )
    user: Any = Field(None, validation_alias=AliasChoices("userId", "user"), serialization_alias="userId")
    project: Any = None
    task: Any = None
    description: str = ""
    start_time: datetime = Field(
        validation_alias=AliasChoices("startTime", "start_time"), serialization_alias="startTime"
    )
    end_time: Optional[datetime] = Field(
        None, validation_alias=AliasChoices("endTime", "end_time"), serialization_alias="endTime"
    )
    duration: int = Field(0, ge=0)
    billable: bool = False
    status: str = EntryStatus.IN_PROGRESS.value
    tracking_type: str = Field(
        TrackingType.HOURLY.value,
        validation_alias=AliasChoices("trackingType", "tracking_type"),
        serialization_alias="trackingType",
    )
    is_manual_entry: bool = Field(
        False,
        validation_alias=AliasChoices("isManualEntry", "is_manual_entry"),
        serialization_alias="isManualEntry",
    )
    hourly_rate: Optional[Decimal] = Field(
        None, validation_alias=AliasChoices("hourlyRate", "hourly_rate"), serialization_alias="hourlyRate"
    )
    total_amount: Optional[Decimal] = Field(
        None,
        validation_alias=AliasChoices("totalAmount", "total_amount"),
        serialization_alias="totalAmount",
    )
    created_at: Optional[datetime] = Field(
        None, validation_alias=AliasChoices("createdAt", "created_at"), serialization_alias="createdAt"
    )
    updated_at: Optional[datetime] = Field(
        None, validation_alias=AliasChoices("updatedAt", "updated_at"), serialization_alias="updatedAt"
    )

    @field_serializer("hourly_rate", "total_amount")
    def _serialize_money(self, value: Optional[Decimal]) -> Optional[float]:
        return float(value) if value is not None else None

    @classmethod
    def from_entry(cls, entry: TimeEntry) -> "TimeEntryPayload":
        """Build the wire form of an entry."""
        return cls(
            id=None if entry.is_local else entry.id,
            user=entry.user_id,
            project=reference_to_wire(entry.project),
            task=reference_to_wire(entry.task),
            description=entry.description,
            start_time=entry.start_time,
            end_time=entry.end_time,
            duration=entry.duration,
            billable=entry.billable,
            status=entry.status.value,
            tracking_type=entry.tracking_type.value,
            is_manual_entry=entry.is_manual_entry,
            hourly_rate=entry.hourly_rate,
            total_amount=entry.total_amount,
            created_at=entry.created_at,
            updated_at=entry.updated_at,
        )

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict with the service's field names."""
        data: dict[str, Any] = self.model_dump(by_alias=True, mode="json", exclude_none=True)
        data.setdefault("userType", "TeamMember")
        return data

    def to_entry(self) -> TimeEntry:
        """Convert to the engine's TimeEntry.

        Raises:
            RemoteRejectionError: If the payload lacks an id or a known status
        """
        if not self.id:
            raise RemoteRejectionError("Service returned a time entry without an id")
        try:
            status = EntryStatus.parse(self.status)
            tracking_type = TrackingType.parse(self.tracking_type)
        except ValueError as e:
            raise RemoteRejectionError(f"Service returned an invalid time entry: {e}")

        now = datetime.now()
        return TimeEntry(
            id=self.id,
            user=make_reference(self.user) or Unresolved(id=""),
            project=make_reference(self.project) or Unresolved(id=""),
            task=make_reference(self.task),
            description=self.description,
            start_time=_to_local_naive(self.start_time),  # type: ignore[arg-type]
            end_time=_to_local_naive(self.end_time),
            duration=self.duration,
            billable=self.billable,
            status=status,
            tracking_type=tracking_type,
            is_manual_entry=self.is_manual_entry,
            hourly_rate=self.hourly_rate,
            total_amount=self.total_amount,
            pending_sync=False,
            created_at=_to_local_naive(self.created_at) or now,
            updated_at=_to_local_naive(self.updated_at) or now,
        )


def unwrap(body: Any) -> Any:
    """Strip the service's response envelope.

    Accepts ``{"success": true, "data": ...}``, ``{"data": ...}`` or a bare
    payload.

    Raises:
        RemoteRejectionError: If the envelope reports ``success: false``
    """
    if isinstance(body, dict):
        if "success" in body:
            if not body.get("success"):
                message = body.get("message") or body.get("error") or "Request rejected"
                raise RemoteRejectionError(str(message), details=body)
            return body.get("data")
        if "data" in body and "_id" not in body and "id" not in body:
            return body["data"]
    return body
