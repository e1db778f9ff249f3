"""Core data models for time tracking."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Mapping, Optional, Union
from uuid import uuid4

LOCAL_ID_PREFIX = "local-"


def new_local_id() -> str:
    """Generate an id for an entry the remote service has not confirmed yet."""
    return f"{LOCAL_ID_PREFIX}{uuid4().hex}"


def is_local_id(entry_id: Optional[str]) -> bool:
    """Check whether an id was generated locally rather than issued by the server."""
    return bool(entry_id) and str(entry_id).startswith(LOCAL_ID_PREFIX)


class TrackingType(str, Enum):
    """Granularity policy assigned to a user through their shift."""

    HOURLY = "Hourly"
    DAILY = "Daily"
    WEEKLY = "Weekly"
    MONTHLY = "Monthly"

    @classmethod
    def parse(cls, value: Any) -> "TrackingType":
        """Parse a tracking type, case-insensitively.

        Raises:
            ValueError: If value is not a known tracking type
        """
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower()
        for member in cls:
            if member.value.lower() == text:
                return member
        raise ValueError(f"Unknown tracking type: {value!r}")


class EntryStatus(str, Enum):
    """Lifecycle status of a time entry, using the service's wire values."""

    IN_PROGRESS = "In Progress"
    PAUSED = "Paused"
    COMPLETED = "Completed"

    @classmethod
    def parse(cls, value: Any) -> "EntryStatus":
        """Parse a status string (accepts 'In Progress', 'in-progress', 'IN_PROGRESS')."""
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower().replace("-", " ").replace("_", " ")
        for member in cls:
            if member.value.lower() == text:
                return member
        raise ValueError(f"Unknown entry status: {value!r}")


# References: a project/task/user is either a bare id or a resolved record.


@dataclass(frozen=True)
class Unresolved:
    """Reference known only by its identifier."""

    id: str


@dataclass(frozen=True)
class Resolved:
    """Reference with its display name and any extra attributes the service sent."""

    id: str
    name: str
    attributes: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False)


Reference = Union[Unresolved, Resolved]


def make_reference(value: Any) -> Optional[Reference]:
    """Build a Reference from a bare id, a service object, or an existing Reference.

    Args:
        value: String id, dict with '_id'/'id' and optional 'name', or Reference

    Returns:
        Reference, or None for empty values
    """
    if value is None or value == "":
        return None
    if isinstance(value, (Unresolved, Resolved)):
        return value
    if isinstance(value, Mapping):
        ref_id = value.get("_id") or value.get("id")
        name = value.get("name")
        if name:
            attributes = {k: v for k, v in value.items() if k not in ("_id", "id", "name")}
            return Resolved(id=str(ref_id or name), name=str(name), attributes=attributes)
        if ref_id:
            return Unresolved(id=str(ref_id))
        return None
    return Unresolved(id=str(value))


def reference_id(ref: Optional[Reference]) -> Optional[str]:
    """Return the identifier of a reference in either form."""
    if ref is None:
        return None
    return ref.id


def resolve(
    ref: Optional[Reference],
    catalog: Optional[Mapping[str, Resolved]] = None,
) -> Optional[Resolved]:
    """Resolve a reference to its full record.

    Args:
        ref: Reference to resolve
        catalog: Optional id -> Resolved lookup for unresolved references

    Returns:
        Resolved record, or None if it cannot be resolved
    """
    if ref is None:
        return None
    if isinstance(ref, Resolved):
        return ref
    if catalog:
        return catalog.get(ref.id)
    return None


def reference_to_wire(ref: Optional[Reference]) -> Any:
    """Convert a reference back to the shape the service understands."""
    if ref is None:
        return None
    if isinstance(ref, Resolved):
        return {"_id": ref.id, "name": ref.name, **dict(ref.attributes)}
    return ref.id


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes")


def _parse_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def _reference_from_columns(ref_id: str, name: str) -> Optional[Reference]:
    if name:
        return Resolved(id=ref_id or name, name=name)
    if ref_id:
        return Unresolved(id=ref_id)
    return None


@dataclass
class TimeEntry:
    """Canonical record of a unit of tracked work.

    Attributes:
        user: Owner of the entry
        project: Project reference (required)
        description: What is being worked on
        start_time: When the session started
        tracking_type: Granularity from the user's shift, set once at start
        id: Server id, or a 'local-' id while unsynced
        task: Task reference (optional)
        end_time: When the session ended (None while running)
        duration: Duration in seconds, authoritative once Completed
        billable: Whether the entry counts toward revenue
        status: Lifecycle status
        is_manual_entry: Duration was entered rather than measured
        hourly_rate: Rate applied when billable
        total_amount: duration/3600 * hourly_rate, computed once at commit
        pending_sync: Created by the offline fallback and not yet confirmed
        created_at: When this record was created
        updated_at: Last update time
    """

    user: Reference
    project: Reference
    description: str
    start_time: datetime
    tracking_type: TrackingType = TrackingType.HOURLY
    id: str = field(default_factory=new_local_id)
    task: Optional[Reference] = None
    end_time: Optional[datetime] = None
    duration: int = 0
    billable: bool = False
    status: EntryStatus = EntryStatus.IN_PROGRESS
    is_manual_entry: bool = False
    hourly_rate: Optional[Decimal] = None
    total_amount: Optional[Decimal] = None
    pending_sync: bool = False
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    @property
    def user_id(self) -> str:
        return self.user.id

    @property
    def project_id(self) -> str:
        return self.project.id

    @property
    def is_running(self) -> bool:
        """Check if this entry is still open (In Progress or Paused)."""
        return self.status != EntryStatus.COMPLETED

    @property
    def is_local(self) -> bool:
        """Check if this entry only has a locally generated id."""
        return is_local_id(self.id)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a flat dictionary for CSV serialization."""
        project = resolve(self.project)
        task = resolve(self.task)
        user = resolve(self.user)
        return {
            "id": self.id,
            "user_id": self.user.id,
            "user_name": user.name if user else "",
            "project_id": self.project.id,
            "project_name": project.name if project else "",
            "task_id": self.task.id if self.task else "",
            "task_name": task.name if task else "",
            "description": self.description,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else "",
            "duration": self.duration,
            "billable": self.billable,
            "tracking_type": self.tracking_type.value,
            "status": self.status.value,
            "is_manual_entry": self.is_manual_entry,
            "hourly_rate": str(self.hourly_rate) if self.hourly_rate is not None else "",
            "total_amount": str(self.total_amount) if self.total_amount is not None else "",
            "pending_sync": self.pending_sync,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TimeEntry":
        """Create TimeEntry from a flat dictionary (CSV deserialization)."""
        user = _reference_from_columns(data.get("user_id", ""), data.get("user_name", ""))
        project = _reference_from_columns(data.get("project_id", ""), data.get("project_name", ""))
        return cls(
            id=data["id"],
            user=user or Unresolved(id=""),
            project=project or Unresolved(id=""),
            task=_reference_from_columns(data.get("task_id", ""), data.get("task_name", "")),
            description=data.get("description", ""),
            start_time=datetime.fromisoformat(data["start_time"]),
            end_time=datetime.fromisoformat(data["end_time"]) if data.get("end_time") else None,
            duration=int(data["duration"]) if data.get("duration") else 0,
            billable=_parse_bool(data.get("billable", False)),
            tracking_type=TrackingType.parse(data.get("tracking_type") or "Hourly"),
            status=EntryStatus.parse(data.get("status") or "In Progress"),
            is_manual_entry=_parse_bool(data.get("is_manual_entry", False)),
            hourly_rate=_parse_decimal(data.get("hourly_rate")),
            total_amount=_parse_decimal(data.get("total_amount")),
            pending_sync=_parse_bool(data.get("pending_sync", False)),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )


@dataclass
class UserRecord:
    """User as returned by the team/identity directory.

    Attributes:
        id: User identifier
        name: Display name
        shift: Configured shift (None when unassigned)
        hourly_rate: Default charge rate
        status: Active / Inactive / Pending
    """

    id: str
    name: str = ""
    shift: Optional[str] = None
    hourly_rate: Optional[Decimal] = None
    status: str = "Active"

    def as_reference(self) -> Reference:
        if self.name:
            return Resolved(id=self.id, name=self.name)
        return Unresolved(id=self.id)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "UserRecord":
        """Create UserRecord from a service or config mapping."""
        rate = data.get("hourly_rate", data.get("hourlyRate", data.get("charges")))
        return cls(
            id=str(data.get("_id") or data.get("id") or ""),
            name=str(data.get("name") or ""),
            shift=data.get("shift") or None,
            hourly_rate=_parse_decimal(rate),
            status=str(data.get("status") or "Active"),
        )
