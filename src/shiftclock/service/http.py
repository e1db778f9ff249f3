"""HTTP client for the team timesheet backend."""

import logging
from decimal import Decimal
from typing import Any, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from shiftclock.core.errors import NotFoundError, RemoteRejectionError, TransportError
from shiftclock.core.models import (
    Reference,
    TimeEntry,
    TrackingType,
    UserRecord,
    reference_id,
)
from shiftclock.service.base import EntryFilters, ShiftDirectory, TimeEntryService
from shiftclock.service.schemas import TimeEntryPayload, unwrap

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response) -> tuple[str, Any]:
    """Pull a human-readable message and the structured body out of an error response."""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}", None
    if isinstance(body, dict):
        message = body.get("message") or body.get("error") or f"HTTP {response.status_code}"
        return str(message), body
    return f"HTTP {response.status_code}", body


class HttpClient:
    """Thin wrapper over httpx.AsyncClient with the service's error mapping.

    Network failures, timeouts and 5xx responses become ``TransportError``;
    404 becomes ``NotFoundError``; any other 4xx becomes
    ``RemoteRejectionError`` carrying the server's structured body.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 15.0,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers=headers,
            transport=transport,
        )

    async def request(
        self,
        method: str,
        path: str,
        json: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, str]] = None,
    ) -> Any:
        try:
            response = await self._client.request(method, path, json=json, params=params)
        except httpx.TimeoutException as e:
            raise TransportError(f"{method} {path} timed out") from e
        except httpx.TransportError as e:
            raise TransportError(f"{method} {path} failed: {e}") from e

        if response.status_code >= 500:
            message, _ = _error_message(response)
            raise TransportError(f"Service unavailable (HTTP {response.status_code}): {message}")
        if response.status_code == 404:
            message, details = _error_message(response)
            raise NotFoundError(message, details=details)
        if response.status_code >= 400:
            message, details = _error_message(response)
            raise RemoteRejectionError(message, status_code=response.status_code, details=details)

        if not response.content:
            return None
        try:
            body = response.json()
        except ValueError as e:
            raise TransportError(f"{method} {path} returned an unreadable response") from e
        return unwrap(body)

    async def aclose(self) -> None:
        await self._client.aclose()


def _parse_entry(data: Any) -> TimeEntry:
    if not isinstance(data, dict):
        raise RemoteRejectionError("Service returned no time entry", details=data)
    try:
        return TimeEntryPayload.model_validate(data).to_entry()
    except PydanticValidationError as e:
        raise RemoteRejectionError(f"Service returned an invalid time entry: {e}", details=data)


class HttpTimeEntryService(TimeEntryService):
    """TimeEntryService backed by the REST API."""

    def __init__(self, client: HttpClient):
        self.client = client

    async def start_timer(
        self,
        user_id: str,
        project: Reference,
        task: Optional[Reference],
        description: str,
        tracking_type: TrackingType,
        billable: bool,
        hourly_rate: Optional[Decimal],
    ) -> TimeEntry:
        body = {
            "userId": user_id,
            "project": reference_id(project),
            "task": reference_id(task),
            "description": description,
            "trackingType": tracking_type.value,
            "billable": billable,
            "hourlyRate": float(hourly_rate) if hourly_rate is not None else 0,
            "userType": "TeamMember",
        }
        data = await self.client.request("POST", "/time-entries/start", json=body)
        return _parse_entry(data)

    async def stop_timer(self, entry_id: str) -> TimeEntry:
        data = await self.client.request("PUT", f"/time-entries/stop/{entry_id}")
        return _parse_entry(data)

    async def create_time_entry(self, fields: dict[str, Any]) -> TimeEntry:
        data = await self.client.request("POST", "/time-entries", json=fields)
        return _parse_entry(data)

    async def update_time_entry(self, entry_id: str, fields: dict[str, Any]) -> TimeEntry:
        data = await self.client.request("PUT", f"/time-entries/{entry_id}", json=fields)
        return _parse_entry(data)

    async def delete_time_entry(self, entry_id: str) -> None:
        await self.client.request("DELETE", f"/time-entries/{entry_id}")

    async def list_time_entries(self, filters: Optional[EntryFilters] = None) -> list[TimeEntry]:
        params = filters.to_params() if filters else None
        data = await self.client.request("GET", "/time-entries", params=params)
        if not isinstance(data, list):
            raise RemoteRejectionError("Service returned a non-list entry collection", details=data)

        entries = []
        for item in data:
            try:
                entries.append(_parse_entry(item))
            except RemoteRejectionError as e:
                logger.warning(f"Skipping malformed time entry from service: {e}")
        return entries

    async def aclose(self) -> None:
        await self.client.aclose()


class HttpShiftDirectory(ShiftDirectory):
    """ShiftDirectory backed by the team endpoint of the REST API."""

    def __init__(self, client: HttpClient):
        self.client = client

    async def get_user(self, user_id: str) -> UserRecord:
        data = await self.client.request("GET", f"/team/{user_id}")
        if not isinstance(data, dict):
            raise NotFoundError(f"User not found: {user_id}")
        return UserRecord.from_dict(data)
