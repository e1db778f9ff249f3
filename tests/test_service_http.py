"""Tests for the HTTP time-entry service and wire schemas."""

import asyncio
import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable

import httpx
import pytest  # type: ignore[import-not-found]

from helpers import make_entry
from shiftclock.core.errors import NotFoundError, RemoteRejectionError, TransportError
from shiftclock.core.models import EntryStatus, Resolved, TrackingType, Unresolved
from shiftclock.service.base import EntryFilters
from shiftclock.service.http import HttpClient, HttpShiftDirectory, HttpTimeEntryService
from shiftclock.service.offline import OfflineTimeEntryService
from shiftclock.service.schemas import TimeEntryPayload, unwrap

WIRE_ENTRY = {
    "_id": "65f1",
    "userId": "u1",
    "project": {"_id": "p1", "name": "Website", "color": "#fff"},
    "task": "t1",
    "description": "design",
    "startTime": "2024-03-04T09:00:00",
    "endTime": "2024-03-04T10:00:00",
    "duration": 3600,
    "billable": True,
    "status": "Completed",
    "trackingType": "Daily",
    "hourlyRate": 50,
    "totalAmount": 50,
}


def make_service(handler: Callable[[httpx.Request], httpx.Response]) -> HttpTimeEntryService:
    client = HttpClient("http://tt.test/api/", transport=httpx.MockTransport(handler))
    return HttpTimeEntryService(client)


def ok(data: Any, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, json={"success": True, "data": data})


class TestSchemas:
    """Test wire conversion."""

    def test_payload_to_entry(self) -> None:
        entry = TimeEntryPayload.model_validate(WIRE_ENTRY).to_entry()

        assert entry.id == "65f1"
        assert entry.user == Unresolved(id="u1")
        assert entry.project == Resolved(id="p1", name="Website")
        assert entry.project.attributes == {"color": "#fff"}
        assert entry.task == Unresolved(id="t1")
        assert entry.status == EntryStatus.COMPLETED
        assert entry.tracking_type == TrackingType.DAILY
        assert entry.total_amount == Decimal("50")

    def test_aware_timestamps_become_local_naive(self) -> None:
        entry = TimeEntryPayload.model_validate(
            {**WIRE_ENTRY, "startTime": "2024-03-04T09:00:00Z"}
        ).to_entry()

        assert entry.start_time.tzinfo is None

    def test_to_wire_uses_service_names(self) -> None:
        entry = make_entry(
            id="srv-1",
            project=Resolved(id="p1", name="Website"),
            billable=True,
            hourly_rate=Decimal("40"),
            total_amount=Decimal("40.00"),
        )

        wire = TimeEntryPayload.from_entry(entry).to_wire()

        assert wire["_id"] == "srv-1"
        assert wire["userId"] == "u1"
        assert wire["project"] == {"_id": "p1", "name": "Website"}
        assert wire["startTime"] == "2024-03-04T09:00:00"
        assert wire["trackingType"] == "Hourly"
        assert wire["hourlyRate"] == 40.0
        assert wire["totalAmount"] == 40.0
        assert wire["userType"] == "TeamMember"
        assert "task" not in wire

    def test_local_ids_are_not_sent(self) -> None:
        wire = TimeEntryPayload.from_entry(make_entry()).to_wire()

        assert "_id" not in wire

    def test_payload_without_id_is_rejected(self) -> None:
        payload = TimeEntryPayload.model_validate({**WIRE_ENTRY, "_id": None})

        with pytest.raises(RemoteRejectionError, match="without an id"):
            payload.to_entry()

    def test_unknown_status_is_rejected(self) -> None:
        payload = TimeEntryPayload.model_validate({**WIRE_ENTRY, "status": "Archived"})

        with pytest.raises(RemoteRejectionError, match="invalid time entry"):
            payload.to_entry()

    def test_unwrap(self) -> None:
        assert unwrap({"success": True, "data": [1]}) == [1]
        assert unwrap({"data": {"x": 1}}) == {"x": 1}
        assert unwrap(WIRE_ENTRY) is WIRE_ENTRY
        with pytest.raises(RemoteRejectionError, match="nope"):
            unwrap({"success": False, "message": "nope"})


class TestHttpTimeEntryService:
    """Test the REST-backed service."""

    def test_start_timer(self) -> None:
        seen: dict[str, Any] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return ok({**WIRE_ENTRY, "status": "In Progress", "endTime": None, "duration": 0}, 201)

        service = make_service(handler)
        entry = asyncio.run(
            service.start_timer(
                "u1",
                Unresolved(id="p1"),
                None,
                "design",
                TrackingType.DAILY,
                True,
                Decimal("50"),
            )
        )

        assert seen["method"] == "POST"
        assert seen["path"] == "/api/time-entries/start"
        assert seen["body"]["project"] == "p1"
        assert seen["body"]["trackingType"] == "Daily"
        assert seen["body"]["hourlyRate"] == 50.0
        assert entry.status == EntryStatus.IN_PROGRESS

    def test_stop_timer(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "PUT"
            assert request.url.path == "/api/time-entries/stop/65f1"
            return ok(WIRE_ENTRY)

        entry = asyncio.run(make_service(handler).stop_timer("65f1"))

        assert entry.status == EntryStatus.COMPLETED

    def test_list_with_filters_skips_malformed(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["userId"] == "u1"
            assert request.url.params["startDate"] == "2024-03-01T00:00:00"
            assert "project" not in request.url.params
            return ok([WIRE_ENTRY, {"description": "no id or start"}])

        filters = EntryFilters(user_id="u1", start_date=datetime(2024, 3, 1))
        entries = asyncio.run(make_service(handler).list_time_entries(filters))

        assert [e.id for e in entries] == ["65f1"]

    def test_delete(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "DELETE"
            return httpx.Response(204)

        assert asyncio.run(make_service(handler).delete_time_entry("65f1")) is None

    def test_404_is_not_found(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"success": False, "message": "Time entry not found"})

        with pytest.raises(NotFoundError, match="not found") as exc_info:
            asyncio.run(make_service(handler).stop_timer("gone"))
        assert exc_info.value.status_code == 404

    def test_4xx_is_rejection_with_details(self) -> None:
        body = {"success": False, "message": "Validation failed", "errors": ["project"]}

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(422, json=body)

        with pytest.raises(RemoteRejectionError) as exc_info:
            asyncio.run(make_service(handler).create_time_entry({}))
        assert exc_info.value.status_code == 422
        assert exc_info.value.details == body

    def test_5xx_is_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="maintenance")

        with pytest.raises(TransportError, match="503"):
            asyncio.run(make_service(handler).list_time_entries())

    def test_connection_failure_is_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TransportError, match="connection refused"):
            asyncio.run(make_service(handler).list_time_entries())

    def test_timeout_is_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(TransportError, match="timed out"):
            asyncio.run(make_service(handler).list_time_entries())

    def test_unenveloped_body_is_accepted(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=WIRE_ENTRY)

        entry = asyncio.run(make_service(handler).update_time_entry("65f1", {"description": "x"}))

        assert entry.id == "65f1"

    def test_token_header(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["Authorization"] == "Bearer secret"
            return ok([])

        client = HttpClient("http://tt.test/api", token="secret", transport=httpx.MockTransport(handler))
        assert asyncio.run(HttpTimeEntryService(client).list_time_entries()) == []


class TestHttpShiftDirectory:
    """Test the team endpoint."""

    def test_get_user(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/team/u1"
            return ok({"_id": "u1", "name": "Alice", "shift": "Weekly", "hourlyRate": 45})

        client = HttpClient("http://tt.test/api", transport=httpx.MockTransport(handler))
        user = asyncio.run(HttpShiftDirectory(client).get_user("u1"))

        assert user.name == "Alice"
        assert user.shift == "Weekly"
        assert user.hourly_rate == Decimal("45")


class TestOfflineService:
    """Test the disabled service used with --offline."""

    def test_every_call_is_a_transport_error(self) -> None:
        service = OfflineTimeEntryService()

        with pytest.raises(TransportError, match="Offline"):
            asyncio.run(service.stop_timer("x"))
        with pytest.raises(TransportError):
            asyncio.run(service.list_time_entries())
