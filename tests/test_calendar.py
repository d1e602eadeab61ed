"""Google Calendar tool against a mocked Calendar API."""

import json
from datetime import datetime, time, timedelta, timezone
from unittest.mock import AsyncMock

import httpx
import pytest

from klarity.services.slots import DAY_KEYS, AvailabilityPolicy
from klarity.tools.calendar import CALENDAR_API_URL, GoogleCalendarTool

SESSION_CAL = "sessions@example.com"
PERSONAL_CAL = "me@example.com"


def _policy(buffer_time_minutes: int = 0) -> AvailabilityPolicy:
    return AvailabilityPolicy(
        practitioner_timezone="UTC",
        weekly_availability={key: [{"start": "10:00", "end": "11:00"}] for key in DAY_KEYS},
        min_notice_hours=0,
        buffer_time_minutes=buffer_time_minutes,
    )


def _tool(handler, policy: AvailabilityPolicy | None = None, session_calendar_id: str = SESSION_CAL) -> GoogleCalendarTool:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=CALENDAR_API_URL)
    return GoogleCalendarTool(
        session_calendar_id=session_calendar_id,
        personal_calendar_id=PERSONAL_CAL,
        http_client=client,
        token_provider=AsyncMock(return_value="test-token"),
        rule_loader=AsyncMock(return_value=policy or _policy()),
    )


class Recorder:
    """MockTransport handler that records requests and replays one response."""

    def __init__(self, status_code: int = 200, payload: dict | None = None):
        self.status_code = status_code
        self.payload = payload
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.payload is None:
            return httpx.Response(self.status_code)
        return httpx.Response(self.status_code, json=self.payload)

    @property
    def body(self) -> dict:
        return json.loads(self.requests[-1].content)


# --- create_calendar_event ---


class TestCreateCalendarEvent:
    async def test_zero_buffer_trims_end_by_one_minute(self):
        recorder = Recorder(payload={"id": "evt-1", "htmlLink": "https://calendar.example.com/evt-1"})
        tool = _tool(recorder, _policy(buffer_time_minutes=0))

        result = await tool.create_calendar_event(
            start="2025-01-01T10:00:00Z",
            end="2025-01-01T11:00:00Z",
            summary="Kambo Session (private) with Ana",
            description="Kambo Klarity Booking",
        )

        assert result.success
        assert result.event_id == "evt-1"
        assert result.event_link == "https://calendar.example.com/evt-1"
        assert recorder.body["start"]["dateTime"] == "2025-01-01T10:00:00Z"
        assert recorder.body["end"]["dateTime"] == "2025-01-01T10:59:00Z"
        assert recorder.body["summary"] == "Kambo Session (private) with Ana"

        request = recorder.requests[-1]
        assert request.method == "POST"
        assert request.url.path.endswith("/events")
        assert request.headers["Authorization"] == "Bearer test-token"

    async def test_positive_buffer_keeps_end(self):
        recorder = Recorder(payload={"id": "evt-1"})
        tool = _tool(recorder, _policy(buffer_time_minutes=30))

        await tool.create_calendar_event(start="2025-01-01T10:00:00Z", end="2025-01-01T11:00:00Z", summary="s")

        assert recorder.body["end"]["dateTime"] == "2025-01-01T11:00:00Z"

    async def test_api_error_reported(self):
        tool = _tool(Recorder(status_code=403, payload={"error": {"message": "forbidden"}}))

        result = await tool.create_calendar_event(start="2025-01-01T10:00:00Z", end="2025-01-01T11:00:00Z", summary="s")

        assert not result.success
        assert "403" in result.error

    async def test_missing_session_calendar(self):
        recorder = Recorder(payload={"id": "evt-1"})
        tool = _tool(recorder, session_calendar_id="")

        result = await tool.create_calendar_event(start="2025-01-01T10:00:00Z", end="2025-01-01T11:00:00Z", summary="s")

        assert result.error == "Session Calendar ID not configured."
        assert recorder.requests == []


# --- delete_calendar_event ---


class TestDeleteCalendarEvent:
    async def test_deleted(self):
        recorder = Recorder(status_code=204)
        tool = _tool(recorder)

        result = await tool.delete_calendar_event("evt-1")

        assert result.success
        assert result.warning is None
        assert recorder.requests[-1].method == "DELETE"
        assert recorder.requests[-1].url.path.endswith("/events/evt-1")

    @pytest.mark.parametrize("status_code", [404, 410])
    async def test_already_gone_is_success(self, status_code):
        tool = _tool(Recorder(status_code=status_code, payload={"error": "gone"}))

        result = await tool.delete_calendar_event("evt-1")

        assert result.success
        assert result.warning == "Event not found or already gone."

    async def test_server_error(self):
        tool = _tool(Recorder(status_code=500, payload={"error": "backend"}))

        result = await tool.delete_calendar_event("evt-1")

        assert not result.success
        assert "500" in result.error

    @pytest.mark.parametrize("event_id", [None, ""])
    async def test_missing_event_id(self, event_id):
        recorder = Recorder(status_code=204)
        tool = _tool(recorder)

        result = await tool.delete_calendar_event(event_id)

        assert result.error == "Missing eventId."
        assert recorder.requests == []

    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        result = await _tool(handler).delete_calendar_event("evt-1")

        assert not result.success
        assert "connection refused" in result.error


# --- find_free_slots ---


def _future_day() -> tuple[datetime, datetime]:
    day = (datetime.now(timezone.utc) + timedelta(days=3)).date()
    return (
        datetime.combine(day, time(0, 0), tzinfo=timezone.utc),
        datetime.combine(day, time(23, 0), tzinfo=timezone.utc),
    )


class TestFindFreeSlots:
    async def test_open_day(self):
        start, end = _future_day()
        recorder = Recorder(payload={"calendars": {SESSION_CAL: {"busy": []}, PERSONAL_CAL: {"busy": []}}})

        result = await _tool(recorder).find_free_slots(start_date=start, end_date=end, duration_minutes=60)

        assert result.success
        assert result.data == [{
            "start": f"{start.date().isoformat()}T10:00:00Z",
            "end": f"{start.date().isoformat()}T11:00:00Z",
        }]
        assert recorder.body["items"] == [{"id": SESSION_CAL}, {"id": PERSONAL_CAL}]

    async def test_busy_on_personal_calendar_blocks_slot(self):
        start, end = _future_day()
        day = start.date().isoformat()
        recorder = Recorder(payload={"calendars": {
            SESSION_CAL: {"busy": []},
            PERSONAL_CAL: {"busy": [{"start": f"{day}T10:30:00Z", "end": f"{day}T10:45:00Z"}]},
        }})

        result = await _tool(recorder).find_free_slots(start_date=start, end_date=end, duration_minutes=60)

        assert result.success
        assert result.data == []

    async def test_api_failure(self):
        start, end = _future_day()

        result = await _tool(Recorder(status_code=500, payload={})).find_free_slots(
            start_date=start, end_date=end, duration_minutes=60
        )

        assert not result.success
        assert result.error.startswith("Failed to fetch calendar availability:")


async def test_close_closes_client():
    tool = _tool(Recorder(status_code=204))

    await tool.close()

    assert tool._client.is_closed
