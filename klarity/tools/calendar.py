"""Google Calendar tool: slot discovery and session event create/delete.

Talks to the Calendar REST API v3 over httpx with a service-account bearer
token. Expected failures are returned as ToolResult instead of raised.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, time, timedelta, timezone
from typing import Any

import httpx
from dateutil.parser import isoparse

from klarity.config import settings
from klarity.services.slots import AvailabilityPolicy, BusyPeriod, generate_slots
from klarity.tools.base import ToolResult
from klarity.utils.metrics import errors_total

logger = logging.getLogger(__name__)

CALENDAR_API_URL = "https://www.googleapis.com/calendar/v3"
CALENDAR_SCOPES = ["https://www.googleapis.com/auth/calendar"]
REQUEST_TIMEOUT_SECONDS = 15.0

TokenProvider = Callable[[], Awaitable[str]]
RuleLoader = Callable[[], Awaitable[AvailabilityPolicy]]


class CalendarAPIError(Exception):
    """Raised when a Calendar API call returns an error status."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class ServiceAccountTokenProvider:
    """Hands out a fresh access token for the configured service-account key file."""

    def __init__(self, key_file: str, scopes: list[str] | None = None) -> None:
        self.key_file = key_file
        self.scopes = scopes or CALENDAR_SCOPES
        self._credentials = None

    def _refresh(self) -> str:
        from google.auth.transport.requests import Request
        from google.oauth2 import service_account

        if self._credentials is None:
            self._credentials = service_account.Credentials.from_service_account_file(
                self.key_file, scopes=self.scopes
            )
        if not self._credentials.valid:
            self._credentials.refresh(Request())
        return self._credentials.token

    async def __call__(self) -> str:
        # google-auth refreshes synchronously
        return await asyncio.to_thread(self._refresh)


async def _load_default_policy() -> AvailabilityPolicy:
    from klarity.database import async_session_factory
    from klarity.services.availability import load_availability_policy

    return await load_availability_policy(async_session_factory)


def _as_datetime(value: Any) -> datetime:
    parsed = value if isinstance(value, datetime) else isoparse(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _to_utc_iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class GoogleCalendarTool:
    def __init__(
        self,
        session_calendar_id: str | None = None,
        personal_calendar_id: str | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        token_provider: TokenProvider | None = None,
        rule_loader: RuleLoader | None = None,
    ) -> None:
        self.session_calendar_id = session_calendar_id if session_calendar_id is not None else settings.google_calendar_id
        self.personal_calendar_id = (
            personal_calendar_id if personal_calendar_id is not None else settings.google_personal_calendar_id
        )
        self._client = http_client or httpx.AsyncClient(base_url=CALENDAR_API_URL, timeout=REQUEST_TIMEOUT_SECONDS)
        self._token_provider = token_provider or ServiceAccountTokenProvider(settings.google_application_credentials)
        self._rule_loader = rule_loader or _load_default_policy

        if not self.session_calendar_id:
            logger.error("[calendar] session calendar id is not set, event operations will fail")

    # ── Internal helpers ─────────────────────────────────────────────

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        token = await self._token_provider()
        response = await self._client.request(
            method,
            path,
            params=params,
            json=json_body,
            headers={"Authorization": f"Bearer {token}"},
        )
        if response.status_code >= 400:
            raise CalendarAPIError(
                f"Calendar API error {response.status_code}: {response.text}",
                status_code=response.status_code,
            )
        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    async def fetch_busy_times(self, time_min: datetime, time_max: datetime) -> list[BusyPeriod]:
        """Query FreeBusy once for the session and personal calendars."""
        items = [{"id": cid} for cid in (self.session_calendar_id, self.personal_calendar_id) if cid]
        if not items:
            logger.warning("[calendar] no calendars configured for busy time check")
            return []

        data = await self._request(
            "POST",
            "/freeBusy",
            json_body={"timeMin": _to_utc_iso(time_min), "timeMax": _to_utc_iso(time_max), "items": items},
        )
        busy: list[BusyPeriod] = []
        for calendar_id, calendar_data in (data.get("calendars") or {}).items():
            periods = calendar_data.get("busy") or []
            logger.debug("[calendar] %s: %d busy periods", calendar_id, len(periods))
            busy.extend(BusyPeriod.from_api(period, calendar_id) for period in periods)
        logger.info("[calendar] %d busy periods between %s and %s", len(busy), time_min, time_max)
        return busy

    # ── Public API methods ───────────────────────────────────────────

    async def find_free_slots(
        self,
        start_date: datetime,
        end_date: datetime,
        duration_minutes: int,
    ) -> ToolResult:
        """Open slots of ``duration_minutes`` between ``start_date`` and ``end_date``."""
        logger.info("[calendar] find_free_slots %s..%s duration=%s", start_date, end_date, duration_minutes)
        try:
            policy = await self._rule_loader()
            tz = policy.tz
            first_day = _as_datetime(start_date).astimezone(tz).date()
            last_day = _as_datetime(end_date).astimezone(tz).date()
            time_min = datetime.combine(first_day, time.min, tzinfo=tz)
            time_max = datetime.combine(last_day + timedelta(days=1), time.min, tzinfo=tz)

            busy = await self.fetch_busy_times(time_min, time_max)
            slots = generate_slots(
                policy,
                busy,
                start_date=time_min,
                end_date=time_max - timedelta(seconds=1),
                duration_minutes=duration_minutes,
                session_calendar_id=self.session_calendar_id,
            )
        except (CalendarAPIError, httpx.HTTPError) as exc:
            logger.error("[calendar] failed to fetch busy times: %s", exc)
            errors_total.labels(type="calendar").inc()
            return ToolResult.fail(f"Failed to fetch calendar availability: {exc}")

        return ToolResult.ok(data=slots)

    async def create_calendar_event(
        self,
        start: Any,
        end: Any,
        summary: str,
        description: str | None = None,
    ) -> ToolResult:
        if not self.session_calendar_id:
            logger.error("[calendar] session calendar id not configured, cannot create event")
            return ToolResult.fail("Session Calendar ID not configured.")

        try:
            policy = await self._rule_loader()
            event_start = _as_datetime(start)
            event_end = _as_datetime(end)
            # With no buffer FreeBusy merges back-to-back events into one busy block
            if policy.buffer_time_minutes == 0:
                trimmed = event_end - timedelta(minutes=1)
                logger.info("[calendar] zero buffer, event end trimmed %s -> %s", event_end, trimmed)
                event_end = trimmed

            data = await self._request(
                "POST",
                f"/calendars/{self.session_calendar_id}/events",
                json_body={
                    "summary": summary,
                    "description": description,
                    "start": {"dateTime": _to_utc_iso(event_start), "timeZone": "UTC"},
                    "end": {"dateTime": _to_utc_iso(event_end), "timeZone": "UTC"},
                },
            )
        except (CalendarAPIError, httpx.HTTPError) as exc:
            logger.error("[calendar] failed to create event: %s", exc)
            errors_total.labels(type="calendar").inc()
            return ToolResult.fail(str(exc) or "Failed to create GCal event")

        logger.info("[calendar] event created id=%s link=%s", data.get("id"), data.get("htmlLink"))
        return ToolResult.ok(event_id=data.get("id"), event_link=data.get("htmlLink"))

    async def delete_calendar_event(self, event_id: str | None) -> ToolResult:
        if not self.session_calendar_id:
            logger.error("[calendar] session calendar id not configured, cannot delete event")
            return ToolResult.fail("Session Calendar ID not configured.")
        if not event_id:
            logger.error("[calendar] event id is required to delete a calendar event")
            return ToolResult.fail("Missing eventId.")

        try:
            await self._request("DELETE", f"/calendars/{self.session_calendar_id}/events/{event_id}")
        except CalendarAPIError as exc:
            if exc.status_code in (404, 410):
                logger.warning("[calendar] event %s not found or already gone", event_id)
                return ToolResult.ok(warning="Event not found or already gone.")
            logger.error("[calendar] failed to delete event %s: %s", event_id, exc)
            errors_total.labels(type="calendar").inc()
            return ToolResult.fail(str(exc) or "Failed to delete GCal event")
        except httpx.HTTPError as exc:
            logger.error("[calendar] failed to delete event %s: %s", event_id, exc)
            errors_total.labels(type="calendar").inc()
            return ToolResult.fail(str(exc) or "Failed to delete GCal event")

        logger.info("[calendar] event %s deleted", event_id)
        return ToolResult.ok()

    async def close(self) -> None:
        await self._client.aclose()
