"""Bookable slot generation from availability rules and calendar busy time."""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Any
from zoneinfo import ZoneInfo

from dateutil.parser import isoparse

logger = logging.getLogger(__name__)

DAY_KEYS = ("MON", "TUE", "WED", "THU", "FRI", "SAT", "SUN")  # date.weekday() order


@dataclass
class AvailabilityPolicy:
    """The practitioner's booking rules, as stored in ``availability_rules``."""

    practitioner_timezone: str
    weekly_availability: dict[str, list[dict[str, str]]] = field(default_factory=dict)
    max_advance_days: int = 60
    min_notice_hours: int = 24
    buffer_time_minutes: int = 30
    max_bookings_per_day: int = 4
    slot_increment_minutes: int = 15

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.practitioner_timezone)


@dataclass
class BusyPeriod:
    start: datetime
    end: datetime
    calendar_id: str | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any], calendar_id: str | None = None) -> "BusyPeriod":
        return cls(start=isoparse(data["start"]), end=isoparse(data["end"]), calendar_id=calendar_id)


def _overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    return start_a < end_b and start_b < end_a


def _parse_hhmm(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def _to_utc_iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def count_sessions_for_day(
    busy: list[BusyPeriod], day: date, tz: ZoneInfo, session_calendar_id: str | None
) -> int:
    """Count session-calendar busy periods that touch ``day`` in the practitioner's zone."""
    day_start = datetime.combine(day, time.min, tzinfo=tz)
    day_end = day_start + timedelta(days=1)
    return sum(
        1
        for period in busy
        if period.calendar_id == session_calendar_id and _overlaps(period.start, period.end, day_start, day_end)
    )


def generate_slots(
    policy: AvailabilityPolicy,
    busy: list[BusyPeriod],
    start_date: datetime,
    end_date: datetime,
    duration_minutes: int,
    now: datetime | None = None,
    session_calendar_id: str | None = None,
) -> list[dict[str, str]]:
    """Return ordered ``[{start, end}]`` UTC ISO slots that fit the rules and avoid busy time.

    Days are walked in the practitioner's timezone from ``start_date`` to
    ``end_date`` inclusive. A day is skipped when it is before the minimum
    notice, past the advance-booking horizon, has no weekly blocks, or already
    holds ``max_bookings_per_day`` sessions.
    """
    tz = policy.tz
    now = (now or datetime.now(timezone.utc)).astimezone(tz)
    earliest = now + timedelta(hours=policy.min_notice_hours)
    last_bookable_day = now.date() + timedelta(days=policy.max_advance_days)

    duration = timedelta(minutes=duration_minutes)
    step = timedelta(minutes=policy.slot_increment_minutes or 15)
    buffer = timedelta(minutes=policy.buffer_time_minutes or 0)

    slots: list[dict[str, str]] = []
    day = start_date.astimezone(tz).date()
    last_day = end_date.astimezone(tz).date()

    while day <= last_day:
        if day < earliest.date():
            logger.debug("[slots] %s before earliest bookable day, skipping", day)
            day += timedelta(days=1)
            continue
        if day > last_bookable_day:
            logger.debug("[slots] %s past max advance days, stopping", day)
            break

        blocks = policy.weekly_availability.get(DAY_KEYS[day.weekday()]) or []
        if not blocks:
            day += timedelta(days=1)
            continue

        booked = count_sessions_for_day(busy, day, tz, session_calendar_id)
        if booked >= policy.max_bookings_per_day:
            logger.debug("[slots] %s already has %d sessions, skipping", day, booked)
            day += timedelta(days=1)
            continue

        for block in blocks:
            block_start = datetime.combine(day, _parse_hhmm(block["start"]), tzinfo=tz)
            block_end = datetime.combine(day, _parse_hhmm(block["end"]), tzinfo=tz)

            candidate = block_start
            while candidate < block_end:
                if candidate < earliest:
                    candidate += step
                    continue
                candidate_end = candidate + duration
                if candidate_end > block_end:
                    break
                conflict = any(
                    _overlaps(candidate, candidate_end, period.start - buffer, period.end + buffer)
                    for period in busy
                )
                if not conflict:
                    slots.append({"start": _to_utc_iso(candidate), "end": _to_utc_iso(candidate_end)})
                candidate += step

        day += timedelta(days=1)

    logger.info("[slots] generated %d slots between %s and %s", len(slots), start_date, end_date)
    return slots
