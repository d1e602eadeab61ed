"""Booking service: booking rows, their status transitions and conversation history."""

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from klarity.models.booking import Booking, BookingStatus
from klarity.models.user import User

logger = logging.getLogger(__name__)


async def create_pending_booking(
    session: AsyncSession,
    user_id: int,
    start: datetime,
    end: datetime | None,
    session_type: str | None,
) -> Booking:
    booking = Booking(
        user_id=user_id,
        session_type=session_type,
        appointment_start=start,
        appointment_end=end,
        status=BookingStatus.PENDING_CALENDAR.value,
    )
    session.add(booking)
    await session.flush()
    return booking


async def get_latest_pending_booking(session: AsyncSession, user_id: int) -> Booking | None:
    result = await session.execute(
        select(Booking)
        .where(Booking.user_id == user_id, Booking.status == BookingStatus.PENDING_CALENDAR.value)
        .order_by(Booking.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_booking_by_event_id(session: AsyncSession, google_event_id: str) -> Booking | None:
    result = await session.execute(
        select(Booking).where(Booking.google_event_id == google_event_id).limit(1)
    )
    return result.scalar_one_or_none()


async def get_past_session_dates(session: AsyncSession, user_id: int, now: datetime | None = None) -> list[datetime]:
    """Start times of the user's confirmed sessions that already happened, newest first."""
    now = now or datetime.now(timezone.utc)
    result = await session.execute(
        select(Booking.appointment_start)
        .where(
            Booking.user_id == user_id,
            Booking.status == BookingStatus.CONFIRMED.value,
            Booking.appointment_start < now,
        )
        .order_by(Booking.appointment_start.desc())
    )
    return list(result.scalars().all())


async def get_upcoming_event_id(session: AsyncSession, user_id: int, now: datetime | None = None) -> str | None:
    """Calendar event id of the user's next confirmed session, if any."""
    now = now or datetime.now(timezone.utc)
    result = await session.execute(
        select(Booking.google_event_id)
        .where(
            Booking.user_id == user_id,
            Booking.status == BookingStatus.CONFIRMED.value,
            Booking.appointment_start >= now,
            Booking.google_event_id.is_not(None),
        )
        .order_by(Booking.appointment_start)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def expire_pending_bookings(session: AsyncSession, ttl_minutes: int) -> int:
    """Mark PENDING_CALENDAR bookings older than the TTL as FAILED. Returns the count."""
    cutoff = datetime.now(timezone.utc) - timedelta(minutes=ttl_minutes)
    result = await session.execute(
        update(Booking)
        .where(Booking.status == BookingStatus.PENDING_CALENDAR.value, Booking.created_at < cutoff)
        .values(status=BookingStatus.FAILED.value)
    )
    return result.rowcount or 0


async def append_conversation(
    session: AsyncSession,
    user: User,
    messages: list[dict],
    max_messages: int,
) -> list[dict]:
    """Append messages to the stored history, keeping only the newest ``max_messages``."""
    history = list(user.conversation_history or [])
    history.extend(messages)
    history = history[-max_messages:] if max_messages > 0 else []
    user.conversation_history = history
    await session.flush()
    return history
