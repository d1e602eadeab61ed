"""State manager: durable user and booking state for the booking graph."""

import logging
from typing import Any

from pydantic import ValidationError
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from klarity.models.booking import BookingStatus
from klarity.models.user import User
from klarity.schemas.booking import StoreBookingData, UserStateUpdate
from klarity.services import booking_service
from klarity.services.user_service import display_name, get_user
from klarity.tools.base import ToolResult
from klarity.utils.metrics import bookings_total

logger = logging.getLogger(__name__)


def _parse_telegram_id(telegram_id: Any) -> int | None:
    try:
        return int(str(telegram_id))
    except (TypeError, ValueError):
        return None


class StateManager:
    """Reads and writes user/booking rows. Expected failures come back as ToolResult."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def store_booking_data(
        self,
        telegram_id: str,
        booking_slot: Any,
        session_type: str | None,
        booking_end: Any = None,
    ) -> ToolResult:
        """Record a PENDING_CALENDAR booking and move the user into the BOOKING state."""
        if not telegram_id:
            return ToolResult.fail("Invalid input: telegramId is required.")
        try:
            data = StoreBookingData(
                telegram_id=telegram_id,
                booking_slot=booking_slot,
                booking_end=booking_end,
                session_type=session_type,
            )
        except ValidationError as exc:
            logger.error("[state] user=%s invalid booking data: %s", telegram_id, exc)
            return ToolResult.fail("Invalid input: booking data is invalid.")

        try:
            async with self.session_factory() as session:
                user = await get_user(session, data.telegram_id)
                if user is None:
                    return ToolResult.fail("User not found for booking.")
                booking = await booking_service.create_pending_booking(
                    session,
                    user_id=user.id,
                    start=data.booking_slot,
                    end=data.booking_end,
                    session_type=data.session_type,
                )
                user.state = "BOOKING"
                user.session_type = data.session_type
                user.booking_slot = data.booking_slot
                await session.commit()
        except SQLAlchemyError:
            logger.exception("[state] user=%s database error storing booking", telegram_id)
            return ToolResult.fail("Database error while storing booking data.")

        bookings_total.labels(status="pending_calendar").inc()
        logger.info("[state] user=%s pending booking %s stored", telegram_id, booking.id)
        return ToolResult.ok(data={"booking_id": str(booking.id)})

    async def reset_user_state(self, telegram_id: str) -> ToolResult:
        if not telegram_id:
            return ToolResult.fail("Invalid input: telegramId is required.")
        user_id = _parse_telegram_id(telegram_id)
        if user_id is None:
            return ToolResult.fail("Invalid input: telegramId format is invalid.")

        try:
            async with self.session_factory() as session:
                await session.execute(
                    update(User)
                    .where(User.id == user_id)
                    .values(
                        state="NONE",
                        session_type=None,
                        conversation_history=None,
                        booking_slot=None,
                        edit_msg_id=None,
                        active_session_id=None,
                    )
                )
                await session.commit()
        except SQLAlchemyError:
            logger.exception("[state] user=%s database error during state reset", telegram_id)
            return ToolResult.fail("Database error during state reset.")

        logger.info("[state] user=%s state reset", telegram_id)
        return ToolResult.ok()

    async def update_user_state(self, telegram_id: str, updates: dict[str, Any]) -> ToolResult:
        user_id = _parse_telegram_id(telegram_id)
        if user_id is None:
            return ToolResult.fail("Invalid input: telegramId format is invalid.")
        if not updates:
            return ToolResult.fail("Invalid dataToUpdate object")
        try:
            values = UserStateUpdate(**updates).model_dump(exclude_unset=True)
        except (ValidationError, TypeError) as exc:
            logger.error("[state] user=%s invalid state update: %s", telegram_id, exc)
            return ToolResult.fail("Invalid dataToUpdate object")

        unknown = set(updates) - set(UserStateUpdate.model_fields)
        if unknown:
            return ToolResult.fail(f"Unknown user fields: {', '.join(sorted(unknown))}")

        try:
            async with self.session_factory() as session:
                user = await get_user(session, user_id)
                if user is None:
                    return ToolResult.fail("User not found for update.")
                for field, value in values.items():
                    setattr(user, field, value)
                await session.commit()
        except SQLAlchemyError:
            logger.exception("[state] user=%s database error during state update", telegram_id)
            return ToolResult.fail("Database error during state update.")

        return ToolResult.ok(data=values)

    async def get_user_profile_data(self, telegram_id: str) -> ToolResult:
        user_id = _parse_telegram_id(telegram_id)
        if user_id is None:
            return ToolResult.fail("Invalid input: telegramId format is invalid.")
        try:
            async with self.session_factory() as session:
                user = await get_user(session, user_id)
        except SQLAlchemyError:
            logger.exception("[state] user=%s database error loading profile", telegram_id)
            return ToolResult.fail("Database error while loading user profile.")
        if user is None:
            return ToolResult.fail("User profile not found.")
        return ToolResult.ok(data={
            "name": display_name(user),
            "username": user.username,
            "email": user.email,
            "phone_number": user.phone_number,
            "state": user.state,
            "session_type": user.session_type,
            "active_session_id": user.active_session_id,
        })

    async def get_user_past_sessions(self, telegram_id: str) -> ToolResult:
        user_id = _parse_telegram_id(telegram_id)
        if user_id is None:
            return ToolResult.fail("Invalid input: telegramId format is invalid.")
        try:
            async with self.session_factory() as session:
                dates = await booking_service.get_past_session_dates(session, user_id)
        except SQLAlchemyError:
            logger.exception("[state] user=%s database error loading past sessions", telegram_id)
            return ToolResult.fail("Database error while loading past sessions.")
        return ToolResult.ok(data=dates)

    async def mark_booking_confirmed(self, telegram_id: str, google_event_id: str) -> ToolResult:
        """Attach the calendar event to the user's latest pending booking."""
        user_id = _parse_telegram_id(telegram_id)
        if user_id is None:
            return ToolResult.fail("Invalid input: telegramId format is invalid.")
        try:
            async with self.session_factory() as session:
                booking = await booking_service.get_latest_pending_booking(session, user_id)
                if booking is None:
                    return ToolResult.fail("No pending booking to confirm.")
                booking.status = BookingStatus.CONFIRMED.value
                booking.google_event_id = google_event_id
                await session.commit()
        except SQLAlchemyError:
            logger.exception("[state] user=%s database error confirming booking", telegram_id)
            return ToolResult.fail("Database error while confirming booking.")

        logger.info("[state] user=%s booking %s confirmed event=%s", telegram_id, booking.id, google_event_id)
        return ToolResult.ok(event_id=google_event_id)

    async def mark_booking_cancelled(self, google_event_id: str) -> ToolResult:
        if not google_event_id:
            return ToolResult.fail("Missing eventId.")
        try:
            async with self.session_factory() as session:
                booking = await booking_service.get_booking_by_event_id(session, google_event_id)
                if booking is None:
                    return ToolResult.fail("No booking found for calendar event.")
                booking.status = BookingStatus.CANCELLED.value
                await session.commit()
        except SQLAlchemyError:
            logger.exception("[state] database error cancelling booking for event=%s", google_event_id)
            return ToolResult.fail("Database error while cancelling booking.")

        logger.info("[state] booking %s cancelled event=%s", booking.id, google_event_id)
        return ToolResult.ok(event_id=google_event_id)
