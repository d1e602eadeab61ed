"""Booking conversation handler: runs free-form messages through the booking graph."""

import logging
import uuid
from html import escape

from aiogram import F, Router
from aiogram.types import Message
from sqlalchemy.ext.asyncio import AsyncSession

from klarity.config import settings
from klarity.graph.edges import Intent, UnresolvedIntentError, resolve_intent
from klarity.graph.graph import get_orchestrator
from klarity.graph.state import BookingState
from klarity.models.user import User
from klarity.services import booking_service
from klarity.services.rate_limit import check_agent_rate_limit
from klarity.services.user_service import display_name
from klarity.utils.date_utils import format_slot

logger = logging.getLogger(__name__)

router = Router(name="booking")

MAX_SLOTS_SHOWN = 10

UNAVAILABLE_TEXT = "Booking is temporarily unavailable. Please try again later."
RATE_LIMIT_TEXT = "You've sent a lot of requests. Please wait a minute before trying again."
NO_SLOTS_TEXT = "Sorry, I couldn't find any open times for those dates. Would you like to try different dates?"
CONFIRMED_TEXT = (
    "Your {session_type} session on {slot} is reserved. "
    "Please complete the waiver with the button above to finish your booking."
)
RESET_TEXT = "Okay, I've cancelled this booking request. Message me whenever you'd like to start again."
CANCELLED_TEXT = "Your session has been cancelled and removed from the calendar."
FALLBACK_TEXT = "Sorry, I didn't quite catch that. Could you rephrase?"


async def hydrate_state(session: AsyncSession, user: User, text: str) -> BookingState:
    """Build the turn's BookingState from the user's stored row."""
    if not user.active_session_id:
        user.active_session_id = uuid.uuid4().hex
        await session.flush()

    return BookingState(
        telegram_id=str(user.id),
        session_id=user.active_session_id,
        user_input=text,
        chat_history=list(user.conversation_history or []),
        session_type=user.session_type,
        google_event_id=await booking_service.get_upcoming_event_id(session, user.id),
        user_profile={
            "name": display_name(user),
            "username": user.username,
            "email": user.email,
            "phone_number": user.phone_number,
        },
        past_session_dates=await booking_service.get_past_session_dates(session, user.id),
    )


def render_reply(state: BookingState) -> str | None:
    """Text to answer the user with after a turn, or None when nothing should be sent.

    Failed turns return None: the error node already notified the user.
    """
    if state.error:
        return None

    try:
        intent = resolve_intent(state.agent_outcome)
    except UnresolvedIntentError:
        return FALLBACK_TEXT

    output = (state.agent_outcome or {}).get("output")
    tz = settings.practitioner_timezone

    if intent is Intent.RESPOND:
        return escape(output)

    if intent is Intent.FIND_SLOTS:
        slots = state.available_slots or []
        if not slots:
            return NO_SLOTS_TEXT
        lines = [f"• {format_slot(slot['start'], tz)}" for slot in slots[:MAX_SLOTS_SHOWN]]
        header = escape(output) if output else "Here are the next available times:"
        more = f"\n…and {len(slots) - MAX_SLOTS_SHOWN} more." if len(slots) > MAX_SLOTS_SHOWN else ""
        return header + "\n\n" + "\n".join(lines) + more + "\n\nWhich one works for you?"

    if intent is Intent.CONFIRM:
        slot = state.confirmed_slot or {}
        return CONFIRMED_TEXT.format(
            session_type=escape(state.session_type or "Kambo"),
            slot=format_slot(slot["start"], tz) if slot.get("start") else "the selected time",
        )

    if intent is Intent.CANCEL:
        return RESET_TEXT

    if intent is Intent.CANCEL_BOOKING:
        return CANCELLED_TEXT

    return FALLBACK_TEXT


@router.message(F.text)
async def handle_text(message: Message, user: User, session: AsyncSession) -> None:
    """Handle text messages: one booking graph turn per message."""
    if not message.text or message.text.startswith("/"):
        return

    orchestrator = get_orchestrator()
    if orchestrator is None:
        logger.error("[booking] user=%s orchestrator not configured", user.id)
        await message.answer(UNAVAILABLE_TEXT)
        return

    if not await check_agent_rate_limit(user.id):
        await message.answer(RATE_LIMIT_TEXT)
        return

    state = await hydrate_state(session, user, message.text)
    # The graph writes the user row through its own sessions
    await session.commit()

    final = await orchestrator.run_turn(state)
    reply = render_reply(final)

    await session.refresh(user)
    if reply is not None:
        await message.answer(reply)
        await booking_service.append_conversation(
            session,
            user,
            [{"role": "user", "content": message.text}, {"role": "assistant", "content": reply}],
            max_messages=settings.chat_history_max_messages,
        )
    logger.info("[booking] user=%s replied=%s error=%r", user.id, reply is not None, final.error)
