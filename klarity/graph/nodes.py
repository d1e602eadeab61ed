"""Processing steps of the booking graph.

Each node takes the current BookingState and returns a partial update. Nodes
never raise: collaborator failures, exceptions and timeouts all come back as
an ``error`` string so routing only has to inspect state.
"""

import asyncio
import logging
from collections.abc import Awaitable
from datetime import datetime, timedelta, timezone
from typing import Any, TypeVar

from dateutil.parser import isoparse

from klarity.graph.edges import Intent, UnresolvedIntentError, resolve_intent, tool_args
from klarity.graph.state import BookingState, TimeSlot
from klarity.utils.metrics import node_errors_total

T = TypeVar("T")

ERROR_DETAIL_MAX_LENGTH = 100


class NodeConfigurationError(RuntimeError):
    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"Booking nodes are missing collaborators: {', '.join(missing)}")


def describe_error(error: object) -> str:
    """Turn whatever ended up in ``state.error`` into display text."""
    if error is None or error == "":
        return "Unknown error"
    if isinstance(error, BaseException):
        return str(error) or type(error).__name__
    message = getattr(error, "message", None)
    if isinstance(message, str) and message:
        return message
    return str(error)


def _exception_message(exc: BaseException, fallback: str) -> str:
    if isinstance(exc, asyncio.TimeoutError):
        return fallback
    return str(exc) or fallback


class BookingNodes:
    """Graph nodes bound to their collaborators.

    Args:
        booking_agent: turns free text into a structured decision.
        state_manager: durable booking/user state.
        google_calendar: slot discovery and event create/delete.
        telegram_notifier: outbound chat messages.
        logger: defaults to this module's logger.
        settings: supplies the duration table, search window and timeouts.
    """

    def __init__(
        self,
        *,
        booking_agent: Any,
        state_manager: Any,
        google_calendar: Any,
        telegram_notifier: Any,
        settings: Any,
        logger: logging.Logger | None = None,
    ) -> None:
        collaborators = {
            "booking_agent": booking_agent,
            "state_manager": state_manager,
            "google_calendar": google_calendar,
            "telegram_notifier": telegram_notifier,
            "settings": settings,
        }
        missing = [name for name, value in collaborators.items() if value is None]
        if missing:
            raise NodeConfigurationError(missing)

        self.booking_agent = booking_agent
        self.state_manager = state_manager
        self.google_calendar = google_calendar
        self.telegram_notifier = telegram_notifier
        self.settings = settings
        self.logger = logger or logging.getLogger(__name__)
        self.logger.info("[nodes] initialized")

    async def _call(self, awaitable: Awaitable[T], timeout: float | None = None) -> T:
        return await asyncio.wait_for(awaitable, timeout or self.settings.tool_timeout_seconds)

    def _failed(self, node: str) -> None:
        node_errors_total.labels(node=node).inc()

    # --- agent ---

    async def agent_node(self, state: BookingState) -> dict[str, Any]:
        telegram_id = state.telegram_id
        self.logger.debug("[agent] user=%s entering", telegram_id)

        if not state.user_input:
            self.logger.warning("[agent] user=%s no user_input, skipping agent call", telegram_id)
            self._failed("agent")
            return {"agent_outcome": None, "error": "User input missing for agent."}

        try:
            result = await self._call(
                self.booking_agent.run_booking_agent(
                    user_input=state.user_input,
                    telegram_id=telegram_id,
                    chat_history=state.chat_history,
                ),
                timeout=self.settings.agent_timeout_seconds,
            )
        except Exception:
            self.logger.exception("[agent] user=%s unexpected error during agent call", telegram_id)
            self._failed("agent")
            return {"error": "Unexpected error in agent interaction.", "agent_outcome": None}

        if not result.success:
            self.logger.error("[agent] user=%s agent call failed: %s", telegram_id, result.error)
            self._failed("agent")
            return {"error": result.error or "Agent call failed.", "agent_outcome": None}

        outcome = result.data
        try:
            intent = resolve_intent(outcome)
        except UnresolvedIntentError as exc:
            self.logger.error("[agent] user=%s %s outcome=%r", telegram_id, exc, outcome)
            self._failed("agent")
            return {"error": str(exc), "agent_outcome": outcome}

        self.logger.info("[agent] user=%s intent=%s outcome=%r", telegram_id, intent.value, outcome)
        update: dict[str, Any] = {"agent_outcome": outcome}

        args = tool_args(outcome)
        session_type = self._known_session_type(telegram_id, args.get("session_type"))
        if intent is Intent.FIND_SLOTS and session_type:
            update["session_type"] = session_type
        elif intent is Intent.CONFIRM:
            if args.get("start") and args.get("end"):
                update["confirmed_slot"] = TimeSlot(start=str(args["start"]), end=str(args["end"]))
            # A booking always carries a type, even for users who never picked one
            update["session_type"] = session_type or state.session_type or self.settings.default_session_type
        return update

    def _known_session_type(self, telegram_id: str, value: Any) -> str | None:
        if not value:
            return None
        if value not in self.settings.session_types:
            self.logger.warning("[agent] user=%s ignoring unknown session_type %r", telegram_id, value)
            return None
        return value

    # --- find slots ---

    def _search_window(self, state: BookingState) -> tuple[datetime, datetime]:
        now = datetime.now(timezone.utc)
        default = (now, now + timedelta(days=self.settings.slot_search_window_days))

        args = tool_args(state.agent_outcome)
        if not args.get("start_date") or not args.get("end_date"):
            return default
        try:
            start = _parse_datetime(args["start_date"])
            end = _parse_datetime(args["end_date"])
        except (TypeError, ValueError):
            self.logger.warning("[find_slots] user=%s unparseable window %r, using default", state.telegram_id, args)
            return default
        if end <= start:
            return default
        return max(start, now), end

    async def _remember_session_type(self, state: BookingState) -> None:
        """Store a session type picked during this search so later turns book the same one."""
        picked = tool_args(state.agent_outcome).get("session_type")
        if not picked or picked != state.session_type:
            return
        try:
            result = await self._call(
                self.state_manager.update_user_state(state.telegram_id, {"session_type": picked})
            )
        except Exception:
            self.logger.exception("[find_slots] user=%s failed to store session_type", state.telegram_id)
            return
        if not result.success:
            self.logger.warning("[find_slots] user=%s session_type not stored: %s", state.telegram_id, result.error)

    async def find_slots_node(self, state: BookingState) -> dict[str, Any]:
        telegram_id = state.telegram_id
        self.logger.debug("[find_slots] user=%s entering", telegram_id)

        start_date, end_date = self._search_window(state)
        duration = self.settings.session_duration_minutes(state.session_type)
        await self._remember_session_type(state)

        try:
            result = await self._call(
                self.google_calendar.find_free_slots(
                    start_date=start_date,
                    end_date=end_date,
                    duration_minutes=duration,
                )
            )
        except Exception as exc:
            self.logger.exception("[find_slots] user=%s unexpected error searching slots", telegram_id)
            self._failed("find_slots")
            return {
                "error": _exception_message(exc, "Unexpected error when searching for slots."),
                "available_slots": None,
                "last_tool_response": "Error finding slots.",
            }

        if not result.success:
            self.logger.error("[find_slots] user=%s failed to find slots: %s", telegram_id, result.error)
            self._failed("find_slots")
            return {
                "error": result.error or "Error finding slots.",
                "available_slots": None,
                "last_tool_response": "Error finding slots.",
            }

        slots = list(result.data or [])
        if slots:
            self.logger.info("[find_slots] user=%s found %d slots", telegram_id, len(slots))
            return {"available_slots": slots, "last_tool_response": "Found available slots."}

        self.logger.info("[find_slots] user=%s no slots found", telegram_id)
        return {
            "available_slots": [],
            "last_tool_response": "No available slots found for the requested time.",
        }

    # --- confirm sequence ---

    async def store_booking_node(self, state: BookingState) -> dict[str, Any]:
        telegram_id = state.telegram_id
        slot = state.confirmed_slot
        self.logger.debug("[store_booking] user=%s entering", telegram_id)

        if not slot or not slot.get("start"):
            self.logger.error("[store_booking] user=%s invalid or missing confirmed_slot", telegram_id)
            self._failed("store_booking")
            return {
                "error": "Cannot store booking without a confirmed slot.",
                "last_tool_response": "Error storing booking data.",
            }

        try:
            result = await self._call(
                self.state_manager.store_booking_data(
                    telegram_id=telegram_id,
                    booking_slot=slot["start"],
                    session_type=state.session_type,
                    booking_end=slot.get("end"),
                )
            )
        except Exception:
            self.logger.exception("[store_booking] user=%s unexpected error storing booking", telegram_id)
            self._failed("store_booking")
            return {
                "error": "Unexpected error when storing booking.",
                "last_tool_response": "Error storing booking data.",
            }

        if not result.success:
            self.logger.error("[store_booking] user=%s failed to store booking: %s", telegram_id, result.error)
            self._failed("store_booking")
            return {
                "error": result.error or "Error storing booking data.",
                "last_tool_response": "Error storing booking data.",
            }

        self.logger.info("[store_booking] user=%s booking stored", telegram_id)
        return {"last_tool_response": "Booking data stored."}

    async def create_calendar_event_node(self, state: BookingState) -> dict[str, Any]:
        telegram_id = state.telegram_id
        slot = state.confirmed_slot
        self.logger.debug("[calendar_event] user=%s entering", telegram_id)

        if not slot or not slot.get("start") or not slot.get("end"):
            self.logger.error("[calendar_event] user=%s invalid or missing confirmed_slot", telegram_id)
            self._failed("create_calendar_event")
            return {
                "error": "Cannot create calendar event without a confirmed slot.",
                "last_tool_response": "Error creating Google Calendar event.",
            }

        profile = state.user_profile or {}
        display_name = profile.get("name") or f"User {telegram_id}"
        session_type = state.session_type or "session"

        try:
            result = await self._call(
                self.google_calendar.create_calendar_event(
                    start=slot["start"],
                    end=slot["end"],
                    summary=f"Kambo Session ({session_type}) with {display_name}",
                    description=(
                        "Kambo Klarity Booking\n"
                        f"Session Type: {session_type}\n"
                        f"User ID: {telegram_id}"
                    ),
                )
            )
        except Exception:
            self.logger.exception("[calendar_event] user=%s unexpected error creating event", telegram_id)
            self._failed("create_calendar_event")
            return {
                "error": "Unexpected error when creating calendar event.",
                "google_event_id": None,
                "last_tool_response": "Error creating Google Calendar event.",
            }

        if not result.success:
            self.logger.error("[calendar_event] user=%s failed to create event: %s", telegram_id, result.error)
            self._failed("create_calendar_event")
            return {
                "error": result.error or "Error creating Google Calendar event.",
                "google_event_id": None,
                "last_tool_response": "Error creating Google Calendar event.",
            }

        self.logger.info("[calendar_event] user=%s event created id=%s", telegram_id, result.event_id)
        return {"google_event_id": result.event_id, "last_tool_response": "Calendar event created."}

    async def send_waiver_node(self, state: BookingState) -> dict[str, Any]:
        telegram_id = state.telegram_id
        self.logger.debug("[send_waiver] user=%s entering", telegram_id)

        try:
            result = await self._call(
                self.telegram_notifier.send_waiver_link(
                    telegram_id=telegram_id,
                    session_type=state.session_type,
                )
            )
        except Exception:
            self.logger.exception("[send_waiver] user=%s unexpected error sending waiver", telegram_id)
            self._failed("send_waiver")
            return {"error": "Unexpected error when sending waiver.", "last_tool_response": "Error sending waiver."}

        if not result.success:
            self.logger.error("[send_waiver] user=%s failed to send waiver: %s", telegram_id, result.error)
            self._failed("send_waiver")
            return {"error": result.error or "Error sending waiver.", "last_tool_response": "Error sending waiver."}

        self.logger.info("[send_waiver] user=%s waiver link sent", telegram_id)
        return {"last_tool_response": "Waiver sent."}

    # --- cancellation ---

    async def delete_calendar_event_node(self, state: BookingState) -> dict[str, Any]:
        telegram_id = state.telegram_id
        event_id = tool_args(state.agent_outcome).get("event_id") or state.google_event_id
        self.logger.debug("[delete_event] user=%s entering event_id=%s", telegram_id, event_id)

        if not event_id:
            self.logger.error("[delete_event] user=%s no calendar event to delete", telegram_id)
            self._failed("delete_calendar_event")
            return {
                "error": "Cannot delete calendar event without an event ID.",
                "last_tool_response": "Error deleting Google Calendar event.",
            }

        try:
            result = await self._call(self.google_calendar.delete_calendar_event(event_id=event_id))
        except Exception:
            self.logger.exception("[delete_event] user=%s unexpected error deleting event", telegram_id)
            self._failed("delete_calendar_event")
            return {
                "error": "Unexpected error when deleting calendar event.",
                "last_tool_response": "Error deleting Google Calendar event.",
            }

        if not result.success:
            self.logger.error("[delete_event] user=%s failed to delete event: %s", telegram_id, result.error)
            self._failed("delete_calendar_event")
            return {
                "error": result.error or "Error deleting Google Calendar event.",
                "last_tool_response": "Error deleting Google Calendar event.",
            }

        if result.warning:
            self.logger.warning("[delete_event] user=%s %s", telegram_id, result.warning)
        self.logger.info("[delete_event] user=%s event %s deleted", telegram_id, event_id)
        return {"google_event_id": event_id, "last_tool_response": "Calendar event deleted."}

    async def reset_state_node(self, state: BookingState) -> dict[str, Any]:
        telegram_id = state.telegram_id
        self.logger.debug("[reset_state] user=%s entering", telegram_id)

        try:
            result = await self._call(self.state_manager.reset_user_state(telegram_id=telegram_id))
        except Exception:
            self.logger.exception("[reset_state] user=%s unexpected error resetting state", telegram_id)
            self._failed("reset_state")
            return {"error": "Unexpected error when resetting state.", "last_tool_response": "Error resetting state."}

        if not result.success:
            self.logger.error("[reset_state] user=%s failed to reset state: %s", telegram_id, result.error)
            self._failed("reset_state")
            return {"error": result.error or "Error resetting state.", "last_tool_response": "Error resetting state."}

        # Whether to end or restart the conversation is the caller's decision
        self.logger.info("[reset_state] user=%s state reset", telegram_id)
        return {"last_tool_response": "User state reset."}

    # --- error sink ---

    async def handle_error_node(self, state: BookingState) -> dict[str, Any]:
        error_text = describe_error(state.error)
        telegram_id = state.telegram_id
        self.logger.error("[handle_error] user=%s error: %s", telegram_id, error_text)

        if telegram_id:
            detail = error_text[:ERROR_DETAIL_MAX_LENGTH]
            text = (
                "Sorry, I encountered an internal problem processing your request. "
                f"The technical details are: {detail}. "
                "Please try again shortly or contact support if the issue persists."
            )
            try:
                result = await self._call(
                    self.telegram_notifier.send_text_message(telegram_id=telegram_id, text=text)
                )
                if result.success:
                    self.logger.info("[handle_error] user=%s notified about the error", telegram_id)
                else:
                    self.logger.error("[handle_error] user=%s notification failed: %s", telegram_id, result.error)
            except Exception:
                self.logger.exception("[handle_error] user=%s failed to send error notification", telegram_id)

        return {}


def _parse_datetime(value: Any) -> datetime:
    parsed = value if isinstance(value, datetime) else isoparse(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
