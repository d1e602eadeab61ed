"""Booking graph node tests with stubbed collaborators."""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from klarity.config import settings
from klarity.graph.nodes import BookingNodes, NodeConfigurationError, describe_error
from klarity.graph.state import BookingState
from klarity.tools.base import ToolResult
from tests.helpers import CONFIRMED_SLOT, agent_outcome


def _state(**kwargs) -> BookingState:
    return BookingState(telegram_id="u1", session_id="s1", **kwargs)


def _has_no_exception_values(update: dict) -> bool:
    return not any(isinstance(value, BaseException) for value in update.values())


# --- Construction ---


class TestConstruction:
    def test_missing_collaborators_listed(self, booking_agent, telegram_notifier):
        with pytest.raises(NodeConfigurationError) as exc_info:
            BookingNodes(
                booking_agent=booking_agent,
                state_manager=None,
                google_calendar=None,
                telegram_notifier=telegram_notifier,
                settings=settings,
            )
        assert exc_info.value.missing == ["state_manager", "google_calendar"]
        assert "state_manager, google_calendar" in str(exc_info.value)

    def test_logger_defaults_to_module_logger(self, booking_agent, state_manager, google_calendar, telegram_notifier):
        nodes = BookingNodes(
            booking_agent=booking_agent,
            state_manager=state_manager,
            google_calendar=google_calendar,
            telegram_notifier=telegram_notifier,
            settings=settings,
        )
        assert nodes.logger is logging.getLogger("klarity.graph.nodes")


# --- agent ---


class TestAgentNode:
    @pytest.mark.parametrize("user_input", [None, ""])
    async def test_missing_input_never_calls_agent(self, nodes, booking_agent, user_input):
        result = await nodes.agent_node(_state(user_input=user_input))

        assert result == {"agent_outcome": None, "error": "User input missing for agent."}
        booking_agent.run_booking_agent.assert_not_called()

    async def test_success_returns_outcome(self, nodes, booking_agent):
        outcome = agent_outcome("find_free_slots")
        booking_agent.run_booking_agent.return_value = ToolResult.ok(data=outcome)
        history = [{"role": "user", "content": "hi"}]

        result = await nodes.agent_node(_state(user_input="any time next week?", chat_history=history))

        assert result == {"agent_outcome": outcome}
        booking_agent.run_booking_agent.assert_awaited_once_with(
            user_input="any time next week?", telegram_id="u1", chat_history=history
        )

    async def test_reported_failure(self, nodes, booking_agent):
        booking_agent.run_booking_agent.return_value = ToolResult.fail("Agent execution failed: quota")

        result = await nodes.agent_node(_state(user_input="hello"))

        assert result == {"error": "Agent execution failed: quota", "agent_outcome": None}

    async def test_exception_contained(self, nodes, booking_agent):
        booking_agent.run_booking_agent.side_effect = RuntimeError("connection reset")

        result = await nodes.agent_node(_state(user_input="hello"))

        assert result == {"error": "Unexpected error in agent interaction.", "agent_outcome": None}

    async def test_unknown_tool_is_agent_failure(self, nodes, booking_agent):
        booking_agent.run_booking_agent.return_value = ToolResult.ok(data=agent_outcome("send_flowers"))

        result = await nodes.agent_node(_state(user_input="hello"))

        assert result["error"] == "Agent requested an unknown tool: send_flowers"

    async def test_confirmation_copies_slot_and_session_type(self, nodes, booking_agent):
        outcome = agent_outcome("store_booking_data", session_type="private", **CONFIRMED_SLOT)
        booking_agent.run_booking_agent.return_value = ToolResult.ok(data=outcome)

        result = await nodes.agent_node(_state(user_input="yes, book it"))

        assert result["confirmed_slot"] == CONFIRMED_SLOT
        assert result["session_type"] == "private"
        assert "error" not in result

    async def test_confirmation_without_session_type_uses_default(self, nodes, booking_agent):
        booking_agent.run_booking_agent.return_value = ToolResult.ok(
            data=agent_outcome("store_booking_data", **CONFIRMED_SLOT)
        )

        result = await nodes.agent_node(_state(user_input="yes, book it"))

        assert result["session_type"] == settings.default_session_type

    async def test_confirmation_keeps_stored_session_type(self, nodes, booking_agent):
        booking_agent.run_booking_agent.return_value = ToolResult.ok(
            data=agent_outcome("store_booking_data", session_type="vip", **CONFIRMED_SLOT)
        )

        result = await nodes.agent_node(_state(user_input="yes, book it", session_type="private"))

        assert result["session_type"] == "private"

    async def test_search_copies_session_type(self, nodes, booking_agent):
        booking_agent.run_booking_agent.return_value = ToolResult.ok(
            data=agent_outcome("find_free_slots", session_type="private")
        )

        result = await nodes.agent_node(_state(user_input="any private sessions next week?"))

        assert result["session_type"] == "private"

    async def test_search_ignores_unknown_session_type(self, nodes, booking_agent):
        booking_agent.run_booking_agent.return_value = ToolResult.ok(
            data=agent_outcome("find_free_slots", session_type="vip")
        )

        result = await nodes.agent_node(_state(user_input="any vip sessions?"))

        assert "session_type" not in result

    async def test_agent_timeout(self, booking_agent, state_manager, google_calendar, telegram_notifier):
        async def slow(**kwargs):
            await asyncio.sleep(1)

        booking_agent.run_booking_agent = AsyncMock(side_effect=slow)
        nodes = BookingNodes(
            booking_agent=booking_agent,
            state_manager=state_manager,
            google_calendar=google_calendar,
            telegram_notifier=telegram_notifier,
            settings=settings.model_copy(update={"agent_timeout_seconds": 0.01}),
        )

        result = await nodes.agent_node(_state(user_input="hello"))

        assert result == {"error": "Unexpected error in agent interaction.", "agent_outcome": None}


# --- find_slots ---


class TestFindSlotsNode:
    @pytest.mark.parametrize(
        "session_type,duration",
        [("private", 90), ("group", 60), (None, 60), ("", 60)],
    )
    async def test_duration_mapping(self, nodes, google_calendar, session_type, duration):
        await nodes.find_slots_node(_state(session_type=session_type))

        assert google_calendar.find_free_slots.await_args.kwargs["duration_minutes"] == duration

    async def test_picked_session_type_is_stored(self, nodes, google_calendar, state_manager):
        outcome = agent_outcome("find_free_slots", session_type="private")

        await nodes.find_slots_node(_state(agent_outcome=outcome, session_type="private"))

        assert google_calendar.find_free_slots.await_args.kwargs["duration_minutes"] == 90
        state_manager.update_user_state.assert_awaited_once_with("u1", {"session_type": "private"})

    async def test_search_without_session_type_stores_nothing(self, nodes, state_manager):
        await nodes.find_slots_node(_state(agent_outcome=agent_outcome("find_free_slots")))

        state_manager.update_user_state.assert_not_called()

    async def test_storing_session_type_failure_does_not_fail_search(self, nodes, state_manager):
        state_manager.update_user_state.side_effect = ConnectionError("db down")
        outcome = agent_outcome("find_free_slots", session_type="private")

        result = await nodes.find_slots_node(_state(agent_outcome=outcome, session_type="private"))

        assert "error" not in result
        assert result["available_slots"] == [CONFIRMED_SLOT]

    async def test_default_window_is_two_weeks(self, nodes, google_calendar):
        await nodes.find_slots_node(_state())

        kwargs = google_calendar.find_free_slots.await_args.kwargs
        assert kwargs["end_date"] - kwargs["start_date"] == timedelta(days=settings.slot_search_window_days)
        assert abs(kwargs["start_date"] - datetime.now(timezone.utc)) < timedelta(minutes=1)

    async def test_window_from_agent_args(self, nodes, google_calendar):
        start = datetime.now(timezone.utc) + timedelta(days=3)
        end = start + timedelta(days=2)
        outcome = agent_outcome("find_free_slots", start_date=start.isoformat(), end_date=end.isoformat())

        await nodes.find_slots_node(_state(agent_outcome=outcome))

        kwargs = google_calendar.find_free_slots.await_args.kwargs
        assert kwargs["start_date"] == start
        assert kwargs["end_date"] == end

    async def test_inverted_agent_window_falls_back(self, nodes, google_calendar):
        outcome = agent_outcome("find_free_slots", start_date="2030-01-05T00:00:00Z", end_date="2030-01-01T00:00:00Z")

        await nodes.find_slots_node(_state(agent_outcome=outcome))

        kwargs = google_calendar.find_free_slots.await_args.kwargs
        assert kwargs["end_date"] - kwargs["start_date"] == timedelta(days=settings.slot_search_window_days)

    async def test_found_slots(self, nodes):
        result = await nodes.find_slots_node(_state())

        assert result == {"available_slots": [CONFIRMED_SLOT], "last_tool_response": "Found available slots."}

    async def test_empty_is_success_not_error(self, nodes, google_calendar):
        google_calendar.find_free_slots.return_value = ToolResult.ok(data=[])

        result = await nodes.find_slots_node(_state())

        assert result == {
            "available_slots": [],
            "last_tool_response": "No available slots found for the requested time.",
        }
        assert "error" not in result

    async def test_reported_failure(self, nodes, google_calendar):
        google_calendar.find_free_slots.return_value = ToolResult.fail("Calendar unreachable")

        result = await nodes.find_slots_node(_state())

        assert result == {
            "error": "Calendar unreachable",
            "available_slots": None,
            "last_tool_response": "Error finding slots.",
        }

    async def test_exception_message_used(self, nodes, google_calendar):
        google_calendar.find_free_slots.side_effect = RuntimeError("socket closed")

        result = await nodes.find_slots_node(_state())

        assert result["error"] == "socket closed"
        assert result["available_slots"] is None
        assert result["last_tool_response"] == "Error finding slots."

    async def test_exception_without_message_uses_fallback(self, nodes, google_calendar):
        google_calendar.find_free_slots.side_effect = RuntimeError()

        result = await nodes.find_slots_node(_state())

        assert result["error"] == "Unexpected error when searching for slots."


# --- store_booking ---


class TestStoreBookingNode:
    @pytest.mark.parametrize("slot", [None, {}, {"end": "2025-01-01T11:00:00Z"}])
    async def test_precondition_never_calls_persistence(self, nodes, state_manager, slot):
        result = await nodes.store_booking_node(_state(confirmed_slot=slot))

        assert result == {
            "error": "Cannot store booking without a confirmed slot.",
            "last_tool_response": "Error storing booking data.",
        }
        state_manager.store_booking_data.assert_not_called()

    async def test_success(self, nodes, state_manager):
        result = await nodes.store_booking_node(_state(confirmed_slot=CONFIRMED_SLOT, session_type="private"))

        assert result == {"last_tool_response": "Booking data stored."}
        state_manager.store_booking_data.assert_awaited_once_with(
            telegram_id="u1",
            booking_slot=CONFIRMED_SLOT["start"],
            session_type="private",
            booking_end=CONFIRMED_SLOT["end"],
        )

    async def test_reported_failure(self, nodes, state_manager):
        state_manager.store_booking_data.return_value = ToolResult.fail("User not found for booking.")

        result = await nodes.store_booking_node(_state(confirmed_slot=CONFIRMED_SLOT))

        assert result == {"error": "User not found for booking.", "last_tool_response": "Error storing booking data."}

    async def test_exception_contained(self, nodes, state_manager):
        state_manager.store_booking_data.side_effect = ConnectionError("db down")

        result = await nodes.store_booking_node(_state(confirmed_slot=CONFIRMED_SLOT))

        assert result == {
            "error": "Unexpected error when storing booking.",
            "last_tool_response": "Error storing booking data.",
        }


# --- create_calendar_event ---


class TestCreateCalendarEventNode:
    @pytest.mark.parametrize(
        "slot",
        [None, {}, {"start": "2025-01-01T10:00:00Z"}, {"end": "2025-01-01T11:00:00Z"}],
    )
    async def test_precondition_never_calls_calendar(self, nodes, google_calendar, slot):
        result = await nodes.create_calendar_event_node(_state(confirmed_slot=slot))

        assert result == {
            "error": "Cannot create calendar event without a confirmed slot.",
            "last_tool_response": "Error creating Google Calendar event.",
        }
        google_calendar.create_calendar_event.assert_not_called()

    async def test_success(self, nodes, google_calendar):
        state = _state(confirmed_slot=CONFIRMED_SLOT, session_type="private", user_profile={"name": "Ana Silva"})

        result = await nodes.create_calendar_event_node(state)

        assert result == {"google_event_id": "evt-1", "last_tool_response": "Calendar event created."}
        kwargs = google_calendar.create_calendar_event.await_args.kwargs
        assert kwargs["start"] == CONFIRMED_SLOT["start"]
        assert kwargs["end"] == CONFIRMED_SLOT["end"]
        assert kwargs["summary"] == "Kambo Session (private) with Ana Silva"
        assert "Session Type: private" in kwargs["description"]
        assert "User ID: u1" in kwargs["description"]

    async def test_summary_falls_back_to_user_id(self, nodes, google_calendar):
        await nodes.create_calendar_event_node(_state(confirmed_slot=CONFIRMED_SLOT, session_type="private"))

        assert google_calendar.create_calendar_event.await_args.kwargs["summary"] == "Kambo Session (private) with User u1"

    async def test_reported_failure(self, nodes, google_calendar):
        google_calendar.create_calendar_event.return_value = ToolResult.fail("Calendar API error 403")

        result = await nodes.create_calendar_event_node(_state(confirmed_slot=CONFIRMED_SLOT))

        assert result == {
            "error": "Calendar API error 403",
            "google_event_id": None,
            "last_tool_response": "Error creating Google Calendar event.",
        }

    async def test_exception_contained(self, nodes, google_calendar):
        google_calendar.create_calendar_event.side_effect = TimeoutError()

        result = await nodes.create_calendar_event_node(_state(confirmed_slot=CONFIRMED_SLOT))

        assert result["error"] == "Unexpected error when creating calendar event."
        assert result["google_event_id"] is None


# --- send_waiver ---


class TestSendWaiverNode:
    async def test_success(self, nodes, telegram_notifier):
        result = await nodes.send_waiver_node(_state(session_type="private"))

        assert result == {"last_tool_response": "Waiver sent."}
        telegram_notifier.send_waiver_link.assert_awaited_once_with(telegram_id="u1", session_type="private")

    async def test_reported_failure(self, nodes, telegram_notifier):
        telegram_notifier.send_waiver_link.return_value = ToolResult.fail("Telegram API error")

        result = await nodes.send_waiver_node(_state(session_type="private"))

        assert result == {"error": "Telegram API error", "last_tool_response": "Error sending waiver."}

    async def test_exception_contained(self, nodes, telegram_notifier):
        telegram_notifier.send_waiver_link.side_effect = RuntimeError("bot blocked")

        result = await nodes.send_waiver_node(_state(session_type="private"))

        assert result == {"error": "Unexpected error when sending waiver.", "last_tool_response": "Error sending waiver."}


# --- reset_state ---


class TestResetStateNode:
    async def test_success(self, nodes, state_manager):
        result = await nodes.reset_state_node(_state())

        assert result == {"last_tool_response": "User state reset."}
        state_manager.reset_user_state.assert_awaited_once_with(telegram_id="u1")

    async def test_reported_failure(self, nodes, state_manager):
        state_manager.reset_user_state.return_value = ToolResult.fail("Database error during state reset.")

        result = await nodes.reset_state_node(_state())

        assert result == {"error": "Database error during state reset.", "last_tool_response": "Error resetting state."}

    async def test_exception_contained(self, nodes, state_manager):
        state_manager.reset_user_state.side_effect = RuntimeError("boom")

        result = await nodes.reset_state_node(_state())

        assert result == {"error": "Unexpected error when resetting state.", "last_tool_response": "Error resetting state."}


# --- delete_calendar_event ---


class TestDeleteCalendarEventNode:
    async def test_uses_state_event_id(self, nodes, google_calendar):
        result = await nodes.delete_calendar_event_node(_state(google_event_id="evt-9"))

        assert result == {"google_event_id": "evt-9", "last_tool_response": "Calendar event deleted."}
        google_calendar.delete_calendar_event.assert_awaited_once_with(event_id="evt-9")

    async def test_agent_event_id_wins(self, nodes, google_calendar):
        state = _state(google_event_id="evt-9", agent_outcome=agent_outcome("delete_calendar_event", event_id="evt-2"))

        await nodes.delete_calendar_event_node(state)

        google_calendar.delete_calendar_event.assert_awaited_once_with(event_id="evt-2")

    async def test_missing_event_id(self, nodes, google_calendar):
        result = await nodes.delete_calendar_event_node(_state())

        assert result["error"] == "Cannot delete calendar event without an event ID."
        google_calendar.delete_calendar_event.assert_not_called()

    async def test_exception_contained(self, nodes, google_calendar):
        google_calendar.delete_calendar_event.side_effect = RuntimeError("boom")

        result = await nodes.delete_calendar_event_node(_state(google_event_id="evt-9"))

        assert result["error"] == "Unexpected error when deleting calendar event."


# --- exception containment across every node ---


@pytest.mark.parametrize(
    "node_name,collaborator,method,state_kwargs",
    [
        ("agent_node", "booking_agent", "run_booking_agent", {"user_input": "hi"}),
        ("find_slots_node", "google_calendar", "find_free_slots", {}),
        ("store_booking_node", "state_manager", "store_booking_data", {"confirmed_slot": CONFIRMED_SLOT}),
        ("create_calendar_event_node", "google_calendar", "create_calendar_event", {"confirmed_slot": CONFIRMED_SLOT}),
        ("send_waiver_node", "telegram_notifier", "send_waiver_link", {"session_type": "private"}),
        ("reset_state_node", "state_manager", "reset_user_state", {}),
        ("delete_calendar_event_node", "google_calendar", "delete_calendar_event", {"google_event_id": "evt-1"}),
    ],
)
async def test_collaborator_exceptions_become_strings(nodes, node_name, collaborator, method, state_kwargs):
    getattr(getattr(nodes, collaborator), method).side_effect = ValueError("kaboom")

    result = await getattr(nodes, node_name)(_state(**state_kwargs))

    assert isinstance(result["error"], str) and result["error"]
    assert _has_no_exception_values(result)


# --- handle_error ---


class TestHandleErrorNode:
    async def test_notifies_user_with_detail(self, nodes, telegram_notifier):
        result = await nodes.handle_error_node(_state(error="Calendar API error 500"))

        assert result == {}
        text = telegram_notifier.send_text_message.await_args.kwargs["text"]
        assert text == (
            "Sorry, I encountered an internal problem processing your request. "
            "The technical details are: Calendar API error 500. "
            "Please try again shortly or contact support if the issue persists."
        )

    async def test_detail_truncated_to_100_chars(self, nodes, telegram_notifier):
        await nodes.handle_error_node(_state(error="x" * 250))

        text = telegram_notifier.send_text_message.await_args.kwargs["text"]
        assert "x" * 100 + "." in text
        assert "x" * 101 not in text

    @pytest.mark.parametrize("error", [None, ""])
    async def test_missing_error_is_unknown(self, nodes, telegram_notifier, error):
        await nodes.handle_error_node(_state(error=error))

        assert "The technical details are: Unknown error." in telegram_notifier.send_text_message.await_args.kwargs["text"]

    async def test_notifier_exception_swallowed(self, nodes, telegram_notifier):
        telegram_notifier.send_text_message.side_effect = RuntimeError("network down")

        assert await nodes.handle_error_node(_state(error="boom")) == {}

    async def test_notifier_failure_result(self, nodes, telegram_notifier):
        telegram_notifier.send_text_message.return_value = ToolResult.fail("Failed to send Telegram message")

        assert await nodes.handle_error_node(_state(error="boom")) == {}


class TestDescribeError:
    def test_string(self):
        assert describe_error("boom") == "boom"

    def test_exception(self):
        assert describe_error(ValueError("bad value")) == "bad value"

    def test_exception_without_message(self):
        assert describe_error(TimeoutError()) == "TimeoutError"

    def test_error_like_object_message(self):
        class CalendarFailure:
            message = "Calendar quota exceeded"

        assert describe_error(CalendarFailure()) == "Calendar quota exceeded"

    @pytest.mark.parametrize("error", [None, ""])
    def test_empty(self, error):
        assert describe_error(error) == "Unknown error"


# --- Sequential happy path ---


async def test_confirm_sequence_happy_path(nodes, state_manager, google_calendar, telegram_notifier):
    state = BookingState(
        telegram_id="u1",
        session_id="s1",
        confirmed_slot=CONFIRMED_SLOT,
        session_type="private",
    )

    for node in (nodes.store_booking_node, nodes.create_calendar_event_node, nodes.send_waiver_node):
        update = await node(state)
        assert "error" not in update
        state = state.merge(update)

    assert state.google_event_id == "evt-1"
    assert state.last_tool_response == "Waiver sent."
    assert state.error is None
    state_manager.store_booking_data.assert_awaited_once()
    google_calendar.create_calendar_event.assert_awaited_once()
    telegram_notifier.send_waiver_link.assert_awaited_once_with(telegram_id="u1", session_type="private")
