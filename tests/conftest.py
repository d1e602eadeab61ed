"""Test configuration: environment defaults and stub booking collaborators.

The environment must be set before ``klarity`` is imported because settings
are read at import time.
"""

import os

os.environ.setdefault("KLARITY_BOT_TOKEN", "123456:TEST-TOKEN")
os.environ.setdefault("KLARITY_DB_PASSWORD", "test")
os.environ.setdefault("KLARITY_FORM_URL", "https://forms.example.com")
os.environ.setdefault("KLARITY_GOOGLE_CALENDAR_ID", "sessions@example.com")

import logging  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402

from klarity.config import settings  # noqa: E402
from klarity.graph.nodes import BookingNodes  # noqa: E402
from klarity.graph.state import BookingState  # noqa: E402
from klarity.tools.base import ToolResult  # noqa: E402
from tests.helpers import CONFIRMED_SLOT, agent_outcome  # noqa: E402


@pytest.fixture
def booking_agent() -> MagicMock:
    agent = MagicMock()
    agent.run_booking_agent = AsyncMock(
        return_value=ToolResult.ok(data=agent_outcome(output="Hello! How can I help?"))
    )
    return agent


@pytest.fixture
def state_manager() -> MagicMock:
    manager = MagicMock()
    manager.store_booking_data = AsyncMock(return_value=ToolResult.ok(data={"booking_id": "b1"}))
    manager.reset_user_state = AsyncMock(return_value=ToolResult.ok())
    manager.update_user_state = AsyncMock(return_value=ToolResult.ok())
    manager.mark_booking_confirmed = AsyncMock(return_value=ToolResult.ok(event_id="evt-1"))
    manager.mark_booking_cancelled = AsyncMock(return_value=ToolResult.ok(event_id="evt-1"))
    return manager


@pytest.fixture
def google_calendar() -> MagicMock:
    calendar = MagicMock()
    calendar.find_free_slots = AsyncMock(return_value=ToolResult.ok(data=[CONFIRMED_SLOT]))
    calendar.create_calendar_event = AsyncMock(
        return_value=ToolResult.ok(event_id="evt-1", event_link="https://calendar.example.com/evt-1")
    )
    calendar.delete_calendar_event = AsyncMock(return_value=ToolResult.ok())
    return calendar


@pytest.fixture
def telegram_notifier() -> MagicMock:
    notifier = MagicMock()
    notifier.send_waiver_link = AsyncMock(return_value=ToolResult.ok(message_id=42))
    notifier.send_text_message = AsyncMock(return_value=ToolResult.ok(message_id=43))
    return notifier


@pytest.fixture
def nodes(booking_agent, state_manager, google_calendar, telegram_notifier) -> BookingNodes:
    return BookingNodes(
        booking_agent=booking_agent,
        state_manager=state_manager,
        google_calendar=google_calendar,
        telegram_notifier=telegram_notifier,
        settings=settings,
        logger=logging.getLogger("tests.nodes"),
    )


@pytest.fixture
def state() -> BookingState:
    return BookingState(telegram_id="u1", session_id="s1", user_input="I'd like to book a session")
