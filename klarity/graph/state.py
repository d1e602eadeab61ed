"""Booking graph state definition."""

from dataclasses import dataclass, fields, replace
from datetime import datetime
from typing import Any, TypedDict


class TimeSlot(TypedDict, total=False):
    """A bookable interval, ISO 8601 strings in UTC."""

    start: str
    end: str


class BookingStateError(ValueError):
    pass


@dataclass
class BookingState:
    """State passed through the booking graph for one conversation turn.

    Nodes never mutate it in place: each returns a dict with only the fields
    it changed and the graph merges that update.
    """

    # Identity (required)
    telegram_id: str
    session_id: str

    # Input
    user_input: str | None = None
    chat_history: list[dict] | None = None

    # Booking context
    session_type: str | None = None
    available_slots: list[TimeSlot] | None = None
    confirmed_slot: TimeSlot | None = None
    google_event_id: str | None = None

    # Agent / tool outcomes
    agent_outcome: dict[str, Any] | None = None
    error: str | None = None
    last_tool_response: str | None = None  # logging only

    # Cached profile
    user_profile: dict[str, Any] | None = None
    past_session_dates: list[datetime] | None = None

    def __post_init__(self) -> None:
        if not self.telegram_id or not self.session_id:
            raise BookingStateError("Telegram ID and Session ID are required for initial state.")

    def merge(self, update: dict[str, Any]) -> "BookingState":
        """Return a copy with a partial node update applied."""
        known = {f.name for f in fields(self)}
        unknown = set(update) - known
        if unknown:
            raise BookingStateError(f"Unknown state fields: {', '.join(sorted(unknown))}")
        return replace(self, **update)
