"""Input schemas for the booking tools.

The agent-facing schemas double as tool definitions for the LLM (their JSON
schema is bound to the model), so field descriptions are part of the prompt.
"""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator


class FindFreeSlotsArgs(BaseModel):
    """Search the practitioner's calendar for open session slots."""

    start_date: datetime | None = Field(
        default=None, description="ISO 8601 start of the search window, if the user gave one"
    )
    end_date: datetime | None = Field(
        default=None, description="ISO 8601 end of the search window, if the user gave one"
    )
    session_type: str | None = Field(
        default=None, description="Session type the user wants, one of the available session types"
    )


class StoreBookingDataArgs(BaseModel):
    """Reserve the slot the user has explicitly confirmed."""

    start: datetime = Field(description="ISO 8601 start of the confirmed slot")
    end: datetime = Field(description="ISO 8601 end of the confirmed slot")
    session_type: str | None = Field(
        default=None, description="Session type being booked, one of the available session types"
    )


class ResetUserStateArgs(BaseModel):
    """Abandon the current booking conversation and start over."""


class DeleteCalendarEventArgs(BaseModel):
    """Cancel the user's existing booked session."""

    event_id: str | None = Field(default=None, description="Calendar event id, if known")


class StoreBookingData(BaseModel):
    """Validated input of StateManager.store_booking_data."""

    telegram_id: int
    booking_slot: datetime
    booking_end: datetime | None = None
    session_type: str | None = None

    @field_validator("booking_slot", "booking_end")
    @classmethod
    def _require_timezone(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            raise ValueError("booking times must carry a UTC offset")
        return value


class UserStateUpdate(BaseModel):
    """Fields of the user row that update_user_state may touch."""

    state: str | None = None
    session_type: str | None = None
    conversation_history: list[dict] | None = None
    booking_slot: datetime | None = None
    edit_msg_id: int | None = None
    active_session_id: str | None = None
