"""Booking agent: interprets a user message as one booking action."""

import logging
from datetime import datetime, timezone
from typing import Any

from langchain_openai import ChatOpenAI
from pydantic import BaseModel

from klarity.config import settings
from klarity.schemas.booking import (
    DeleteCalendarEventArgs,
    FindFreeSlotsArgs,
    ResetUserStateArgs,
    StoreBookingDataArgs,
)
from klarity.tools.agent_logger import AgentCallLogger
from klarity.tools.base import ToolResult
from klarity.tools.prompts import BOOKING_AGENT_SYSTEM
from klarity.utils.date_utils import format_session_dates
from klarity.utils.metrics import ai_latency_seconds, ai_requests_total

logger = logging.getLogger(__name__)

AGENT_TOOLS: dict[str, type[BaseModel]] = {
    "find_free_slots": FindFreeSlotsArgs,
    "store_booking_data": StoreBookingDataArgs,
    "reset_user_state": ResetUserStateArgs,
    "delete_calendar_event": DeleteCalendarEventArgs,
}


def tool_spec(name: str, schema: type[BaseModel]) -> dict[str, Any]:
    """OpenAI function-tool definition for an argument schema."""
    parameters = schema.model_json_schema()
    parameters.pop("title", None)
    parameters.pop("description", None)
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": (schema.__doc__ or "").strip(),
            "parameters": parameters,
        },
    }


class BookingAgent:
    """Wraps ChatOpenAI with the booking tools bound.

    The agent only decides; it never executes tools. Its outcome is
    ``{"output": <reply text or None>, "tool_calls": [{"name", "args"}]}``.
    """

    def __init__(self, state_manager: Any = None, llm: Any = None) -> None:
        self.state_manager = state_manager
        if llm is None:
            llm = ChatOpenAI(
                model=settings.openai_model,
                api_key=settings.openai_api_key,
                temperature=settings.openai_temperature,
            )
        self.llm = llm.bind_tools([tool_spec(name, schema) for name, schema in AGENT_TOOLS.items()])

    async def _user_context(self, telegram_id: str) -> dict[str, str]:
        context = {"user_name": "there", "session_type": "not selected yet", "past_sessions": "none"}
        if self.state_manager is None:
            return context

        profile = await self.state_manager.get_user_profile_data(telegram_id=telegram_id)
        if profile.success and profile.data:
            context["user_name"] = profile.data.get("name") or context["user_name"]
            context["session_type"] = profile.data.get("session_type") or context["session_type"]

        past = await self.state_manager.get_user_past_sessions(telegram_id=telegram_id)
        if past.success:
            context["past_sessions"] = format_session_dates(past.data or [], settings.practitioner_timezone)
        return context

    async def build_messages(
        self,
        user_input: str,
        telegram_id: str,
        chat_history: list[dict] | None,
    ) -> list[dict]:
        context = await self._user_context(telegram_id)
        system = BOOKING_AGENT_SYSTEM.format(
            current_date_time=datetime.now(timezone.utc).isoformat(timespec="minutes"),
            practitioner_timezone=settings.practitioner_timezone,
            session_types=", ".join(settings.session_types),
            **context,
        )
        history = [
            {"role": m["role"], "content": m["content"]}
            for m in (chat_history or [])[-settings.chat_history_max_messages:]
            if m.get("role") in ("user", "assistant") and m.get("content")
        ]
        return [{"role": "system", "content": system}, *history, {"role": "user", "content": user_input}]

    async def run_booking_agent(
        self,
        user_input: str,
        telegram_id: str,
        chat_history: list[dict] | None = None,
    ) -> ToolResult:
        al = AgentCallLogger(settings.openai_model, telegram_id)
        try:
            messages = await self.build_messages(user_input, telegram_id, chat_history)
            al.set_request(messages=messages, text=user_input)
            al.start_timer()
            response = await self.llm.ainvoke(messages)
        except Exception as e:
            logger.exception("[booking_agent] user=%s agent execution failed", telegram_id)
            al.set_error(str(e))
            await al.flush()
            ai_requests_total.labels(status="error").inc()
            return ToolResult.fail(f"Agent execution failed: {e}")

        tool_calls = [
            {"name": call.get("name"), "args": call.get("args") or {}}
            for call in getattr(response, "tool_calls", None) or []
        ]
        content = response.content if isinstance(response.content, str) else None
        output = content.strip() if content and content.strip() else None

        al.set_response(text=output, tool_calls=tool_calls, response=response)
        await al.flush()
        ai_requests_total.labels(status="ok").inc()
        ai_latency_seconds.observe(al.latency_ms / 1000)

        logger.info("[booking_agent] user=%s tools=%s output=%r", telegram_id, [c["name"] for c in tool_calls], (output or "")[:100])
        return ToolResult.ok(data={"output": output, "tool_calls": tool_calls})
