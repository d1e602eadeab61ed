"""Intent resolution and conditional edges of the booking graph."""

import enum
import logging
from typing import Any

from langgraph.graph import END

from klarity.graph.state import BookingState

logger = logging.getLogger(__name__)


class Intent(str, enum.Enum):
    FIND_SLOTS = "find_slots"
    CONFIRM = "confirm"
    CANCEL = "cancel"
    CANCEL_BOOKING = "cancel_booking"
    RESPOND = "respond"


TOOL_INTENTS: dict[str, Intent] = {
    "find_free_slots": Intent.FIND_SLOTS,
    "store_booking_data": Intent.CONFIRM,
    "reset_user_state": Intent.CANCEL,
    "delete_calendar_event": Intent.CANCEL_BOOKING,
}


class UnresolvedIntentError(ValueError):
    pass


def first_tool_call(outcome: dict[str, Any] | None) -> dict[str, Any] | None:
    """Return the first tool call of an agent outcome (one tool per turn)."""
    if not outcome:
        return None
    tool_calls = outcome.get("tool_calls") or []
    return tool_calls[0] if tool_calls else None


def tool_args(outcome: dict[str, Any] | None) -> dict[str, Any]:
    call = first_tool_call(outcome)
    if call is None:
        return {}
    return call.get("args") or {}


def resolve_intent(outcome: dict[str, Any] | None) -> Intent:
    """Map an agent outcome onto the step the graph should take next.

    Raises UnresolvedIntentError when the outcome names no usable tool and
    carries no reply text.
    """
    call = first_tool_call(outcome)
    if call is not None:
        name = call.get("name")
        if not name:
            raise UnresolvedIntentError("Agent requested a tool but the tool name is missing.")
        if name not in TOOL_INTENTS:
            raise UnresolvedIntentError(f"Agent requested an unknown tool: {name}")
        return TOOL_INTENTS[name]

    if outcome and outcome.get("output"):
        return Intent.RESPOND

    raise UnresolvedIntentError("Agent did not produce a tool call or a direct response.")


# Nodes reached from the agent for each intent; RESPOND ends the turn.
_INTENT_ROUTES: dict[Intent, str] = {
    Intent.FIND_SLOTS: "find_slots",
    Intent.CONFIRM: "store_booking",
    Intent.CANCEL: "reset_state",
    Intent.CANCEL_BOOKING: "delete_calendar_event",
    Intent.RESPOND: END,
}


def route_after_agent(state: BookingState) -> str:
    if state.error:
        logger.warning("[route] user=%s error after agent: %s", state.telegram_id, state.error)
        return "handle_error"
    try:
        intent = resolve_intent(state.agent_outcome)
    except UnresolvedIntentError:
        # agent_node validates the outcome, so this only guards hand-built states
        logger.error("[route] user=%s unresolvable agent outcome: %r", state.telegram_id, state.agent_outcome)
        return "handle_error"
    logger.info("[route] user=%s intent=%s", state.telegram_id, intent.value)
    return _INTENT_ROUTES[intent]


def _next_or_error(next_node: str):
    def route(state: BookingState) -> str:
        if state.error:
            logger.warning("[route] user=%s error before %s: %s", state.telegram_id, next_node, state.error)
            return "handle_error"
        return next_node

    route.__name__ = f"route_to_{next_node.lower()}"
    return route


route_after_find_slots = _next_or_error(END)
route_after_store_booking = _next_or_error("create_calendar_event")
route_after_calendar_event = _next_or_error("send_waiver")
route_after_waiver = _next_or_error(END)
route_after_delete_event = _next_or_error("reset_state")
route_after_reset = _next_or_error(END)
