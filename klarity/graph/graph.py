"""LangGraph booking graph assembly and the per-turn orchestrator."""

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from langgraph.graph import END, StateGraph

from klarity.graph import edges
from klarity.graph.edges import Intent, UnresolvedIntentError, resolve_intent
from klarity.graph.nodes import BookingNodes
from klarity.graph.state import BookingState
from klarity.utils.metrics import bookings_total, turn_latency_seconds, turns_total

logger = logging.getLogger(__name__)


def build_graph(nodes: BookingNodes) -> StateGraph:
    """Build the booking graph.

    Flow:
        agent -> find_slots -> END
        agent -> store_booking -> create_calendar_event -> send_waiver -> END
        agent -> reset_state -> END
        agent -> delete_calendar_event -> reset_state -> END
        agent -> END (plain reply)
        any error -> handle_error -> END
    """
    graph = StateGraph(BookingState)

    # Add nodes
    graph.add_node("agent", nodes.agent_node)
    graph.add_node("find_slots", nodes.find_slots_node)
    graph.add_node("store_booking", nodes.store_booking_node)
    graph.add_node("create_calendar_event", nodes.create_calendar_event_node)
    graph.add_node("send_waiver", nodes.send_waiver_node)
    graph.add_node("delete_calendar_event", nodes.delete_calendar_event_node)
    graph.add_node("reset_state", nodes.reset_state_node)
    graph.add_node("handle_error", nodes.handle_error_node)

    # Set entry point
    graph.set_entry_point("agent")

    # Edges
    graph.add_conditional_edges("agent", edges.route_after_agent)
    graph.add_conditional_edges("find_slots", edges.route_after_find_slots)
    graph.add_conditional_edges("store_booking", edges.route_after_store_booking)
    graph.add_conditional_edges("create_calendar_event", edges.route_after_calendar_event)
    graph.add_conditional_edges("send_waiver", edges.route_after_waiver)
    graph.add_conditional_edges("delete_calendar_event", edges.route_after_delete_event)
    graph.add_conditional_edges("reset_state", edges.route_after_reset)
    graph.add_edge("handle_error", END)

    return graph


class KeyedLock:
    """asyncio locks keyed by user, dropped once nobody holds or waits on them."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __contains__(self, key: str) -> bool:
        return key in self._locks


def _turn_intent(state: BookingState) -> Intent | None:
    try:
        return resolve_intent(state.agent_outcome)
    except UnresolvedIntentError:
        return None


class BookingOrchestrator:
    """Runs one conversation turn through the compiled booking graph.

    Turns of the same user are serialized; turns of different users run
    concurrently.
    """

    def __init__(self, nodes: BookingNodes) -> None:
        self.nodes = nodes
        self.graph = build_graph(nodes).compile()
        self._locks = KeyedLock()

    async def run_turn(self, state: BookingState) -> BookingState:
        telegram_id = state.telegram_id
        logger.info("[turn] user=%s session=%s text=%r", telegram_id, state.session_id, (state.user_input or "")[:200])

        started = time.monotonic()
        async with self._locks.hold(telegram_id):
            result = await self.graph.ainvoke(state)

            # LangGraph ainvoke returns a dict, convert back to BookingState
            if isinstance(result, dict):
                final = BookingState(**result)
            else:
                final = result

            intent = _turn_intent(final)
            # An event created this turn is confirmed even if a later step failed
            event_created = intent is Intent.CONFIRM and final.google_event_id not in (None, state.google_event_id)
            if final.error is None or event_created:
                await self._finalize_booking(final, intent)

        turn_latency_seconds.observe(time.monotonic() - started)
        turns_total.labels(
            intent=intent.value if intent else "unknown",
            outcome="error" if final.error else "ok",
        ).inc()

        logger.info(
            "[turn] user=%s intent=%s error=%r last_tool=%r",
            telegram_id, intent.value if intent else None, final.error, final.last_tool_response,
        )
        return final

    async def _finalize_booking(self, state: BookingState, intent: Intent | None) -> None:
        """Move the pending booking row to its final status."""
        state_manager = self.nodes.state_manager
        try:
            if intent is Intent.CONFIRM and state.google_event_id:
                result = await state_manager.mark_booking_confirmed(
                    telegram_id=state.telegram_id, google_event_id=state.google_event_id
                )
                status = "confirmed"
            elif intent is Intent.CANCEL_BOOKING and state.google_event_id:
                result = await state_manager.mark_booking_cancelled(google_event_id=state.google_event_id)
                status = "cancelled"
            else:
                return
        except Exception:
            logger.exception("[turn] user=%s failed to finalize booking", state.telegram_id)
            return

        if result.success:
            bookings_total.labels(status=status).inc()
        else:
            logger.error("[turn] user=%s failed to mark booking %s: %s", state.telegram_id, status, result.error)


# Orchestrator singleton, set at startup
_orchestrator: BookingOrchestrator | None = None


def get_orchestrator() -> BookingOrchestrator | None:
    return _orchestrator


def set_orchestrator(orchestrator: BookingOrchestrator | None) -> None:
    global _orchestrator
    _orchestrator = orchestrator


def build_orchestrator(bot: Any) -> BookingOrchestrator:
    """Wire the production collaborators into a new orchestrator.

    Raises NodeConfigurationError if a collaborator could not be built.
    """
    from klarity.config import settings
    from klarity.database import async_session_factory
    from klarity.tools.agent import BookingAgent
    from klarity.tools.calendar import GoogleCalendarTool
    from klarity.tools.notifier import TelegramNotifier
    from klarity.tools.state_manager import StateManager

    state_manager = StateManager(async_session_factory)
    nodes = BookingNodes(
        booking_agent=BookingAgent(state_manager=state_manager),
        state_manager=state_manager,
        google_calendar=GoogleCalendarTool(),
        telegram_notifier=TelegramNotifier(bot, session_factory=async_session_factory),
        settings=settings,
        logger=logging.getLogger("klarity.graph.nodes"),
    )
    return BookingOrchestrator(nodes)
