"""Shared test data builders."""

CONFIRMED_SLOT = {"start": "2025-01-01T10:00:00Z", "end": "2025-01-01T11:00:00Z"}


def agent_outcome(tool: str | None = None, output: str | None = None, **args) -> dict:
    """Agent outcome shaped like BookingAgent's data."""
    tool_calls = [{"name": tool, "args": args}] if tool else []
    return {"output": output, "tool_calls": tool_calls}
