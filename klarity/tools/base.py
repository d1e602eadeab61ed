"""Result type shared by every booking tool."""

from dataclasses import dataclass
from typing import Any


@dataclass
class ToolResult:
    """Outcome of a collaborator call.

    Expected failures are reported with ``success=False`` and a human-readable
    ``error`` instead of raising.
    """

    success: bool
    data: Any = None
    error: str | None = None
    event_id: str | None = None
    event_link: str | None = None
    message_id: int | None = None
    warning: str | None = None

    @classmethod
    def ok(cls, **kwargs: Any) -> "ToolResult":
        return cls(success=True, **kwargs)

    @classmethod
    def fail(cls, error: str) -> "ToolResult":
        return cls(success=False, error=error)
