"""Per-user flood guard for incoming messages."""

import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any

from aiogram import BaseMiddleware
from aiogram.types import Message, TelegramObject

logger = logging.getLogger(__name__)

RATE_LIMIT_TEXT = "You're sending messages too quickly. Please wait a moment and try again."


class RateLimitMiddleware(BaseMiddleware):
    """Drops messages beyond ``max_per_minute`` per user in a sliding window.

    This guards the bot as a whole; booking agent calls have their own
    Redis-backed limit in ``klarity.services.rate_limit``.
    """

    def __init__(self, max_per_minute: int = 60, window_seconds: float = 60.0) -> None:
        self.max_per_minute = max_per_minute
        self.window_seconds = window_seconds
        self._seen: dict[int, deque[float]] = {}

    def _allow(self, user_id: int) -> bool:
        now = time.monotonic()
        seen = self._seen.setdefault(user_id, deque())
        while seen and now - seen[0] >= self.window_seconds:
            seen.popleft()
        if len(seen) >= self.max_per_minute:
            return False
        seen.append(now)
        return True

    async def __call__(
        self,
        handler: Callable[[TelegramObject, dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: dict[str, Any],
    ) -> Any:
        if not isinstance(event, Message) or event.from_user is None:
            return await handler(event, data)

        if not self._allow(event.from_user.id):
            logger.warning("[rate_limit] user=%s message dropped", event.from_user.id)
            await event.answer(RATE_LIMIT_TEXT)
            return None
        return await handler(event, data)
