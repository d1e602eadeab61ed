"""Incoming message logging and message counters."""

import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from aiogram import BaseMiddleware
from aiogram.types import Message, TelegramObject

from klarity.utils.metrics import messages_total

logger = logging.getLogger(__name__)


def message_kind(message: Message) -> str:
    text = message.text or ""
    if text.startswith("/"):
        return "command"
    return "text" if text else "other"


class LoggingMiddleware(BaseMiddleware):
    async def __call__(
        self,
        handler: Callable[[TelegramObject, dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: dict[str, Any],
    ) -> Any:
        if not isinstance(event, Message):
            return await handler(event, data)

        user_id = event.from_user.id if event.from_user else None
        kind = message_kind(event)
        messages_total.labels(type=kind).inc()
        logger.info("[update] user=%s %s: %r", user_id, kind, (event.text or event.content_type)[:50])

        started = time.monotonic()
        try:
            return await handler(event, data)
        except Exception:
            logger.exception("[update] user=%s failed after %.0fms", user_id, (time.monotonic() - started) * 1000)
            raise
        finally:
            logger.debug("[update] user=%s done in %.0fms", user_id, (time.monotonic() - started) * 1000)
