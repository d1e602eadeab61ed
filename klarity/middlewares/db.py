"""Per-update database session for handlers and the user middleware."""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from aiogram import BaseMiddleware
from aiogram.types import TelegramObject
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)


class DbSessionMiddleware(BaseMiddleware):
    """Opens one AsyncSession per update as ``data["session"]``.

    The session is committed when the handler returns and rolled back when
    it raises; the exception still reaches the error router.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        if session_factory is None:
            from klarity.database import async_session_factory

            session_factory = async_session_factory
        self.session_factory = session_factory

    async def __call__(
        self,
        handler: Callable[[TelegramObject, dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: dict[str, Any],
    ) -> Any:
        async with self.session_factory() as session:
            data["session"] = session
            try:
                result = await handler(event, data)
            except Exception:
                logger.warning("[db] rolling back session after handler failure")
                await session.rollback()
                raise
            await session.commit()
            return result
