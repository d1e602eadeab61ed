"""Registers the Telegram sender as a booking client and exposes it as ``data["user"]``."""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from aiogram import BaseMiddleware
from aiogram.types import TelegramObject
from aiogram.types import User as TelegramUser

from klarity.schemas.user import UserCreate
from klarity.services.user_service import get_or_create_user

logger = logging.getLogger(__name__)


def client_from_telegram(tg_user: TelegramUser) -> UserCreate:
    return UserCreate(
        id=tg_user.id,
        username=tg_user.username,
        first_name=tg_user.first_name or "",
        last_name=tg_user.last_name,
    )


class UserMiddleware(BaseMiddleware):
    async def __call__(
        self,
        handler: Callable[[TelegramObject, dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: dict[str, Any],
    ) -> Any:
        tg_user = data.get("event_from_user")
        session = data.get("session")
        if tg_user is None or session is None:
            return await handler(event, data)

        user, created = await get_or_create_user(session, client_from_telegram(tg_user))
        if created:
            logger.info("[user] user=%s registered", user.id)
            # Graph tools load the row through their own sessions
            await session.commit()
        data["user"] = user
        return await handler(event, data)
