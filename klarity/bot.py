"""Bot and dispatcher for the booking assistant."""

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.fsm.storage.redis import RedisStorage

from klarity.config import settings
from klarity.handlers import booking, errors, start
from klarity.middlewares import (
    DbSessionMiddleware,
    LoggingMiddleware,
    RateLimitMiddleware,
    UserMiddleware,
)


def build_dispatcher() -> Dispatcher:
    dispatcher = Dispatcher(storage=RedisStorage.from_url(settings.redis_url))

    # Outer to inner: the user middleware needs the session, the limiter needs nothing
    for middleware in (
        LoggingMiddleware(),
        DbSessionMiddleware(),
        UserMiddleware(),
        RateLimitMiddleware(settings.message_rate_limit_per_minute),
    ):
        dispatcher.message.outer_middleware(middleware)

    # booking.router answers any text, so it goes last
    dispatcher.include_routers(errors.router, start.router, booking.router)
    return dispatcher


dp = build_dispatcher()

bot = Bot(
    token=settings.bot_token,
    default=DefaultBotProperties(parse_mode=ParseMode.HTML),
)
