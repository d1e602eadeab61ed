"""Telegram notifier: outbound booking messages through the aiogram Bot."""

import logging

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from klarity.config import settings
from klarity.keyboards.booking import waiver_kb, waiver_url
from klarity.models.user import User
from klarity.tools.base import ToolResult
from klarity.utils.metrics import errors_total

logger = logging.getLogger(__name__)


class TelegramNotifier:
    def __init__(
        self,
        bot: Bot,
        session_factory: async_sessionmaker[AsyncSession],
        form_url: str | None = None,
    ) -> None:
        self.bot = bot
        self.session_factory = session_factory
        self.form_url = settings.form_url if form_url is None else form_url

    async def send_waiver_link(
        self,
        telegram_id: str,
        session_type: str | None,
        message_text: str | None = None,
    ) -> ToolResult:
        """Send the waiver web-app button and remember its message id for later edits."""
        if not telegram_id or not session_type:
            logger.error("[notifier] user=%s waiver link missing parameters session_type=%r", telegram_id, session_type)
            return ToolResult.fail("Missing parameters")
        if not self.form_url:
            logger.error("[notifier] user=%s form_url not configured", telegram_id)
            return ToolResult.fail("Waiver form URL not configured.")

        text = message_text or f"Great! Let's get you scheduled for your {session_type} session \U0001f438"
        url = waiver_url(self.form_url, str(telegram_id), session_type)

        try:
            sent = await self.bot.send_message(chat_id=int(telegram_id), text=text, reply_markup=waiver_kb(url))
        except (TelegramAPIError, ValueError) as exc:
            logger.error("[notifier] user=%s failed to send waiver link: %s", telegram_id, exc)
            errors_total.labels(type="notification").inc()
            return ToolResult.fail("Telegram API error")

        logger.info("[notifier] user=%s waiver link sent message_id=%s", telegram_id, sent.message_id)

        try:
            async with self.session_factory() as session:
                await session.execute(
                    update(User).where(User.id == int(telegram_id)).values(edit_msg_id=sent.message_id)
                )
                await session.commit()
        except Exception:
            logger.exception("[notifier] user=%s failed to store edit_msg_id", telegram_id)
            return ToolResult.ok(
                message_id=sent.message_id,
                warning="Message sent but failed to store message_id in DB",
            )

        return ToolResult.ok(message_id=sent.message_id)

    async def send_text_message(self, telegram_id: str, text: str) -> ToolResult:
        if not telegram_id or not isinstance(text, str) or not text.strip():
            logger.error("[notifier] user=%s missing or invalid text message parameters", telegram_id)
            return ToolResult.fail("Missing or invalid parameters")

        try:
            sent = await self.bot.send_message(chat_id=int(telegram_id), text=text, parse_mode=None)
        except (TelegramAPIError, ValueError) as exc:
            logger.error("[notifier] user=%s failed to send text message: %s", telegram_id, exc)
            errors_total.labels(type="notification").inc()
            return ToolResult.fail("Failed to send Telegram message")

        logger.info("[notifier] user=%s text message sent message_id=%s", telegram_id, sent.message_id)
        return ToolResult.ok(message_id=sent.message_id)
