"""/start handler."""

import logging
from html import escape

from aiogram import Router
from aiogram.filters import CommandStart
from aiogram.types import Message

from klarity.models.user import User

logger = logging.getLogger(__name__)

router = Router(name="start")

WELCOME_TEXT = (
    "Hi {name}! I'm the Kambo Klarity booking assistant \U0001f438\n\n"
    "Tell me when you'd like to come in, for example \"what's free next week?\", "
    "and I'll find an open time for your session. You can cancel at any point."
)


@router.message(CommandStart())
async def cmd_start(message: Message, user: User) -> None:
    logger.info("[start] user=%s state=%s", user.id, user.state)
    await message.answer(WELCOME_TEXT.format(name=escape(user.first_name or "there")))
