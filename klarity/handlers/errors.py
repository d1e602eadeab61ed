"""Last-resort error router: apologise to the user, count the failure."""

import logging

from aiogram import Router
from aiogram.types import ErrorEvent

from klarity.utils.metrics import errors_total

logger = logging.getLogger(__name__)
router = Router(name="errors")

ERROR_TEXT = "Sorry, something went wrong. Please try again in a moment."


@router.error()
async def error_handler(event: ErrorEvent) -> bool:
    message = event.update.message if event.update else None
    user_id = message.from_user.id if message and message.from_user else None
    logger.exception("[errors] user=%s unhandled exception: %s", user_id, event.exception)
    errors_total.labels(type="handler").inc()

    if message is not None:
        try:
            await message.answer(ERROR_TEXT, parse_mode=None)
        except Exception:
            logger.exception("[errors] user=%s failed to send apology", user_id)

    return True
