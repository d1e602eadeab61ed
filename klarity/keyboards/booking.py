"""Booking inline keyboards."""

from urllib.parse import quote

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup, WebAppInfo

WAIVER_BUTTON_TEXT = "\U0001f4dd Complete Waiver & Book"


def waiver_url(form_url: str, telegram_id: str, session_type: str) -> str:
    return f"{form_url.rstrip('/')}/booking-form.html?telegramId={telegram_id}&sessionType={quote(session_type, safe='')}"


def waiver_kb(url: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text=WAIVER_BUTTON_TEXT, web_app=WebAppInfo(url=url))],
    ])
