from __future__ import annotations

import logging
from typing import Protocol

from telegram import Bot, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.constants import ParseMode
from telegram.error import TelegramError

from .cloudflare_client import mask_secrets
from .errors import TransportError
from .menus import Keyboard


LOGGER = logging.getLogger("cfworker-bot.transport")


class Transport(Protocol):
    async def send_message(self, chat_id: int, text: str, keyboard: Keyboard | None = None) -> None: ...

    async def answer_callback(self, callback_id: str, text: str | None = None, show_alert: bool = False) -> None: ...

    async def download_file(self, file_id: str) -> bytes: ...


def to_markup(keyboard: Keyboard | None) -> InlineKeyboardMarkup | None:
    if not keyboard:
        return None
    return InlineKeyboardMarkup(
        [[InlineKeyboardButton(button.label, callback_data=button.data) for button in row] for row in keyboard]
    )


class TelegramTransport:
    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def send_message(self, chat_id: int, text: str, keyboard: Keyboard | None = None) -> None:
        try:
            await self._bot.send_message(
                chat_id=chat_id,
                text=text,
                parse_mode=ParseMode.HTML,
                reply_markup=to_markup(keyboard),
            )
        except TelegramError as exc:
            raise TransportError(f"Gagal kirim pesan ke {chat_id}: {mask_secrets(str(exc))}") from exc

    async def answer_callback(self, callback_id: str, text: str | None = None, show_alert: bool = False) -> None:
        if not callback_id:
            return
        try:
            await self._bot.answer_callback_query(callback_query_id=callback_id, text=text, show_alert=show_alert)
        except TelegramError as exc:
            # Callback bisa sudah kedaluwarsa; tidak mempengaruhi alur percakapan.
            LOGGER.debug("answer_callback_query gagal: %s", exc)

    async def download_file(self, file_id: str) -> bytes:
        try:
            tg_file = await self._bot.get_file(file_id)
            payload = await tg_file.download_as_bytearray()
        except TelegramError as exc:
            raise TransportError(f"Gagal mengunduh file dari Telegram: {mask_secrets(str(exc))}") from exc
        return bytes(payload)
