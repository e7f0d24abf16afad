"""Telegram channel integration using python-telegram-bot (async native).

Requires: pip install mikrobot[telegram]
Config: channels.telegram.enabled = true, channels.telegram.token = "BOT_TOKEN"
Optional: channels.telegram.allow_from = ["123456789"]

Text messages and photo/document captions are forwarded to the agent.
Replies are sent back as plain text, split at Telegram's message limit.
"""

from __future__ import annotations

import contextlib

from loguru import logger

from mikrobot.bus.events import OutboundMessage
from mikrobot.channels.base import BaseChannel
from mikrobot.config.schema import ChannelEntry
from mikrobot.security.redact import redact_api_key

TELEGRAM_MAX_MESSAGE_LENGTH = 4096


class TelegramChannel(BaseChannel):
    """Telegram bot channel via long polling."""

    def __init__(self, config: ChannelEntry) -> None:
        super().__init__(config)
        self._app = None

    @property
    def name(self) -> str:
        return "telegram"

    async def connect(self) -> None:
        try:
            from telegram import Update
            from telegram.constants import ChatAction
            from telegram.ext import ApplicationBuilder, CommandHandler, MessageHandler, filters
        except ImportError as exc:
            raise RuntimeError(
                "python-telegram-bot is required for the Telegram channel. "
                "Install with: pip install mikrobot[telegram]"
            ) from exc

        token = self._config.token.get_secret_value()
        if not token:
            raise ValueError("Telegram bot token is required (channels.telegram.token)")

        self._app = ApplicationBuilder().token(token).build()
        channel = self

        async def cmd_start(update: Update, _ctx) -> None:
            if update.effective_chat:
                await update.effective_chat.send_message(
                    "Hi! Send me a message and I will do my best to help."
                )

        async def on_message(update: Update, _ctx) -> None:
            message = update.message
            if message is None:
                return
            text = message.text or message.caption
            if not text:
                return
            sender_id = str(update.effective_user.id) if update.effective_user else ""
            chat_id = str(update.effective_chat.id) if update.effective_chat else ""

            if update.effective_chat and channel.is_allowed(sender_id):
                with contextlib.suppress(Exception):
                    await update.effective_chat.send_action(ChatAction.TYPING)

            await channel.publish(
                sender_id, chat_id, text, message_id=str(message.message_id)
            )

        self._app.add_handler(CommandHandler("start", cmd_start))
        self._app.add_handler(
            MessageHandler(
                (filters.TEXT & ~filters.COMMAND) | filters.PHOTO | filters.Document.ALL,
                on_message,
            )
        )

        await self._app.initialize()
        await self._app.start()
        if self._app.updater:
            await self._app.updater.start_polling(drop_pending_updates=True)
        logger.info("Telegram channel connected (token {})", redact_api_key(token))

    async def disconnect(self) -> None:
        if self._app:
            if self._app.updater:
                await self._app.updater.stop()
            await self._app.stop()
            await self._app.shutdown()
            self._app = None
            logger.info("Telegram channel disconnected")

    async def send(self, message: OutboundMessage) -> None:
        if not self._app or not self._app.bot:
            logger.error("Telegram: cannot send, bot not initialized")
            return

        for chunk in self.split_message(message.text, TELEGRAM_MAX_MESSAGE_LENGTH):
            await self._app.bot.send_message(
                chat_id=int(message.chat_id),
                text=chunk,
                disable_web_page_preview=True,
            )
