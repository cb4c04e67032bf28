"""Telegram channel adapter and chat sink."""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from dataclasses import dataclass
from typing import ClassVar

from loguru import logger
from telegram import Bot, Message, Update
from telegram.constants import ParseMode
from telegram.error import BadRequest, TelegramError
from telegram.ext import Application, CommandHandler, ContextTypes, MessageHandler, filters
from telegramify_markdown import markdownify as md

from relaybot.channels.base import ChatSink, MessageHandle, ThreadRef
from relaybot.channels.bus import MessageBus
from relaybot.channels.events import InboundMessage
from relaybot.errors import TransportError

MAX_MESSAGE_LENGTH = 4000
LAST_TEXT_CACHE_SIZE = 256


class RelaybotMessageFilter(filters.MessageFilter):
    """Private chats get every plain message; groups only what is addressed to the bot."""

    GROUP_CHAT_TYPES: ClassVar[frozenset[str]] = frozenset({"group", "supergroup"})
    ASK_PREFIX = "/ask "

    def filter(self, message: Message) -> bool:
        text = message.text
        if not text:
            return False
        chat_type = message.chat.type
        if chat_type == "private":
            return not text.startswith("/")
        if chat_type not in self.GROUP_CHAT_TYPES:
            return False
        return text.startswith(self.ASK_PREFIX) or self._addressed_to_bot(message, text)

    @staticmethod
    def _addressed_to_bot(message: Message, text: str) -> bool:
        bot = message.get_bot()
        handle = f"@{bot.username}".lower() if bot.username else None
        for entity in message.entities or ():
            if entity.type == "text_mention" and entity.user is not None and entity.user.id == bot.id:
                return True
            if entity.type == "mention" and handle is not None:
                if text[entity.offset : entity.offset + entity.length].lower() == handle:
                    return True
        replied = message.reply_to_message
        return replied is not None and replied.from_user is not None and replied.from_user.id == bot.id


@dataclass(frozen=True)
class TelegramConfig:
    """Telegram adapter config."""

    token: str
    allow_from: set[str]
    allow_chats: set[str]


class TelegramChatSink(ChatSink):
    """Post and edit replies with the Telegram Bot API."""

    name = "telegram"

    def __init__(self, bot: Bot) -> None:
        self._bot = bot
        self._last_text: OrderedDict[tuple[str, str], str] = OrderedDict()

    async def post(self, thread: ThreadRef, text: str) -> MessageHandle:
        reply_to = int(thread.reply_to) if thread.reply_to else None
        try:
            message = await self._send(chat_id=int(thread.chat_id), text=text, reply_to_message_id=reply_to)
        except TelegramError as exc:
            raise _transport_error("post", exc) from exc
        handle = MessageHandle(chat_id=thread.chat_id, message_id=str(message.message_id))
        self._remember(handle, text)
        return handle

    async def update(self, handle: MessageHandle, text: str) -> None:
        # Telegram rejects edits that do not change the text.
        if self._last_text.get((handle.chat_id, handle.message_id)) == text:
            return
        try:
            await self._edit(chat_id=int(handle.chat_id), message_id=int(handle.message_id), text=text)
        except BadRequest as exc:
            if "not modified" not in str(exc).lower():
                raise _transport_error("update", exc) from exc
        except TelegramError as exc:
            raise _transport_error("update", exc) from exc
        self._remember(handle, text)

    def _remember(self, handle: MessageHandle, text: str) -> None:
        key = (handle.chat_id, handle.message_id)
        self._last_text[key] = text
        self._last_text.move_to_end(key)
        while len(self._last_text) > LAST_TEXT_CACHE_SIZE:
            self._last_text.popitem(last=False)

    async def _send(self, *, chat_id: int, text: str, reply_to_message_id: int | None) -> Message:
        try:
            return await self._bot.send_message(
                chat_id=chat_id,
                text=_clip(md(text)),
                parse_mode=ParseMode.MARKDOWN_V2,
                reply_to_message_id=reply_to_message_id,
            )
        except BadRequest as exc:
            if "parse entities" not in str(exc).lower():
                raise
            return await self._bot.send_message(
                chat_id=chat_id, text=_clip(text), parse_mode=None, reply_to_message_id=reply_to_message_id
            )

    async def _edit(self, *, chat_id: int, message_id: int, text: str) -> None:
        try:
            await self._bot.edit_message_text(
                chat_id=chat_id, message_id=message_id, text=_clip(md(text)), parse_mode=ParseMode.MARKDOWN_V2
            )
        except BadRequest as exc:
            if "parse entities" not in str(exc).lower():
                raise
            await self._bot.edit_message_text(chat_id=chat_id, message_id=message_id, text=_clip(text), parse_mode=None)


def _clip(text: str) -> str:
    if len(text) <= MAX_MESSAGE_LENGTH:
        return text
    return text[: MAX_MESSAGE_LENGTH - 3] + "..."


def _transport_error(action: str, exc: TelegramError) -> TransportError:
    return TransportError(f"telegram {action} failed: {exc}")


class TelegramChannel:
    """Telegram adapter using long polling mode."""

    name = "telegram"

    def __init__(self, bus: MessageBus, config: TelegramConfig) -> None:
        self._bus = bus
        self._config = config
        self._app: Application | None = None
        self._running = False

    async def start(self) -> None:
        if not self._config.token:
            raise RuntimeError("telegram token is empty")
        logger.info(
            "telegram.channel.start allow_from_count={} allow_chats_count={}",
            len(self._config.allow_from),
            len(self._config.allow_chats),
        )
        self._running = True
        self._app = Application.builder().token(self._config.token).build()
        self._app.add_handler(CommandHandler("start", self._on_start))
        self._app.add_handler(CommandHandler("help", self._on_help))
        self._app.add_handler(MessageHandler(RelaybotMessageFilter(), self._on_text, block=False))
        await self._app.initialize()
        await self._app.start()
        updater = self._app.updater
        if updater is None:
            return
        await updater.start_polling(drop_pending_updates=True, allowed_updates=["message"])
        logger.info("telegram.channel.polling")
        while self._running:
            await asyncio.sleep(0.5)

    async def stop(self) -> None:
        self._running = False
        if self._app is None:
            return
        updater = self._app.updater
        if updater is not None:
            await updater.stop()
        await self._app.stop()
        await self._app.shutdown()
        self._app = None
        logger.info("telegram.channel.stopped")

    async def _on_start(self, update: Update, _context: ContextTypes.DEFAULT_TYPE) -> None:
        if update.message is None:
            return
        await update.message.reply_text("Ask me anything about the program. Send a question to start.")

    async def _on_help(self, update: Update, _context: ContextTypes.DEFAULT_TYPE) -> None:
        if update.message is None:
            return
        await update.message.reply_text(
            "Commands:\n"
            "/start - show startup message\n"
            "/help - show this help\n\n"
            "Send a question in a private chat, or mention me or use /ask in a group."
        )

    async def _on_text(self, update: Update, _context: ContextTypes.DEFAULT_TYPE) -> None:
        if update.message is None or update.effective_user is None:
            return
        user = update.effective_user
        chat_id = str(update.message.chat_id)
        if self._config.allow_chats and chat_id not in self._config.allow_chats:
            logger.warning("telegram.channel.chat_denied chat_id={}", chat_id)
            return
        sender_tokens = {str(user.id)}
        if user.username:
            sender_tokens.add(user.username)
        if self._config.allow_from and sender_tokens.isdisjoint(self._config.allow_from):
            await update.message.reply_text("Access denied.")
            return

        text = update.message.text or ""
        # Strip /ask prefix if present
        if text.startswith(RelaybotMessageFilter.ASK_PREFIX):
            text = text[len(RelaybotMessageFilter.ASK_PREFIX) :]

        logger.info(
            "telegram.channel.inbound chat_id={} sender_id={} username={} content={}",
            chat_id,
            user.id,
            user.username or "",
            text[:100],  # Log first 100 chars to avoid verbose logs
        )

        await self._bus.publish_inbound(
            InboundMessage(
                channel=self.name,
                sender_id=str(user.id),
                chat_id=chat_id,
                content=text,
                metadata={
                    "username": user.username or "",
                    "first_name": user.first_name or "",
                    "message_id": update.message.message_id,
                    "reply_to": str(update.message.message_id),
                },
            )
        )
