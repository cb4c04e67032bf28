"""Slack chat sink."""

from __future__ import annotations

from typing import Any

from loguru import logger
from slack_sdk.errors import SlackApiError
from slack_sdk.web.async_client import AsyncWebClient

from relaybot.channels.base import ChatSink, MessageHandle, ThreadRef
from relaybot.errors import TransportError

HISTORY_PAGE_SIZE = 200
HISTORY_MAX_PAGES = 10


class SlackChatSink(ChatSink):
    """Post and edit thread replies through the Slack Web API."""

    name = "slack"

    def __init__(self, client: AsyncWebClient, *, bot_user_id: str | None = None) -> None:
        self._client = client
        self._bot_user_id = bot_user_id

    @classmethod
    def from_token(cls, token: str) -> SlackChatSink:
        return cls(AsyncWebClient(token=token))

    async def bot_user_id(self) -> str | None:
        if self._bot_user_id is None:
            try:
                response = await self._client.auth_test()
            except SlackApiError as exc:
                logger.warning("slack.auth_test.error error={}", exc)
                return None
            self._bot_user_id = response.get("user_id")
        return self._bot_user_id

    async def post(self, thread: ThreadRef, text: str) -> MessageHandle:
        try:
            response = await self._client.chat_postMessage(channel=thread.chat_id, thread_ts=thread.thread_id, text=text)
        except Exception as exc:
            raise TransportError(f"slack post failed: {exc}") from exc
        ts = response.get("ts")
        if not ts:
            raise TransportError("slack post returned no message ts")
        return MessageHandle(chat_id=str(response.get("channel") or thread.chat_id), message_id=str(ts))

    async def update(self, handle: MessageHandle, text: str) -> None:
        try:
            await self._client.chat_update(channel=handle.chat_id, ts=handle.message_id, text=text)
        except Exception as exc:
            raise TransportError(f"slack update failed: {exc}") from exc

    async def history(self, thread: ThreadRef, *, limit: int, exclude_id: str | None = None) -> list[dict[str, str]]:
        if not thread.thread_id or limit <= 0:
            return []
        try:
            messages = await self._replies(thread)
        except SlackApiError as exc:
            logger.warning("slack.history.error chat_id={} error={}", thread.chat_id, exc)
            return []
        bot_user_id = await self.bot_user_id()
        turns = [
            _to_turn(message, bot_user_id)
            for message in messages
            if message.get("ts") != exclude_id and message.get("text")
        ]
        return turns[-limit:]

    async def _replies(self, thread: ThreadRef) -> list[dict[str, Any]]:
        # Replies come back oldest first; walk every page so the tail is the latest turns.
        messages: list[dict[str, Any]] = []
        cursor: str | None = None
        for _ in range(HISTORY_MAX_PAGES):
            response = await self._client.conversations_replies(
                channel=thread.chat_id, ts=thread.thread_id, limit=HISTORY_PAGE_SIZE, cursor=cursor
            )
            messages.extend(response.get("messages", []))
            cursor = (response.get("response_metadata") or {}).get("next_cursor")
            if not response.get("has_more") or not cursor:
                break
        return messages


def _to_turn(message: dict[str, Any], bot_user_id: str | None) -> dict[str, str]:
    is_bot = bool(message.get("bot_id")) or (bot_user_id is not None and message.get("user") == bot_user_id)
    return {"role": "assistant" if is_bot else "user", "text": str(message.get("text", ""))}
