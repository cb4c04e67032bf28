"""Base chat sink interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ThreadRef:
    """Where a conversation lives on one chat platform."""

    channel: str
    chat_id: str
    thread_id: str | None = None
    user_id: str | None = None
    team_id: str | None = None
    # Message the reply should quote; not part of the conversation identity.
    reply_to: str | None = None

    @property
    def conversation_id(self) -> str:
        return f"{self.channel}-{self.chat_id}-{self.thread_id or 'root'}"

    @property
    def resource_id(self) -> str:
        return f"{self.channel}-{self.team_id or 'default'}-{self.user_id or 'anonymous'}"


@dataclass(frozen=True)
class MessageHandle:
    """Opaque reference to one posted message that can be edited in place."""

    chat_id: str
    message_id: str
    extra: Any = None


class ChatSink(ABC):
    """Posts and edits messages on one chat platform."""

    name: str = "base"

    @abstractmethod
    async def post(self, thread: ThreadRef, text: str) -> MessageHandle:
        """Post a new message into the thread and return its handle."""

    @abstractmethod
    async def update(self, handle: MessageHandle, text: str) -> None:
        """Replace the full text of a posted message."""

    async def history(self, thread: ThreadRef, *, limit: int, exclude_id: str | None = None) -> list[dict[str, str]]:
        """Prior turns of the thread, oldest first, as ``{"role", "text"}`` dicts."""
        return []
