"""Channel bus event models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from relaybot.channels.base import ThreadRef


@dataclass(frozen=True)
class InboundMessage:
    """Message received from an external channel."""

    channel: str
    sender_id: str
    chat_id: str
    content: str
    thread_id: str | None = None
    team_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def thread(self) -> ThreadRef:
        return ThreadRef(
            channel=self.channel,
            chat_id=self.chat_id,
            thread_id=self.thread_id,
            user_id=self.sender_id,
            team_id=self.team_id,
            reply_to=self.metadata.get("reply_to"),
        )
