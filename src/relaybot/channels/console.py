"""Terminal chat sink rendered with Rich."""

from __future__ import annotations

import itertools

from rich.console import Console
from rich.live import Live
from rich.text import Text

from relaybot.channels.base import ChatSink, MessageHandle, ThreadRef


class ConsoleChatSink(ChatSink):
    """Show each posted message as a live region that updates in place."""

    name = "console"

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()
        self._ids = itertools.count(1)
        self._live: dict[str, Live] = {}
        self.texts: dict[str, str] = {}

    async def post(self, thread: ThreadRef, text: str) -> MessageHandle:
        message_id = str(next(self._ids))
        live = Live(Text(text), console=self.console, auto_refresh=False, transient=False)
        live.start()
        self._live[message_id] = live
        self.texts[message_id] = text
        return MessageHandle(chat_id=thread.chat_id, message_id=message_id)

    async def update(self, handle: MessageHandle, text: str) -> None:
        live = self._live.get(handle.message_id)
        if live is None:
            raise KeyError(f"unknown console message: {handle.message_id}")
        self.texts[handle.message_id] = text
        live.update(Text(text), refresh=True)

    def close(self) -> None:
        """Stop all live regions, leaving their last text on screen."""
        for live in self._live.values():
            live.stop()
        self._live.clear()
