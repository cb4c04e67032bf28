"""Base classes for the specialized responders.

Every handler answers one family of questions. The Router looks handlers up by
``handler_id`` in a ``HandlerRegistry`` built once at startup.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Iterable

from relaybot.channels.base import ThreadRef
from relaybot.errors import HandlerNotFoundError
from relaybot.relay.events import StreamEvent, TextDelta


class Handler(ABC):
    """Abstract base class for handlers.

    To create a new handler:
    1. Subclass Handler
    2. Set ``handler_id`` (the id used in the intent table) and ``display_name``
    3. Implement ``stream()``
    4. Register the instance in ``build_default_handlers``

    Example::

        class EchoHandler(Handler):
            handler_id = "echo"
            display_name = "Echo Agent"

            async def stream(self, query, *, thread=None):
                yield TextDelta(query)
    """

    handler_id: str = ""
    display_name: str = ""
    description: str = ""

    @abstractmethod
    def stream(self, query: str, *, thread: ThreadRef | None = None) -> AsyncIterator[StreamEvent]:
        """Answer the query as an ordered stream of progress events.

        Args:
            query: Normalized question, possibly prefixed with conversation context.
            thread: Correlation identifiers for conversational continuity.
        """
        ...

    async def generate(self, query: str, *, thread: ThreadRef | None = None) -> str:
        """Answer the query with a single final text."""
        parts: list[str] = []
        async for event in self.stream(query, thread=thread):
            if isinstance(event, TextDelta):
                parts.append(event.text)
        return "".join(parts)


class HandlerRegistry:
    """Live handler instances keyed by handler id."""

    def __init__(self, handlers: Iterable[Handler] = ()) -> None:
        self._handlers: dict[str, Handler] = {}
        for handler in handlers:
            self.register(handler)

    def register(self, handler: Handler) -> None:
        if not handler.handler_id:
            raise ValueError(f"handler {handler!r} has no handler_id")
        self._handlers[handler.handler_id] = handler

    def get(self, handler_id: str) -> Handler:
        handler = self._handlers.get(handler_id)
        if handler is None:
            raise HandlerNotFoundError(handler_id)
        return handler

    def ids(self) -> set[str]:
        return set(self._handlers)

    def __contains__(self, handler_id: object) -> bool:
        return handler_id in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)


def format_thread_history(thread_history: list[dict[str, str]]) -> str:
    """Format prior thread turns into a short query prefix.

    Returns an empty string if there is no history, so references like
    "the first two" can be resolved by the handler when there is.
    """
    if not thread_history:
        return ""

    lines = ["Conversation so far:"]
    for message in thread_history:
        label = "User" if message.get("role") == "user" else "Assistant"
        lines.append(f"{label}: {message.get('text', '').strip()}")
    lines.append("")
    lines.append("Current question:")
    return "\n".join(lines)
