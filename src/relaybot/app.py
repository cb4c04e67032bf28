"""Application wiring: inbound messages to routed, relayed answers."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping

from loguru import logger

from relaybot.channels.base import ChatSink
from relaybot.channels.bus import MessageBus
from relaybot.channels.events import InboundMessage
from relaybot.config import Settings
from relaybot.dispatch.router import DispatchRouter
from relaybot.dispatch.table import HANDLER_TABLE, validate_table
from relaybot.errors import HandlerExecutionError, RelaybotError
from relaybot.handlers.base import HandlerRegistry, format_thread_history
from relaybot.handlers.catalog import build_default_handlers
from relaybot.knowledge.store import KnowledgeBase
from relaybot.relay.relay import RelayResult, RelayTimings, ResponseRelay, error_text


class RelayApp:
    """Answer every inbound message with a streamed, in-place edited reply."""

    def __init__(
        self,
        settings: Settings,
        router: DispatchRouter,
        bus: MessageBus | None = None,
        sinks: Mapping[str, ChatSink] | None = None,
    ) -> None:
        self.settings = settings
        self.router = router
        self.bus = bus or MessageBus()
        self._sinks: dict[str, ChatSink] = dict(sinks or {})
        self._timings = RelayTimings.from_settings(settings)
        self._tasks: set[asyncio.Task[RelayResult | None]] = set()
        self._unsub_inbound: Callable[[], None] | None = None

    def register_sink(self, sink: ChatSink) -> None:
        self._sinks[sink.name] = sink

    @property
    def sinks(self) -> dict[str, ChatSink]:
        return dict(self._sinks)

    def start(self) -> None:
        if self._unsub_inbound is None:
            self._unsub_inbound = self.bus.on_inbound(self._on_inbound)

    async def stop(self) -> None:
        if self._unsub_inbound is not None:
            self._unsub_inbound()
            self._unsub_inbound = None
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                continue
        self._tasks.clear()

    async def _on_inbound(self, message: InboundMessage) -> None:
        # Webhooks must be acknowledged quickly; answer in the background.
        task = asyncio.create_task(self.handle_inbound(message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def handle_inbound(self, message: InboundMessage) -> RelayResult | None:
        sink = self._sinks.get(message.channel)
        if sink is None:
            logger.warning("app.inbound.no_sink channel={} chat_id={}", message.channel, message.chat_id)
            return None

        thread = message.thread
        try:
            turns = await sink.history(
                thread,
                limit=self.settings.history_limit,
                exclude_id=message.metadata.get("ts"),
            )
        except Exception:
            logger.exception("app.history.error channel={} chat_id={}", message.channel, message.chat_id)
            turns = []
        context = format_thread_history(turns) or None
        try:
            route, events = self.router.stream(message.content, context, thread=thread)
        except RelaybotError as exc:
            logger.error("app.route.error channel={} chat_id={} error={}", message.channel, message.chat_id, exc)
            try:
                await sink.post(thread, error_text(exc))
            except Exception:
                logger.exception("app.route.notify_error chat_id={}", message.chat_id)
            return None

        relay = ResponseRelay(sink, thread, timings=self._timings, agent_name=route.display_name)
        try:
            return await relay.run(events)
        except HandlerExecutionError:
            # The relay already wrote the error into the chat.
            return None
        except Exception:
            logger.exception("app.relay.error channel={} chat_id={}", message.channel, message.chat_id)
            return None


def build_router(settings: Settings, *, handlers: HandlerRegistry | None = None) -> DispatchRouter:
    validate_table(HANDLER_TABLE)
    if handlers is None:
        handlers = build_default_handlers(settings, KnowledgeBase(settings.data_dir))
    router = DispatchRouter(handlers)
    missing = router.missing_handlers()
    if missing:
        logger.warning("app.handlers.missing ids={}", ",".join(sorted(missing)))
    return router


def build_app(
    settings: Settings,
    *,
    bus: MessageBus | None = None,
    sinks: Mapping[str, ChatSink] | None = None,
    handlers: HandlerRegistry | None = None,
) -> RelayApp:
    """Build the application for one process."""
    return RelayApp(settings, build_router(settings, handlers=handlers), bus=bus, sinks=sinks)
