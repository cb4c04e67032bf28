"""Dispatch router: classify, resolve, invoke."""

from __future__ import annotations

from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass

from loguru import logger

from relaybot.channels.base import ThreadRef
from relaybot.dispatch.classifier import Classification, Intent, classify
from relaybot.dispatch.table import HANDLER_TABLE, HandlerMapping, handler_ids, resolve
from relaybot.errors import HandlerExecutionError
from relaybot.handlers.base import Handler, HandlerRegistry
from relaybot.relay.events import StreamEvent


@dataclass(frozen=True)
class Route:
    """Routing decision for one inbound message."""

    classification: Classification
    mapping: HandlerMapping
    handler: Handler
    query: str

    @property
    def display_name(self) -> str:
        return self.mapping.display_name


@dataclass(frozen=True)
class DispatchResult:
    display_name: str
    final_text: str
    intent: Intent


class DispatchRouter:
    """Route questions to the handler registered for their intent."""

    def __init__(self, handlers: HandlerRegistry, table: Mapping[Intent, HandlerMapping] = HANDLER_TABLE) -> None:
        self._handlers = handlers
        self._table = table

    def missing_handlers(self) -> set[str]:
        return handler_ids(self._table) - self._handlers.ids()

    def route(self, raw_text: str, context: str | None = None) -> Route:
        classification = classify(raw_text)
        mapping = resolve(classification.intent, self._table)
        handler = self._handlers.get(mapping.handler_id)
        query = classification.normalized_query
        if context:
            query = f"{context}\n{query}"
        logger.info(
            "dispatch.route intent={} handler={} query={}",
            classification.intent.value,
            mapping.handler_id,
            classification.normalized_query[:100],
        )
        return Route(classification=classification, mapping=mapping, handler=handler, query=query)

    async def dispatch(
        self,
        raw_text: str,
        context: str | None = None,
        *,
        thread: ThreadRef | None = None,
    ) -> DispatchResult:
        route = self.route(raw_text, context)
        try:
            final_text = await route.handler.generate(route.query, thread=thread)
        except HandlerExecutionError:
            raise
        except Exception as exc:
            raise HandlerExecutionError(str(exc)) from exc
        return DispatchResult(display_name=route.display_name, final_text=final_text, intent=route.classification.intent)

    def stream(
        self,
        raw_text: str,
        context: str | None = None,
        *,
        thread: ThreadRef | None = None,
    ) -> tuple[Route, AsyncIterator[StreamEvent]]:
        route = self.route(raw_text, context)
        return route, _guarded_stream(route, thread)


async def _guarded_stream(route: Route, thread: ThreadRef | None) -> AsyncIterator[StreamEvent]:
    try:
        async for event in route.handler.stream(route.query, thread=thread):
            yield event
    except HandlerExecutionError:
        raise
    except Exception as exc:
        raise HandlerExecutionError(str(exc)) from exc
