"""Mirror a handler's event stream into one chat message edited in place."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterable
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from loguru import logger

from relaybot.channels.base import ChatSink, MessageHandle, ThreadRef
from relaybot.errors import HandlerExecutionError
from relaybot.relay.events import (
    StreamEvent,
    TextDelta,
    ToolCall,
    ToolOutput,
    UnknownEvent,
    WorkflowExecutionStart,
    WorkflowStepStart,
)
from relaybot.relay.status import RelayState, format_name, render

if TYPE_CHECKING:
    from relaybot.config import Settings

FALLBACK_TEXT = "Sorry, I couldn't generate a response."
ERROR_PREFIX = "❌ Error: "


class RelayPhase(StrEnum):
    STARTING = "starting"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class RelayTimings:
    tick_interval: float = 0.3
    tool_display_delay: float = 0.3
    step_display_delay: float = 0.3
    final_write_attempts: int = 3
    final_write_backoff: float = 0.5

    @classmethod
    def from_settings(cls, settings: Settings) -> RelayTimings:
        return cls(
            tick_interval=settings.tick_interval,
            tool_display_delay=settings.tool_display_delay,
            step_display_delay=settings.step_display_delay,
            final_write_attempts=settings.final_write_attempts,
            final_write_backoff=settings.final_write_backoff,
        )


@dataclass(frozen=True)
class RelayResult:
    phase: RelayPhase
    text: str
    delivered: bool


def error_text(error: BaseException) -> str:
    cause = error.__cause__ if isinstance(error, HandlerExecutionError) and error.__cause__ else error
    return f"{ERROR_PREFIX}{cause}"


class ResponseRelay:
    """One relay run: placeholder post, animated status, terminal write.

    The ticker task and the stream loop share ``state`` and the finished flag.
    Both run on one event loop and never yield mid-update, so plain flag checks
    are enough. The ticker is always stopped before the terminal write starts.
    """

    def __init__(
        self,
        sink: ChatSink,
        thread: ThreadRef,
        *,
        timings: RelayTimings | None = None,
        agent_name: str | None = None,
    ) -> None:
        self._sink = sink
        self._thread = thread
        self._timings = timings or RelayTimings()
        self.state = RelayState(active_agent_name=agent_name)
        self.phase = RelayPhase.STARTING
        self.handle: MessageHandle | None = None
        self.frame = 0
        self.tick_count = 0
        self._finished = False
        self._ticker: asyncio.Task[None] | None = None
        self._tick_updates: set[asyncio.Task[None]] = set()

    @property
    def finished(self) -> bool:
        return self._finished

    async def run(self, events: AsyncIterable[StreamEvent]) -> RelayResult:
        try:
            self.handle = await self._sink.post(self._thread, render(self.state, 0))
        except Exception as exc:
            logger.warning("relay.post.error channel={} chat_id={} error={}", self._thread.channel, self._thread.chat_id, exc)
            self.phase = RelayPhase.FAILED
            await _close_stream(events)
            await self._post_error(exc)
            return RelayResult(RelayPhase.FAILED, error_text(exc), delivered=False)

        self._ticker = asyncio.create_task(self._tick_loop())
        try:
            self.phase = RelayPhase.STREAMING
            try:
                async for event in events:
                    await self._consume(event)
            except HandlerExecutionError:
                raise
            except Exception as exc:
                raise HandlerExecutionError(str(exc)) from exc
        except HandlerExecutionError as exc:
            logger.opt(exception=exc).error("relay.stream.error chat_id={}", self._thread.chat_id)
            await self._stop_ticker()
            self.phase = RelayPhase.FAILED
            text = error_text(exc)
            await self._write_final(text)
            raise
        finally:
            # Covers cancellation of the relay task itself.
            await self._stop_ticker()

        self.phase = RelayPhase.FINALIZING
        text = self.state.accumulated_text or FALLBACK_TEXT
        delivered = await self._write_final(text)
        self.phase = RelayPhase.DONE
        logger.info("relay.done chat_id={} delivered={} chars={}", self._thread.chat_id, delivered, len(text))
        return RelayResult(RelayPhase.DONE, text, delivered)

    async def _consume(self, event: StreamEvent) -> None:
        state = self.state
        state.current_event_kind = event.kind
        match event:
            case TextDelta(text=text):
                state.accumulated_text += text
            case ToolCall(tool_name=tool_name):
                state.active_tool_name = format_name(tool_name)
                await self._show(self._timings.tool_display_delay)
            case ToolOutput(output=WorkflowStepStart() as nested):
                state.current_event_kind = nested.kind
                await self._start_step(nested)
            case ToolOutput(output=WorkflowExecutionStart() | UnknownEvent() as nested):
                state.current_event_kind = nested.kind
                if isinstance(nested, WorkflowExecutionStart):
                    self._start_workflow(nested)
            case WorkflowStepStart():
                await self._start_step(event)
            case WorkflowExecutionStart():
                self._start_workflow(event)
            case _:
                pass

    async def _start_step(self, event: WorkflowStepStart) -> None:
        self.state.active_step_name = format_name(event.step_id)
        await self._show(self._timings.step_display_delay)

    def _start_workflow(self, event: WorkflowExecutionStart) -> None:
        self.state.active_workflow_name = format_name(event.workflow_name)
        self.state.active_step_name = "Starting"

    async def _show(self, pause: float) -> None:
        """Render now, then hold briefly so short-lived activity stays visible."""
        self.frame += 1
        await self._update_status()
        await asyncio.sleep(pause)

    async def _tick_loop(self) -> None:
        while not self._finished:
            await asyncio.sleep(self._timings.tick_interval)
            if self._finished:
                return
            self.frame += 1
            self.tick_count += 1
            task = asyncio.create_task(self._update_status())
            self._tick_updates.add(task)
            task.add_done_callback(self._tick_updates.discard)

    async def _update_status(self) -> None:
        if self.handle is None or self._finished:
            return
        try:
            await self._sink.update(self.handle, render(self.state, self.frame))
        except Exception as exc:
            logger.debug("relay.tick.error chat_id={} error={}", self._thread.chat_id, exc)

    async def _stop_ticker(self) -> None:
        self._finished = True
        pending = [task for task in (self._ticker, *self._tick_updates) if task is not None and not task.done()]
        self._ticker = None
        for task in pending:
            task.cancel()
        for task in pending:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _write_final(self, text: str) -> bool:
        if self.handle is None:
            return False
        attempts = self._timings.final_write_attempts
        for attempt in range(1, attempts + 1):
            try:
                await self._sink.update(self.handle, text)
            except Exception as exc:
                logger.warning("relay.final.retry attempt={}/{} error={}", attempt, attempts, exc)
                if attempt < attempts:
                    await asyncio.sleep(self._timings.final_write_backoff)
                continue
            return True
        logger.error("relay.final.exhausted attempts={} chat_id={}", attempts, self._thread.chat_id)
        return False

    async def _post_error(self, error: BaseException) -> None:
        try:
            await self._sink.post(self._thread, error_text(error))
        except Exception as exc:
            logger.error("relay.post_error.error chat_id={} error={}", self._thread.chat_id, exc)


async def _close_stream(events: AsyncIterable[StreamEvent]) -> None:
    aclose = getattr(events, "aclose", None)
    if aclose is None:
        return
    try:
        await aclose()
    except Exception:
        logger.exception("relay.stream.close_error")


async def relay(
    sink: ChatSink,
    thread: ThreadRef,
    events: AsyncIterable[StreamEvent],
    *,
    timings: RelayTimings | None = None,
    agent_name: str | None = None,
) -> RelayResult:
    """Run one relay to completion."""
    return await ResponseRelay(sink, thread, timings=timings, agent_name=agent_name).run(events)
