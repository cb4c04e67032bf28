"""Model-backed handler streaming through a Republic tape."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from hashlib import md5
from typing import Any

from loguru import logger
from republic import LLM, Tool

from relaybot.channels.base import ThreadRef
from relaybot.errors import HandlerExecutionError
from relaybot.handlers.base import Handler
from relaybot.relay.events import ModelEventDecoder, StreamEvent

TOOL_CONTINUE_PROMPT = "Continue answering the question with the tool results."
DEFAULT_MAX_STEPS = 4


class ModelHandler(Handler):
    """Answer with an LLM, using one tape per conversation for continuity."""

    def __init__(
        self,
        *,
        handler_id: str,
        display_name: str,
        description: str,
        instructions: str,
        llm: LLM,
        tools: list[Tool] | None = None,
        max_tokens: int = 2048,
        timeout_seconds: float | None = None,
        max_steps: int = DEFAULT_MAX_STEPS,
    ) -> None:
        self.handler_id = handler_id
        self.display_name = display_name
        self.description = description
        self._instructions = instructions.strip()
        self._llm = llm
        self._tools = list(tools or [])
        self._max_tokens = max_tokens
        self._timeout_seconds = timeout_seconds
        self._max_steps = max_steps

    def tape_name(self, thread: ThreadRef | None) -> str:
        conversation = thread.conversation_id if thread is not None else "adhoc"
        slug = md5(conversation.encode("utf-8")).hexdigest()[:16]  # noqa: S324
        return f"{self.handler_id}-{slug}"

    async def stream(self, query: str, *, thread: ThreadRef | None = None) -> AsyncIterator[StreamEvent]:
        tape = self._llm.tape(self.tape_name(thread))
        loop = asyncio.get_running_loop()
        deadline = None if self._timeout_seconds is None else loop.time() + self._timeout_seconds
        prompt = query

        for step in range(1, self._max_steps + 1):
            logger.debug("handler.step handler={} step={}", self.handler_id, step)
            decoder = ModelEventDecoder()
            stream = await self._with_deadline(
                tape.stream_events_async(
                    prompt=prompt,
                    system_prompt=self._instructions,
                    max_tokens=self._max_tokens,
                    tools=self._tools,
                ),
                deadline,
            )
            iterator = aiter(stream)
            while True:
                try:
                    event = await self._with_deadline(anext(iterator), deadline)
                except StopAsyncIteration:
                    break
                decoded = decoder.decode(event)
                if decoded is not None:
                    yield decoded

            if (stream_error := getattr(stream, "error", None)) is not None:
                raise HandlerExecutionError(_format_stream_error(stream_error))
            if not _needs_followup(decoder.final):
                return
            prompt = TOOL_CONTINUE_PROMPT

        raise HandlerExecutionError(f"max_steps_reached={self._max_steps}")

    async def _with_deadline(self, awaitable: Any, deadline: float | None) -> Any:
        if deadline is None:
            return await awaitable
        remaining = max(deadline - asyncio.get_running_loop().time(), 0)
        try:
            return await asyncio.wait_for(awaitable, remaining)
        except TimeoutError:
            raise HandlerExecutionError(f"model_timeout: no response within {self._timeout_seconds}s") from None


def _needs_followup(final: dict[str, Any] | None) -> bool:
    if final is None:
        return False
    if isinstance(final.get("text"), str) and final["text"].strip():
        return False
    return bool(final.get("tool_calls") or final.get("tool_results"))


def _format_stream_error(error: object) -> str:
    kind = getattr(error, "kind", None)
    message = getattr(error, "message", None)
    kind_value = getattr(kind, "value", kind)
    if isinstance(kind_value, str) and isinstance(message, str):
        return f"{kind_value}: {message}"
    if isinstance(message, str):
        return message
    return str(error)
