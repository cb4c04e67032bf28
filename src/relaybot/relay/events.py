"""Handler stream events and their decoders.

Handlers emit a finite, ordered sequence of events. On the wire (and inside tool
outputs) an event is a mapping with a ``type`` discriminator and a ``payload``;
``decode_event`` turns such a mapping into one of the variants below so the relay
can switch on ``kind`` exhaustively. Tool outputs may wrap a nested event, for
example a workflow step start, which ``decode_nested`` unwraps.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from relaybot.errors import HandlerExecutionError

TEXT_DELTA = "text-delta"
TOOL_CALL = "tool-call"
TOOL_OUTPUT = "tool-output"
WORKFLOW_EXECUTION_START = "workflow-execution-start"
WORKFLOW_STEP_START = "workflow-step-start"


@dataclass(frozen=True)
class TextDelta:
    text: str
    kind: Literal["text-delta"] = TEXT_DELTA


@dataclass(frozen=True)
class ToolCall:
    tool_name: str
    kind: Literal["tool-call"] = TOOL_CALL


@dataclass(frozen=True)
class WorkflowExecutionStart:
    workflow_name: str
    kind: Literal["workflow-execution-start"] = WORKFLOW_EXECUTION_START


@dataclass(frozen=True)
class WorkflowStepStart:
    step_id: str
    kind: Literal["workflow-step-start"] = WORKFLOW_STEP_START


@dataclass(frozen=True)
class UnknownEvent:
    """Any event kind the relay does not interpret; rendered generically."""

    kind: str
    payload: Mapping[str, Any] = field(default_factory=dict)


NestedEvent = WorkflowStepStart | WorkflowExecutionStart | UnknownEvent


@dataclass(frozen=True)
class ToolOutput:
    tool_name: str | None
    output: NestedEvent | None = None
    raw: Any = None
    kind: Literal["tool-output"] = TOOL_OUTPUT


StreamEvent = TextDelta | ToolCall | ToolOutput | WorkflowExecutionStart | WorkflowStepStart | UnknownEvent


def _payload(data: Mapping[str, Any]) -> Mapping[str, Any]:
    payload = data.get("payload")
    return payload if isinstance(payload, Mapping) else {}


def decode_nested(output: Any) -> NestedEvent | None:
    """Decode the ``type`` discriminator of a tool output, if it carries one."""
    if not isinstance(output, Mapping):
        return None
    kind = output.get("type")
    if not isinstance(kind, str) or not kind:
        return None
    payload = _payload(output)
    if kind == WORKFLOW_STEP_START:
        return WorkflowStepStart(step_id=str(payload.get("id") or payload.get("stepId") or "step"))
    if kind == WORKFLOW_EXECUTION_START:
        return WorkflowExecutionStart(workflow_name=str(payload.get("name") or payload.get("workflowId") or "workflow"))
    return UnknownEvent(kind=kind, payload=payload)


def decode_event(data: Mapping[str, Any]) -> StreamEvent:
    """Decode one wire-shaped event mapping."""
    kind = str(data.get("type") or "unknown")
    payload = _payload(data)
    match kind:
        case "text-delta":
            return TextDelta(text=str(payload.get("text") or ""))
        case "tool-call":
            return ToolCall(tool_name=str(payload.get("toolName") or "tool"))
        case "tool-output":
            output = payload.get("output")
            tool_name = payload.get("toolName")
            return ToolOutput(
                tool_name=str(tool_name) if tool_name else None,
                output=decode_nested(output),
                raw=output,
            )
        case "workflow-execution-start" | "workflow-step-start":
            return decode_nested(data) or UnknownEvent(kind=kind, payload=payload)
        case _:
            return UnknownEvent(kind=kind, payload=payload)


class ModelEventDecoder:
    """Adapt the LLM client's stream events (``text``, ``tool_call``, ``tool_result``, ...).

    Tool results only carry the call index, so the decoder remembers the tool name
    announced by the matching ``tool_call``.
    """

    def __init__(self) -> None:
        self._tool_names: dict[int, str] = {}
        self.final: dict[str, Any] | None = None

    def decode(self, event: Any) -> StreamEvent | None:
        kind = getattr(event, "kind", None)
        data = getattr(event, "data", None)
        if not isinstance(data, Mapping):
            data = {}

        if kind == "text":
            delta = data.get("delta")
            return TextDelta(text=delta) if isinstance(delta, str) and delta else None
        if kind == "tool_call":
            name = _tool_call_name(data.get("call"))
            index = data.get("index")
            if isinstance(index, int):
                self._tool_names[index] = name
            return ToolCall(tool_name=name)
        if kind == "tool_result":
            result = data.get("result")
            index = data.get("index")
            tool_name = self._tool_names.get(index) if isinstance(index, int) else None
            return ToolOutput(tool_name=tool_name, output=decode_nested(result), raw=result)
        if kind == "error":
            raise HandlerExecutionError(_error_message(data))
        if kind == "final":
            if data.get("ok") is False:
                raise HandlerExecutionError(_error_message(data))
            self.final = dict(data)
            return None
        return UnknownEvent(kind=str(kind or "unknown"), payload=data)


def _tool_call_name(call: Any) -> str:
    if isinstance(call, Mapping):
        function = call.get("function")
        if isinstance(function, Mapping) and function.get("name"):
            return str(function["name"])
        if call.get("name"):
            return str(call["name"])
    name = getattr(call, "name", None)
    return str(name) if name else "tool"


def _error_message(data: Mapping[str, Any]) -> str:
    kind = data.get("kind")
    message = data.get("message")
    if isinstance(kind, str) and isinstance(message, str):
        return f"{kind}: {message}"
    if isinstance(message, str):
        return message
    return "model stream failed"
