from __future__ import annotations

from types import SimpleNamespace

import pytest

from relaybot.errors import HandlerExecutionError
from relaybot.relay.events import (
    ModelEventDecoder,
    TextDelta,
    ToolCall,
    ToolOutput,
    UnknownEvent,
    WorkflowExecutionStart,
    WorkflowStepStart,
    decode_event,
    decode_nested,
)


def test_decode_text_and_tool_call() -> None:
    assert decode_event({"type": "text-delta", "payload": {"text": "hi"}}) == TextDelta("hi")
    assert decode_event({"type": "tool-call", "payload": {"toolName": "queryStartups"}}) == ToolCall("queryStartups")


def test_decode_tool_output_unwraps_nested_step() -> None:
    output = {"type": "workflow-step-start", "payload": {"id": "fetchData"}}

    event = decode_event({"type": "tool-output", "payload": {"toolName": "runWorkflow", "output": output}})

    assert event == ToolOutput(tool_name="runWorkflow", output=WorkflowStepStart("fetchData"), raw=output)


def test_decode_tool_output_without_discriminator() -> None:
    event = decode_event({"type": "tool-output", "payload": {"output": {"rows": 3}}})

    assert isinstance(event, ToolOutput)
    assert event.tool_name is None
    assert event.output is None
    assert event.raw == {"rows": 3}


def test_decode_top_level_workflow_events() -> None:
    assert decode_event({"type": "workflow-execution-start", "payload": {"name": "ingest"}}) == WorkflowExecutionStart(
        "ingest"
    )
    assert decode_event({"type": "workflow-step-start", "payload": {"stepId": "load"}}) == WorkflowStepStart("load")
    assert decode_event({"type": "workflow-step-start"}) == WorkflowStepStart("step")


def test_decode_unknown_kinds() -> None:
    assert decode_event({"type": "finish", "payload": {"reason": "stop"}}) == UnknownEvent("finish", {"reason": "stop"})
    assert decode_event({}) == UnknownEvent("unknown", {})


def test_decode_nested_rejects_non_mappings() -> None:
    assert decode_nested("plain text") is None
    assert decode_nested({"rows": 1}) is None
    assert decode_nested({"type": "workflow-finish"}) == UnknownEvent("workflow-finish", {})


def _model_event(kind: str, /, **data: object) -> SimpleNamespace:
    return SimpleNamespace(kind=kind, data=data)


def test_model_decoder_maps_stream_events() -> None:
    decoder = ModelEventDecoder()

    assert decoder.decode(_model_event("text", delta="Hel")) == TextDelta("Hel")
    assert decoder.decode(_model_event("text", delta="")) is None
    call = {"id": "c1", "function": {"name": "query_startups", "arguments": "{}"}}
    assert decoder.decode(_model_event("tool_call", index=0, call=call)) == ToolCall("query_startups")
    result = decoder.decode(_model_event("tool_result", index=0, result='{"found": true}'))
    assert result == ToolOutput(tool_name="query_startups", output=None, raw='{"found": true}')
    assert decoder.decode(_model_event("usage", tokens=10)) == UnknownEvent("usage", {"tokens": 10})


def test_model_decoder_keeps_final_payload() -> None:
    decoder = ModelEventDecoder()

    assert decoder.decode(_model_event("final", text="", tool_calls=[{"id": "c1"}], ok=True)) is None
    assert decoder.final == {"text": "", "tool_calls": [{"id": "c1"}], "ok": True}


def test_model_decoder_raises_on_error() -> None:
    decoder = ModelEventDecoder()

    with pytest.raises(HandlerExecutionError, match="provider: rate limited"):
        decoder.decode(_model_event("error", kind="provider", message="rate limited"))
    with pytest.raises(HandlerExecutionError):
        decoder.decode(_model_event("final", ok=False))
