from __future__ import annotations

import pytest

from relaybot.relay.status import SPINNER, TOOL_ICONS, WORKFLOW_ICONS, RelayState, format_label, format_name, render


def test_render_initial_state() -> None:
    assert render(RelayState(), 0) == "⠋ Start..."


def test_render_tool_branch_cycles_icons() -> None:
    state = RelayState(current_event_kind="tool-call", active_tool_name="Query Startups")

    assert render(state, 5) == f"{TOOL_ICONS[1]} Tool Call: Query Startups..."
    assert render(state, 4) == f"{TOOL_ICONS[0]} Tool Call: Query Startups..."


def test_render_tool_kind_without_name_falls_back_to_spinner() -> None:
    state = RelayState(current_event_kind="tool-call")

    assert render(state, 2) == f"{SPINNER[2]} Tool Call..."


def test_render_workflow_branch_needs_step_name() -> None:
    state = RelayState(current_event_kind="workflow-step-start", active_step_name="Fetch Data")

    assert render(state, 3) == f"{WORKFLOW_ICONS[3]} Workflow Step Start: Fetch Data..."
    state.active_step_name = None
    assert render(state, 3) == f"{SPINNER[3]} Workflow Step Start..."


def test_render_agent_branch() -> None:
    state = RelayState(current_event_kind="agent-execution-start", active_agent_name="Startups Agent")

    assert render(state, 10) == f"{SPINNER[0]} Agent Execution Start: Startups Agent..."


def test_render_text_delta_uses_spinner() -> None:
    state = RelayState(current_event_kind="text-delta", active_tool_name="Query Startups")

    assert render(state, 1) == "⠙ Text Delta..."


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("queryKnowledgeBase", "Query Knowledge Base"),
        ("fetch_data", "Fetch Data"),
        ("workflow-step-start", "Workflow Step Start"),
        ("already Spaced", "Already Spaced"),
    ],
)
def test_format_name(raw: str, expected: str) -> None:
    assert format_name(raw) == expected


def test_format_label_keeps_inner_case() -> None:
    assert format_label("tool-call") == "Tool Call"
    assert format_label("") == ""
