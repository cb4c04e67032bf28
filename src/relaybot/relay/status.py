"""Progress status line rendering."""

from __future__ import annotations

import re
from dataclasses import dataclass

SPINNER = ("⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏")
TOOL_ICONS = ("🔄", "⚙️", "🔧", "⚡")
WORKFLOW_ICONS = ("📋", "⚡", "🔄", "✨")

TOOL_PREFIX = "tool-"
WORKFLOW_PREFIX = "workflow-"
AGENT_MARKER = "agent"

_SEPARATOR_RE = re.compile(r"[-_\s]+")
_CAMEL_RE = re.compile(r"([a-z0-9])([A-Z])")


@dataclass
class RelayState:
    """Mutable state owned by a single relay run."""

    accumulated_text: str = ""
    current_event_kind: str = "start"
    active_tool_name: str | None = None
    active_workflow_name: str | None = None
    active_step_name: str | None = None
    active_agent_name: str | None = None


def format_label(kind: str) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in _SEPARATOR_RE.split(kind) if word)


def format_name(identifier: str) -> str:
    """``queryKnowledge`` / ``query-knowledge`` / ``query_knowledge`` -> ``Query Knowledge``."""
    return format_label(_CAMEL_RE.sub(r"\1 \2", identifier))


def render(state: RelayState, frame: int) -> str:
    kind = state.current_event_kind
    label = format_label(kind)
    if kind.startswith(TOOL_PREFIX) and state.active_tool_name:
        return f"{TOOL_ICONS[frame % len(TOOL_ICONS)]} {label}: {state.active_tool_name}..."
    if kind.startswith(WORKFLOW_PREFIX) and state.active_step_name:
        return f"{WORKFLOW_ICONS[frame % len(WORKFLOW_ICONS)]} {label}: {state.active_step_name}..."
    spinner = SPINNER[frame % len(SPINNER)]
    if AGENT_MARKER in kind and state.active_agent_name:
        return f"{spinner} {label}: {state.active_agent_name}..."
    return f"{spinner} {label}..."
