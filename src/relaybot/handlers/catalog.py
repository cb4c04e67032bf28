"""Default handler set."""

from __future__ import annotations

from dataclasses import dataclass

from republic import LLM
from republic.tape import InMemoryTapeStore

from relaybot.config import Settings
from relaybot.handlers.base import HandlerRegistry
from relaybot.handlers.model import ModelHandler
from relaybot.knowledge.store import KnowledgeBase
from relaybot.knowledge.tools import knowledge_tools

_ANSWER_RULES = """
Answer only from the data returned by your tools. If nothing relevant is found, say so plainly.
Keep answers short and formatted for a chat message: plain sentences or a compact bullet list.
When the question refers to earlier turns ("the first two", "that company"), use the conversation so far.
""".strip()


@dataclass(frozen=True)
class HandlerSpec:
    handler_id: str
    display_name: str
    description: str
    focus: str
    collections: tuple[str, ...]


DEFAULT_HANDLERS: tuple[HandlerSpec, ...] = (
    HandlerSpec(
        "startups",
        "Startups Agent",
        "Answers questions about startups, companies, founders, funding and the portfolio.",
        "You handle questions about the accelerator's startups and their founders. "
        "Use the startups lookup for companies and the founders lookup for people.",
        ("startups", "founders"),
    ),
    HandlerSpec(
        "events",
        "Event Agent",
        "Answers questions about the event calendar, sessions and meetings.",
        "You handle questions about events, sessions, meetings, firesides and AMAs.",
        ("events",),
    ),
    HandlerSpec(
        "workshops",
        "Workshops Agent",
        "Answers questions about workshops and training.",
        "You handle questions about workshops, trainings, seminars and the curriculum.",
        ("workshops",),
    ),
    HandlerSpec(
        "timeline",
        "Timeline Agent",
        "Answers questions about program phases and milestones.",
        "You handle questions about the program timeline, phases, cohort duration and milestones.",
        ("timeline",),
    ),
    HandlerSpec(
        "guests",
        "Event Guests Agent",
        "Answers questions about special guests and invited speakers.",
        "You handle questions about special guests, speakers and visiting experts.",
        ("guests",),
    ),
    HandlerSpec(
        "general",
        "General Questions Agent",
        "Answers general questions about the program.",
        "You handle general questions about the accelerator program.",
        ("general",),
    ),
)


def build_llm(settings: Settings) -> LLM:
    """Build the Republic LLM client shared by all handlers."""
    return LLM(
        settings.model,
        api_key=settings.api_key,
        api_base=settings.api_base,
        tape_store=InMemoryTapeStore(),
    )


def build_default_handlers(settings: Settings, kb: KnowledgeBase, *, llm: LLM | None = None) -> HandlerRegistry:
    llm = llm or build_llm(settings)
    registry = HandlerRegistry()
    for spec in DEFAULT_HANDLERS:
        registry.register(
            ModelHandler(
                handler_id=spec.handler_id,
                display_name=spec.display_name,
                description=spec.description,
                instructions=f"You are the {spec.display_name}. {spec.focus}\n\n{_ANSWER_RULES}",
                llm=llm,
                tools=knowledge_tools(kb, spec.collections),
                max_tokens=settings.max_tokens,
                timeout_seconds=settings.model_timeout_seconds,
            )
        )
    return registry
