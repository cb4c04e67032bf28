"""Knowledge lookup tool factories."""

from __future__ import annotations

import json
from collections.abc import Iterable

from pydantic import BaseModel, Field
from republic import Tool, tool_from_model

from relaybot.knowledge.store import KnowledgeBase

TOOL_PREFIX = "query_"

_DESCRIPTIONS: dict[str, str] = {
    "startups": "Search startup profiles: product, industry, funding, traction, team.",
    "founders": "Search founder profiles: names, roles, background, experience.",
    "events": "Search the event calendar: sessions, meetings, firesides, AMAs.",
    "guests": "Search special guest events and invited speakers.",
    "workshops": "Search workshops and training sessions.",
    "timeline": "Search program phases, milestones and durations.",
    "general": "Search the general questions and answers about the program.",
}


class LookupInput(BaseModel):
    """Search one knowledge collection."""

    query: str = Field(..., description="Search terms, or a question such as 'how many startups'")


def create_lookup_tool(kb: KnowledgeBase, collection: str) -> Tool:
    """Create a tool that searches one collection and returns JSON."""

    def _handler(params: LookupInput) -> str:
        result = kb.lookup(collection, params.query)
        return json.dumps(result.as_dict(), ensure_ascii=False, default=str)

    return tool_from_model(
        LookupInput,
        _handler,
        name=f"{TOOL_PREFIX}{collection}",
        description=_DESCRIPTIONS.get(collection, f"Search the {collection} collection."),
    )


def knowledge_tools(kb: KnowledgeBase, collections: Iterable[str]) -> list[Tool]:
    return [create_lookup_tool(kb, name) for name in collections]
