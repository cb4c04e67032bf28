"""Static intent to handler table."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

from relaybot.dispatch.classifier import Intent
from relaybot.errors import ConfigurationError


@dataclass(frozen=True)
class HandlerMapping:
    handler_id: str
    display_name: str


STARTUPS_HANDLER = HandlerMapping("startups", "Startups Agent")

HANDLER_TABLE: Mapping[Intent, HandlerMapping] = MappingProxyType({
    Intent.STARTUPS: STARTUPS_HANDLER,
    Intent.EVENTS: HandlerMapping("events", "Event Agent"),
    Intent.WORKSHOPS: HandlerMapping("workshops", "Workshops Agent"),
    Intent.TIMELINE: HandlerMapping("timeline", "Timeline Agent"),
    # Founder questions are answered from the startup profiles.
    Intent.FOUNDERS: STARTUPS_HANDLER,
    Intent.GUESTS: HandlerMapping("guests", "Event Guests Agent"),
    Intent.GENERAL: HandlerMapping("general", "General Questions Agent"),
})


def resolve(intent: Intent, table: Mapping[Intent, HandlerMapping] = HANDLER_TABLE) -> HandlerMapping:
    try:
        return table[intent]
    except KeyError:
        raise ConfigurationError(f"No handler mapping found for intent: {intent}") from None


def validate_table(table: Mapping[Intent, HandlerMapping] = HANDLER_TABLE) -> None:
    """Check the table covers the intent enum exactly. Called once at startup."""
    missing = [intent.value for intent in Intent if intent not in table]
    unknown = [str(key) for key in table if not isinstance(key, Intent)]
    if missing or unknown:
        raise ConfigurationError(f"handler table mismatch missing={missing} unknown={unknown}")


def handler_ids(table: Mapping[Intent, HandlerMapping] = HANDLER_TABLE) -> set[str]:
    return {mapping.handler_id for mapping in table.values()}
