"""Keyword classifier mapping a chat question to an intent."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum


class Intent(StrEnum):
    STARTUPS = "startups"
    EVENTS = "events"
    WORKSHOPS = "workshops"
    TIMELINE = "timeline"
    FOUNDERS = "founders"
    GUESTS = "guests"
    GENERAL = "general"


@dataclass(frozen=True)
class Classification:
    """One classified inbound question. Never persisted."""

    raw_text: str
    normalized_query: str
    intent: Intent
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


WHITESPACE_RE = re.compile(r"\s+")
COURTESY_PREFIX_RE = re.compile(
    r"^(can you|could you|would you|please|tell me|i want to know|i need to know|i'm asking|i ask)\s+",
    re.IGNORECASE,
)


def _patterns(*raw: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(item, re.IGNORECASE) for item in raw)


# Order matters: the first intent with any matching pattern wins.
INTENT_PATTERNS: tuple[tuple[Intent, tuple[re.Pattern[str], ...]], ...] = (
    (
        Intent.STARTUPS,
        _patterns(
            r"startup",
            r"compan(y|ies)",
            r"business",
            r"venture",
            r"portfolio",
            r"funding",
            r"investment",
            r"raised",
            r"traction",
            r"\bmrr\b",
            r"revenue",
        ),
    ),
    (
        Intent.EVENTS,
        _patterns(
            r"event",
            r"calendar",
            r"schedule",
            r"meeting",
            r"session",
            r"fireside",
            r"\bama\b",
        ),
    ),
    (
        Intent.WORKSHOPS,
        _patterns(r"workshop", r"training", r"seminar", r"learning", r"curriculum"),
    ),
    (
        Intent.TIMELINE,
        _patterns(
            r"timeline",
            r"phases?",
            r"program",
            r"cohort",
            r"duration",
            r"\bweeks?\b",
            r"milestones?",
        ),
    ),
    (
        Intent.FOUNDERS,
        _patterns(
            r"founder",
            r"entrepreneur",
            r"\bceo\b",
            r"\bcto\b",
            r"\bteam\b",
            r"background",
            r"experience",
        ),
    ),
    (
        Intent.GUESTS,
        _patterns(r"guest", r"speaker", r"invited", r"visiting"),
    ),
)


def normalize_query(raw_text: str) -> str:
    """Trim, collapse whitespace, drop courtesy prefixes and ensure trailing punctuation."""
    query = WHITESPACE_RE.sub(" ", raw_text.strip())
    while True:
        stripped = COURTESY_PREFIX_RE.sub("", query, count=1).strip()
        if stripped == query:
            break
        query = stripped
    if not query.endswith(("?", ".")):
        query += "?"
    return query


def match_intent(query: str) -> Intent:
    for intent, patterns in INTENT_PATTERNS:
        if any(pattern.search(query) for pattern in patterns):
            return intent
    return Intent.GENERAL


def classify(raw_text: str) -> Classification:
    """Classify one chat message. Total: unmatched text falls back to ``general``."""
    normalized = normalize_query(raw_text)
    return Classification(raw_text=raw_text, normalized_query=normalized, intent=match_intent(normalized))
