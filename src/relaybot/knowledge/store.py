"""JSON knowledge base with an explicit, invalidatable cache."""

from __future__ import annotations

import json
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from loguru import logger
from rapidfuzz import fuzz, process


@dataclass(frozen=True)
class Collection:
    name: str
    filename: str
    key: str


COLLECTIONS: dict[str, Collection] = {
    item.name: item
    for item in (
        Collection("startups", "startups.json", "startups"),
        Collection("founders", "founders.json", "founders"),
        Collection("events", "events.json", "events"),
        Collection("guests", "guest-events.json", "events"),
        Collection("workshops", "workshops.json", "workshops"),
        Collection("timeline", "timeline.json", "phases"),
        Collection("general", "general-questions.json", "questions"),
    )
}

AGGREGATE_MARKERS = ("how many", "count", "total", "number of", "list all", "list of", "all the", "every ")
STOP_WORDS = frozenset({
    "a", "about", "an", "and", "any", "are", "at", "by", "do", "does", "for", "from", "has", "have", "how",
    "in", "is", "it", "me", "of", "on", "or", "the", "their", "there", "this", "to", "was", "what", "when",
    "where", "which", "who", "why", "with", "you",
})  # fmt: skip
WORD_PATTERN = re.compile(r"[a-z0-9][a-z0-9'&.-]*")
MIN_TERM_LENGTH = 2
MIN_FUZZY_SCORE = 85
MAX_RESULTS = 25


@dataclass(frozen=True)
class LookupResult:
    items: list[Any]
    found: bool
    metadata: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {"items": self.items, "found": self.found, "metadata": self.metadata}


@dataclass
class _CacheEntry:
    mtime_ns: int
    items: list[Any]


class KnowledgeBase:
    """Loads knowledge collections from ``data_dir`` and caches them.

    A cached collection is re-read when its file's modification time changes;
    ``invalidate`` drops entries explicitly.
    """

    def __init__(self, data_dir: Path, collections: dict[str, Collection] | None = None) -> None:
        self.data_dir = Path(data_dir)
        self._collections = collections or COLLECTIONS
        self._cache: dict[str, _CacheEntry] = {}

    @property
    def collection_names(self) -> list[str]:
        return sorted(self._collections)

    def invalidate(self, name: str | None = None) -> None:
        if name is None:
            self._cache.clear()
            return
        self._cache.pop(name, None)

    def load(self, name: str) -> list[Any]:
        collection = self._collections.get(name)
        if collection is None:
            raise KeyError(name)
        path = self.data_dir / collection.filename
        try:
            mtime_ns = path.stat().st_mtime_ns
        except FileNotFoundError:
            logger.warning("knowledge.missing collection={} path={}", name, path)
            self._cache.pop(name, None)
            return []

        cached = self._cache.get(name)
        if cached is not None and cached.mtime_ns == mtime_ns:
            return cached.items

        items = _read_items(path, collection.key)
        self._cache[name] = _CacheEntry(mtime_ns=mtime_ns, items=items)
        logger.debug("knowledge.loaded collection={} items={}", name, len(items))
        return items

    def lookup(self, name: str, query: str, *, limit: int = MAX_RESULTS) -> LookupResult:
        items = self.load(name)
        lowered = query.strip().lower()
        if _is_aggregate(lowered):
            return LookupResult(
                items=items,
                found=bool(items),
                metadata={"query_type": "aggregate", "total_count": len(items)},
            )

        terms = _query_terms(lowered)
        if not terms:
            return LookupResult(items=items[:limit], found=bool(items), metadata={"query_type": "all", "total_count": len(items)})

        matches = [item for item in items if any(_contains(item, term) for term in terms)]
        query_type = "search"
        if not matches:
            matches = [item for item in items if _is_fuzzy_match(terms, item)]
            query_type = "fuzzy"
        return LookupResult(
            items=matches[:limit],
            found=bool(matches),
            metadata={"query_type": query_type, "total_count": len(items), "match_count": len(matches)},
        )


def _read_items(path: Path, key: str) -> list[Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.error("knowledge.read_error path={} error={}", path, exc)
        return []
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        items = data.get(key)
        if isinstance(items, list):
            return items
    logger.warning("knowledge.unexpected_shape path={} key={}", path, key)
    return []


def _is_aggregate(lowered: str) -> bool:
    return any(marker in lowered for marker in AGGREGATE_MARKERS)


def _query_terms(lowered: str) -> list[str]:
    return [
        word.strip(".'")
        for word in WORD_PATTERN.findall(lowered)
        if word.strip(".'") not in STOP_WORDS and len(word.strip(".'")) >= MIN_TERM_LENGTH
    ]


def _contains(value: Any, term: str) -> bool:
    if isinstance(value, str):
        return term in value.lower()
    if isinstance(value, dict):
        return any(_contains(item, term) for item in value.values())
    if isinstance(value, list):
        return any(_contains(item, term) for item in value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return term == str(value)
    return False


def _strings(value: Any) -> Iterable[str]:
    if isinstance(value, str):
        yield value
    elif isinstance(value, dict):
        for item in value.values():
            yield from _strings(item)
    elif isinstance(value, list):
        for item in value:
            yield from _strings(item)


def _is_fuzzy_match(terms: list[str], item: Any) -> bool:
    candidates = [word for text in _strings(item) for word in WORD_PATTERN.findall(text.lower())]
    if not candidates:
        return False
    for term in terms:
        if len(term) < 4:
            continue
        if process.extractOne(term, candidates, scorer=fuzz.ratio, score_cutoff=MIN_FUZZY_SCORE) is not None:
            return True
    return False
