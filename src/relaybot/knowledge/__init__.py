"""JSON knowledge collections and their lookup tools."""

from relaybot.knowledge.store import COLLECTIONS, KnowledgeBase, LookupResult

__all__ = ["COLLECTIONS", "KnowledgeBase", "LookupResult"]
