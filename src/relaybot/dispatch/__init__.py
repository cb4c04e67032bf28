"""Question classification and handler dispatch."""

from relaybot.dispatch.classifier import Classification, Intent, classify, normalize_query
from relaybot.dispatch.router import DispatchResult, DispatchRouter, Route
from relaybot.dispatch.table import HANDLER_TABLE, HandlerMapping, resolve, validate_table

__all__ = [
    "HANDLER_TABLE",
    "Classification",
    "DispatchResult",
    "DispatchRouter",
    "HandlerMapping",
    "Intent",
    "Route",
    "classify",
    "normalize_query",
    "resolve",
    "validate_table",
]
