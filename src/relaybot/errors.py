"""Application-level exception types for relaybot."""

from __future__ import annotations


class RelaybotError(Exception):
    """Base exception for relaybot."""


class ConfigurationError(RelaybotError):
    """Raised for configuration and startup validation errors."""


class HandlerNotFoundError(RelaybotError):
    """Raised when a routed handler id has no live handler."""

    def __init__(self, handler_id: str) -> None:
        super().__init__(f"handler not found: {handler_id}")
        self.handler_id = handler_id


class HandlerExecutionError(RelaybotError):
    """Raised when a handler or its model fails while producing an answer."""


class TransportError(RelaybotError):
    """Raised when a chat sink cannot post or update a message."""


class AuthError(RelaybotError):
    """Raised when an inbound webhook fails signature or freshness checks."""
