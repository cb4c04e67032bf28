"""Specialized question handlers."""

from relaybot.handlers.base import Handler, HandlerRegistry, format_thread_history

__all__ = ["Handler", "HandlerRegistry", "format_thread_history"]
