"""Chat sinks, channel adapters and the inbound bus."""

from relaybot.channels.base import ChatSink, MessageHandle, ThreadRef
from relaybot.channels.bus import MessageBus
from relaybot.channels.events import InboundMessage

__all__ = [
    "ChatSink",
    "InboundMessage",
    "MessageBus",
    "MessageHandle",
    "ThreadRef",
]
