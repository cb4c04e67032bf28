"""Streaming response relay."""

from relaybot.relay.events import StreamEvent, decode_event
from relaybot.relay.relay import RelayPhase, RelayResult, RelayTimings, ResponseRelay
from relaybot.relay.status import RelayState, render

__all__ = [
    "RelayPhase",
    "RelayResult",
    "RelayState",
    "RelayTimings",
    "ResponseRelay",
    "StreamEvent",
    "decode_event",
    "render",
]
