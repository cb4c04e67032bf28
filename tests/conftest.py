from __future__ import annotations

import pytest

from relaybot.channels.base import ThreadRef
from relaybot.relay.relay import RelayTimings


@pytest.fixture
def thread() -> ThreadRef:
    return ThreadRef(channel="fake", chat_id="C1", thread_id="1700000000.000100", user_id="U1", team_id="T1")


@pytest.fixture
def fast_timings() -> RelayTimings:
    return RelayTimings(
        tick_interval=10.0,
        tool_display_delay=0.0,
        step_display_delay=0.0,
        final_write_attempts=3,
        final_write_backoff=0.0,
    )
