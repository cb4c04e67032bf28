from __future__ import annotations

import json
from typing import Any

import pytest
from fakes import FakeSink
from fastapi.testclient import TestClient

from relaybot.channels.base import MessageHandle, ThreadRef
from relaybot.channels.bus import MessageBus
from relaybot.channels.events import InboundMessage
from relaybot.channels.signature import compute_signature, verify_slack_signature
from relaybot.channels.slack import SlackChatSink
from relaybot.channels.slack_webhook import (
    ASSISTANT_GREETING,
    assistant_thread,
    create_webhook_app,
    strip_mentions,
    to_inbound,
)
from relaybot.config import Settings
from relaybot.errors import AuthError, ConfigurationError, TransportError

SECRET = "8f742231b10e8888abcd99yyyzzz85a5"  # noqa: S105
NOW = 1_700_000_000


def test_signature_accepts_valid_request() -> None:
    body = '{"type":"event_callback"}'
    signature = compute_signature(SECRET, str(NOW), body)

    assert signature.startswith("v0=")
    verify_slack_signature(SECRET, signature, str(NOW), body, now=NOW + 10)


@pytest.mark.parametrize(
    ("signature", "timestamp", "message"),
    [
        (None, str(NOW), "missing"),
        ("v0=abc", None, "missing"),
        ("v0=abc", "yesterday", "invalid Slack request timestamp"),
        ("v0=abc", str(NOW - 301), "stale"),
        ("v0=abc", str(NOW), "invalid Slack signature"),
    ],
)
def test_signature_rejections(signature: str | None, timestamp: str | None, message: str) -> None:
    with pytest.raises(AuthError, match=message):
        verify_slack_signature(SECRET, signature, timestamp, "{}", now=NOW)


def test_signature_rejects_tampered_body() -> None:
    signature = compute_signature(SECRET, str(NOW), '{"a":1}')

    with pytest.raises(AuthError):
        verify_slack_signature(SECRET, signature, str(NOW), '{"a":2}', now=NOW)


def test_strip_mentions() -> None:
    assert strip_mentions("<@U123ABC> how many startups?") == "how many startups?"
    assert strip_mentions("hi <@U1> and <@U2>") == "hi  and"


def _callback(**event: Any) -> dict[str, Any]:
    base = {"type": "app_mention", "user": "U1", "channel": "C1", "ts": "1700000000.000100", "text": "<@UBOT> hi"}
    base.update(event)
    return {"type": "event_callback", "team_id": "T1", "event": base}


def test_to_inbound_app_mention() -> None:
    message = to_inbound(_callback())

    assert message is not None
    assert message.content == "hi"
    assert message.chat_id == "C1"
    assert message.thread_id == "1700000000.000100"
    assert message.team_id == "T1"
    assert message.metadata == {"ts": "1700000000.000100", "event_type": "app_mention"}


def test_to_inbound_keeps_existing_thread() -> None:
    message = to_inbound(_callback(thread_ts="1690000000.000001"))

    assert message is not None
    assert message.thread_id == "1690000000.000001"
    assert message.thread.conversation_id == "slack-C1-1690000000.000001"


@pytest.mark.parametrize(
    "event",
    [
        {"bot_id": "B1"},
        {"subtype": "message_changed"},
        {"type": "reaction_added"},
        {"type": "message", "channel_type": "channel"},
        {"text": "<@UBOT>"},
    ],
)
def test_to_inbound_ignores(event: dict[str, Any]) -> None:
    assert to_inbound(_callback(**event)) is None


def test_to_inbound_accepts_direct_messages() -> None:
    message = to_inbound(_callback(type="message", channel_type="im", text="hello"))

    assert message is not None
    assert message.content == "hello"


def _signed(body: str, timestamp: int = NOW) -> dict[str, str]:
    return {
        "x-slack-signature": compute_signature(SECRET, str(timestamp), body),
        "x-slack-request-timestamp": str(timestamp),
        "content-type": "application/json",
    }


@pytest.fixture
def published() -> list[InboundMessage]:
    return []


@pytest.fixture
def client(published: list[InboundMessage]) -> TestClient:
    bus = MessageBus()

    async def _collect(message: InboundMessage) -> None:
        published.append(message)

    bus.on_inbound(_collect)
    settings = Settings(slack_signing_secret=SECRET)
    return TestClient(create_webhook_app(settings, bus, clock=lambda: NOW))


def test_webhook_requires_signing_secret() -> None:
    with pytest.raises(ConfigurationError, match="RELAYBOT_SLACK_SIGNING_SECRET"):
        create_webhook_app(Settings(slack_signing_secret=None), MessageBus())


def test_webhook_health(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_webhook_url_verification(client: TestClient) -> None:
    body = json.dumps({"type": "url_verification", "challenge": "abc123"})

    response = client.post("/slack/events", content=body, headers=_signed(body))

    assert response.status_code == 200
    assert response.json() == {"challenge": "abc123"}


def test_webhook_rejects_bad_signature(client: TestClient, published: list[InboundMessage]) -> None:
    body = json.dumps(_callback())
    headers = _signed(body)
    headers["x-slack-signature"] = "v0=" + "0" * 64

    response = client.post("/slack/events", content=body, headers=headers)

    assert response.status_code == 401
    assert published == []


def test_webhook_rejects_stale_request(client: TestClient) -> None:
    body = json.dumps(_callback())

    response = client.post("/slack/events", content=body, headers=_signed(body, timestamp=NOW - 600))

    assert response.status_code == 401


def test_webhook_rejects_invalid_json(client: TestClient) -> None:
    body = "not json"

    response = client.post("/slack/events", content=body, headers=_signed(body))

    assert response.status_code == 400


def test_webhook_publishes_inbound(client: TestClient, published: list[InboundMessage]) -> None:
    body = json.dumps(_callback(text="<@UBOT> how many startups?"))

    response = client.post("/slack/events", content=body, headers=_signed(body))

    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert [message.content for message in published] == ["how many startups?"]
    assert published[0].channel == "slack"


def test_webhook_ignores_retries(client: TestClient, published: list[InboundMessage]) -> None:
    body = json.dumps(_callback())
    headers = {**_signed(body), "x-slack-retry-num": "1"}

    response = client.post("/slack/events", content=body, headers=headers)

    assert response.status_code == 200
    assert published == []


class FakeSlackClient:
    def __init__(
        self, *, fail: bool = False, replies: list[dict[str, Any]] | None = None, page_size: int | None = None
    ) -> None:
        self.fail = fail
        self.replies = replies or []
        self.page_size = page_size
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def chat_postMessage(self, **kwargs: Any) -> dict[str, Any]:  # noqa: N802
        self.calls.append(("post", kwargs))
        if self.fail:
            raise RuntimeError("channel_not_found")
        return {"ok": True, "channel": kwargs["channel"], "ts": "1700000001.000200"}

    async def chat_update(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("update", kwargs))
        if self.fail:
            raise RuntimeError("message_not_found")
        return {"ok": True}

    async def auth_test(self) -> dict[str, Any]:
        return {"ok": True, "user_id": "UBOT"}

    async def conversations_replies(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("replies", kwargs))
        if self.page_size is None:
            return {"ok": True, "messages": self.replies}
        start = int(kwargs.get("cursor") or 0)
        end = start + self.page_size
        has_more = end < len(self.replies)
        return {
            "ok": True,
            "messages": self.replies[start:end],
            "has_more": has_more,
            "response_metadata": {"next_cursor": str(end) if has_more else ""},
        }


@pytest.mark.asyncio
async def test_slack_sink_posts_in_thread() -> None:
    client = FakeSlackClient()
    sink = SlackChatSink(client)  # type: ignore[arg-type]
    thread = ThreadRef(channel="slack", chat_id="C1", thread_id="1700000000.000100")

    handle = await sink.post(thread, "⠋ Start...")
    await sink.update(handle, "done")

    assert handle == MessageHandle(chat_id="C1", message_id="1700000001.000200")
    assert client.calls == [
        ("post", {"channel": "C1", "thread_ts": "1700000000.000100", "text": "⠋ Start..."}),
        ("update", {"channel": "C1", "ts": "1700000001.000200", "text": "done"}),
    ]


@pytest.mark.asyncio
async def test_slack_sink_wraps_transport_errors() -> None:
    sink = SlackChatSink(FakeSlackClient(fail=True))  # type: ignore[arg-type]
    thread = ThreadRef(channel="slack", chat_id="C1")

    with pytest.raises(TransportError, match="channel_not_found"):
        await sink.post(thread, "hi")
    with pytest.raises(TransportError, match="message_not_found"):
        await sink.update(MessageHandle(chat_id="C1", message_id="1"), "hi")


@pytest.mark.asyncio
async def test_slack_sink_history_excludes_current_message() -> None:
    client = FakeSlackClient(
        replies=[
            {"ts": "1", "user": "U1", "text": "Which startups do AI?"},
            {"ts": "2", "user": "UBOT", "text": "Acme and Beta."},
            {"ts": "3", "user": "U1", "text": "Tell me about the first two"},
        ]
    )
    sink = SlackChatSink(client)  # type: ignore[arg-type]
    thread = ThreadRef(channel="slack", chat_id="C1", thread_id="1")

    turns = await sink.history(thread, limit=5, exclude_id="3")

    assert turns == [
        {"role": "user", "text": "Which startups do AI?"},
        {"role": "assistant", "text": "Acme and Beta."},
    ]
    assert await sink.history(ThreadRef(channel="slack", chat_id="C1"), limit=5) == []


@pytest.mark.asyncio
async def test_slack_sink_history_reads_every_page_for_latest_turns() -> None:
    replies = [{"ts": str(index), "user": "U1", "text": f"turn {index}"} for index in range(7)]
    client = FakeSlackClient(replies=replies, page_size=3)
    sink = SlackChatSink(client, bot_user_id="UBOT")  # type: ignore[arg-type]
    thread = ThreadRef(channel="slack", chat_id="C1", thread_id="0")

    turns = await sink.history(thread, limit=2, exclude_id="6")

    assert turns == [{"role": "user", "text": "turn 4"}, {"role": "user", "text": "turn 5"}]
    cursors = [kwargs["cursor"] for name, kwargs in client.calls if name == "replies"]
    assert cursors == [None, "3", "6"]


def _assistant_thread_started() -> dict[str, Any]:
    return {
        "type": "event_callback",
        "team_id": "T1",
        "event": {
            "type": "assistant_thread_started",
            "assistant_thread": {"user_id": "U1", "channel_id": "D1", "thread_ts": "1700000000.000500"},
        },
    }


def test_assistant_thread() -> None:
    thread = assistant_thread(_assistant_thread_started())

    assert thread == ThreadRef(
        channel="slack", chat_id="D1", thread_id="1700000000.000500", user_id="U1", team_id="T1"
    )
    assert assistant_thread(_callback()) is None
    assert assistant_thread({"event": {"type": "assistant_thread_started", "assistant_thread": {}}}) is None


def test_webhook_greets_new_assistant_thread() -> None:
    sink = FakeSink()
    app = create_webhook_app(Settings(slack_signing_secret=SECRET), MessageBus(), sink=sink, clock=lambda: NOW)
    body = json.dumps(_assistant_thread_started())

    response = TestClient(app).post("/slack/events", content=body, headers=_signed(body))

    assert response.status_code == 200
    assert [(thread.chat_id, thread.thread_id, text) for thread, text in sink.posts] == [
        ("D1", "1700000000.000500", ASSISTANT_GREETING)
    ]


def test_webhook_greeting_failure_still_acknowledges() -> None:
    sink = FakeSink(fail_posts=1)
    app = create_webhook_app(Settings(slack_signing_secret=SECRET), MessageBus(), sink=sink, clock=lambda: NOW)
    body = json.dumps(_assistant_thread_started())

    response = TestClient(app).post("/slack/events", content=body, headers=_signed(body))

    assert response.status_code == 200
    assert sink.posts == []
