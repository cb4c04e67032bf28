"""Slack Events API webhook."""

from __future__ import annotations

import json
import re
import time
from collections.abc import Callable
from typing import Any

from fastapi import BackgroundTasks, FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from relaybot.channels.base import ChatSink, ThreadRef
from relaybot.channels.bus import MessageBus
from relaybot.channels.events import InboundMessage
from relaybot.channels.signature import verify_slack_signature
from relaybot.config import Settings
from relaybot.errors import AuthError, TransportError

MENTION_RE = re.compile(r"<@[A-Z0-9]+>")
ACCEPTED_EVENT_TYPES = frozenset({"app_mention", "message"})
ASSISTANT_GREETING = "Hi! Ask me about startups, founders, events, workshops or the program timeline."


def strip_mentions(text: str) -> str:
    return MENTION_RE.sub("", text).strip()


def to_inbound(payload: dict[str, Any]) -> InboundMessage | None:
    """Turn an ``event_callback`` payload into an inbound message, or None to ignore it."""
    event = payload.get("event")
    if not isinstance(event, dict):
        return None
    if event.get("bot_id") or event.get("subtype"):
        return None
    if event.get("type") not in ACCEPTED_EVENT_TYPES:
        return None
    # Channel messages that mention the bot also arrive as app_mention; answer those once.
    if event.get("type") == "message" and event.get("channel_type") != "im":
        return None
    text = strip_mentions(str(event.get("text") or ""))
    channel_id = event.get("channel")
    if not text or not channel_id:
        return None
    ts = str(event.get("ts") or "")
    return InboundMessage(
        channel="slack",
        sender_id=str(event.get("user") or ""),
        chat_id=str(channel_id),
        content=text,
        thread_id=str(event.get("thread_ts") or ts) or None,
        team_id=payload.get("team_id"),
        metadata={"ts": ts, "event_type": event.get("type")},
    )


def assistant_thread(payload: dict[str, Any]) -> ThreadRef | None:
    """The assistant thread an ``assistant_thread_started`` event opened, if any."""
    event = payload.get("event")
    if not isinstance(event, dict) or event.get("type") != "assistant_thread_started":
        return None
    info = event.get("assistant_thread")
    if not isinstance(info, dict) or not info.get("channel_id") or not info.get("thread_ts"):
        return None
    return ThreadRef(
        channel="slack",
        chat_id=str(info["channel_id"]),
        thread_id=str(info["thread_ts"]),
        user_id=info.get("user_id"),
        team_id=payload.get("team_id"),
    )


async def _greet(sink: ChatSink, thread: ThreadRef) -> None:
    try:
        await sink.post(thread, ASSISTANT_GREETING)
    except TransportError as exc:
        logger.warning("slack.webhook.greeting_error chat_id={} error={}", thread.chat_id, exc)


def create_webhook_app(
    settings: Settings,
    bus: MessageBus,
    *,
    sink: ChatSink | None = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    settings.require("slack_signing_secret")
    signing_secret = str(settings.slack_signing_secret)
    app = FastAPI(title="relaybot", docs_url=None, redoc_url=None)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/slack/events")
    async def slack_events(request: Request, background: BackgroundTasks) -> JSONResponse:
        raw_body = (await request.body()).decode("utf-8")
        try:
            verify_slack_signature(
                signing_secret,
                request.headers.get("x-slack-signature"),
                request.headers.get("x-slack-request-timestamp"),
                raw_body,
                now=clock(),
                max_age_seconds=settings.signature_max_age_seconds,
            )
        except AuthError as exc:
            logger.warning("slack.webhook.auth_error error={}", exc)
            return JSONResponse({"error": str(exc)}, status_code=401)

        try:
            payload = json.loads(raw_body)
        except json.JSONDecodeError:
            return JSONResponse({"error": "Invalid JSON"}, status_code=400)
        if not isinstance(payload, dict):
            return JSONResponse({"error": "Invalid payload"}, status_code=400)

        if payload.get("type") == "url_verification":
            challenge = payload.get("challenge")
            if not challenge:
                return JSONResponse({"error": "Missing challenge"}, status_code=400)
            logger.info("slack.webhook.url_verification")
            return JSONResponse({"challenge": challenge})

        # Slack redelivers when we are slow to acknowledge; the first delivery is already being answered.
        if request.headers.get("x-slack-retry-num"):
            logger.info("slack.webhook.retry_ignored num={}", request.headers.get("x-slack-retry-num"))
            return JSONResponse({"ok": True})

        greeting_thread = assistant_thread(payload)
        if greeting_thread is not None:
            if sink is not None:
                background.add_task(_greet, sink, greeting_thread)
            return JSONResponse({"ok": True})

        message = to_inbound(payload)
        if message is None:
            return JSONResponse({"ok": True})

        logger.info(
            "slack.webhook.inbound chat_id={} sender_id={} content={}",
            message.chat_id,
            message.sender_id,
            message.content[:100],
        )
        await bus.publish_inbound(message)
        return JSONResponse({"ok": True})

    return app
