"""relaybot command line."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from pathlib import Path
from typing import NoReturn

import typer
from loguru import logger

from relaybot.app import build_app, build_router
from relaybot.channels.base import ThreadRef
from relaybot.channels.bus import MessageBus
from relaybot.channels.console import ConsoleChatSink
from relaybot.config import Settings, load_settings
from relaybot.dispatch.classifier import classify
from relaybot.dispatch.table import resolve
from relaybot.errors import ConfigurationError, HandlerExecutionError, RelaybotError
from relaybot.logging_utils import configure_logging
from relaybot.relay.events import StreamEvent, decode_event
from relaybot.relay.relay import RelayPhase, RelayResult, RelayTimings, ResponseRelay

app = typer.Typer(name="relaybot", help="Route chat questions to specialized handlers.", add_completion=False)

CONSOLE_THREAD = ThreadRef(channel="console", chat_id="local", user_id="human")


def _exit_with_error(message: str) -> NoReturn:
    typer.secho(message, err=True, fg=typer.colors.RED)
    raise typer.Exit(1)


@app.command("classify")
def classify_command(text: str = typer.Argument(..., help="Question to classify")) -> None:
    """Show the intent and handler a question would be routed to."""

    configure_logging()
    classification = classify(text)
    mapping = resolve(classification.intent)
    typer.echo(f"intent: {classification.intent.value}")
    typer.echo(f"query: {classification.normalized_query}")
    typer.echo(f"handler: {mapping.handler_id} ({mapping.display_name})")


@app.command("ask")
def ask(
    text: str = typer.Argument(..., help="Question to answer"),
    model: str | None = typer.Option(None, "--model", help="Override RELAYBOT_MODEL"),
    data_dir: Path | None = typer.Option(None, "--data-dir", help="Override RELAYBOT_DATA_DIR"),  # noqa: B008
) -> None:
    """Answer one question in the terminal with a live status line."""

    configure_logging(profile="console")
    settings = load_settings(model=model, data_dir=data_dir)
    try:
        result = asyncio.run(_ask(settings, text))
    except HandlerExecutionError:
        raise typer.Exit(1) from None
    except RelaybotError as exc:
        _exit_with_error(str(exc))
    if result.phase is RelayPhase.FAILED:
        raise typer.Exit(1)


async def _ask(settings: Settings, text: str) -> RelayResult:
    router = build_router(settings)
    sink = ConsoleChatSink()
    route, events = router.stream(text, thread=CONSOLE_THREAD)
    relay = ResponseRelay(sink, CONSOLE_THREAD, timings=RelayTimings.from_settings(settings), agent_name=route.display_name)
    try:
        return await relay.run(events)
    finally:
        sink.close()


@app.command("replay")
def replay(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON lines file of recorded events"),  # noqa: B008
    agent: str | None = typer.Option(None, "--agent", help="Agent name shown in the status line"),
    delay: float = typer.Option(0.05, "--delay", min=0.0, help="Seconds between replayed events"),
) -> None:
    """Replay recorded handler events through the relay in the terminal."""

    configure_logging(profile="console")
    settings = load_settings()
    try:
        result = asyncio.run(_replay(settings, path, agent, delay))
    except HandlerExecutionError:
        raise typer.Exit(1) from None
    if result.phase is RelayPhase.FAILED:
        raise typer.Exit(1)


async def _replay(settings: Settings, path: Path, agent: str | None, delay: float) -> RelayResult:
    sink = ConsoleChatSink()
    relay = ResponseRelay(sink, CONSOLE_THREAD, timings=RelayTimings.from_settings(settings), agent_name=agent)
    try:
        return await relay.run(_read_events(path, delay))
    finally:
        sink.close()


async def _read_events(path: Path, delay: float) -> AsyncIterator[StreamEvent]:
    with path.open(encoding="utf-8") as handle:
        for line_number, line in enumerate(handle, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                data = json.loads(line)
            except json.JSONDecodeError as exc:
                raise HandlerExecutionError(f"invalid event on line {line_number}: {exc.msg}") from None
            if not isinstance(data, dict):
                raise HandlerExecutionError(f"invalid event on line {line_number}: expected an object")
            yield decode_event(data)
            await asyncio.sleep(delay)


@app.command("serve")
def serve(
    host: str | None = typer.Option(None, "--host", help="Override RELAYBOT_HOST"),
    port: int | None = typer.Option(None, "--port", help="Override RELAYBOT_PORT"),
) -> None:
    """Serve the Slack Events API webhook."""

    configure_logging()
    settings = load_settings(host=host, port=port)
    try:
        settings.require("slack_bot_token", "slack_signing_secret")
        asyncio.run(_serve(settings))
    except ConfigurationError as exc:
        _exit_with_error(str(exc))
    except KeyboardInterrupt:
        typer.echo("relaybot stopped")


async def _serve(settings: Settings) -> None:
    import uvicorn

    from relaybot.channels.slack import SlackChatSink
    from relaybot.channels.slack_webhook import create_webhook_app

    bus = MessageBus()
    sink = SlackChatSink.from_token(str(settings.slack_bot_token))
    relay_app = build_app(settings, bus=bus, sinks={sink.name: sink})
    web = create_webhook_app(settings, bus, sink=sink)
    server = uvicorn.Server(uvicorn.Config(web, host=settings.host, port=settings.port, log_config=None))
    relay_app.start()
    logger.info("relaybot.serve host={} port={}", settings.host, settings.port)
    try:
        await server.serve()
    finally:
        await relay_app.stop()


@app.command("telegram")
def telegram() -> None:
    """Answer Telegram messages with long polling."""

    configure_logging()
    settings = load_settings()
    try:
        settings.require("telegram_token")
        asyncio.run(_run_telegram(settings))
    except ConfigurationError as exc:
        _exit_with_error(str(exc))
    except KeyboardInterrupt:
        typer.echo("relaybot stopped")


async def _run_telegram(settings: Settings) -> None:
    from telegram import Bot

    from relaybot.channels.telegram import TelegramChannel, TelegramChatSink, TelegramConfig

    token = str(settings.telegram_token)
    bus = MessageBus()
    relay_app = build_app(settings, bus=bus)
    channel = TelegramChannel(
        bus,
        TelegramConfig(
            token=token,
            allow_from=settings.telegram_allow_from_set,
            allow_chats=settings.telegram_allow_chats_set,
        ),
    )
    async with Bot(token) as bot:
        relay_app.register_sink(TelegramChatSink(bot))
        relay_app.start()
        try:
            await channel.start()
        finally:
            await channel.stop()
            await relay_app.stop()
