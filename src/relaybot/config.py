"""Configuration management for relaybot."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from relaybot.errors import ConfigurationError

DEFAULT_MODEL = "anthropic:claude-sonnet-4-20250514"


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="RELAYBOT_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Model Configuration
    model: str = Field(default=DEFAULT_MODEL, description="Model in provider:model format")
    api_key: str | None = Field(default=None, description="API key for the LLM provider")
    api_base: str | None = Field(default=None, description="Optional API base URL")
    max_tokens: int = Field(default=2048, description="Maximum tokens for one handler answer")
    model_timeout_seconds: float | None = Field(default=120.0, description="Timeout for one handler stream")

    # Knowledge Configuration
    data_dir: Path = Field(default=Path("data"), description="Directory holding the JSON knowledge files")

    # Channel Configuration
    slack_bot_token: str | None = Field(default=None, description="Slack bot token (xoxb-...)")
    slack_signing_secret: str | None = Field(default=None, description="Slack request signing secret")
    signature_max_age_seconds: int = Field(default=300, description="Freshness window for signed requests")
    telegram_token: str | None = Field(default=None, description="Telegram bot token")
    telegram_allow_from: str = Field(default="", description="Comma separated Telegram user ids or usernames")
    telegram_allow_chats: str = Field(default="", description="Comma separated Telegram chat ids")
    history_limit: int = Field(default=6, description="Prior thread turns used to enrich a query")

    # Relay Configuration
    tick_interval: float = Field(default=0.3, description="Seconds between status animation ticks")
    tool_display_delay: float = Field(default=0.3, description="Pause after a tool starts")
    step_display_delay: float = Field(default=0.3, description="Pause after a workflow step starts")
    final_write_attempts: int = Field(default=3, ge=1, description="Attempts for the terminal message write")
    final_write_backoff: float = Field(default=0.5, ge=0, description="Seconds between terminal write attempts")

    # Server Configuration
    host: str = Field(default="0.0.0.0", description="Webhook server bind host")  # noqa: S104
    port: int = Field(default=3000, description="Webhook server port")

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Log level")

    @property
    def telegram_allow_from_set(self) -> set[str]:
        return _split_csv(self.telegram_allow_from)

    @property
    def telegram_allow_chats_set(self) -> set[str]:
        return _split_csv(self.telegram_allow_chats)

    def require(self, *names: str) -> None:
        """Fail fast when any of the named settings is empty."""
        missing = [name for name in names if not getattr(self, name, None)]
        if not missing:
            return
        lines = "\n".join(f"  - RELAYBOT_{name.upper()}" for name in missing)
        raise ConfigurationError(
            f"Missing or invalid environment variables:\n{lines}\n\n"
            "Please ensure all required environment variables are set in your .env file."
        )


def _split_csv(raw: str) -> set[str]:
    return {item.strip() for item in raw.split(",") if item.strip()}


def load_settings(**overrides: object) -> Settings:
    """Load settings from the environment and .env, applying explicit overrides."""
    settings = Settings()
    updates = {key: value for key, value in overrides.items() if value is not None}
    if updates:
        settings = settings.model_copy(update=updates)
    return settings
