"""
Configuration management for the Telegram relay.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, ValidationError, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import DEFAULT_AI_CHAT_ENDPOINT, MAX_MESSAGE_LENGTH
from .exceptions import ConfigurationError


def mask_secret(secret: str, visible_chars: int = 4) -> str:
    if len(secret) <= visible_chars * 2:
        return "*" * len(secret)
    return secret[:visible_chars] + "*" * (len(secret) - visible_chars * 2) + secret[-visible_chars:]


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server
    host: str = Field(default="0.0.0.0", description="Host to bind the webhook server")
    port: int = Field(default=8080, description="Port to bind the HTTP server (webhook and health checks)")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Application
    app_name: str = Field(default="TaskGenie Telegram Bot")
    app_version: str = Field(default="0.1.0")

    # Telegram
    telegram_bot_token: str = Field(default="", description="Bot access token from @BotFather")
    webhook_url: Optional[str] = Field(
        default=None,
        description="Public base URL for webhook delivery; long polling is used when unset",
    )
    webhook_secret: Optional[str] = Field(
        default=None,
        description="Secret echoed by Telegram in X-Telegram-Bot-Api-Secret-Token",
    )

    # Web application endpoints
    web_app_verify_endpoint: str = Field(default="", description="Token verification endpoint")
    ai_chat_endpoint: str = Field(
        default=DEFAULT_AI_CHAT_ENDPOINT,
        description="Streaming AI chat endpoint",
    )
    http_timeout: float = Field(default=15.0, description="Timeout for verify/connection calls")
    ai_chat_timeout: float = Field(
        default=120.0,
        description="Upper bound in seconds for reading one AI chat stream",
    )

    # Feature flags
    streaming_chat_enabled: bool = Field(
        default=True,
        description="Relay connected users' messages to the AI chat endpoint",
    )
    forward_history: bool = Field(
        default=False,
        description="Send recent turns of the chat along with each AI request",
    )
    history_max_turns: int = Field(default=10, ge=1, description="Turns kept per chat for forwarding")

    # Delivery
    max_message_length: int = Field(
        default=MAX_MESSAGE_LENGTH,
        gt=0,
        le=4096,
        description="Maximum characters per outgoing Telegram message",
    )
    verify_followup_delay: float = Field(
        default=1.0,
        ge=0,
        description="Seconds to wait before sending the capabilities message after verification",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("webhook_url")
    @classmethod
    def _strip_webhook_url(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip().rstrip("/")
        return value or None

    @computed_field
    @property
    def check_connection_endpoint(self) -> str:
        """Connection status endpoint, derived from the verify endpoint."""
        return self.web_app_verify_endpoint.replace("/verify", "/check-connection")

    @computed_field
    @property
    def use_webhook(self) -> bool:
        return bool(self.webhook_url)

    def validate_required(self) -> None:
        """Raise ConfigurationError when a required credential or URL is missing."""
        if not self.telegram_bot_token:
            raise ConfigurationError(
                "TELEGRAM_BOT_TOKEN is missing in your .env file or environment variables."
            )
        if not self.web_app_verify_endpoint:
            raise ConfigurationError(
                "WEB_APP_VERIFY_ENDPOINT is missing in your .env file or environment variables."
            )

    def log_config_safely(self) -> dict:
        """Return configuration for logging with secrets masked."""
        config = {}
        for field_name in type(self).model_fields:
            value = getattr(self, field_name)
            if "token" in field_name or "secret" in field_name:
                config[field_name] = mask_secret(str(value)) if value else "<not_set>"
            else:
                config[field_name] = value
        return config


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()


def load_settings() -> Settings:
    """Load settings and enforce required values, raising ConfigurationError otherwise."""
    try:
        settings = get_settings()
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc
    settings.validate_required()
    return settings
