"""
Logging configuration for the Telegram relay.
"""

import logging.config
import re
import sys

import structlog


class SecretScrubber:
    """
    Mask credentials before they reach the log stream.

    Redacts:
    - Telegram bot tokens (``123456:ABC...``), including inside Bot API URLs
    - Long token-like strings when the text mentions a token or key
    """

    BOT_TOKEN_PATTERN = re.compile(r'(?<!\d)\d{6,12}:[A-Za-z0-9_-]{30,}')
    LONG_TOKEN_PATTERN = re.compile(r'\b[A-Za-z0-9_-]{32,}\b')

    @classmethod
    def scrub(cls, text: str) -> str:
        text = cls.BOT_TOKEN_PATTERN.sub('[BOT_TOKEN_REDACTED]', text)
        lowered = text.lower()
        if 'token' in lowered or 'key' in lowered:
            text = cls.LONG_TOKEN_PATTERN.sub('[TOKEN_REDACTED]', text)
        return text

    @classmethod
    def scrub_dict(cls, data: dict) -> dict:
        scrubbed = {}
        for key, value in data.items():
            if isinstance(value, str):
                scrubbed[key] = cls.scrub(value)
            elif isinstance(value, dict):
                scrubbed[key] = cls.scrub_dict(value)
            else:
                scrubbed[key] = value
        return scrubbed


def secret_scrubbing_processor(logger, method_name, event_dict):
    """Structlog processor that masks credentials in every string field."""
    for key, value in list(event_dict.items()):
        if isinstance(value, str):
            event_dict[key] = SecretScrubber.scrub(value)
        elif isinstance(value, dict):
            event_dict[key] = SecretScrubber.scrub_dict(value)

    return event_dict


def setup_logging(level: str = "INFO", enable_scrubbing: bool = True) -> None:
    """
    Setup structured logging with structlog.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        enable_scrubbing: Enable secret scrubbing processor (default: True)
    """

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        stream=sys.stdout,
        format="%(message)s",
    )

    # python-telegram-bot and httpx log every request URL, which embeds the token
    logging.getLogger("httpx").setLevel(logging.WARNING)

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if enable_scrubbing:
        processors.append(secret_scrubbing_processor)

    processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def preview(text: str, limit: int = 50) -> str:
    """Truncate user text for log fields."""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."
