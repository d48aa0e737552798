"""
Shared constants for the Telegram relay.
"""

# Telegram caps messages at 4096 characters; keep headroom for entities.
MAX_MESSAGE_LENGTH = 4000

DEFAULT_AI_CHAT_ENDPOINT = "http://localhost:3000/api/ai/chat"

# Data stream tags emitted by the AI chat endpoint
TEXT_DELTA_TAGS = frozenset({"0", "1"})
AUXILIARY_TAGS = frozenset({"2", "8", "9"})
ERROR_TAG = "3"
MAX_TAG_LENGTH = 2

FALLBACK_RESPONSE = (
    "I processed your message, but I don't have a specific response. "
    "How can I help you further?"
)

WEBHOOK_PATH = "/telegram/webhook"
SECRET_TOKEN_HEADER = "X-Telegram-Bot-Api-Secret-Token"
