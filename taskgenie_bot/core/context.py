"""
Application context shared by handlers, routers and services.
"""

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from .config import Settings

if TYPE_CHECKING:
    from telegram.ext import Application

    from ..services.conversation_history import ConversationHistory
    from ..services.webapp_client import WebAppClient


@dataclass
class AppContext:
    """Everything a request handler needs, built once at startup."""

    settings: Settings
    webapp: "WebAppClient"
    history: "ConversationHistory"
    application: Optional["Application"] = field(default=None)
    # Set on shutdown; in-flight AI streams are abandoned when it fires
    shutdown_event: asyncio.Event = field(default_factory=asyncio.Event)

    @classmethod
    def from_settings(cls, settings: Settings) -> "AppContext":
        from ..services.conversation_history import ConversationHistory
        from ..services.webapp_client import WebAppClient

        return cls(
            settings=settings,
            webapp=WebAppClient(settings),
            history=ConversationHistory(max_turns=settings.history_max_turns),
        )

    def cancel_streams(self) -> None:
        self.shutdown_event.set()

    async def aclose(self) -> None:
        self.cancel_streams()
        await self.webapp.aclose()
