"""
Shared fixtures for the Telegram relay tests.

Upstream HTTP calls go through ``httpx.MockTransport`` backed by ``FakeWebApp``,
which records every request so tests can assert what was (or was not) sent.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio

from taskgenie_bot.core.config import Settings
from taskgenie_bot.core.context import AppContext
from taskgenie_bot.services.conversation_history import ConversationHistory
from taskgenie_bot.services.webapp_client import WebAppClient

VERIFY_URL = "http://webapp.test/api/telegram/verify"
CHECK_CONNECTION_PATH = "/api/telegram/check-connection"
AI_CHAT_URL = "http://webapp.test/api/ai/chat"
BOT_TOKEN = "123456789:AAH" + "x" * 32


class FakeWebApp:
    """In-process stand-in for the TaskGenie web application."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.connected = True
        self.connection_status = 200
        self.verify_status = 200
        self.verify_body: Any = {"message": "Account linked!"}
        self.chat_status = 200
        self.chat_chunks: List[bytes] = [b'0:"Hello"\n']
        self.chat_delay: float = 0.0

    def paths(self) -> List[str]:
        return [request.url.path for request in self.requests]

    def json_bodies(self, path_suffix: str) -> List[Dict[str, Any]]:
        return [
            json.loads(request.content)
            for request in self.requests
            if request.url.path.endswith(path_suffix)
        ]

    async def _chat_body(self):
        for chunk in self.chat_chunks:
            if self.chat_delay:
                await asyncio.sleep(self.chat_delay)
            yield chunk

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path.endswith("/check-connection"):
            return httpx.Response(self.connection_status, json={"connected": self.connected})
        if path.endswith("/verify"):
            if isinstance(self.verify_body, (bytes, str)):
                return httpx.Response(self.verify_status, content=self.verify_body)
            return httpx.Response(self.verify_status, json=self.verify_body)
        if path.endswith("/ai/chat"):
            if self.chat_status >= 400:
                return httpx.Response(self.chat_status, text="upstream exploded")
            return httpx.Response(self.chat_status, content=self._chat_body())
        return httpx.Response(404, json={"error": "not found"})


def make_settings(**overrides) -> Settings:
    values = dict(
        telegram_bot_token=BOT_TOKEN,
        web_app_verify_endpoint=VERIFY_URL,
        ai_chat_endpoint=AI_CHAT_URL,
        verify_followup_delay=0,
        ai_chat_timeout=5.0,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def fake_webapp() -> FakeWebApp:
    return FakeWebApp()


@pytest_asyncio.fixture
async def webapp_client(settings, fake_webapp):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(fake_webapp.handler))
    client = WebAppClient(settings, http_client=http_client)
    yield client
    await client.aclose()


def build_context(settings: Settings, fake_webapp: FakeWebApp, application: Optional[Any] = None) -> AppContext:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(fake_webapp.handler))
    return AppContext(
        settings=settings,
        webapp=WebAppClient(settings, http_client=http_client),
        history=ConversationHistory(max_turns=settings.history_max_turns),
        application=application,
    )


@pytest_asyncio.fixture
async def app_context(settings, fake_webapp):
    context = build_context(settings, fake_webapp)
    yield context
    await context.aclose()


class ReplyRecorder:
    """Collects outgoing chat messages in send order."""

    def __init__(self):
        self.sent: List[str] = []

    async def __call__(self, text: str) -> None:
        self.sent.append(text)


@pytest.fixture
def reply() -> ReplyRecorder:
    return ReplyRecorder()
