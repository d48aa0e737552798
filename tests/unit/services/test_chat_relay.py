"""
Tests for services/chat_relay.py

Coverage:
- Text messages: connection gate, static mode, AI round trip, chunked delivery
- Failures: upstream error, timeout and cancellation apologies, no retries;
  Telegram send failures part way through an answer
- History forwarding
- /verify: usage hint, success, rejection, service errors
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from telegram.error import NetworkError

from taskgenie_bot.core import messages
from taskgenie_bot.core.constants import FALLBACK_RESPONSE
from taskgenie_bot.services.chat_relay import ChatRelay, RelayOutcome

from tests.conftest import build_context, make_settings


def delta(text: str) -> bytes:
    return f"0:{json.dumps(text)}\n".encode()


@pytest.fixture
def relay(app_context) -> ChatRelay:
    return ChatRelay(app_context)


@pytest_asyncio.fixture
async def make_relay(fake_webapp):
    contexts = []

    def factory(**overrides) -> ChatRelay:
        context = build_context(make_settings(**overrides), fake_webapp)
        contexts.append(context)
        return ChatRelay(context)

    yield factory
    for context in contexts:
        await context.aclose()


async def send(relay: ChatRelay, reply, text: str = "What is on my list?", **kwargs):
    return await relay.handle_text(
        chat_id=99,
        user_id=42,
        user_name="Ada",
        text=text,
        reply=reply,
        **kwargs,
    )


class TestConnectionGate:
    @pytest.mark.asyncio
    async def test_unconnected_user_gets_instructions(self, relay, reply, fake_webapp):
        fake_webapp.connected = False

        outcome = await send(relay, reply)

        assert outcome is RelayOutcome.NOT_CONNECTED
        assert reply.sent == [messages.CONNECT_INSTRUCTIONS.format(user_name="Ada")]
        assert not any(path.endswith("/ai/chat") for path in fake_webapp.paths())

    @pytest.mark.asyncio
    async def test_connection_check_failure_is_treated_as_not_connected(self, relay, reply, fake_webapp):
        fake_webapp.connection_status = 503

        outcome = await send(relay, reply)

        assert outcome is RelayOutcome.NOT_CONNECTED
        assert reply.sent == [messages.CONNECT_INSTRUCTIONS.format(user_name="Ada")]
        assert len(fake_webapp.requests) == 1

    @pytest.mark.asyncio
    async def test_missing_first_name_defaults_to_user(self, relay, reply, fake_webapp):
        fake_webapp.connected = False

        await relay.handle_text(chat_id=1, user_id=2, user_name=None, text="hey", reply=reply)

        assert "Hi User!" in reply.sent[0]


class TestAIChat:
    @pytest.mark.asyncio
    async def test_answer_is_relayed(self, relay, reply, fake_webapp):
        fake_webapp.chat_chunks = [b'0:"Hi "\n', b'0:"there!"\n']

        outcome = await send(relay, reply)

        assert outcome is RelayOutcome.ANSWERED
        assert reply.sent == ["Hi there!"]

    @pytest.mark.asyncio
    async def test_typing_indicator_is_sent_first(self, relay, reply):
        send_typing = AsyncMock()

        await send(relay, reply, send_typing=send_typing)

        send_typing.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_typing_indicator_failure_is_ignored(self, relay, reply):
        send_typing = AsyncMock(side_effect=RuntimeError("telegram down"))

        outcome = await send(relay, reply, send_typing=send_typing)

        assert outcome is RelayOutcome.ANSWERED
        assert reply.sent == ["Hello"]

    @pytest.mark.asyncio
    async def test_long_answer_is_sent_in_order(self, make_relay, reply, fake_webapp):
        relay = make_relay(max_message_length=10)
        fake_webapp.chat_chunks = [delta("abcdefghij"), delta("klmnopqrst"), delta("uvw")]

        await send(relay, reply)

        assert reply.sent == ["abcdefghij", "klmnopqrst", "uvw"]

    @pytest.mark.asyncio
    async def test_empty_answer_sends_fallback(self, relay, reply, fake_webapp):
        fake_webapp.chat_chunks = [b'2:[{"toolCallId": "t1"}]\n', b"0:not-json\n"]

        await send(relay, reply)

        assert reply.sent == [FALLBACK_RESPONSE]

    @pytest.mark.asyncio
    async def test_request_carries_telegram_context(self, relay, reply, fake_webapp):
        await send(relay, reply, text="Create a task")

        body = fake_webapp.json_bodies("/ai/chat")[0]
        assert body["messages"] == [{"role": "user", "content": "Create a task"}]
        assert body["telegramContext"] == {"userId": 42, "userName": "Ada", "chatId": 99}

    @pytest.mark.asyncio
    async def test_streaming_disabled_sends_static_reply(self, make_relay, reply, fake_webapp):
        relay = make_relay(streaming_chat_enabled=False)

        outcome = await send(relay, reply)

        assert outcome is RelayOutcome.STATIC_REPLY
        assert reply.sent == [messages.CHAT_DISABLED]
        assert not any(path.endswith("/ai/chat") for path in fake_webapp.paths())


class TestFailures:
    @pytest.mark.asyncio
    async def test_upstream_error_sends_one_apology(self, relay, reply, fake_webapp):
        fake_webapp.chat_status = 500

        outcome = await send(relay, reply)

        assert outcome is RelayOutcome.FAILED
        assert reply.sent == [messages.CHAT_ERROR]
        assert fake_webapp.paths().count("/api/ai/chat") == 1

    @pytest.mark.asyncio
    async def test_timeout_sends_timeout_message(self, make_relay, reply, fake_webapp):
        relay = make_relay(ai_chat_timeout=0.05)
        fake_webapp.chat_delay = 1.0

        outcome = await send(relay, reply)

        assert outcome is RelayOutcome.TIMED_OUT
        assert reply.sent == [messages.CHAT_TIMEOUT]

    @pytest.mark.asyncio
    async def test_cancelled_stream_sends_apology(self, relay, reply):
        event = asyncio.Event()
        event.set()

        outcome = await send(relay, reply, cancel_event=event)

        assert outcome is RelayOutcome.FAILED
        assert reply.sent == [messages.CHAT_ERROR]

    @pytest.mark.asyncio
    async def test_shutdown_abandons_stalled_stream(self, relay, reply, fake_webapp):
        fake_webapp.chat_chunks = [delta("too late")]
        fake_webapp.chat_delay = 2.0
        loop = asyncio.get_running_loop()
        loop.call_later(0.1, relay.context.cancel_streams)

        started = loop.time()
        outcome = await send(relay, reply, cancel_event=relay.context.shutdown_event)

        assert loop.time() - started < 1.0
        assert outcome is RelayOutcome.FAILED
        assert reply.sent == [messages.CHAT_ERROR]

    @pytest.mark.asyncio
    async def test_send_failure_mid_answer_is_reported(self, make_relay, fake_webapp):
        relay = make_relay(max_message_length=10)
        fake_webapp.chat_chunks = [delta("abcdefghij"), delta("klmnopqrst"), delta("uvw")]
        sent = []

        async def flaky_reply(text: str) -> None:
            if len(sent) == 1 and text != messages.CHAT_DELIVERY_FAILED:
                raise NetworkError("connection reset")
            sent.append(text)

        outcome = await send(relay, flaky_reply)

        assert outcome is RelayOutcome.DELIVERY_FAILED
        assert sent == ["abcdefghij", messages.CHAT_DELIVERY_FAILED]

    @pytest.mark.asyncio
    async def test_failed_delivery_notice_does_not_raise(self, relay, fake_webapp):
        fake_webapp.chat_chunks = [delta("hello")]
        reply = AsyncMock(side_effect=NetworkError("offline"))

        outcome = await send(relay, reply)

        assert outcome is RelayOutcome.DELIVERY_FAILED
        assert reply.await_count == 2


class TestHistoryForwarding:
    @pytest.mark.asyncio
    async def test_history_is_not_forwarded_by_default(self, relay, reply, fake_webapp):
        await send(relay, reply, text="first")
        await send(relay, reply, text="second")

        bodies = fake_webapp.json_bodies("/ai/chat")
        assert bodies[1]["messages"] == [{"role": "user", "content": "second"}]
        assert relay.history.get(99) == []

    @pytest.mark.asyncio
    async def test_previous_turns_are_forwarded(self, make_relay, reply, fake_webapp):
        relay = make_relay(forward_history=True)

        await send(relay, reply, text="first")
        await send(relay, reply, text="second")

        bodies = fake_webapp.json_bodies("/ai/chat")
        assert bodies[1]["messages"] == [
            {"role": "user", "content": "first"},
            {"role": "assistant", "content": "Hello"},
            {"role": "user", "content": "second"},
        ]

    @pytest.mark.asyncio
    async def test_failed_round_trip_is_not_recorded(self, make_relay, reply, fake_webapp):
        relay = make_relay(forward_history=True)
        fake_webapp.chat_status = 500

        await send(relay, reply)

        assert relay.history.get(99) == []


class TestVerify:
    @pytest.mark.asyncio
    async def test_missing_token_gets_usage_without_http(self, relay, reply, fake_webapp):
        outcome = await relay.verify(chat_id=99, user_id=42, args=[], reply=reply)

        assert outcome is RelayOutcome.USAGE
        assert reply.sent == [messages.VERIFY_USAGE]
        assert fake_webapp.requests == []

    @pytest.mark.asyncio
    async def test_blank_token_gets_usage(self, relay, reply, fake_webapp):
        outcome = await relay.verify(chat_id=99, user_id=42, args=["  "], reply=reply)

        assert outcome is RelayOutcome.USAGE
        assert fake_webapp.requests == []

    @pytest.mark.asyncio
    async def test_success(self, relay, reply, fake_webapp):
        outcome = await relay.verify(chat_id=99, user_id=42, args=["tok-1"], reply=reply)

        assert outcome is RelayOutcome.VERIFIED
        assert reply.sent == [
            messages.VERIFY_ATTEMPT.format(token="tok-1"),
            "Account linked!",
            messages.CAPABILITIES,
        ]
        assert fake_webapp.json_bodies("/verify") == [{"token": "tok-1", "telegramUserId": 42, "chatId": 99}]

    @pytest.mark.asyncio
    async def test_success_default_message(self, relay, reply, fake_webapp):
        fake_webapp.verify_body = {}

        await relay.verify(chat_id=99, user_id=42, args=["tok-1"], reply=reply)

        assert reply.sent[1] == messages.VERIFY_SUCCESS.format(user_id=42, chat_id=99)

    @pytest.mark.asyncio
    async def test_success_resets_history(self, relay, reply):
        relay.history.append(99, "user", "old conversation")

        await relay.verify(chat_id=99, user_id=42, args=["tok-1"], reply=reply)

        assert relay.history.get(99) == []

    @pytest.mark.asyncio
    async def test_rejected(self, relay, reply, fake_webapp):
        fake_webapp.verify_status = 400
        fake_webapp.verify_body = {"error": "Invalid or expired token"}

        outcome = await relay.verify(chat_id=99, user_id=42, args=["bad"], reply=reply)

        assert outcome is RelayOutcome.REJECTED
        assert reply.sent[-1] == "Verification failed: Invalid or expired token"

    @pytest.mark.asyncio
    async def test_service_error(self, relay, reply, fake_webapp):
        fake_webapp.verify_status = 502
        fake_webapp.verify_body = b"Bad gateway"

        outcome = await relay.verify(chat_id=99, user_id=42, args=["tok"], reply=reply)

        assert outcome is RelayOutcome.FAILED
        assert reply.sent[-1] == messages.VERIFY_SERVICE_ERROR
