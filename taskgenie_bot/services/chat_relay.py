"""
Relay between Telegram conversations and the TaskGenie web application.

Handlers hand the relay plain values plus a ``reply`` coroutine, so the flow can
be exercised without a live Telegram connection.
"""

import asyncio
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Sequence

import structlog
from telegram.error import TelegramError

from ..core import messages
from ..core.context import AppContext
from ..core.exceptions import RelayError, UpstreamError, UpstreamTimeoutError
from ..core.logging import preview
from ..schemas.backend import TelegramContext
from .stream_reassembler import StreamReassembler

logger = structlog.get_logger(__name__)

Reply = Callable[[str], Awaitable[object]]
SendTyping = Callable[[], Awaitable[object]]


class RelayOutcome(str, Enum):
    """How an inbound message was resolved."""

    ANSWERED = "answered"
    NOT_CONNECTED = "not_connected"
    STATIC_REPLY = "static_reply"
    TIMED_OUT = "timed_out"
    FAILED = "failed"
    USAGE = "usage"
    VERIFIED = "verified"
    REJECTED = "rejected"
    DELIVERY_FAILED = "delivery_failed"


class ChatRelay:
    """Per-update orchestration on top of the shared application context."""

    def __init__(self, context: AppContext):
        self.context = context
        self.settings = context.settings
        self.webapp = context.webapp
        self.history = context.history

    async def handle_text(
        self,
        chat_id: int,
        user_id: int,
        user_name: Optional[str],
        text: str,
        reply: Reply,
        send_typing: Optional[SendTyping] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> RelayOutcome:
        """Answer a plain text message from a Telegram user."""
        user_name = user_name or "User"

        connected = await self.webapp.check_connection(user_id)
        if not connected:
            logger.info("User not connected", telegram_user_id=user_id)
            await reply(messages.CONNECT_INSTRUCTIONS.format(user_name=user_name))
            return RelayOutcome.NOT_CONNECTED

        if not self.settings.streaming_chat_enabled:
            await reply(messages.CHAT_DISABLED)
            return RelayOutcome.STATIC_REPLY

        logger.info(
            "Processing AI chat",
            telegram_user_id=user_id,
            user_name=user_name,
            message=preview(text),
            endpoint=self.webapp.ai_chat_url,
        )

        try:
            if send_typing is not None:
                await self._send_typing(send_typing)

            chunks = await self.ask(chat_id, user_id, user_name, text, cancel_event=cancel_event)
        except UpstreamTimeoutError as e:
            logger.error("AI chat timed out", error=str(e), telegram_user_id=user_id)
            await reply(messages.CHAT_TIMEOUT)
            return RelayOutcome.TIMED_OUT
        except RelayError as e:
            logger.error("AI chat error", error=str(e), code=e.code, telegram_user_id=user_id)
            await reply(messages.CHAT_ERROR)
            return RelayOutcome.FAILED

        return await self._deliver(chunks, reply, user_id)

    async def ask(
        self,
        chat_id: int,
        user_id: int,
        user_name: str,
        text: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[str]:
        """Run one AI chat round trip and return the messages to send back."""
        turns = self._build_messages(chat_id, text)
        reassembler = StreamReassembler(max_length=self.settings.max_message_length)

        stream = self.webapp.stream_chat(
            turns,
            TelegramContext(user_id=user_id, user_name=user_name, chat_id=chat_id),
            cancel_event=cancel_event,
        )
        async for chunk in stream:
            reassembler.ingest(chunk)

        chunks = reassembler.finalize()

        if self.settings.forward_history:
            self.history.append(chat_id, "user", text)
            answer = reassembler.text.strip()
            if answer:
                self.history.append(chat_id, "assistant", answer)

        return chunks

    async def verify(
        self,
        chat_id: int,
        user_id: int,
        args: Sequence[str],
        reply: Reply,
    ) -> RelayOutcome:
        """Handle ``/verify <token>``."""
        token = args[0].strip() if args else ""
        if not token:
            await reply(messages.VERIFY_USAGE)
            return RelayOutcome.USAGE

        await reply(messages.VERIFY_ATTEMPT.format(token=token))

        try:
            result = await self.webapp.verify_token(token, user_id, chat_id)
        except UpstreamError:
            await reply(messages.VERIFY_SERVICE_ERROR)
            return RelayOutcome.FAILED

        if not result.ok:
            await reply(messages.VERIFY_FAILED.format(error=result.error or "Unknown error"))
            return RelayOutcome.REJECTED

        await reply(result.message or messages.VERIFY_SUCCESS.format(user_id=user_id, chat_id=chat_id))

        # A newly linked account starts a fresh conversation
        self.history.clear(chat_id)

        if self.settings.verify_followup_delay:
            await asyncio.sleep(self.settings.verify_followup_delay)
        await reply(messages.CAPABILITIES)
        return RelayOutcome.VERIFIED

    async def _deliver(self, chunks: List[str], reply: Reply, user_id: int) -> RelayOutcome:
        """Send the answer chunks in order; stop at the first chunk Telegram refuses."""
        sent = 0
        try:
            for chunk in chunks:
                await reply(chunk)
                sent += 1
        except TelegramError as e:
            logger.error(
                "AI answer delivery failed",
                error=str(e),
                sent=sent,
                total=len(chunks),
                telegram_user_id=user_id,
            )
            try:
                await reply(messages.CHAT_DELIVERY_FAILED)
            except TelegramError as notice_error:
                logger.warning("Delivery failure notice not sent", error=str(notice_error))
            return RelayOutcome.DELIVERY_FAILED

        return RelayOutcome.ANSWERED

    def _build_messages(self, chat_id: int, text: str) -> List[dict]:
        turns: List[dict] = []
        if self.settings.forward_history:
            turns.extend(self.history.get(chat_id))
        turns.append({"role": "user", "content": text})
        return turns

    async def _send_typing(self, send_typing: SendTyping) -> None:
        try:
            await send_typing()
        except Exception as e:  # typing indicator is cosmetic
            logger.debug("Typing indicator failed", error=str(e))
