"""
HTTP client for the TaskGenie web application.

Covers the three endpoints the bot depends on: token verification, connection
status, and the streaming AI chat.
"""

import asyncio
import json
from typing import Any, AsyncIterator, Dict, List, Optional, Union

import httpx
import structlog
from pydantic import ValidationError

from ..core.config import Settings
from ..core.exceptions import StreamCancelledError, UpstreamError, UpstreamTimeoutError
from ..schemas.backend import (
    AIChatRequest,
    ConnectionCheckRequest,
    ConnectionCheckResponse,
    TelegramContext,
    VerifyRequest,
    VerifyResponse,
    VerifyResult,
)

logger = structlog.get_logger(__name__)


class WebAppClient:
    """HTTP client for the TaskGenie web application."""

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self.verify_url = settings.web_app_verify_endpoint
        self.check_connection_url = settings.check_connection_endpoint
        self.ai_chat_url = settings.ai_chat_endpoint
        self.stream_timeout = settings.ai_chat_timeout

        self.client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(
                timeout=settings.http_timeout,
                # The stream has its own overall deadline; reads may idle while the model thinks
                read=settings.ai_chat_timeout,
            ),
            headers={
                "User-Agent": "TaskGenie-Telegram-Bot/1.0",
                "Content-Type": "application/json",
            },
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    async def verify_token(
        self,
        token: str,
        telegram_user_id: int,
        chat_id: int,
    ) -> VerifyResult:
        """
        Exchange a one-time token for a link between the Telegram user and an account.

        Returns:
            VerifyResult with ``ok`` set from the HTTP status

        Raises:
            UpstreamError: network failure, or a body that is not JSON
        """
        payload = VerifyRequest(
            token=token,
            telegram_user_id=telegram_user_id,
            chat_id=chat_id,
        ).model_dump(by_alias=True)

        try:
            response = await self.client.post(self.verify_url, json=payload)
        except httpx.HTTPError as e:
            logger.error("Error sending token to web app", error=str(e), url=self.verify_url)
            raise UpstreamError(f"Verification request failed: {e}") from e

        try:
            body = VerifyResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.error(
                "Verification response is not valid JSON",
                status_code=response.status_code,
                error=str(e),
            )
            raise UpstreamError(
                "Verification service returned an invalid response",
                status_code=response.status_code,
            ) from e

        if response.is_success:
            logger.info("Token verified", telegram_user_id=telegram_user_id, chat_id=chat_id)
            return VerifyResult(ok=True, message=body.message)

        error = body.error or response.reason_phrase or "Unknown error"
        logger.warning(
            "Token verification rejected",
            status_code=response.status_code,
            error=error,
            telegram_user_id=telegram_user_id,
        )
        return VerifyResult(ok=False, error=error)

    async def check_connection(self, telegram_user_id: Union[int, str]) -> bool:
        """Whether the Telegram user is linked to an account. Any failure counts as not connected."""
        payload = ConnectionCheckRequest(telegram_user_id=str(telegram_user_id)).model_dump(by_alias=True)

        try:
            response = await self.client.post(self.check_connection_url, json=payload)
        except httpx.HTTPError as e:
            logger.error("Error checking user connection", error=str(e), telegram_user_id=telegram_user_id)
            return False

        if not response.is_success:
            logger.warning(
                "Connection check failed",
                status_code=response.status_code,
                telegram_user_id=telegram_user_id,
            )
            return False

        try:
            body = ConnectionCheckResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.error("Connection check returned invalid body", error=str(e))
            return False

        return body.connected

    async def stream_chat(
        self,
        messages: List[Dict[str, Any]],
        telegram_context: TelegramContext,
        cancel_event: Optional[asyncio.Event] = None,
        timeout: Optional[float] = None,
    ) -> AsyncIterator[bytes]:
        """
        Stream the raw AI chat response body.

        Args:
            messages: Conversation turns ``[{"role": ..., "content": ...}]``
            telegram_context: Sender identity forwarded to the backend
            cancel_event: Interrupts the read, even mid-chunk, once set
            timeout: Deadline for the whole stream (defaults to settings)

        Raises:
            UpstreamError: non-2xx status or transport failure
            UpstreamTimeoutError: the stream did not finish within the deadline
            StreamCancelledError: ``cancel_event`` was set mid-stream
        """
        timeout = timeout if timeout is not None else self.stream_timeout
        request_data = AIChatRequest(
            messages=messages,
            telegram_context=telegram_context,
        ).model_dump(by_alias=True)

        logger.info(
            "Sending request to AI API",
            url=self.ai_chat_url,
            message_count=len(messages),
            body_preview=json.dumps(request_data)[:200],
        )

        try:
            async with asyncio.timeout(timeout):
                async with self.client.stream("POST", self.ai_chat_url, json=request_data) as response:
                    logger.info(
                        "AI API response status",
                        status_code=response.status_code,
                        reason=response.reason_phrase,
                    )
                    if not response.is_success:
                        error_body = await response.aread()
                        logger.error(
                            "AI API error response",
                            status_code=response.status_code,
                            error_body=error_body.decode("utf-8", errors="replace")[:500],
                        )
                        raise UpstreamError(
                            f"AI service error: {response.reason_phrase}",
                            status_code=response.status_code,
                        )

                    chunks = response.aiter_bytes()
                    while True:
                        chunk = await self._next_chunk(chunks, cancel_event)
                        if chunk is None:
                            break
                        yield chunk
        except TimeoutError as e:
            logger.error("AI stream timed out", timeout=timeout, url=self.ai_chat_url)
            raise UpstreamTimeoutError(f"AI service timed out after {timeout}s", timeout=timeout) from e
        except httpx.HTTPError as e:
            logger.error("AI stream transport error", error=str(e), url=self.ai_chat_url)
            raise UpstreamError(f"AI service unavailable: {e}") from e

    @staticmethod
    async def _next_chunk(
        chunks: AsyncIterator[bytes],
        cancel_event: Optional[asyncio.Event],
    ) -> Optional[bytes]:
        """
        Read the next body chunk, or None at the end of the stream.

        With a ``cancel_event`` the read races the event, so a stalled upstream
        is abandoned as soon as the event is set.
        """
        if cancel_event is None:
            return await anext(chunks, None)
        if cancel_event.is_set():
            logger.info("AI stream cancelled")
            raise StreamCancelledError()

        async def read() -> Optional[bytes]:
            return await anext(chunks, None)

        read_task = asyncio.ensure_future(read())
        cancel_task = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _ = await asyncio.wait({read_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            pending = [task for task in (read_task, cancel_task) if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.wait(pending)

        if read_task in done:
            return read_task.result()

        logger.info("AI stream cancelled")
        raise StreamCancelledError()
