"""
Request/response schemas for the TaskGenie web application endpoints.
"""

from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class VerifyRequest(BaseModel):
    """Body sent to the verify endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    token: str
    telegram_user_id: int = Field(..., alias="telegramUserId")
    chat_id: int = Field(..., alias="chatId")


class VerifyResponse(BaseModel):
    """Verify endpoint body; both fields are optional on the wire."""

    message: Optional[str] = None
    error: Optional[str] = None


class VerifyResult(BaseModel):
    """Outcome of a verification attempt."""

    ok: bool
    message: Optional[str] = None
    error: Optional[str] = None


class ConnectionCheckRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    telegram_user_id: str = Field(..., alias="telegramUserId")


class ConnectionCheckResponse(BaseModel):
    connected: bool = False


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class TelegramContext(BaseModel):
    """Who is talking, forwarded with every AI request."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: Union[int, str] = Field(..., alias="userId")
    user_name: str = Field(default="User", alias="userName")
    chat_id: Union[int, str] = Field(..., alias="chatId")


class AIChatRequest(BaseModel):
    """Body sent to the AI chat endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    messages: List[ChatMessage]
    telegram_context: TelegramContext = Field(..., alias="telegramContext")
