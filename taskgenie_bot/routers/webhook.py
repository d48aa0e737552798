"""
Telegram webhook receiver.
"""

import hmac
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from telegram import Update

from ..core.constants import SECRET_TOKEN_HEADER, WEBHOOK_PATH
from ..core.context import AppContext
from .deps import get_app_context

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post(WEBHOOK_PATH, tags=["telegram"])
async def telegram_webhook(
    request: Request,
    app_context: AppContext = Depends(get_app_context),
    secret_token: Optional[str] = Header(default=None, alias=SECRET_TOKEN_HEADER),
) -> dict:
    """
    Accept an update pushed by Telegram and dispatch it to the bot handlers.

    The update is queued for the running application and acknowledged
    immediately; handlers run outside the request.
    """
    expected = app_context.settings.webhook_secret
    if expected and not hmac.compare_digest(secret_token or "", expected):
        logger.warning("Webhook secret mismatch", client_ip=request.client.host if request.client else None)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid secret token")

    application = app_context.application
    if application is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Bot not initialized")

    try:
        data = await request.json()
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Body is not valid JSON")

    if not isinstance(data, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Update must be a JSON object")

    try:
        update = Update.de_json(data, application.bot)
    except (TypeError, KeyError, ValueError) as e:
        logger.warning("Malformed Telegram update", error=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Malformed update")

    if update is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty update")

    logger.debug("Webhook update received", update_id=update.update_id)
    await application.update_queue.put(update)
    return {"ok": True}
