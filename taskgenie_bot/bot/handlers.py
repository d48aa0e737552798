"""
Telegram update handlers.

Handlers are created by ``build_handlers`` around an ``AppContext`` so nothing
is stored in module globals.
"""

from typing import List

import structlog
from telegram import Update
from telegram.constants import ChatAction
from telegram.ext import BaseHandler, CommandHandler, ContextTypes, MessageHandler, filters

from ..core import messages
from ..core.context import AppContext
from ..services.chat_relay import ChatRelay

logger = structlog.get_logger(__name__)


async def start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await update.effective_message.reply_text(messages.WELCOME)


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await update.effective_message.reply_text(messages.HELP)


class RelayHandlers:
    """Handlers that need the relay: /verify and plain text."""

    def __init__(self, relay: ChatRelay):
        self.relay = relay

    async def verify(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        message = update.effective_message
        await self.relay.verify(
            chat_id=update.effective_chat.id,
            user_id=update.effective_user.id,
            args=context.args or [],
            reply=message.reply_text,
        )

    async def text_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        message = update.effective_message
        if not message or not message.text or message.text.startswith("/"):
            return

        user = update.effective_user
        chat = update.effective_chat

        async def send_typing():
            await chat.send_action(ChatAction.TYPING)

        outcome = await self.relay.handle_text(
            chat_id=chat.id,
            user_id=user.id,
            user_name=user.first_name,
            text=message.text,
            reply=message.reply_text,
            send_typing=send_typing,
            cancel_event=self.relay.context.shutdown_event,
        )
        logger.info("Message handled", telegram_user_id=user.id, outcome=outcome.value)


def build_handlers(app_context: AppContext) -> List[BaseHandler]:
    """Handlers in registration order."""
    relay_handlers = RelayHandlers(ChatRelay(app_context))
    return [
        CommandHandler("start", start),
        CommandHandler("verify", relay_handlers.verify),
        CommandHandler("help", help_command),
        MessageHandler(filters.TEXT & ~filters.COMMAND, relay_handlers.text_message),
    ]


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Log exceptions raised by handlers; the bot keeps running."""
    logger.error(
        "Unhandled error while processing update",
        error=str(context.error),
        error_type=type(context.error).__name__,
        update_id=getattr(update, "update_id", None),
        exc_info=context.error,
    )
