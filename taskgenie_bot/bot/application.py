"""
python-telegram-bot Application wiring.
"""

from telegram.ext import Application, ApplicationBuilder

from ..core.context import AppContext
from .handlers import build_handlers, error_handler


def build_application(app_context: AppContext) -> Application:
    """
    Build the Telegram application for the given context.

    In webhook mode updates arrive through the FastAPI route, so no Updater is
    created; in polling mode the FastAPI lifespan starts the Updater. Startup
    and shutdown are driven by that lifespan in both modes.
    """
    settings = app_context.settings

    builder = ApplicationBuilder().token(settings.telegram_bot_token).concurrent_updates(True)
    if settings.use_webhook:
        builder = builder.updater(None)

    application = builder.build()
    application.add_handlers(build_handlers(app_context))
    application.add_error_handler(error_handler)

    app_context.application = application
    return application
