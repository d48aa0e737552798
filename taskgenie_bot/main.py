"""
FastAPI application and process entry point for the TaskGenie Telegram bot.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from telegram import Update

from . import __version__
from .bot.application import build_application
from .core.config import load_settings
from .core.constants import WEBHOOK_PATH
from .core.context import AppContext
from .core.exceptions import (
    ConfigurationError,
    general_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from .core.logging import setup_logging
from .routers import health, webhook

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Start the Telegram application: register the webhook, or start long polling."""
    app_context: AppContext = app.state.context
    settings = app_context.settings
    application = app_context.application or build_application(app_context)

    await application.initialize()
    if settings.use_webhook:
        webhook_url = f"{settings.webhook_url}{WEBHOOK_PATH}"
        await application.bot.set_webhook(
            url=webhook_url,
            secret_token=settings.webhook_secret,
            allowed_updates=Update.ALL_TYPES,
        )
        logger.info("Webhook registered", url=webhook_url)
    await application.start()
    if not settings.use_webhook:
        await application.updater.start_polling(allowed_updates=Update.ALL_TYPES)

    logger.info(
        "Telegram bot started successfully",
        version=app.version,
        mode="webhook" if settings.use_webhook else "polling",
    )

    yield

    app_context.cancel_streams()
    if not settings.use_webhook:
        await application.updater.stop()
    await application.stop()
    await application.shutdown()
    await app_context.aclose()
    logger.info("Telegram bot stopped")


def create_app(app_context: AppContext) -> FastAPI:
    """Create and configure the webhook/health HTTP server."""
    settings = app_context.settings

    app = FastAPI(
        title=settings.app_name,
        description="Relay between Telegram and the TaskGenie web application",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.context = app_context
    app.state.debug = settings.debug

    # Exception handlers
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # Include routers
    app.include_router(health.router, tags=["health"])
    app.include_router(webhook.router, tags=["telegram"])

    return app


def run() -> None:
    """
    Console entry point.

    The HTTP server always runs so health checks work in both delivery modes;
    updates arrive on the webhook route when WEBHOOK_URL is set and through
    long polling otherwise.
    """
    try:
        settings = load_settings()
    except ConfigurationError as e:
        setup_logging()
        logger.error("Configuration error", error=e.detail)
        raise SystemExit(1)

    setup_logging(settings.log_level)
    logger.info("Loaded configuration", config=settings.log_config_safely())

    uvicorn.run(
        create_app(AppContext.from_settings(settings)),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
