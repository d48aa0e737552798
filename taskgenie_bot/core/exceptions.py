"""
Exception taxonomy and global exception handlers for the webhook server.
"""

import traceback
from typing import Optional, Union

import structlog
from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = structlog.get_logger(__name__)


class RelayError(Exception):
    """Base exception for the relay."""

    def __init__(self, detail: str, code: str = "RELAY_ERROR"):
        self.detail = detail
        self.code = code
        super().__init__(detail)


class ConfigurationError(RelayError):
    """Missing or invalid startup configuration."""

    def __init__(self, detail: str = "Invalid configuration", code: str = "CONFIGURATION_ERROR"):
        super().__init__(detail, code)


class UpstreamError(RelayError):
    """A call to the web application failed (network, non-2xx or malformed body)."""

    def __init__(
        self,
        detail: str = "Upstream request failed",
        status_code: Optional[int] = None,
        code: str = "UPSTREAM_ERROR",
    ):
        self.status_code = status_code
        super().__init__(detail, code)


class UpstreamTimeoutError(UpstreamError):
    """The AI chat stream did not complete within the configured timeout."""

    def __init__(self, detail: str = "Upstream stream timed out", timeout: Optional[float] = None):
        self.timeout = timeout
        super().__init__(detail, status_code=None, code="UPSTREAM_TIMEOUT")


class StreamCancelledError(UpstreamError):
    """The AI chat stream was cancelled before it completed."""

    def __init__(self, detail: str = "Upstream stream cancelled"):
        super().__init__(detail, status_code=None, code="STREAM_CANCELLED")


async def validation_exception_handler(request: Request, exc: Union[RequestValidationError, ValidationError]) -> JSONResponse:
    """Handle validation errors."""
    errors = [
        {
            "loc": error.get("loc", []),
            "msg": error.get("msg", ""),
            "type": error.get("type", ""),
        }
        for error in exc.errors()
    ]

    logger.warning(
        "Validation error",
        path=request.url.path,
        method=request.method,
        errors=errors,
        client_ip=request.client.host if request.client else None
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "detail": "Input validation failed",
            "code": "VALIDATION_ERROR",
            "errors": errors,
        },
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle HTTP exceptions."""
    logger.warning(
        "HTTP exception",
        path=request.url.path,
        method=request.method,
        status_code=exc.status_code,
        detail=exc.detail,
        client_ip=request.client.host if request.client else None
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.detail,
            "status_code": exc.status_code,
            "type": "http_error"
        }
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle general exceptions."""
    debug = getattr(request.app.state, "debug", False)

    logger.error(
        "Unhandled exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__,
        traceback=traceback.format_exc() if debug else None,
        client_ip=request.client.host if request.client else None
    )

    content = {"detail": "Internal server error", "type": "internal_error"}
    if debug:
        content["error"] = str(exc)
        content["error_type"] = type(exc).__name__

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=content,
    )
