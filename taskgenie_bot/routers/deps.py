"""
Shared router dependencies.
"""

from fastapi import Request

from ..core.context import AppContext


def get_app_context(request: Request) -> AppContext:
    return request.app.state.context
