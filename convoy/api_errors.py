"""Standardised JSON error envelope for the Convoy gateway.

All errors returned by the gateway share the same shape::

    {"error": "<human-readable message>", "code": "<ERROR_CODE>", "status": <http_status>}

Any :class:`~convoy.errors.ConvoyError` raised inside an endpoint is turned
into this envelope using the error's ``code`` and ``status``. Call
``register_error_handlers(app)`` once at application startup.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

from convoy.errors import ConvoyError

logger = logging.getLogger("Convoy.Gateway")


def error_body(code: str, message: str, status: int) -> dict:
    return {"error": message, "code": code, "status": status}


def register_error_handlers(app) -> None:
    """Install global exception handlers on the FastAPI *app* instance."""

    @app.exception_handler(ConvoyError)
    async def _convoy_error_handler(request: Request, exc: ConvoyError):
        logger.warning("%s %s rejected: %s", request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=exc.status,
            content=error_body(exc.code, exc.message, exc.status),
        )

    @app.exception_handler(HTTPException)
    async def _http_error_handler(request: Request, exc: HTTPException):
        detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(f"HTTP_{exc.status_code}", detail, exc.status_code),
        )

    @app.exception_handler(Exception)
    async def _unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled gateway error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=error_body("INTERNAL_ERROR", "Internal server error", 500),
        )
