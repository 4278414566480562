"""Global error handlers producing `{"error": <code>, "request_id": <id>}` bodies.

Routers translate domain errors themselves; the ConnectError handler is the
fallback for code paths that let one escape, and the catch-all keeps the body
shape stable for 500s (the stack trace is logged by the observability
middleware, never returned).
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.request_id import get_request_id
from app.connect.domain.exceptions import ConnectError

logger = logging.getLogger(__name__)


def error_body(request: Request, code: object, **extra: object) -> dict[str, object]:
    return {"error": code, **extra, "request_id": get_request_id(request)}


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(request, exc.detail),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=error_body(request, "validation_error", errors=jsonable_encoder(exc.errors())),
        )

    @app.exception_handler(ConnectError)
    async def connect_exc_handler(request: Request, exc: ConnectError):  # type: ignore[override]
        logger.warning("connect_error.untranslated", extra={"code": exc.detail, "path": request.url.path})
        return JSONResponse(status_code=exc.status_code, content=error_body(request, exc.detail))

    @app.exception_handler(Exception)
    async def unhandled_exc_handler(request: Request, exc: Exception):  # type: ignore[override]
        rid = get_request_id(request)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "internal_error", "request_id": rid},
            headers={"X-Request-Id": rid},
        )
