"""Error translation helpers for the ASU Connect API."""

from __future__ import annotations

from fastapi import HTTPException

from app.connect.domain import exceptions


def to_http_error(exc: exceptions.ConnectError) -> HTTPException:
	"""Translate domain exceptions to FastAPI HTTP errors."""
	return HTTPException(status_code=exc.status_code, detail=exc.detail)
