"""Middleware assigning every request an id before anything else runs.

A caller-supplied X-Request-Id is reused so traces can be stitched across the
frontend and the API, but only when it looks like an id: anything longer than
128 characters or outside ``[A-Za-z0-9._:-]`` is replaced, since the value
ends up verbatim in JSON logs and error bodies.
"""

from __future__ import annotations

import re
import uuid
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.api.request_id import REQUEST_ID_ATTR

REQUEST_ID_HEADER = "X-Request-Id"
_ACCEPTABLE_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


def accept_request_id(candidate: Optional[str]) -> str:
    """Return ``candidate`` when it is a well-formed id, else a fresh uuid4."""
    if candidate and _ACCEPTABLE_ID.match(candidate):
        return candidate
    return str(uuid.uuid4())


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        rid = accept_request_id(request.headers.get(REQUEST_ID_HEADER))
        setattr(request.state, REQUEST_ID_ATTR, rid)
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = rid
        return response
