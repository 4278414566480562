"""Access token helpers.

Tokens are issued by the hosted identity provider and signed with HS256
using the project's JWT secret. We validate the standard claims and the
configured audience/issuer.
"""

from __future__ import annotations

import time
from typing import Any, Dict

import jwt
from jwt import InvalidTokenError

from app.settings import settings


def encode_access(payload: dict[str, object], *, ttl_seconds: int = 3600) -> str:
    """Encode an access token the way the identity provider does (tests, local tools)."""
    now = int(time.time())
    body: Dict[str, Any] = {"aud": settings.jwt_audience, "iat": now, "exp": now + ttl_seconds}
    if settings.jwt_issuer:
        body["iss"] = settings.jwt_issuer
    body.update(payload)
    return jwt.encode(body, settings.jwt_secret, algorithm="HS256")


def decode_access(token: str) -> dict[str, object]:
    """Decode and validate an access token.

    Raises jwt.InvalidTokenError subclasses on failure.
    """
    required = ["exp", "iat", "aud", "sub"]
    if settings.jwt_issuer:
        required.append("iss")
    payload = jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=["HS256"],
        audience=settings.jwt_audience,
        issuer=settings.jwt_issuer,
        leeway=5,
        options={"require": required},
    )
    if not str(payload.get("sub") or "").strip():
        raise InvalidTokenError("missing_claim:sub")
    return payload  # type: ignore[return-value]
