"""Authentication helpers for FastAPI endpoints.

- Bearer JWTs (HS256, identity-provider secret) are the only accepted
  credential outside development.
- In development, X-User-Id / X-User-Email headers stand in for a token so
  local tools and tests can act as any principal.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.infra import jwt as jwt_helper
from app.settings import settings


@dataclass(slots=True)
class AuthenticatedUser:
	id: str
	email: Optional[str] = None


_bearer_scheme = HTTPBearer(auto_error=False)


def _invalid_token() -> HTTPException:
	return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")


def _require_uuid(value: str) -> str:
	try:
		return str(UUID(value))
	except (TypeError, ValueError):
		raise _invalid_token()


def verify_access_jwt(token: str) -> AuthenticatedUser:
	"""Decode and validate an access JWT and return an AuthenticatedUser.

	The subject must be the principal's uuid. Platform roles are not read from
	the token; admin status lives on the profile row.
	"""
	try:
		payload = jwt_helper.decode_access(token)
	except jwt_helper.InvalidTokenError:
		raise _invalid_token()

	sub = _require_uuid(str(payload.get("sub") or "").strip())
	email = payload.get("email")
	return AuthenticatedUser(id=sub, email=str(email) if email else None)


def _resolve_user(
	x_user_id: Optional[str],
	x_user_email: Optional[str],
	credentials: Optional[HTTPAuthorizationCredentials],
) -> Optional[AuthenticatedUser]:
	if credentials and credentials.scheme.lower() == "bearer":
		return verify_access_jwt(credentials.credentials)
	if settings.is_dev() and x_user_id:
		return AuthenticatedUser(id=_require_uuid(x_user_id.strip()), email=x_user_email)
	return None


async def get_current_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	x_user_email: Optional[str] = Header(default=None, alias="X-User-Email"),
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> AuthenticatedUser:
	"""Resolve the authenticated user or fail with 401."""
	user = _resolve_user(x_user_id, x_user_email, credentials)
	if user is None:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthenticated")
	return user


async def get_optional_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	x_user_email: Optional[str] = Header(default=None, alias="X-User-Email"),
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> Optional[AuthenticatedUser]:
	"""Resolve the caller when credentials are present; anonymous browsing otherwise."""
	return _resolve_user(x_user_id, x_user_email, credentials)
