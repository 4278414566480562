"""Request dependencies resolving the acting principal."""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request

from app.connect.api._errors import to_http_error
from app.connect.domain.exceptions import ConnectError
from app.connect.domain.policies import Principal
from app.connect.domain.profiles_service import ProfilesService
from app.infra.auth import AuthenticatedUser, get_current_user, get_optional_user
from app.obs import logging as obs_logging

PRINCIPAL_ATTR = "principal_id"

_profiles = ProfilesService()


async def _resolve(request: Request, auth_user: AuthenticatedUser) -> Principal:
	try:
		principal = await _profiles.resolve_principal(auth_user)
	except ConnectError as exc:
		raise to_http_error(exc) from exc
	# the access log reports the verified principal, never the raw header
	setattr(request.state, PRINCIPAL_ATTR, str(principal.id))
	obs_logging.bind_context(user_id=str(principal.id))
	return principal


async def get_principal(
	request: Request,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> Principal:
	"""Authenticate and run the post-registration hook."""
	return await _resolve(request, auth_user)


async def get_optional_principal(
	request: Request,
	auth_user: Optional[AuthenticatedUser] = Depends(get_optional_user),
) -> Optional[Principal]:
	if auth_user is None:
		return None
	return await _resolve(request, auth_user)
