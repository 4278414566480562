"""Principal registration hook and self-service profile edits."""

from __future__ import annotations

import logging
from uuid import UUID

from app.connect.domain import models
from app.connect.domain.exceptions import NotFoundError
from app.connect.domain.policies import Principal
from app.connect.domain.services import ConnectService
from app.connect.schemas import dto
from app.infra.auth import AuthenticatedUser

logger = logging.getLogger(__name__)


def profile_response(profile: models.Profile) -> dto.ProfileResponse:
	return dto.ProfileResponse(**profile.model_dump())


class ProfilesService(ConnectService):
	async def resolve_principal(self, user: AuthenticatedUser) -> Principal:
		"""Post-registration hook: make sure the principal and its profile exist.

		Idempotent; runs on every authenticated request and loads `is_admin`
		onto the returned principal.
		"""
		principal_id = UUID(user.id)
		caller = Principal(id=principal_id, email=user.email)
		repo = self._repo(caller)
		row = models.ProfileChange(id=principal_id)
		await self._authorize(caller, "principals", "insert", row, repo)
		await self._authorize(caller, "profiles", "insert", row, repo)
		profile = await repo.ensure_principal(principal_id, user.email)
		return Principal(id=principal_id, email=profile.email or user.email, is_admin=profile.is_admin)

	async def get_profile(self, principal: Principal) -> dto.ProfileResponse:
		profile = await self._repo(principal).get_profile(principal.id)
		if profile is None:
			raise NotFoundError("profile_not_found")
		return profile_response(profile)

	async def update_profile(self, principal: Principal, payload: dto.ProfileUpdateRequest) -> dto.ProfileResponse:
		repo = self._repo(principal)
		await self._authorize(principal, "profiles", "update", models.ProfileChange(id=principal.id), repo)
		# fields sent as null are cleared; omitted fields stay as they are
		profile = await repo.update_profile(principal.id, payload.model_dump(exclude_unset=True))
		if profile is None:
			raise NotFoundError("profile_not_found")
		logger.info("profile.updated", extra={"user_id": str(principal.id)})
		return profile_response(profile)
