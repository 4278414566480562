"""Event registration flows."""

from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from app.connect.domain import models
from app.connect.domain.exceptions import ConflictError, NotFoundError
from app.connect.domain.policies import Principal
from app.connect.domain.services import ConnectService
from app.connect.schemas import dto

logger = logging.getLogger(__name__)


def registration_response(
	registration: models.EventRegistration,
	person: Optional[models.PersonRef] = None,
) -> dto.RegistrationResponse:
	payload = registration.model_dump()
	if person is not None:
		payload.update(full_name=person.full_name, email=person.email)
	return dto.RegistrationResponse(**payload)


class RegistrationsService(ConnectService):
	async def register(self, principal: Principal, event_id: UUID) -> dto.RegistrationResponse:
		repo = self._repo(principal)
		await self._event(event_id, repo)
		if await repo.get_registration(event_id, principal.id) is not None:
			raise ConflictError("already_registered")
		draft = models.RegistrationDraft(event_id=event_id, user_id=principal.id)
		await self._authorize(principal, "event_registrations", "insert", draft, repo)
		registration = await repo.insert_registration(event_id, principal.id)
		logger.info("registration.created", extra={"event_id": str(event_id), "user_id": str(principal.id)})
		return registration_response(registration)

	async def cancel(self, principal: Principal, event_id: UUID) -> None:
		await self._remove(principal, event_id, principal.id)

	async def remove_attendee(self, principal: Principal, event_id: UUID, user_id: UUID) -> None:
		await self._remove(principal, event_id, user_id)

	async def list_registrations(
		self,
		principal: Optional[Principal],
		event_id: UUID,
	) -> dto.RegistrationListResponse:
		repo = self._repo(principal)
		await self._event(event_id, repo)
		rows = await repo.list_registrations(event_id)
		visible = await self.policies.visible(principal, "event_registrations", rows, repo)
		people = await self._people(repo, [row.user_id for row in visible])
		return dto.RegistrationListResponse(
			items=[registration_response(row, people.get(row.user_id)) for row in visible]
		)

	async def _remove(self, principal: Principal, event_id: UUID, user_id: UUID) -> None:
		repo = self._repo(principal)
		registration = await repo.get_registration(event_id, user_id)
		if registration is None:
			raise NotFoundError("registration_not_found")
		await self._authorize(principal, "event_registrations", "delete", registration, repo)
		if not await repo.delete_registration(event_id, user_id):
			raise NotFoundError("registration_not_found")
		logger.info(
			"registration.removed",
			extra={"event_id": str(event_id), "user_id": str(user_id), "actor_id": str(principal.id)},
		)
