"""Event creation, listing and owner edits."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

from app.connect.domain import models, validation
from app.connect.domain.exceptions import NotFoundError, ValidationError
from app.connect.domain.policies import Principal
from app.connect.domain.services import ConnectService
from app.connect.schemas import dto

logger = logging.getLogger(__name__)

_REQUIRED_COLUMNS = ("title", "event_date", "is_free")


def event_response(event: models.Event, *, registration_count: int = 0) -> dto.EventResponse:
	return dto.EventResponse(**event.model_dump(), registration_count=registration_count)


def merge_event_changes(event: models.Event, changes: dict[str, Any]) -> dict[str, Any]:
	"""Validate a partial update against the row it will produce.

	Switching an event to free clears its price unless a price is supplied,
	in which case the combination is rejected like any other.
	"""
	for column in _REQUIRED_COLUMNS:
		if column in changes and changes[column] is None:
			raise ValidationError(f"{column}_required")
	merged = dict(changes)
	if "category" in merged:
		merged["category"] = validation.validate_category(merged["category"])
	if "is_free" in merged or "price" in merged:
		is_free = merged.get("is_free", event.is_free)
		if "price" in merged:
			price = merged["price"]
		else:
			price = None if is_free else event.price
		merged["price"] = validation.validate_pricing(is_free, price)
	return merged


class EventsService(ConnectService):
	"""Owner-managed events attached to clubs."""

	async def create_event(self, principal: Principal, payload: dto.EventCreateRequest) -> dto.EventResponse:
		repo = self._repo(principal)
		await self._visible_club(principal, payload.club_id, repo)
		draft = models.EventDraft(club_id=payload.club_id, created_by=principal.id)
		await self._authorize(principal, "events", "insert", draft, repo)
		fields = payload.model_dump(exclude={"club_id"})
		fields["category"] = validation.validate_category(fields.get("category"))
		fields["price"] = validation.validate_pricing(fields["is_free"], fields.get("price"))
		event = await repo.create_event(club_id=payload.club_id, created_by=principal.id, fields=fields)
		logger.info("event.created", extra={"event_id": str(event.id), "club_id": str(event.club_id)})
		return event_response(event)

	async def get_event(self, principal: Optional[Principal], event_id: UUID) -> dto.EventResponse:
		repo = self._repo(principal)
		event = await self._event(event_id, repo)
		counts = await repo.count_registrations([event.id])
		return event_response(event, registration_count=counts.get(event.id, 0))

	async def list_events(
		self,
		principal: Optional[Principal],
		*,
		club_id: Optional[UUID] = None,
		category: Optional[str] = None,
		is_free: Optional[bool] = None,
		upcoming: bool = False,
		limit: int = 50,
		offset: int = 0,
	) -> dto.EventListResponse:
		repo = self._repo(principal)
		events = await repo.list_events(
			club_id=club_id,
			category=validation.validate_category(category),
			is_free=is_free,
			starts_after=datetime.now(timezone.utc) if upcoming else None,
			limit=limit,
			offset=offset,
		)
		counts = await repo.count_registrations([event.id for event in events])
		return dto.EventListResponse(
			items=[event_response(event, registration_count=counts.get(event.id, 0)) for event in events]
		)

	async def update_event(
		self,
		principal: Principal,
		event_id: UUID,
		payload: dto.EventUpdateRequest,
	) -> dto.EventResponse:
		repo = self._repo(principal)
		event = await self._event(event_id, repo)
		await self._authorize(principal, "events", "update", event, repo)
		changes = merge_event_changes(event, payload.model_dump(exclude_unset=True))
		updated = await repo.update_event(event_id, changes)
		if updated is None:
			raise NotFoundError("event_not_found")
		counts = await repo.count_registrations([event_id])
		return event_response(updated, registration_count=counts.get(event_id, 0))

	async def delete_event(self, principal: Principal, event_id: UUID) -> None:
		repo = self._repo(principal)
		event = await self._event(event_id, repo)
		await self._authorize(principal, "events", "delete", event, repo)
		if not await repo.delete_event(event_id):
			raise NotFoundError("event_not_found")
		logger.info("event.deleted", extra={"event_id": str(event_id), "actor_id": str(principal.id)})
