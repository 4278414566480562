"""Shared plumbing for ASU Connect services."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Optional
from uuid import UUID

from app.connect.domain import models, repo as repo_module
from app.connect.domain.exceptions import MissingRelationError, NotFoundError
from app.connect.domain.policies import POLICIES, PolicySet, Principal

logger = logging.getLogger(__name__)


class ConnectService:
	"""Base for use-case services: owns the repository and the policy set."""

	def __init__(
		self,
		*,
		repository: repo_module.ConnectRepository | None = None,
		policies: PolicySet | None = None,
	) -> None:
		self.repo = repository or repo_module.ConnectRepository()
		self.policies = policies or POLICIES

	def _repo(self, principal: Optional[Principal]) -> repo_module.ConnectRepository:
		return self.repo.acting_as(principal.id if principal else None)

	async def _authorize(
		self,
		principal: Optional[Principal],
		table: str,
		operation: str,
		target: Any,
		repo: repo_module.ConnectRepository,
		*,
		staged: Mapping[str, Mapping[Any, Any]] | None = None,
	) -> None:
		await self.policies.authorize(principal, table, operation, target, repo, staged=staged)

	async def _visible_club(
		self,
		principal: Optional[Principal],
		club_id: UUID,
		repo: repo_module.ConnectRepository,
	) -> models.Club:
		"""Load a club the caller may see; hidden clubs read as missing."""
		club = await repo.get_club(club_id)
		if club is None or not await self.policies.evaluate(principal, "clubs", "select", club, repo):
			raise NotFoundError("club_not_found")
		return club

	async def _event(self, event_id: UUID, repo: repo_module.ConnectRepository) -> models.Event:
		event = await repo.get_event(event_id)
		if event is None:
			raise NotFoundError("event_not_found")
		return event

	async def _people(
		self,
		repo: repo_module.ConnectRepository,
		user_ids: Iterable[UUID],
	) -> dict[UUID, models.PersonRef]:
		"""Best-effort display names; an empty map when profiles are unavailable."""
		try:
			return await repo.display_names(user_ids)
		except MissingRelationError as exc:
			logger.warning("enrichment.unavailable", extra={"relation": exc.relation})
			return {}
