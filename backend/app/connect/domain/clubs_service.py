"""Club directory and owner-side club management."""

from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID, uuid4

from app.connect.domain import membership, models
from app.connect.domain.exceptions import NotFoundError
from app.connect.domain.policies import Principal
from app.connect.domain.services import ConnectService
from app.connect.schemas import dto
from app.settings import settings

logger = logging.getLogger(__name__)


def club_response(club: models.Club, *, member_count: int = 0) -> dto.ClubResponse:
	return dto.ClubResponse(**club.model_dump(), member_count=member_count)


class ClubsService(ConnectService):
	"""Creates, lists and edits clubs."""

	async def create_club(self, principal: Principal, payload: dto.ClubCreateRequest) -> dto.ClubResponse:
		repo = self._repo(principal)
		auto_approve = principal.is_admin or not settings.club_approval_required
		draft = models.ClubDraft(
			id=uuid4(),
			name=payload.name,
			created_by=principal.id,
			approval_status="approved" if auto_approve else "pending",
		)
		await self._authorize(principal, "clubs", "insert", draft, repo)
		role, status = membership.initial_status(is_club_creator=True)
		owner_row = models.MembershipDraft(club_id=draft.id, user_id=principal.id, role=role, status=status)
		# the owner's membership is checked against the club staged in the same transaction
		await self._authorize(
			principal,
			"club_members",
			"insert",
			owner_row,
			repo,
			staged={"clubs": {draft.id: draft}},
		)
		club, _ = await repo.create_club(
			club_id=draft.id,
			name=payload.name,
			description=payload.description,
			created_by=principal.id,
			approval_status=draft.approval_status,
			approved_by=principal.id if principal.is_admin else None,
		)
		logger.info(
			"club.created",
			extra={"club_id": str(club.id), "owner_id": str(principal.id), "approval_status": club.approval_status},
		)
		return club_response(club, member_count=1)

	async def get_club(self, principal: Optional[Principal], club_id: UUID) -> dto.ClubResponse:
		repo = self._repo(principal)
		club = await self._visible_club(principal, club_id, repo)
		counts = await repo.count_approved_members([club.id])
		return club_response(club, member_count=counts.get(club.id, 0))

	async def list_clubs(
		self,
		principal: Optional[Principal],
		*,
		sort_by: str = "name",
		limit: int = 50,
		offset: int = 0,
	) -> dto.ClubListResponse:
		"""Public directory: approved clubs only."""
		repo = self._repo(principal)
		clubs = await repo.list_clubs(approval_status="approved", sort_by=sort_by, limit=limit, offset=offset)
		return await self._with_counts(repo, clubs)

	async def list_my_clubs(self, principal: Principal) -> dto.ClubListResponse:
		repo = self._repo(principal)
		clubs = await repo.list_clubs(created_by=principal.id, sort_by="newest", limit=200)
		return await self._with_counts(repo, clubs)

	async def update_club(
		self,
		principal: Principal,
		club_id: UUID,
		payload: dto.ClubUpdateRequest,
	) -> dto.ClubResponse:
		repo = self._repo(principal)
		club = await self._visible_club(principal, club_id, repo)
		await self._authorize(principal, "clubs", "update", club, repo)
		updated = await repo.update_club(club_id, name=payload.name, description=payload.description)
		if updated is None:
			raise NotFoundError("club_not_found")
		counts = await repo.count_approved_members([club_id])
		return club_response(updated, member_count=counts.get(club_id, 0))

	async def delete_club(self, principal: Principal, club_id: UUID) -> None:
		"""Delete the club; events, memberships, flags and announcements cascade."""
		repo = self._repo(principal)
		club = await self._visible_club(principal, club_id, repo)
		await self._authorize(principal, "clubs", "delete", club, repo)
		if not await repo.delete_club(club_id):
			raise NotFoundError("club_not_found")
		logger.info("club.deleted", extra={"club_id": str(club_id), "actor_id": str(principal.id)})

	async def _with_counts(self, repo, clubs: list[models.Club]) -> dto.ClubListResponse:
		counts = await repo.count_approved_members([club.id for club in clubs])
		return dto.ClubListResponse(
			items=[club_response(club, member_count=counts.get(club.id, 0)) for club in clubs]
		)
