"""Join requests, reviews and removals for club memberships."""

from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from app.connect.domain import membership, models
from app.connect.domain.exceptions import ConflictError, NotFoundError
from app.connect.domain.policies import Principal
from app.connect.domain.services import ConnectService
from app.connect.schemas import dto
from app.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


def member_response(member: models.ClubMember, person: Optional[models.PersonRef] = None) -> dto.MemberResponse:
	payload = member.model_dump()
	if person is not None:
		payload.update(full_name=person.full_name, email=person.email)
	return dto.MemberResponse(**payload)


class MembersService(ConnectService):
	"""Implements the membership state machine on top of the repository."""

	async def list_members(
		self,
		principal: Optional[Principal],
		club_id: UUID,
		*,
		status: Optional[str] = None,
	) -> dto.MemberListResponse:
		"""Rows the caller may see: approved members, its own row, everything for the owner."""
		repo = self._repo(principal)
		await self._visible_club(principal, club_id, repo)
		rows = await repo.list_memberships(club_id, status=status)
		visible = await self.policies.visible(principal, "club_members", rows, repo)
		people = await self._people(repo, [row.user_id for row in visible])
		return dto.MemberListResponse(items=[member_response(row, people.get(row.user_id)) for row in visible])

	async def list_pending(self, principal: Principal, club_id: UUID) -> dto.MemberListResponse:
		return await self.list_members(principal, club_id, status=membership.PENDING)

	async def get_own_membership(self, principal: Principal, club_id: UUID) -> dto.MemberResponse | None:
		repo = self._repo(principal)
		await self._visible_club(principal, club_id, repo)
		row = await repo.get_membership(club_id, principal.id)
		return member_response(row) if row else None

	async def request_join(self, principal: Principal, club_id: UUID) -> dto.MemberResponse:
		repo = self._repo(principal)
		club = await self._visible_club(principal, club_id, repo)
		if club.approval_status != "approved":
			raise ConflictError("club_not_approved")
		membership.assert_can_join(await repo.get_membership(club_id, principal.id))
		role, status = membership.initial_status(is_club_creator=False)
		draft = models.MembershipDraft(club_id=club_id, user_id=principal.id, role=role, status=status)
		await self._authorize(principal, "club_members", "insert", draft, repo)
		row = await repo.insert_membership(club_id=club_id, user_id=principal.id, role=role, status=status)
		if row is None:
			# a concurrent request for the same pair won the insert
			raise ConflictError("already_requested")
		obs_metrics.record_membership_transition("requested")
		logger.info("membership.requested", extra={"club_id": str(club_id), "user_id": str(principal.id)})
		return member_response(row)

	async def review(
		self,
		principal: Principal,
		club_id: UUID,
		user_id: UUID,
		action: str,
	) -> dto.MemberResponse:
		repo = self._repo(principal)
		row = await repo.get_membership(club_id, user_id)
		if row is None:
			raise NotFoundError("membership_not_found")
		await self._authorize(principal, "club_members", "update", row, repo)
		target = membership.review(row.status, action)
		updated = await repo.set_membership_status(club_id, user_id, expected=membership.PENDING, status=target)
		if updated is None:
			raise ConflictError("membership_not_pending")
		obs_metrics.record_membership_transition(target)
		logger.info(
			"membership.reviewed",
			extra={"club_id": str(club_id), "user_id": str(user_id), "status": target, "actor_id": str(principal.id)},
		)
		return member_response(updated)

	async def leave(self, principal: Principal, club_id: UUID) -> None:
		"""Withdraw a pending request or leave the club."""
		await self._remove(principal, club_id, principal.id)

	async def remove_member(self, principal: Principal, club_id: UUID, user_id: UUID) -> None:
		await self._remove(principal, club_id, user_id)

	async def _remove(self, principal: Principal, club_id: UUID, user_id: UUID) -> None:
		repo = self._repo(principal)
		row = await repo.get_membership(club_id, user_id)
		if row is None:
			raise NotFoundError("membership_not_found")
		club = await repo.get_club(club_id)
		if club is None:
			raise NotFoundError("club_not_found")
		membership.assert_removable(row, club)
		await self._authorize(principal, "club_members", "delete", row, repo)
		if not await repo.delete_membership(club_id, user_id):
			raise NotFoundError("membership_not_found")
		obs_metrics.record_membership_transition("removed")
		logger.info(
			"membership.removed",
			extra={"club_id": str(club_id), "user_id": str(user_id), "actor_id": str(principal.id)},
		)
