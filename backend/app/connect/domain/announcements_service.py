"""Club announcements, posted by the owner and read by approved members."""

from __future__ import annotations

import logging
from uuid import UUID

from app.connect.domain import models
from app.connect.domain.exceptions import NotFoundError
from app.connect.domain.policies import Principal
from app.connect.domain.services import ConnectService
from app.connect.schemas import dto

logger = logging.getLogger(__name__)


class AnnouncementsService(ConnectService):
	async def list_announcements(self, principal: Principal, club_id: UUID) -> dto.AnnouncementListResponse:
		repo = self._repo(principal)
		await self._visible_club(principal, club_id, repo)
		rows = await repo.list_announcements(club_id)
		visible = await self.policies.visible(principal, "club_announcements", rows, repo)
		return dto.AnnouncementListResponse(items=[dto.AnnouncementResponse(**row.model_dump()) for row in visible])

	async def create_announcement(
		self,
		principal: Principal,
		club_id: UUID,
		payload: dto.AnnouncementCreateRequest,
	) -> dto.AnnouncementResponse:
		repo = self._repo(principal)
		await self._visible_club(principal, club_id, repo)
		draft = models.AnnouncementDraft(club_id=club_id, created_by=principal.id)
		await self._authorize(principal, "club_announcements", "insert", draft, repo)
		row = await repo.create_announcement(
			club_id=club_id,
			created_by=principal.id,
			title=payload.title,
			content=payload.content,
		)
		logger.info("announcement.created", extra={"club_id": str(club_id), "announcement_id": str(row.id)})
		return dto.AnnouncementResponse(**row.model_dump())

	async def update_announcement(
		self,
		principal: Principal,
		club_id: UUID,
		announcement_id: UUID,
		payload: dto.AnnouncementUpdateRequest,
	) -> dto.AnnouncementResponse:
		repo = self._repo(principal)
		row = await self._announcement(club_id, announcement_id, repo)
		await self._authorize(principal, "club_announcements", "update", row, repo)
		updated = await repo.update_announcement(announcement_id, title=payload.title, content=payload.content)
		if updated is None:
			raise NotFoundError("announcement_not_found")
		return dto.AnnouncementResponse(**updated.model_dump())

	async def delete_announcement(self, principal: Principal, club_id: UUID, announcement_id: UUID) -> None:
		repo = self._repo(principal)
		row = await self._announcement(club_id, announcement_id, repo)
		await self._authorize(principal, "club_announcements", "delete", row, repo)
		if not await repo.delete_announcement(announcement_id):
			raise NotFoundError("announcement_not_found")

	async def _announcement(self, club_id: UUID, announcement_id: UUID, repo) -> models.ClubAnnouncement:
		row = await repo.get_announcement(announcement_id)
		if row is None or row.club_id != club_id:
			raise NotFoundError("announcement_not_found")
		return row
