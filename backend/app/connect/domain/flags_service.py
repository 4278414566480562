"""Reporting events and clubs, and reviewing those reports."""

from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from app.connect.domain import models, moderation
from app.connect.domain.exceptions import ConflictError, NotFoundError, ValidationError
from app.connect.domain.policies import Principal, flag_table
from app.connect.domain.services import ConnectService
from app.connect.schemas import dto
from app.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


def flag_response(flag: models.Flag, person: Optional[models.PersonRef] = None) -> dto.FlagResponse:
	return dto.FlagResponse(**flag.model_dump(), reporter_name=person.full_name if person else None)


def check_kind(kind: str) -> str:
	if kind not in models.FLAG_KINDS:
		raise NotFoundError("flag_kind_not_found")
	return kind


class FlagsService(ConnectService):
	"""Flags on events and clubs; one per reporter and target."""

	async def _target(self, principal: Optional[Principal], kind: str, target_id: UUID, repo) -> None:
		if kind == "event":
			await self._event(target_id, repo)
		else:
			await self._visible_club(principal, target_id, repo)

	async def flag(
		self,
		principal: Principal,
		kind: str,
		target_id: UUID,
		payload: dto.FlagCreateRequest,
	) -> dto.FlagResponse:
		repo = self._repo(principal)
		await self._target(principal, check_kind(kind), target_id, repo)
		if await repo.get_reporter_flag(kind, target_id, principal.id) is not None:
			raise ConflictError("already_flagged")
		draft = models.FlagDraft(kind=kind, target_id=target_id, user_id=principal.id)
		await self._authorize(principal, flag_table(kind), "insert", draft, repo)
		flag = await repo.insert_flag(
			kind=kind,
			target_id=target_id,
			user_id=principal.id,
			reason=payload.reason,
			details=payload.details,
		)
		obs_metrics.record_flag_filed(kind)
		logger.info(
			"flag.filed",
			extra={"kind": kind, "target_id": str(target_id), "flag_id": str(flag.id), "reason": flag.reason},
		)
		return flag_response(flag)

	async def own_flag(self, principal: Principal, kind: str, target_id: UUID) -> dto.FlagStatusResponse:
		repo = self._repo(principal)
		flag = await repo.get_reporter_flag(check_kind(kind), target_id, principal.id)
		if flag is None:
			return dto.FlagStatusResponse(has_flagged=False)
		return dto.FlagStatusResponse(has_flagged=True, flag=flag_response(flag))

	async def list_flags(self, principal: Principal, kind: str, target_id: UUID) -> dto.FlagListResponse:
		"""Flags on one target the caller may see: its own, or all of them for the owner."""
		repo = self._repo(principal)
		await self._target(principal, check_kind(kind), target_id, repo)
		rows = await repo.list_flags(kind, target_id=target_id)
		visible = await self.policies.visible(principal, flag_table(kind), rows, repo)
		people = await self._people(repo, [row.user_id for row in visible])
		return dto.FlagListResponse(items=[flag_response(row, people.get(row.user_id)) for row in visible])

	async def update_status(
		self,
		principal: Principal,
		kind: str,
		flag_id: UUID,
		status: str,
	) -> dto.FlagResponse:
		"""Owner or admin review. Admin reviews are recorded in the moderation log."""
		if status not in moderation.FLAG_REVIEW_ACTIONS:
			raise ValidationError("invalid_flag_status")
		repo = self._repo(principal)
		flag = await repo.get_flag(check_kind(kind), flag_id)
		if flag is None:
			raise NotFoundError("flag_not_found")
		await self._authorize(principal, flag_table(kind), "update", flag, repo)
		log = moderation.flag_review_log(principal, flag, status) if principal.is_admin else None
		updated = await repo.set_flag_status(kind, flag_id, status=status, reviewed_by=principal.id, log=log)
		if updated is None:
			raise NotFoundError("flag_not_found")
		if log is not None:
			obs_metrics.record_moderation_action(log.action)
		logger.info(
			"flag.reviewed",
			extra={"kind": kind, "flag_id": str(flag_id), "status": status, "actor_id": str(principal.id)},
		)
		return flag_response(updated)

	async def withdraw(self, principal: Principal, kind: str, flag_id: UUID) -> None:
		"""Reporter removes its own flag while it is still pending."""
		repo = self._repo(principal)
		flag = await repo.get_flag(check_kind(kind), flag_id)
		if flag is None:
			raise NotFoundError("flag_not_found")
		await self._authorize(principal, flag_table(kind), "delete", flag, repo)
		if not await repo.delete_flag(kind, flag_id):
			raise NotFoundError("flag_not_found")
		logger.info("flag.withdrawn", extra={"kind": kind, "flag_id": str(flag_id)})
