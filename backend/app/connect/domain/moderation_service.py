"""Platform moderation: club approval, flag handling, admin roles, audit log."""

from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from app.connect.domain import moderation, models, validation
from app.connect.domain.clubs_service import club_response
from app.connect.domain.exceptions import ConflictError, NotFoundError, ValidationError
from app.connect.domain.flags_service import check_kind, flag_response
from app.connect.domain.policies import Principal, flag_table
from app.connect.domain.profiles_service import profile_response
from app.connect.domain.services import ConnectService
from app.connect.schemas import dto
from app.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

RECENT_ACTIVITY_LIMIT = 10


def _flag_counts(counts: dict[str, int]) -> dto.FlagCounts:
	return dto.FlagCounts(**counts, total=sum(counts.values()))


class ModerationService(ConnectService):
	"""Admin-only operations. Every write appends exactly one moderation log row."""

	async def _require_admin(self, principal: Principal, repo) -> None:
		await self._authorize(principal, "moderation_logs", "select", None, repo)

	def _recorded(self, principal: Principal, log: models.ModerationLogDraft) -> None:
		obs_metrics.record_moderation_action(log.action)
		logger.info(
			"moderation.action",
			extra={
				"action": log.action,
				"entity_type": log.entity_type,
				"entity_id": str(log.entity_id),
				"admin_id": str(principal.id),
			},
		)

	# --- Clubs ----------------------------------------------------------------

	async def list_clubs(
		self,
		principal: Principal,
		approval_status: str,
		*,
		limit: int = 50,
		offset: int = 0,
	) -> dto.ClubListResponse:
		repo = self._repo(principal)
		await self._authorize(principal, "clubs", "moderate", None, repo)
		clubs = await repo.list_clubs(approval_status=approval_status, sort_by="newest", limit=limit, offset=offset)
		return dto.ClubListResponse(items=[club_response(club) for club in clubs])

	async def approve_club(self, principal: Principal, club_id: UUID) -> dto.ClubResponse:
		repo = self._repo(principal)
		club = await self._moderated_club(principal, club_id, repo)
		if club.approval_status == "approved":
			raise ConflictError("club_already_approved")
		log = moderation.log_entry(
			principal,
			moderation.APPROVE_CLUB,
			"club",
			club.id,
			{"club_name": club.name, "previous_status": club.approval_status},
		)
		await self._authorize(principal, "moderation_logs", "insert", log, repo)
		updated = await repo.set_club_approval(
			club_id, status="approved", approved_by=principal.id, rejection_reason=None, log=log
		)
		if updated is None:
			raise NotFoundError("club_not_found")
		self._recorded(principal, log)
		return club_response(updated)

	async def reject_club(self, principal: Principal, club_id: UUID, reason: str) -> dto.ClubResponse:
		reason = validation.validate_rejection_reason(reason)
		repo = self._repo(principal)
		club = await self._moderated_club(principal, club_id, repo)
		log = moderation.log_entry(
			principal,
			moderation.REJECT_CLUB,
			"club",
			club.id,
			{"club_name": club.name, "previous_status": club.approval_status, "reason": reason},
		)
		await self._authorize(principal, "moderation_logs", "insert", log, repo)
		updated = await repo.set_club_approval(
			club_id, status="rejected", approved_by=principal.id, rejection_reason=reason, log=log
		)
		if updated is None:
			raise NotFoundError("club_not_found")
		self._recorded(principal, log)
		return club_response(updated)

	async def _moderated_club(self, principal: Principal, club_id: UUID, repo) -> models.Club:
		await self._authorize(principal, "clubs", "moderate", None, repo)
		club = await repo.get_club(club_id)
		if club is None:
			raise NotFoundError("club_not_found")
		return club

	# --- Flags --------------------------------------------------------------------

	async def list_flags(
		self,
		principal: Principal,
		*,
		kind: Optional[str] = None,
		status: Optional[str] = None,
	) -> dto.FlagListResponse:
		repo = self._repo(principal)
		await self._require_admin(principal, repo)
		if status is not None and status not in models.FLAG_STATUSES:
			raise ValidationError("invalid_flag_status")
		rows = await repo.list_flags(check_kind(kind) if kind else None, status=status)
		people = await self._people(repo, [row.user_id for row in rows])
		return dto.FlagListResponse(items=[flag_response(row, people.get(row.user_id)) for row in rows])

	async def set_flag_status(self, principal: Principal, kind: str, flag_id: UUID, status: str) -> dto.FlagResponse:
		if status not in moderation.FLAG_REVIEW_ACTIONS:
			raise ValidationError("invalid_flag_status")
		repo = self._repo(principal)
		flag = await self._flag(principal, kind, flag_id, repo)
		log = moderation.flag_review_log(principal, flag, status)
		await self._authorize(principal, "moderation_logs", "insert", log, repo)
		await self._authorize(principal, flag_table(kind), "update", flag, repo)
		updated = await repo.set_flag_status(kind, flag_id, status=status, reviewed_by=principal.id, log=log)
		if updated is None:
			raise NotFoundError("flag_not_found")
		self._recorded(principal, log)
		return flag_response(updated)

	async def resolve_flag(
		self,
		principal: Principal,
		kind: str,
		flag_id: UUID,
		*,
		delete_entity: bool,
	) -> None:
		"""Dismiss the flag, or delete the flagged event/club (the flag cascades with it)."""
		if not delete_entity:
			await self.set_flag_status(principal, kind, flag_id, "dismissed")
			return
		repo = self._repo(principal)
		flag = await self._flag(principal, kind, flag_id, repo)
		await self._authorize(principal, "clubs" if kind == "club" else "events", "moderate", None, repo)
		details = {"flag_id": str(flag.id), "flag_reason": flag.reason}
		if kind == "event":
			event = await repo.get_event(flag.target_id)
			if event is None:
				raise NotFoundError("event_not_found")
			details["title"] = event.title
			log = moderation.log_entry(principal, moderation.DELETE_EVENT, "event", event.id, details)
			await self._authorize(principal, "moderation_logs", "insert", log, repo)
			deleted = await repo.delete_event(event.id, log=log)
		else:
			club = await repo.get_club(flag.target_id)
			if club is None:
				raise NotFoundError("club_not_found")
			details["club_name"] = club.name
			log = moderation.log_entry(principal, moderation.DELETE_CLUB, "club", club.id, details)
			await self._authorize(principal, "moderation_logs", "insert", log, repo)
			deleted = await repo.delete_club(club.id, log=log)
		if not deleted:
			raise NotFoundError(f"{kind}_not_found")
		self._recorded(principal, log)

	async def _flag(self, principal: Principal, kind: str, flag_id: UUID, repo) -> models.Flag:
		await self._require_admin(principal, repo)
		flag = await repo.get_flag(check_kind(kind), flag_id)
		if flag is None:
			raise NotFoundError("flag_not_found")
		return flag

	# --- Users ----------------------------------------------------------------------

	async def set_admin(self, principal: Principal, user_id: UUID, is_admin: bool) -> dto.ProfileResponse:
		repo = self._repo(principal)
		await self._require_admin(principal, repo)
		if user_id == principal.id:
			raise ConflictError("cannot_change_own_role")
		profile = await repo.get_profile(user_id)
		if profile is None:
			raise NotFoundError("profile_not_found")
		log = moderation.log_entry(
			principal,
			moderation.UPDATE_USER_ROLE,
			"user",
			user_id,
			{"email": profile.email, "previous_is_admin": profile.is_admin, "is_admin": is_admin},
		)
		await self._authorize(principal, "moderation_logs", "insert", log, repo)
		await self._authorize(principal, "profiles", "update", models.ProfileChange(id=user_id, is_admin=is_admin), repo)
		updated = await repo.update_profile(user_id, {"is_admin": is_admin}, log=log)
		if updated is None:
			raise NotFoundError("profile_not_found")
		self._recorded(principal, log)
		return profile_response(updated)

	# --- Audit log and dashboard ------------------------------------------------------

	async def list_logs(
		self,
		principal: Principal,
		*,
		action: Optional[str] = None,
		entity_type: Optional[str] = None,
		limit: int = 50,
		offset: int = 0,
	) -> dto.ModerationLogListResponse:
		repo = self._repo(principal)
		await self._require_admin(principal, repo)
		if action is not None and action not in moderation.ACTIONS:
			raise ValidationError("invalid_action")
		if entity_type is not None and entity_type not in moderation.ENTITY_TYPES:
			raise ValidationError("invalid_entity_type")
		logs = await repo.list_moderation_logs(action=action, entity_type=entity_type, limit=limit, offset=offset)
		return dto.ModerationLogListResponse(items=await self._log_responses(repo, logs))

	async def stats(self, principal: Principal) -> dto.ModerationStatsResponse:
		repo = self._repo(principal)
		await self._require_admin(principal, repo)
		flag_counts = await repo.flag_status_counts()
		event_flags = _flag_counts(flag_counts.get("event", {}))
		club_flags = _flag_counts(flag_counts.get("club", {}))
		combined = dto.FlagCounts(
			**{
				field: getattr(event_flags, field) + getattr(club_flags, field)
				for field in ("pending", "reviewed", "resolved", "dismissed", "total")
			}
		)
		club_counts = await repo.club_status_counts()
		total_clubs = sum(club_counts.values())
		approved = club_counts.get("approved", 0)
		clubs = dto.ClubCounts(
			pending=club_counts.get("pending", 0),
			approved=approved,
			rejected=club_counts.get("rejected", 0),
			total=total_clubs,
			approval_rate=round(approved / total_clubs * 100, 1) if total_clubs else 0.0,
		)
		recent = await repo.list_moderation_logs(limit=RECENT_ACTIVITY_LIMIT)
		pending_total = combined.pending + clubs.pending
		return dto.ModerationStatsResponse(
			event_flags=event_flags,
			club_flags=club_flags,
			flags=combined,
			clubs=clubs,
			recent_activity=await self._log_responses(repo, recent),
			pending_total=pending_total,
			requires_attention=pending_total > 0,
		)

	async def _log_responses(self, repo, logs: list[models.ModerationLog]) -> list[dto.ModerationLogResponse]:
		people = await self._people(repo, [log.admin_id for log in logs])
		items = []
		for log in logs:
			person = people.get(log.admin_id)
			items.append(dto.ModerationLogResponse(**log.model_dump(), admin_email=person.email if person else None))
		return items
