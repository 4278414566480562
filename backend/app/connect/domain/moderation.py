"""Moderation actions and the audit entries they produce."""

from __future__ import annotations

from typing import Any, Optional
from uuid import UUID

from app.connect.domain import models
from app.connect.domain.policies import Principal

APPROVE_CLUB = "approve_club"
REJECT_CLUB = "reject_club"
DELETE_CLUB = "delete_club"
DELETE_EVENT = "delete_event"
REVIEW_FLAG = "review_flag"
RESOLVE_FLAG = "resolve_flag"
DISMISS_FLAG = "dismiss_flag"
UPDATE_USER_ROLE = "update_user_role"

ACTIONS = (
	APPROVE_CLUB,
	REJECT_CLUB,
	DELETE_CLUB,
	DELETE_EVENT,
	REVIEW_FLAG,
	RESOLVE_FLAG,
	DISMISS_FLAG,
	UPDATE_USER_ROLE,
)
ENTITY_TYPES = ("club", "event", "flag", "user")

# flag status -> logged action
FLAG_REVIEW_ACTIONS = {
	"reviewed": REVIEW_FLAG,
	"resolved": RESOLVE_FLAG,
	"dismissed": DISMISS_FLAG,
}


def log_entry(
	principal: Principal,
	action: str,
	entity_type: str,
	entity_id: UUID,
	details: Optional[dict[str, Any]] = None,
) -> models.ModerationLogDraft:
	return models.ModerationLogDraft(
		admin_id=principal.id,
		action=action,
		entity_type=entity_type,
		entity_id=entity_id,
		details=details,
	)


def flag_review_log(principal: Principal, flag: models.Flag, status: str) -> models.ModerationLogDraft:
	return log_entry(
		principal,
		FLAG_REVIEW_ACTIONS[status],
		"flag",
		flag.id,
		{
			"kind": flag.kind,
			"target_id": str(flag.target_id),
			"previous_status": flag.status,
			"status": status,
			"reason": flag.reason,
		},
	)
