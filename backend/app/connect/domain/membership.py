"""Membership status state machine.

pending -> approved
pending -> rejected

Leaving, withdrawing and removal delete the row; there is no `left` status.
"""

from __future__ import annotations

from typing import Optional

from app.connect.domain import models
from app.connect.domain.exceptions import ConflictError, ValidationError

PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"

ROLE_ADMIN = "admin"
ROLE_MEMBER = "member"

_REVIEW_TARGETS = {"approve": APPROVED, "reject": REJECTED}
_JOIN_CONFLICTS = {
	PENDING: "already_requested",
	APPROVED: "already_member",
	REJECTED: "membership_rejected",
}


def initial_status(is_club_creator: bool) -> tuple[str, str]:
	"""Return (role, status) for a newly inserted membership row."""
	if is_club_creator:
		return ROLE_ADMIN, APPROVED
	return ROLE_MEMBER, PENDING


def review(current: str, action: str) -> str:
	"""Return the status an approve/reject action moves a membership to."""
	target = _REVIEW_TARGETS.get(action)
	if target is None:
		raise ValidationError("invalid_review_action")
	if current != PENDING:
		raise ConflictError("membership_not_pending")
	return target


def assert_can_join(existing: Optional[models.ClubMember]) -> None:
	if existing is None:
		return
	raise ConflictError(_JOIN_CONFLICTS.get(existing.status, "already_requested"))


def assert_removable(member: models.ClubMember, club: models.Club) -> None:
	"""The owner's own row stays for the lifetime of the club."""
	if member.user_id == club.created_by:
		raise ConflictError("owner_membership_locked")
