"""Domain models for ASU Connect entities."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

UNKNOWN_USER = "Unknown User"

CLUB_APPROVAL_STATUSES = ("pending", "approved", "rejected")
MEMBER_ROLES = ("admin", "member")
FLAG_STATUSES = ("pending", "reviewed", "resolved", "dismissed")
FLAG_KINDS = ("event", "club")


class Profile(BaseModel):
	"""Display attributes of a principal, 1:1 with the principal row."""

	id: UUID
	email: Optional[str] = None
	full_name: Optional[str] = None
	avatar_url: Optional[str] = None
	is_admin: bool = False
	created_at: datetime
	updated_at: datetime

	model_config = ConfigDict(from_attributes=True)


class Club(BaseModel):
	"""Represents a club in the directory."""

	id: UUID
	name: str
	description: Optional[str] = None
	created_by: UUID
	approval_status: str
	approved_by: Optional[UUID] = None
	approved_at: Optional[datetime] = None
	rejection_reason: Optional[str] = None
	created_at: datetime
	updated_at: datetime

	model_config = ConfigDict(from_attributes=True)


class ClubMember(BaseModel):
	"""Represents a membership row."""

	id: UUID
	club_id: UUID
	user_id: UUID
	role: str
	status: str
	joined_at: datetime

	model_config = ConfigDict(from_attributes=True)


class Event(BaseModel):
	"""Represents a club event."""

	id: UUID
	club_id: UUID
	created_by: UUID
	title: str
	description: Optional[str] = None
	event_date: datetime
	location: Optional[str] = None
	category: Optional[str] = None
	is_free: bool = True
	price: Optional[Decimal] = None
	created_at: datetime
	updated_at: datetime

	model_config = ConfigDict(from_attributes=True)


class EventRegistration(BaseModel):
	"""Represents an attendee registration."""

	id: UUID
	event_id: UUID
	user_id: UUID
	registered_at: datetime

	model_config = ConfigDict(from_attributes=True)


class Flag(BaseModel):
	"""A report filed against an event or a club."""

	id: UUID
	kind: str
	target_id: UUID
	user_id: UUID
	reason: str
	details: Optional[str] = None
	status: str
	reviewed_by: Optional[UUID] = None
	reviewed_at: Optional[datetime] = None
	created_at: datetime
	updated_at: datetime

	model_config = ConfigDict(from_attributes=True)


class ClubAnnouncement(BaseModel):
	"""A post by the club owner, readable by approved members."""

	id: UUID
	club_id: UUID
	created_by: UUID
	title: str
	content: str
	created_at: datetime
	updated_at: datetime

	model_config = ConfigDict(from_attributes=True)


class ModerationLog(BaseModel):
	"""Append-only audit record of an admin action."""

	id: UUID
	admin_id: UUID
	action: str
	entity_type: str
	entity_id: UUID
	details: Optional[dict[str, Any]] = None
	created_at: datetime

	model_config = ConfigDict(from_attributes=True)


class PersonRef(BaseModel):
	"""A principal id with its best-effort display attributes."""

	user_id: UUID
	full_name: str = UNKNOWN_USER
	email: Optional[str] = None


# --- Rows as they will be written, evaluated by insert/update policies ------


class ClubDraft(BaseModel):
	id: UUID
	name: str
	created_by: UUID
	approval_status: str


class MembershipDraft(BaseModel):
	club_id: UUID
	user_id: UUID
	role: str
	status: str


class EventDraft(BaseModel):
	club_id: UUID
	created_by: UUID


class RegistrationDraft(BaseModel):
	event_id: UUID
	user_id: UUID


class FlagDraft(BaseModel):
	kind: str
	target_id: UUID
	user_id: UUID


class AnnouncementDraft(BaseModel):
	club_id: UUID
	created_by: UUID


class ProfileChange(BaseModel):
	id: UUID
	is_admin: Optional[bool] = None


class ModerationLogDraft(BaseModel):
	admin_id: UUID
	action: str
	entity_type: str
	entity_id: UUID
	details: Optional[dict[str, Any]] = None
