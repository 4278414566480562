"""Pydantic schemas for the ASU Connect API."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, ValidationInfo, field_validator, model_validator

from app.connect.domain import validation
from app.connect.domain.exceptions import ConnectError


def _checked(func, *args):
	try:
		return func(*args)
	except ConnectError as exc:
		raise ValueError(exc.detail) from exc


# --- Profiles -----------------------------------------------------------------


class ProfileUpdateRequest(BaseModel):
	full_name: Optional[str] = Field(default=None, max_length=200)
	avatar_url: Optional[str] = Field(default=None, max_length=2048)

	@field_validator("full_name", "avatar_url")
	@classmethod
	def _blank_is_null(cls, value: Optional[str]) -> Optional[str]:
		if value is None:
			return None
		return value.strip() or None


class AdminRoleRequest(BaseModel):
	is_admin: bool


class ProfileResponse(BaseModel):
	id: UUID
	email: Optional[str] = None
	full_name: Optional[str] = None
	avatar_url: Optional[str] = None
	is_admin: bool
	created_at: datetime
	updated_at: datetime


class PersonResponse(BaseModel):
	user_id: UUID
	full_name: Optional[str] = None
	email: Optional[str] = None


# --- Clubs --------------------------------------------------------------------


class ClubCreateRequest(BaseModel):
	name: str = Field(..., min_length=1, max_length=255)
	description: Optional[str] = Field(default=None, max_length=1000)

	@field_validator("name")
	@classmethod
	def _strip_name(cls, value: str) -> str:
		return _checked(validation.require_text, value, "name_required")


class ClubUpdateRequest(BaseModel):
	name: Optional[str] = Field(default=None, min_length=1, max_length=255)
	description: Optional[str] = Field(default=None, max_length=1000)

	@field_validator("name")
	@classmethod
	def _strip_name(cls, value: Optional[str]) -> Optional[str]:
		return None if value is None else _checked(validation.require_text, value, "name_required")


class ClubResponse(BaseModel):
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
	member_count: int = 0


class ClubListResponse(BaseModel):
	items: List[ClubResponse]


class ClubRejectRequest(BaseModel):
	reason: str = Field(..., min_length=1, max_length=validation.REJECTION_REASON_MAX)


# --- Memberships ----------------------------------------------------------------


class MemberResponse(BaseModel):
	id: UUID
	club_id: UUID
	user_id: UUID
	role: str
	status: str
	joined_at: datetime
	full_name: Optional[str] = None
	email: Optional[str] = None


class MemberListResponse(BaseModel):
	items: List[MemberResponse]


class MembershipReviewRequest(BaseModel):
	action: str = Field(..., pattern="^(approve|reject)$")


# --- Events -----------------------------------------------------------------------


class EventCreateRequest(BaseModel):
	club_id: UUID
	title: str = Field(..., min_length=1, max_length=200)
	description: Optional[str] = Field(default=None, max_length=5000)
	event_date: datetime
	location: Optional[str] = Field(default=None, max_length=255)
	category: Optional[str] = None
	is_free: bool = True
	price: Optional[Decimal] = None

	@field_validator("title")
	@classmethod
	def _strip_title(cls, value: str) -> str:
		return _checked(validation.require_text, value, "title_required")

	@field_validator("category")
	@classmethod
	def _check_category(cls, value: Optional[str]) -> Optional[str]:
		return _checked(validation.validate_category, value)

	@model_validator(mode="after")
	def _check_pricing(self) -> "EventCreateRequest":
		self.price = _checked(validation.validate_pricing, self.is_free, self.price)
		return self


class EventUpdateRequest(BaseModel):
	"""Partial update; pricing is re-validated against the merged row."""

	title: Optional[str] = Field(default=None, min_length=1, max_length=200)
	description: Optional[str] = Field(default=None, max_length=5000)
	event_date: Optional[datetime] = None
	location: Optional[str] = Field(default=None, max_length=255)
	category: Optional[str] = None
	is_free: Optional[bool] = None
	price: Optional[Decimal] = None

	@field_validator("title")
	@classmethod
	def _strip_title(cls, value: Optional[str]) -> Optional[str]:
		return None if value is None else _checked(validation.require_text, value, "title_required")

	@field_validator("category")
	@classmethod
	def _check_category(cls, value: Optional[str]) -> Optional[str]:
		return _checked(validation.validate_category, value)


class EventResponse(BaseModel):
	id: UUID
	club_id: UUID
	created_by: UUID
	title: str
	description: Optional[str] = None
	event_date: datetime
	location: Optional[str] = None
	category: Optional[str] = None
	is_free: bool
	price: Optional[Decimal] = None
	created_at: datetime
	updated_at: datetime
	registration_count: int = 0


class EventListResponse(BaseModel):
	items: List[EventResponse]


class RegistrationResponse(BaseModel):
	id: UUID
	event_id: UUID
	user_id: UUID
	registered_at: datetime
	full_name: Optional[str] = None
	email: Optional[str] = None


class RegistrationListResponse(BaseModel):
	items: List[RegistrationResponse]


# --- Flags --------------------------------------------------------------------------


class FlagCreateRequest(BaseModel):
	reason: str
	details: Optional[str] = None

	@field_validator("reason")
	@classmethod
	def _canonical_reason(cls, value: str) -> str:
		return _checked(validation.normalize_flag_reason, value)

	@field_validator("details")
	@classmethod
	def _check_details(cls, value: Optional[str]) -> Optional[str]:
		return _checked(validation.validate_flag_details, value)


class FlagStatusRequest(BaseModel):
	status: str = Field(..., pattern="^(reviewed|resolved|dismissed)$")


class FlagResponse(BaseModel):
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
	reporter_name: Optional[str] = None


class FlagListResponse(BaseModel):
	items: List[FlagResponse]


class FlagStatusResponse(BaseModel):
	has_flagged: bool
	flag: Optional[FlagResponse] = None


# --- Announcements ----------------------------------------------------------------


class AnnouncementCreateRequest(BaseModel):
	title: str = Field(..., min_length=1, max_length=200)
	content: str = Field(..., min_length=1, max_length=5000)

	@field_validator("title", "content")
	@classmethod
	def _strip_text(cls, value: str, info: ValidationInfo) -> str:
		return _checked(validation.require_text, value, f"{info.field_name}_required")


class AnnouncementUpdateRequest(BaseModel):
	title: Optional[str] = Field(default=None, min_length=1, max_length=200)
	content: Optional[str] = Field(default=None, min_length=1, max_length=5000)

	@field_validator("title", "content")
	@classmethod
	def _strip_text(cls, value: Optional[str], info: ValidationInfo) -> Optional[str]:
		if value is None:
			return None
		return _checked(validation.require_text, value, f"{info.field_name}_required")


class AnnouncementResponse(BaseModel):
	id: UUID
	club_id: UUID
	created_by: UUID
	title: str
	content: str
	created_at: datetime
	updated_at: datetime


class AnnouncementListResponse(BaseModel):
	items: List[AnnouncementResponse]


# --- Moderation -----------------------------------------------------------------------


class ModerationLogResponse(BaseModel):
	id: UUID
	admin_id: UUID
	admin_email: Optional[str] = None
	action: str
	entity_type: str
	entity_id: UUID
	details: Optional[Dict[str, Any]] = None
	created_at: datetime


class ModerationLogListResponse(BaseModel):
	items: List[ModerationLogResponse]


class FlagCounts(BaseModel):
	pending: int = 0
	reviewed: int = 0
	resolved: int = 0
	dismissed: int = 0
	total: int = 0


class ClubCounts(BaseModel):
	pending: int = 0
	approved: int = 0
	rejected: int = 0
	total: int = 0
	approval_rate: float = 0.0


class ModerationStatsResponse(BaseModel):
	event_flags: FlagCounts
	club_flags: FlagCounts
	flags: FlagCounts
	clubs: ClubCounts
	recent_activity: List[ModerationLogResponse]
	pending_total: int
	requires_attention: bool
