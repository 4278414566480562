import asyncio
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Iterable, Optional
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from app.connect.api import (  # noqa: E402
	_deps,
	admin as admin_api,
	announcements as announcements_api,
	clubs as clubs_api,
	events as events_api,
	flags as flags_api,
	members as members_api,
	profiles as profiles_api,
	registrations as registrations_api,
)
from app.connect.domain import models  # noqa: E402
from app.connect.domain.exceptions import ConflictError, MissingRelationError  # noqa: E402
from app.connect.domain.policies import Principal  # noqa: E402
from app.infra import postgres  # noqa: E402
from app.main import app  # noqa: E402
from app.settings import settings  # noqa: E402


# Ensure a selector-based event loop policy on Windows to avoid Proactor issues with async IO
if hasattr(asyncio, "WindowsSelectorEventLoopPolicy"):
	try:
		asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
	except Exception:
		# Non-fatal; proceed with default policy
		pass


_FLAG_PARENTS = {"event": "events", "club": "clubs"}


class FakeStore:
	"""Tables shared by every FakeConnectRepository handed out by acting_as."""

	def __init__(self) -> None:
		self.profiles: dict[UUID, models.Profile] = {}
		self.clubs: dict[UUID, models.Club] = {}
		self.members: dict[tuple[UUID, UUID], models.ClubMember] = {}
		self.events: dict[UUID, models.Event] = {}
		self.registrations: dict[tuple[UUID, UUID], models.EventRegistration] = {}
		self.flags: dict[UUID, models.Flag] = {}
		self.announcements: dict[UUID, models.ClubAnnouncement] = {}
		self.logs: list[models.ModerationLog] = []
		self.actors: list[Optional[UUID]] = []
		self.profiles_missing = False
		self._clock = datetime(2025, 1, 1, tzinfo=timezone.utc)

	def now(self) -> datetime:
		self._clock += timedelta(seconds=1)
		return self._clock


class FakeConnectRepository:
	"""In-memory stand-in for ConnectRepository with the same uniqueness and cascade rules."""

	def __init__(self, store: Optional[FakeStore] = None, actor_id: Optional[UUID] = None) -> None:
		self.store = store or FakeStore()
		self.actor_id = actor_id

	def acting_as(self, actor_id: Optional[UUID]) -> "FakeConnectRepository":
		self.store.actors.append(actor_id)
		return FakeConnectRepository(self.store, actor_id)

	async def policy_row(self, table: str, key: Any) -> Any | None:
		if table == "clubs":
			return self.store.clubs.get(key)
		if table == "events":
			return self.store.events.get(key)
		if table == "club_members":
			return self.store.members.get(tuple(key))
		raise ValueError(f"no policy lookup for {table}")

	def _log(self, draft: Optional[models.ModerationLogDraft]) -> None:
		if draft is None:
			return
		self.store.logs.append(
			models.ModerationLog(id=uuid4(), created_at=self.store.now(), **draft.model_dump())
		)

	# --- profiles --------------------------------------------------------------

	async def ensure_principal(self, principal_id: UUID, email: Optional[str]) -> models.Profile:
		if principal_id not in self.store.profiles:
			now = self.store.now()
			self.store.profiles[principal_id] = models.Profile(
				id=principal_id, email=email, created_at=now, updated_at=now
			)
		return self.store.profiles[principal_id]

	async def get_profile(self, user_id: UUID) -> models.Profile | None:
		return self.store.profiles.get(user_id)

	async def update_profile(
		self,
		user_id: UUID,
		changes: dict[str, Any],
		*,
		log: Optional[models.ModerationLogDraft] = None,
	) -> models.Profile | None:
		profile = self.store.profiles.get(user_id)
		if profile is None:
			return None
		update = {column: changes[column] for column in ("full_name", "avatar_url", "is_admin") if column in changes}
		profile = profile.model_copy(update={**update, "updated_at": self.store.now()})
		self.store.profiles[user_id] = profile
		self._log(log)
		return profile

	async def display_names(self, user_ids: Iterable[UUID]) -> dict[UUID, models.PersonRef]:
		if self.store.profiles_missing:
			raise MissingRelationError("profiles")
		result: dict[UUID, models.PersonRef] = {}
		for user_id in user_ids:
			profile = self.store.profiles.get(user_id)
			if profile is None:
				result[user_id] = models.PersonRef(user_id=user_id)
			else:
				result[user_id] = models.PersonRef(
					user_id=user_id,
					full_name=profile.full_name or models.UNKNOWN_USER,
					email=profile.email,
				)
		return result

	# --- clubs -------------------------------------------------------------------

	async def create_club(
		self,
		*,
		club_id: UUID,
		name: str,
		description: Optional[str],
		created_by: UUID,
		approval_status: str,
		approved_by: Optional[UUID],
	) -> tuple[models.Club, models.ClubMember]:
		now = self.store.now()
		club = models.Club(
			id=club_id,
			name=name,
			description=description,
			created_by=created_by,
			approval_status=approval_status,
			approved_by=approved_by,
			approved_at=now if approved_by else None,
			created_at=now,
			updated_at=now,
		)
		member = models.ClubMember(
			id=uuid4(), club_id=club_id, user_id=created_by, role="admin", status="approved", joined_at=now
		)
		self.store.clubs[club_id] = club
		self.store.members[(club_id, created_by)] = member
		return club, member

	async def get_club(self, club_id: UUID) -> models.Club | None:
		return self.store.clubs.get(club_id)

	async def list_clubs(
		self,
		*,
		approval_status: Optional[str] = None,
		created_by: Optional[UUID] = None,
		sort_by: str = "name",
		limit: int = 50,
		offset: int = 0,
	) -> list[models.Club]:
		clubs = [
			club
			for club in self.store.clubs.values()
			if (approval_status is None or club.approval_status == approval_status)
			and (created_by is None or club.created_by == created_by)
		]
		if sort_by == "newest":
			clubs.sort(key=lambda club: club.created_at, reverse=True)
		elif sort_by == "oldest":
			clubs.sort(key=lambda club: club.created_at)
		else:
			clubs.sort(key=lambda club: club.name)
		return clubs[offset : offset + limit]

	async def count_approved_members(self, club_ids: Iterable[UUID]) -> dict[UUID, int]:
		ids = set(club_ids)
		counts: dict[UUID, int] = {}
		for member in self.store.members.values():
			if member.club_id in ids and member.status == "approved":
				counts[member.club_id] = counts.get(member.club_id, 0) + 1
		return counts

	async def update_club(
		self,
		club_id: UUID,
		*,
		name: Optional[str] = None,
		description: Optional[str] = None,
	) -> models.Club | None:
		club = self.store.clubs.get(club_id)
		if club is None:
			return None
		changes: dict[str, Any] = {"updated_at": self.store.now()}
		if name is not None:
			changes["name"] = name
		if description is not None:
			changes["description"] = description
		club = club.model_copy(update=changes)
		self.store.clubs[club_id] = club
		return club

	async def set_club_approval(
		self,
		club_id: UUID,
		*,
		status: str,
		approved_by: UUID,
		rejection_reason: Optional[str],
		log: models.ModerationLogDraft,
	) -> models.Club | None:
		club = self.store.clubs.get(club_id)
		if club is None:
			return None
		now = self.store.now()
		club = club.model_copy(
			update={
				"approval_status": status,
				"approved_by": approved_by,
				"approved_at": now,
				"rejection_reason": rejection_reason,
				"updated_at": now,
			}
		)
		self.store.clubs[club_id] = club
		self._log(log)
		return club

	async def delete_club(self, club_id: UUID, *, log: Optional[models.ModerationLogDraft] = None) -> bool:
		if self.store.clubs.pop(club_id, None) is None:
			return False
		for key in [key for key in self.store.members if key[0] == club_id]:
			del self.store.members[key]
		for event_id in [event.id for event in self.store.events.values() if event.club_id == club_id]:
			self._drop_event(event_id)
		for announcement_id in [a.id for a in self.store.announcements.values() if a.club_id == club_id]:
			del self.store.announcements[announcement_id]
		self._drop_flags("club", club_id)
		self._log(log)
		return True

	async def club_status_counts(self) -> dict[str, int]:
		counts: dict[str, int] = {}
		for club in self.store.clubs.values():
			counts[club.approval_status] = counts.get(club.approval_status, 0) + 1
		return counts

	# --- memberships -----------------------------------------------------------------

	async def get_membership(self, club_id: UUID, user_id: UUID) -> models.ClubMember | None:
		return self.store.members.get((club_id, user_id))

	async def insert_membership(
		self,
		*,
		club_id: UUID,
		user_id: UUID,
		role: str,
		status: str,
	) -> models.ClubMember | None:
		if (club_id, user_id) in self.store.members:
			return None
		member = models.ClubMember(
			id=uuid4(), club_id=club_id, user_id=user_id, role=role, status=status, joined_at=self.store.now()
		)
		self.store.members[(club_id, user_id)] = member
		return member

	async def list_memberships(self, club_id: UUID, *, status: Optional[str] = None) -> list[models.ClubMember]:
		rows = [
			member
			for member in self.store.members.values()
			if member.club_id == club_id and (status is None or member.status == status)
		]
		return sorted(rows, key=lambda member: member.joined_at)

	async def set_membership_status(
		self,
		club_id: UUID,
		user_id: UUID,
		*,
		expected: str,
		status: str,
	) -> models.ClubMember | None:
		member = self.store.members.get((club_id, user_id))
		if member is None or member.status != expected:
			return None
		member = member.model_copy(update={"status": status})
		self.store.members[(club_id, user_id)] = member
		return member

	async def delete_membership(self, club_id: UUID, user_id: UUID) -> bool:
		return self.store.members.pop((club_id, user_id), None) is not None

	# --- events ------------------------------------------------------------------------

	async def create_event(self, *, club_id: UUID, created_by: UUID, fields: dict[str, Any]) -> models.Event:
		now = self.store.now()
		event = models.Event(
			id=uuid4(),
			club_id=club_id,
			created_by=created_by,
			title=fields["title"],
			description=fields.get("description"),
			event_date=fields["event_date"],
			location=fields.get("location"),
			category=fields.get("category"),
			is_free=fields.get("is_free", True),
			price=fields.get("price"),
			created_at=now,
			updated_at=now,
		)
		self.store.events[event.id] = event
		return event

	async def get_event(self, event_id: UUID) -> models.Event | None:
		return self.store.events.get(event_id)

	async def list_events(
		self,
		*,
		club_id: Optional[UUID] = None,
		category: Optional[str] = None,
		is_free: Optional[bool] = None,
		starts_after: Optional[datetime] = None,
		limit: int = 50,
		offset: int = 0,
	) -> list[models.Event]:
		events = [
			event
			for event in self.store.events.values()
			if (club_id is None or event.club_id == club_id)
			and (category is None or event.category == category)
			and (is_free is None or event.is_free == is_free)
			and (starts_after is None or event.event_date >= starts_after)
		]
		events.sort(key=lambda event: event.event_date)
		return events[offset : offset + limit]

	async def update_event(self, event_id: UUID, changes: dict[str, Any]) -> models.Event | None:
		event = self.store.events.get(event_id)
		if event is None:
			return None
		event = event.model_copy(update={**changes, "updated_at": self.store.now()})
		self.store.events[event_id] = event
		return event

	def _drop_event(self, event_id: UUID) -> None:
		self.store.events.pop(event_id, None)
		for key in [key for key in self.store.registrations if key[0] == event_id]:
			del self.store.registrations[key]
		self._drop_flags("event", event_id)

	async def delete_event(self, event_id: UUID, *, log: Optional[models.ModerationLogDraft] = None) -> bool:
		if event_id not in self.store.events:
			return False
		self._drop_event(event_id)
		self._log(log)
		return True

	# --- registrations -----------------------------------------------------------------

	async def insert_registration(self, event_id: UUID, user_id: UUID) -> models.EventRegistration:
		if (event_id, user_id) in self.store.registrations:
			raise ConflictError("already_registered")
		registration = models.EventRegistration(
			id=uuid4(), event_id=event_id, user_id=user_id, registered_at=self.store.now()
		)
		self.store.registrations[(event_id, user_id)] = registration
		return registration

	async def get_registration(self, event_id: UUID, user_id: UUID) -> models.EventRegistration | None:
		return self.store.registrations.get((event_id, user_id))

	async def list_registrations(self, event_id: UUID) -> list[models.EventRegistration]:
		rows = [row for row in self.store.registrations.values() if row.event_id == event_id]
		return sorted(rows, key=lambda row: row.registered_at)

	async def count_registrations(self, event_ids: Iterable[UUID]) -> dict[UUID, int]:
		ids = set(event_ids)
		counts: dict[UUID, int] = {}
		for row in self.store.registrations.values():
			if row.event_id in ids:
				counts[row.event_id] = counts.get(row.event_id, 0) + 1
		return counts

	async def delete_registration(self, event_id: UUID, user_id: UUID) -> bool:
		return self.store.registrations.pop((event_id, user_id), None) is not None

	# --- flags ---------------------------------------------------------------------------

	def _drop_flags(self, kind: str, target_id: UUID) -> None:
		for flag_id in [f.id for f in self.store.flags.values() if f.kind == kind and f.target_id == target_id]:
			del self.store.flags[flag_id]

	async def insert_flag(
		self,
		*,
		kind: str,
		target_id: UUID,
		user_id: UUID,
		reason: str,
		details: Optional[str],
	) -> models.Flag:
		if await self.get_reporter_flag(kind, target_id, user_id) is not None:
			raise ConflictError("already_flagged")
		now = self.store.now()
		flag = models.Flag(
			id=uuid4(),
			kind=kind,
			target_id=target_id,
			user_id=user_id,
			reason=reason,
			details=details,
			status="pending",
			created_at=now,
			updated_at=now,
		)
		self.store.flags[flag.id] = flag
		return flag

	async def get_flag(self, kind: str, flag_id: UUID) -> models.Flag | None:
		flag = self.store.flags.get(flag_id)
		return flag if flag is not None and flag.kind == kind else None

	async def get_reporter_flag(self, kind: str, target_id: UUID, user_id: UUID) -> models.Flag | None:
		for flag in self.store.flags.values():
			if flag.kind == kind and flag.target_id == target_id and flag.user_id == user_id:
				return flag
		return None

	async def list_flags(
		self,
		kind: Optional[str] = None,
		*,
		target_id: Optional[UUID] = None,
		status: Optional[str] = None,
	) -> list[models.Flag]:
		flags = [
			flag
			for flag in self.store.flags.values()
			if (kind is None or flag.kind == kind)
			and (target_id is None or flag.target_id == target_id)
			and (status is None or flag.status == status)
		]
		return sorted(flags, key=lambda flag: flag.created_at, reverse=True)

	async def set_flag_status(
		self,
		kind: str,
		flag_id: UUID,
		*,
		status: str,
		reviewed_by: UUID,
		log: Optional[models.ModerationLogDraft] = None,
	) -> models.Flag | None:
		flag = await self.get_flag(kind, flag_id)
		if flag is None:
			return None
		now = self.store.now()
		flag = flag.model_copy(
			update={"status": status, "reviewed_by": reviewed_by, "reviewed_at": now, "updated_at": now}
		)
		self.store.flags[flag_id] = flag
		self._log(log)
		return flag

	async def delete_flag(self, kind: str, flag_id: UUID) -> bool:
		if await self.get_flag(kind, flag_id) is None:
			return False
		del self.store.flags[flag_id]
		return True

	async def flag_status_counts(self) -> dict[str, dict[str, int]]:
		counts: dict[str, dict[str, int]] = {kind: {} for kind in _FLAG_PARENTS}
		for flag in self.store.flags.values():
			bucket = counts[flag.kind]
			bucket[flag.status] = bucket.get(flag.status, 0) + 1
		return counts

	# --- announcements ---------------------------------------------------------------------

	async def create_announcement(
		self,
		*,
		club_id: UUID,
		created_by: UUID,
		title: str,
		content: str,
	) -> models.ClubAnnouncement:
		now = self.store.now()
		row = models.ClubAnnouncement(
			id=uuid4(),
			club_id=club_id,
			created_by=created_by,
			title=title,
			content=content,
			created_at=now,
			updated_at=now,
		)
		self.store.announcements[row.id] = row
		return row

	async def get_announcement(self, announcement_id: UUID) -> models.ClubAnnouncement | None:
		return self.store.announcements.get(announcement_id)

	async def list_announcements(self, club_id: UUID) -> list[models.ClubAnnouncement]:
		rows = [row for row in self.store.announcements.values() if row.club_id == club_id]
		return sorted(rows, key=lambda row: row.created_at, reverse=True)

	async def update_announcement(
		self,
		announcement_id: UUID,
		*,
		title: Optional[str] = None,
		content: Optional[str] = None,
	) -> models.ClubAnnouncement | None:
		row = self.store.announcements.get(announcement_id)
		if row is None:
			return None
		changes: dict[str, Any] = {"updated_at": self.store.now()}
		if title is not None:
			changes["title"] = title
		if content is not None:
			changes["content"] = content
		row = row.model_copy(update=changes)
		self.store.announcements[announcement_id] = row
		return row

	async def delete_announcement(self, announcement_id: UUID) -> bool:
		return self.store.announcements.pop(announcement_id, None) is not None

	# --- moderation log -------------------------------------------------------------------------

	async def insert_moderation_log(self, draft: models.ModerationLogDraft) -> models.ModerationLog:
		self._log(draft)
		return self.store.logs[-1]

	async def list_moderation_logs(
		self,
		*,
		action: Optional[str] = None,
		entity_type: Optional[str] = None,
		limit: int = 50,
		offset: int = 0,
	) -> list[models.ModerationLog]:
		logs = [
			log
			for log in self.store.logs
			if (action is None or log.action == action) and (entity_type is None or log.entity_type == entity_type)
		]
		logs.sort(key=lambda log: log.created_at, reverse=True)
		return logs[offset : offset + limit]


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop():
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Ensure a consistent test environment.

	API tests authenticate via X-User-Id headers, which are only accepted in
	dev mode. Clubs auto-approve unless a test opts into the approval queue.
	"""
	original_env = settings.environment
	original_approval = settings.club_approval_required
	original_auto_apply = settings.migrations_auto_apply
	settings.environment = "dev"
	settings.club_approval_required = False
	settings.migrations_auto_apply = False
	try:
		yield
	finally:
		settings.environment = original_env
		settings.club_approval_required = original_approval
		settings.migrations_auto_apply = original_auto_apply


@pytest.fixture()
def fake_repo() -> FakeConnectRepository:
	return FakeConnectRepository()


@pytest.fixture()
def make_principal(fake_repo):
	"""Create a principal with a profile row; admins get is_admin set on both."""

	def _make(*, is_admin: bool = False, full_name: Optional[str] = None, email: Optional[str] = None) -> Principal:
		user_id = uuid4()
		now = fake_repo.store.now()
		fake_repo.store.profiles[user_id] = models.Profile(
			id=user_id,
			email=email or f"{user_id.hex[:8]}@asu.edu",
			full_name=full_name,
			is_admin=is_admin,
			created_at=now,
			updated_at=now,
		)
		return Principal(id=user_id, email=fake_repo.store.profiles[user_id].email, is_admin=is_admin)

	return _make


@pytest.fixture()
def connect_api(monkeypatch, fake_repo):
	"""Point every Connect router at services backed by the in-memory repository."""
	for module in (
		admin_api,
		announcements_api,
		clubs_api,
		events_api,
		flags_api,
		members_api,
		profiles_api,
		registrations_api,
	):
		service = module._service
		monkeypatch.setattr(module, "_service", type(service)(repository=fake_repo))
	monkeypatch.setattr(_deps, "_profiles", type(_deps._profiles)(repository=fake_repo))
	return fake_repo


@pytest_asyncio.fixture
async def api_client():
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
