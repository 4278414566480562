from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from app.connect.domain import moderation
from app.connect.domain.clubs_service import ClubsService
from app.connect.domain.events_service import EventsService
from app.connect.domain.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from app.connect.domain.flags_service import FlagsService
from app.connect.domain.moderation_service import ModerationService
from app.connect.schemas import dto
from app.settings import settings


@pytest.fixture()
def moderation_service(fake_repo) -> ModerationService:
	return ModerationService(repository=fake_repo)


@pytest.fixture()
def clubs(fake_repo) -> ClubsService:
	return ClubsService(repository=fake_repo)


@pytest.fixture()
def flags(fake_repo) -> FlagsService:
	return FlagsService(repository=fake_repo)


@pytest.mark.asyncio
async def test_non_admins_are_refused_everywhere(moderation_service, make_principal, clubs):
	user = make_principal()
	club = await clubs.create_club(user, dto.ClubCreateRequest(name="Robotics"))
	calls = [
		moderation_service.list_clubs(user, "pending"),
		moderation_service.approve_club(user, club.id),
		moderation_service.reject_club(user, club.id, "nope"),
		moderation_service.list_flags(user),
		moderation_service.set_admin(user, uuid4(), True),
		moderation_service.list_logs(user),
		moderation_service.stats(user),
	]
	for call in calls:
		with pytest.raises(AuthorizationError) as excinfo:
			await call
		assert excinfo.value.detail == "admin_required"


@pytest.mark.asyncio
async def test_approve_and_reject_write_one_log_each(moderation_service, make_principal, clubs, fake_repo):
	settings.club_approval_required = True
	owner, admin = make_principal(), make_principal(is_admin=True)
	first = await clubs.create_club(owner, dto.ClubCreateRequest(name="Robotics"))
	second = await clubs.create_club(owner, dto.ClubCreateRequest(name="Spam Club"))

	queue = await moderation_service.list_clubs(admin, "pending")
	assert {item.id for item in queue.items} == {first.id, second.id}

	approved = await moderation_service.approve_club(admin, first.id)
	assert approved.approval_status == "approved"
	assert approved.approved_by == admin.id
	with pytest.raises(ConflictError):
		await moderation_service.approve_club(admin, first.id)

	with pytest.raises(ValidationError):
		await moderation_service.reject_club(admin, second.id, "   ")
	rejected = await moderation_service.reject_club(admin, second.id, "duplicate")
	assert rejected.approval_status == "rejected"
	assert rejected.rejection_reason == "duplicate"

	actions = [log.action for log in fake_repo.store.logs]
	assert actions == [moderation.APPROVE_CLUB, moderation.REJECT_CLUB]
	assert all(log.admin_id == admin.id for log in fake_repo.store.logs)
	assert fake_repo.store.logs[1].details["reason"] == "duplicate"


@pytest.mark.asyncio
async def test_rejected_club_can_be_approved_later(moderation_service, make_principal, clubs):
	settings.club_approval_required = True
	owner, admin = make_principal(), make_principal(is_admin=True)
	club = await clubs.create_club(owner, dto.ClubCreateRequest(name="Robotics"))
	await moderation_service.reject_club(admin, club.id, "incomplete")
	approved = await moderation_service.approve_club(admin, club.id)
	assert approved.rejection_reason is None


@pytest.mark.asyncio
async def test_admin_flag_review_is_logged(moderation_service, make_principal, clubs, flags, fake_repo):
	owner, reporter, admin = make_principal(), make_principal(), make_principal(is_admin=True)
	club = await clubs.create_club(owner, dto.ClubCreateRequest(name="Robotics"))
	flag = await flags.flag(reporter, "club", club.id, dto.FlagCreateRequest(reason="Spam"))

	listed = await moderation_service.list_flags(admin, status="pending")
	assert [item.id for item in listed.items] == [flag.id]
	with pytest.raises(ValidationError):
		await moderation_service.list_flags(admin, status="closed")

	updated = await moderation_service.set_flag_status(admin, "club", flag.id, "resolved")
	assert updated.status == "resolved"
	[log] = fake_repo.store.logs
	assert log.action == moderation.RESOLVE_FLAG
	assert log.entity_id == flag.id

	# the owner-facing endpoint also logs when an admin uses it
	await flags.update_status(admin, "club", flag.id, "reviewed")
	assert [entry.action for entry in fake_repo.store.logs] == [moderation.RESOLVE_FLAG, moderation.REVIEW_FLAG]


@pytest.mark.asyncio
async def test_resolving_a_flag_can_delete_the_event(moderation_service, make_principal, clubs, flags, fake_repo):
	owner, reporter, admin = make_principal(), make_principal(), make_principal(is_admin=True)
	club = await clubs.create_club(owner, dto.ClubCreateRequest(name="Robotics"))
	event = await EventsService(repository=fake_repo).create_event(
		owner,
		dto.EventCreateRequest(
			club_id=club.id, title="Hack Night", event_date=datetime.now(timezone.utc) + timedelta(days=1)
		),
	)
	flag = await flags.flag(reporter, "event", event.id, dto.FlagCreateRequest(reason="Spam"))

	await moderation_service.resolve_flag(admin, "event", flag.id, delete_entity=True)

	assert event.id not in fake_repo.store.events
	assert fake_repo.store.flags == {}
	[log] = fake_repo.store.logs
	assert log.action == moderation.DELETE_EVENT
	assert log.details["title"] == "Hack Night"
	assert log.details["flag_id"] == str(flag.id)


@pytest.mark.asyncio
async def test_dismissing_a_flag_keeps_the_club(moderation_service, make_principal, clubs, flags, fake_repo):
	owner, reporter, admin = make_principal(), make_principal(), make_principal(is_admin=True)
	club = await clubs.create_club(owner, dto.ClubCreateRequest(name="Robotics"))
	flag = await flags.flag(reporter, "club", club.id, dto.FlagCreateRequest(reason="Other"))

	await moderation_service.resolve_flag(admin, "club", flag.id, delete_entity=False)

	assert club.id in fake_repo.store.clubs
	assert fake_repo.store.flags[flag.id].status == "dismissed"
	assert [log.action for log in fake_repo.store.logs] == [moderation.DISMISS_FLAG]


@pytest.mark.asyncio
async def test_set_admin(moderation_service, make_principal, fake_repo):
	admin, user = make_principal(is_admin=True), make_principal()

	with pytest.raises(ConflictError):
		await moderation_service.set_admin(admin, admin.id, False)
	with pytest.raises(NotFoundError):
		await moderation_service.set_admin(admin, uuid4(), True)

	profile = await moderation_service.set_admin(admin, user.id, True)
	assert profile.is_admin is True
	[log] = fake_repo.store.logs
	assert log.action == moderation.UPDATE_USER_ROLE
	assert log.details == {"email": profile.email, "previous_is_admin": False, "is_admin": True}


@pytest.mark.asyncio
async def test_logs_filter_and_carry_admin_email(moderation_service, make_principal, clubs):
	settings.club_approval_required = True
	owner, admin = make_principal(), make_principal(is_admin=True, email="admin@asu.edu")
	club = await clubs.create_club(owner, dto.ClubCreateRequest(name="Robotics"))
	await moderation_service.reject_club(admin, club.id, "incomplete")
	await moderation_service.approve_club(admin, club.id)

	logs = await moderation_service.list_logs(admin, action=moderation.REJECT_CLUB)
	assert [item.action for item in logs.items] == [moderation.REJECT_CLUB]
	assert logs.items[0].admin_email == "admin@asu.edu"

	everything = await moderation_service.list_logs(admin, entity_type="club")
	assert [item.action for item in everything.items] == [moderation.APPROVE_CLUB, moderation.REJECT_CLUB]

	with pytest.raises(ValidationError):
		await moderation_service.list_logs(admin, action="drop_tables")
	with pytest.raises(ValidationError):
		await moderation_service.list_logs(admin, entity_type="planet")


@pytest.mark.asyncio
async def test_stats(moderation_service, make_principal, clubs, flags):
	settings.club_approval_required = True
	owner, reporter, admin = make_principal(), make_principal(), make_principal(is_admin=True)
	approved = await clubs.create_club(owner, dto.ClubCreateRequest(name="A"))
	rejected = await clubs.create_club(owner, dto.ClubCreateRequest(name="B"))
	await clubs.create_club(owner, dto.ClubCreateRequest(name="C"))
	await moderation_service.approve_club(admin, approved.id)
	await moderation_service.reject_club(admin, rejected.id, "duplicate")
	await flags.flag(reporter, "club", approved.id, dto.FlagCreateRequest(reason="Spam"))

	stats = await moderation_service.stats(admin)

	assert stats.clubs.total == 3
	assert stats.clubs.pending == 1
	assert stats.clubs.approval_rate == 33.3
	assert stats.club_flags.pending == 1
	assert stats.event_flags.total == 0
	assert stats.flags.total == 1
	assert stats.pending_total == 2
	assert stats.requires_attention is True
	assert [item.action for item in stats.recent_activity] == [moderation.REJECT_CLUB, moderation.APPROVE_CLUB]


@pytest.mark.asyncio
async def test_stats_on_an_empty_platform(moderation_service, make_principal):
	stats = await moderation_service.stats(make_principal(is_admin=True))
	assert stats.clubs.approval_rate == 0.0
	assert stats.requires_attention is False
	assert stats.recent_activity == []
