from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Iterator
from uuid import uuid4

import asyncpg
import pytest
import pytest_asyncio

from app.connect.domain.clubs_service import ClubsService
from app.connect.domain.members_service import MembersService
from app.connect.domain.policies import Principal
from app.connect.domain.repo import ConnectRepository
from app.connect.schemas import dto
from app.infra import postgres
from app.infra.migrations import MigrationRunner, discover
from app.settings import settings

APP_ROLE = "connect_app"
APP_PASSWORD = "connect_app"


@pytest.fixture(scope="module")
def postgres_container() -> Iterator["PostgresContainer"]:
    testcontainers = pytest.importorskip(
        "testcontainers.postgres",
        reason="testcontainers.postgres is required for integration tests",
    )
    PostgresContainer = testcontainers.PostgresContainer
    container = PostgresContainer("postgres:16-alpine")
    try:
        container.start()
    except Exception as exc:  # pragma: no cover - environment without docker
        pytest.skip(f"unable to start postgres container: {exc}")
    try:
        yield container
    finally:
        container.stop()


async def _migrate(container) -> None:
    url = container.get_connection_url().replace("postgresql+psycopg2", "postgresql")
    conn = await asyncpg.connect(url)
    try:
        await conn.execute("DROP SCHEMA IF EXISTS public CASCADE")
        await conn.execute("CREATE SCHEMA public")
        await MigrationRunner(conn, discover(settings.migrations_dir)).upgrade()
        # superusers bypass row security, so the application connects as a plain role
        exists = await conn.fetchval("SELECT 1 FROM pg_roles WHERE rolname=$1", APP_ROLE)
        if not exists:
            await conn.execute(f"CREATE ROLE {APP_ROLE} LOGIN PASSWORD '{APP_PASSWORD}'")
        await conn.execute(f"GRANT USAGE ON SCHEMA public TO {APP_ROLE}")
        await conn.execute(f"GRANT SELECT, INSERT, UPDATE, DELETE ON ALL TABLES IN SCHEMA public TO {APP_ROLE}")
    finally:
        await conn.close()


@pytest_asyncio.fixture(scope="function")
async def app_pool(postgres_container) -> AsyncIterator[asyncpg.Pool]:
    await _migrate(postgres_container)
    pool = await asyncpg.create_pool(
        host=postgres_container.get_container_host_ip(),
        port=int(postgres_container.get_exposed_port(5432)),
        user=APP_ROLE,
        password=APP_PASSWORD,
        database=postgres_container.dbname,
        min_size=1,
        max_size=4,
    )
    postgres.set_pool(pool)
    try:
        yield pool
    finally:
        postgres.set_pool(None)
        await pool.close()


async def _principal(repo: ConnectRepository, *, is_admin: bool = False) -> Principal:
    user_id = uuid4()
    await repo.acting_as(user_id).ensure_principal(user_id, f"{user_id.hex[:8]}@asu.edu")
    return Principal(id=user_id, is_admin=is_admin)


@pytest.mark.asyncio
async def test_membership_rows_follow_the_same_rules_in_the_database(app_pool):
    repo = ConnectRepository()
    owner, applicant, stranger = await _principal(repo), await _principal(repo), await _principal(repo)
    club = await ClubsService(repository=repo).create_club(owner, dto.ClubCreateRequest(name="Robotics"))
    await MembersService(repository=repo).request_join(applicant, club.id)

    assert await repo.acting_as(stranger.id).get_membership(club.id, applicant.id) is None
    assert await repo.acting_as(applicant.id).get_membership(club.id, applicant.id) is not None
    assert await repo.acting_as(owner.id).get_membership(club.id, applicant.id) is not None

    # a stranger cannot approve even when bypassing the service layer
    assert await repo.acting_as(stranger.id).set_membership_status(
        club.id, applicant.id, expected="pending", status="approved"
    ) is None
    assert (await repo.acting_as(owner.id).get_membership(club.id, applicant.id)).status == "pending"


@pytest.mark.asyncio
async def test_database_rejects_events_under_foreign_clubs(app_pool):
    repo = ConnectRepository()
    owner, other = await _principal(repo), await _principal(repo)
    club = await ClubsService(repository=repo).create_club(owner, dto.ClubCreateRequest(name="Robotics"))

    with pytest.raises(asyncpg.InsufficientPrivilegeError):
        await repo.acting_as(other.id).create_event(
            club_id=club.id,
            created_by=other.id,
            fields={"title": "Hack Night", "event_date": datetime.now(timezone.utc) + timedelta(days=1)},
        )


@pytest.mark.asyncio
async def test_self_approved_join_is_refused_by_the_database(app_pool):
    repo = ConnectRepository()
    owner, user = await _principal(repo), await _principal(repo)
    club = await ClubsService(repository=repo).create_club(owner, dto.ClubCreateRequest(name="Robotics"))

    with pytest.raises(asyncpg.InsufficientPrivilegeError):
        await repo.acting_as(user.id).insert_membership(
            club_id=club.id, user_id=user.id, role="member", status="approved"
        )


@pytest.mark.asyncio
async def test_moderation_log_is_append_only(app_pool):
    repo = ConnectRepository()
    user = await _principal(repo)
    async with app_pool.acquire() as conn:
        async with conn.transaction():
            await conn.execute("SELECT set_config('app.current_user_id', $1, true)", str(user.id))
            result = await conn.execute("UPDATE moderation_logs SET action='tampered'")
    assert result == "UPDATE 0"
