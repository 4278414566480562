"""AsyncPG pool management and actor-bound sessions.

Row-level security policies read the acting principal from the
``app.current_user_id`` setting, so statements that should be checked by the
database run through :func:`acting_session`, which binds the setting for the
lifetime of one transaction.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional
from uuid import UUID

import asyncpg

from app.settings import settings

CURRENT_USER_SETTING = "app.current_user_id"

_pool: Optional[asyncpg.pool.Pool] = None
_LOGGER = logging.getLogger(__name__)


async def init_pool() -> asyncpg.pool.Pool:
	global _pool
	if _pool is None:
		_pool = await asyncpg.create_pool(
			dsn=settings.postgres_url,
			min_size=settings.postgres_min_pool_size,
			max_size=settings.postgres_max_pool_size,
			ssl="require" if settings.postgres_ssl else "disable",
			server_settings={"application_name": settings.service_name},
		)
		_LOGGER.info(
			"postgres.pool_ready",
			extra={"min_size": settings.postgres_min_pool_size, "max_size": settings.postgres_max_pool_size},
		)
	return _pool


def set_pool(pool: Optional[asyncpg.pool.Pool]) -> None:
	global _pool
	_pool = pool


async def get_pool() -> asyncpg.pool.Pool:
	if _pool is None:
		await init_pool()
	assert _pool is not None
	return _pool


async def close_pool() -> None:
	global _pool
	if _pool is not None:
		await _pool.close()
		_pool = None


@asynccontextmanager
async def acting_session(actor_id: Optional[UUID]) -> AsyncIterator[asyncpg.Connection]:
	"""Open a transaction in which the database sees ``actor_id`` as the caller.

	An empty setting means anonymous; the policies then only expose public rows.
	The setting is transaction-local, so it never leaks to the next borrower of
	the pooled connection.
	"""
	pool = await get_pool()
	async with pool.acquire() as conn:
		async with conn.transaction():
			await conn.execute(
				"SELECT set_config($1, $2, true)",
				CURRENT_USER_SETTING,
				str(actor_id) if actor_id else "",
			)
			yield conn
