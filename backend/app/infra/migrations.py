"""Versioned SQL migrations.

Files live in one directory as `NNNN_name.up.sql` with a matching
`NNNN_name.down.sql`. Applied versions are recorded in `schema_migrations`
together with the sha256 of the up script; each version is applied or
reverted in its own transaction together with its bookkeeping row.
"""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Optional

from app.infra.postgres import get_pool
from app.obs import metrics as obs_metrics
from app.settings import settings

logger = logging.getLogger(__name__)

_FILENAME_RE = re.compile(r"^(?P<version>\d{4})_(?P<name>[a-z0-9_]+)\.(?P<direction>up|down)\.sql$")

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS schema_migrations (
	version TEXT PRIMARY KEY,
	name TEXT NOT NULL,
	checksum TEXT NOT NULL,
	applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
)
"""


class MigrationError(Exception):
	"""Broken migration set or drift between files and the database."""


@dataclass(frozen=True)
class Migration:
	version: str
	name: str
	up_sql: str
	down_sql: str

	@property
	def checksum(self) -> str:
		return hashlib.sha256(self.up_sql.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class MigrationState:
	version: str
	name: str
	applied: bool
	applied_at: Optional[datetime] = None
	drift: bool = False


def discover(directory: Path | str) -> list[Migration]:
	"""Load every migration in `directory`, ordered by version."""
	path = Path(directory)
	if not path.is_dir():
		raise MigrationError(f"migrations directory not found: {path}")
	found: dict[str, dict[str, Any]] = {}
	for file in sorted(path.iterdir()):
		match = _FILENAME_RE.match(file.name)
		if not match:
			continue
		version, name, direction = match.group("version", "name", "direction")
		entry = found.setdefault(version, {"name": name})
		if entry["name"] != name or direction in entry:
			raise MigrationError(f"duplicate migration version {version}")
		entry[direction] = file.read_text(encoding="utf-8")
	migrations: list[Migration] = []
	for version in sorted(found):
		entry = found[version]
		if "up" not in entry:
			raise MigrationError(f"migration {version} has no up script")
		if "down" not in entry:
			raise MigrationError(f"migration {version} has no down script")
		migrations.append(Migration(version, entry["name"], entry["up"], entry["down"]))
	return migrations


class MigrationRunner:
	"""Apply, revert and inspect migrations over one asyncpg connection."""

	def __init__(self, conn: Any, migrations: Iterable[Migration]) -> None:
		self.conn = conn
		self.migrations = list(migrations)

	async def _applied(self) -> dict[str, Any]:
		await self.conn.execute(_CREATE_TABLE)
		rows = await self.conn.fetch("SELECT version, name, checksum, applied_at FROM schema_migrations")
		return {row["version"]: row for row in rows}

	def _check_drift(self, applied: dict[str, Any]) -> None:
		for migration in self.migrations:
			row = applied.get(migration.version)
			if row is not None and row["checksum"] != migration.checksum:
				raise MigrationError(f"checksum mismatch for migration {migration.version}")

	async def upgrade(self, target: Optional[str] = None) -> list[str]:
		"""Apply pending versions up to `target` (inclusive); returns the versions applied."""
		applied = await self._applied()
		self._check_drift(applied)
		done: list[str] = []
		for migration in self.migrations:
			if target is not None and migration.version > target:
				break
			if migration.version in applied:
				continue
			async with self.conn.transaction():
				await self.conn.execute(migration.up_sql)
				await self.conn.execute(
					"INSERT INTO schema_migrations (version, name, checksum) VALUES ($1, $2, $3)",
					migration.version,
					migration.name,
					migration.checksum,
				)
			obs_metrics.record_migration("up")
			logger.info("migration.applied", extra={"version": migration.version, "migration": migration.name})
			done.append(migration.version)
		return done

	async def downgrade(self, target: str) -> list[str]:
		"""Revert applied versions newer than `target`, newest first."""
		applied = await self._applied()
		self._check_drift(applied)
		done: list[str] = []
		for migration in reversed(self.migrations):
			if migration.version <= target or migration.version not in applied:
				continue
			async with self.conn.transaction():
				await self.conn.execute(migration.down_sql)
				await self.conn.execute("DELETE FROM schema_migrations WHERE version=$1", migration.version)
			obs_metrics.record_migration("down")
			logger.info("migration.reverted", extra={"version": migration.version, "migration": migration.name})
			done.append(migration.version)
		return done

	async def status(self) -> list[MigrationState]:
		applied = await self._applied()
		states: list[MigrationState] = []
		for migration in self.migrations:
			row = applied.get(migration.version)
			states.append(
				MigrationState(
					version=migration.version,
					name=migration.name,
					applied=row is not None,
					applied_at=row["applied_at"] if row is not None else None,
					drift=row is not None and row["checksum"] != migration.checksum,
				)
			)
		return states


async def upgrade_database(directory: Path | str | None = None, target: Optional[str] = None) -> list[str]:
	"""Run pending migrations against the application pool."""
	migrations = discover(directory or settings.migrations_dir)
	pool = await get_pool()
	async with pool.acquire() as conn:
		return await MigrationRunner(conn, migrations).upgrade(target)
