"""Liveness and readiness probes.

Readiness covers three things: Postgres answers, the schema is at least at
``HEALTH_MIN_MIGRATION``, and every Connect table still has forced row-level
security. A table that lost its policies would silently widen access, so it
fails readiness like an unreachable database does.
"""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any, Dict, Tuple

from app.connect.domain.policies import TABLE_TIERS
from app.infra import postgres
from app.obs import metrics
from app.settings import settings

LOGGER = logging.getLogger(__name__)

_ROW_SECURITY_QUERY = """
SELECT c.relname, c.relrowsecurity AND c.relforcerowsecurity AS protected
FROM pg_class c
JOIN pg_namespace n ON n.oid = c.relnamespace
WHERE n.nspname = current_schema() AND c.relname = ANY($1::text[])
"""


async def _postgres_status(timeout: float = 0.3) -> Tuple[Dict[str, Any], Any]:
	try:
		pool = await postgres.get_pool()
	except Exception as exc:  # pragma: no cover - connection bootstrap failure
		metrics.mark_postgres(False)
		LOGGER.warning("health.postgres_unavailable", exc_info=True)
		return ({"ok": False, "error": str(exc)}, None)

	start = perf_counter()
	try:
		async with pool.acquire() as conn:
			await asyncio.wait_for(conn.execute("SELECT 1"), timeout=timeout)
	except Exception as exc:  # pragma: no cover - depends on runtime
		metrics.mark_postgres(False)
		LOGGER.warning("health.postgres_probe_failed", exc_info=True)
		return ({"ok": False, "error": str(exc)}, pool)
	latency = perf_counter() - start
	metrics.mark_postgres(True, latency_seconds=latency)
	return ({"ok": True, "latency_ms": round(latency * 1000, 2)}, pool)


async def _migration_status(pool, min_version: str) -> Dict[str, Any]:
	if pool is None:
		return {"ok": False, "error": "pool_unavailable"}
	try:
		async with pool.acquire() as conn:
			version = await conn.fetchval(
				"SELECT version FROM schema_migrations ORDER BY version DESC LIMIT 1"
			)
	except Exception as exc:  # pragma: no cover - table created by the first upgrade
		return {"ok": False, "error": str(exc)}
	if version is None:
		return {"ok": False, "error": "no_migrations"}
	current = str(version)
	return {"ok": current >= min_version, "version": current, "required": min_version}


async def _row_security_status(pool) -> Dict[str, Any]:
	if pool is None:
		return {"ok": False, "error": "pool_unavailable"}
	tables = sorted(TABLE_TIERS)
	try:
		async with pool.acquire() as conn:
			rows = await conn.fetch(_ROW_SECURITY_QUERY, tables)
	except Exception as exc:  # pragma: no cover - depends on runtime
		return {"ok": False, "error": str(exc)}
	protected = {row["relname"] for row in rows if row["protected"]}
	unprotected = [table for table in tables if table not in protected]
	metrics.mark_row_security(len(unprotected))
	if unprotected:
		LOGGER.warning("health.row_security_missing", extra={"tables": unprotected})
	return {"ok": not unprotected, "tables": len(tables), "unprotected": unprotected}


async def liveness() -> Dict[str, Any]:
	return {"status": "ok", "service": settings.service_name}


async def readiness() -> Tuple[int, Dict[str, Any]]:
	postgres_state, pool = await _postgres_status()
	if not postgres_state.get("ok"):
		pool = None
	checks = {
		"postgres": postgres_state,
		"migrations": await _migration_status(pool, settings.health_min_migration),
		"row_security": await _row_security_status(pool),
	}
	ok = all(check.get("ok") for check in checks.values())
	return (200 if ok else 503, {"status": "ok" if ok else "degraded", "checks": checks})
