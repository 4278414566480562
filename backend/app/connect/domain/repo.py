"""Async repository for ASU Connect tables.

Every statement runs inside a transaction that binds the acting principal
(`app.current_user_id`), so the row-level security policies installed by the
migrations re-check the same rules the in-process policy set enforces.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Iterable, Optional
from uuid import UUID, uuid4

import asyncpg

from app.connect.domain import models
from app.connect.domain.exceptions import ConflictError, MissingRelationError
from app.infra import postgres

_FLAG_TABLES = {"event": ("event_flags", "event_id"), "club": ("club_flags", "club_id")}
_CLUB_SORTS = {
	"name": "name ASC",
	"newest": "created_at DESC",
	"oldest": "created_at ASC",
}


def _flag_select(kind: str) -> str:
	table, column = _FLAG_TABLES[kind]
	return (
		f"SELECT id, '{kind}' AS kind, {column} AS target_id, user_id, reason, details, status, "
		f"reviewed_by, reviewed_at, created_at, updated_at FROM {table}"
	)


def _affected(result: str) -> int:
	return int(result.split()[-1])


def _log_model(record: asyncpg.Record) -> models.ModerationLog:
	payload = dict(record)
	details = payload.get("details")
	if isinstance(details, str):
		payload["details"] = json.loads(details)
	return models.ModerationLog.model_validate(payload)


class ConnectRepository:
	"""Thin data-access layer around asyncpg."""

	def __init__(self, actor_id: Optional[UUID] = None) -> None:
		self._actor_id = actor_id

	def acting_as(self, actor_id: Optional[UUID]) -> "ConnectRepository":
		"""Return a repository whose sessions run as `actor_id`."""
		return type(self)(actor_id)

	def _session(self):
		return postgres.acting_session(self._actor_id)

	async def policy_row(self, table: str, key: Any) -> Any | None:
		"""Resolve the ancestor rows policy predicates read."""
		if table == "clubs":
			return await self.get_club(key)
		if table == "events":
			return await self.get_event(key)
		if table == "club_members":
			club_id, user_id = key
			return await self.get_membership(club_id, user_id)
		raise ValueError(f"no policy lookup for {table}")

	async def _write_log(self, conn: asyncpg.Connection, draft: models.ModerationLogDraft) -> models.ModerationLog:
		record = await conn.fetchrow(
			"""
			INSERT INTO moderation_logs (id, admin_id, action, entity_type, entity_id, details)
			VALUES ($1, $2, $3, $4, $5, $6::jsonb)
			RETURNING *
			""",
			uuid4(),
			str(draft.admin_id),
			draft.action,
			draft.entity_type,
			str(draft.entity_id),
			json.dumps(draft.details) if draft.details is not None else None,
		)
		return _log_model(record)

	# --- Principals and profiles -------------------------------------------

	async def ensure_principal(self, principal_id: UUID, email: Optional[str]) -> models.Profile:
		async with self._session() as conn:
			await conn.execute(
				"INSERT INTO principals (id, email) VALUES ($1, $2) ON CONFLICT (id) DO NOTHING",
				str(principal_id),
				email,
			)
			await conn.execute(
				"INSERT INTO profiles (id, email) VALUES ($1, $2) ON CONFLICT (id) DO NOTHING",
				str(principal_id),
				email,
			)
			record = await conn.fetchrow("SELECT * FROM profiles WHERE id=$1", str(principal_id))
		return models.Profile.model_validate(dict(record))

	async def get_profile(self, user_id: UUID) -> models.Profile | None:
		async with self._session() as conn:
			record = await conn.fetchrow("SELECT * FROM profiles WHERE id=$1", str(user_id))
		return models.Profile.model_validate(dict(record)) if record else None

	async def update_profile(
		self,
		user_id: UUID,
		changes: dict[str, Any],
		*,
		log: Optional[models.ModerationLogDraft] = None,
	) -> models.Profile | None:
		"""Apply the given column changes; keys with None values are written as NULL."""
		fields: list[str] = []
		values: list[object] = []
		for column in ("full_name", "avatar_url", "is_admin"):
			if column in changes:
				fields.append(f"{column}=${len(values) + 2}")
				values.append(changes[column])
		fields.append("updated_at=NOW()")
		query = f"UPDATE profiles SET {', '.join(fields)} WHERE id=$1 RETURNING *"
		async with self._session() as conn:
			record = await conn.fetchrow(query, str(user_id), *values)
			if record and log is not None:
				await self._write_log(conn, log)
		return models.Profile.model_validate(dict(record)) if record else None

	async def display_names(self, user_ids: Iterable[UUID]) -> dict[UUID, models.PersonRef]:
		"""Map ids to display attributes; ids without a profile get the placeholder name."""
		ids = list(dict.fromkeys(user_ids))
		if not ids:
			return {}
		try:
			async with self._session() as conn:
				rows = await conn.fetch(
					"SELECT id, full_name, email FROM profiles WHERE id = ANY($1::uuid[])",
					[str(value) for value in ids],
				)
		except asyncpg.UndefinedTableError as exc:  # type: ignore[attr-defined]
			raise MissingRelationError("profiles") from exc
		found = {
			row["id"]: models.PersonRef(
				user_id=row["id"],
				full_name=row["full_name"] or models.UNKNOWN_USER,
				email=row["email"],
			)
			for row in rows
		}
		return {value: found.get(value) or models.PersonRef(user_id=value) for value in ids}

	# --- Clubs ---------------------------------------------------------------

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
		async with self._session() as conn:
			club = await conn.fetchrow(
				"""
				INSERT INTO clubs (id, name, description, created_by, approval_status, approved_by, approved_at)
				VALUES ($1, $2, $3, $4, $5, $6, CASE WHEN $6::uuid IS NULL THEN NULL ELSE NOW() END)
				RETURNING *
				""",
				str(club_id),
				name,
				description,
				str(created_by),
				approval_status,
				str(approved_by) if approved_by else None,
			)
			member = await conn.fetchrow(
				"""
				INSERT INTO club_members (id, club_id, user_id, role, status)
				VALUES ($1, $2, $3, 'admin', 'approved')
				RETURNING *
				""",
				uuid4(),
				str(club_id),
				str(created_by),
			)
		return models.Club.model_validate(dict(club)), models.ClubMember.model_validate(dict(member))

	async def get_club(self, club_id: UUID) -> models.Club | None:
		async with self._session() as conn:
			record = await conn.fetchrow("SELECT * FROM clubs WHERE id=$1", str(club_id))
		return models.Club.model_validate(dict(record)) if record else None

	async def list_clubs(
		self,
		*,
		approval_status: Optional[str] = None,
		created_by: Optional[UUID] = None,
		sort_by: str = "name",
		limit: int = 50,
		offset: int = 0,
	) -> list[models.Club]:
		clauses: list[str] = []
		params: list[object] = []
		if approval_status is not None:
			params.append(approval_status)
			clauses.append(f"approval_status=${len(params)}")
		if created_by is not None:
			params.append(str(created_by))
			clauses.append(f"created_by=${len(params)}")
		where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
		params.extend([limit, offset])
		query = (
			f"SELECT * FROM clubs {where} ORDER BY {_CLUB_SORTS.get(sort_by, _CLUB_SORTS['name'])} "
			f"LIMIT ${len(params) - 1} OFFSET ${len(params)}"
		)
		async with self._session() as conn:
			rows = await conn.fetch(query, *params)
		return [models.Club.model_validate(dict(row)) for row in rows]

	async def count_approved_members(self, club_ids: Iterable[UUID]) -> dict[UUID, int]:
		ids = [str(value) for value in club_ids]
		if not ids:
			return {}
		async with self._session() as conn:
			rows = await conn.fetch(
				"""
				SELECT club_id, COUNT(*) AS total FROM club_members
				WHERE club_id = ANY($1::uuid[]) AND status='approved'
				GROUP BY club_id
				""",
				ids,
			)
		return {row["club_id"]: int(row["total"]) for row in rows}

	async def update_club(
		self,
		club_id: UUID,
		*,
		name: Optional[str] = None,
		description: Optional[str] = None,
	) -> models.Club | None:
		fields: list[str] = []
		values: list[object] = []
		if name is not None:
			fields.append("name=$%d" % (len(values) + 2))
			values.append(name)
		if description is not None:
			fields.append("description=$%d" % (len(values) + 2))
			values.append(description)
		fields.append("updated_at=NOW()")
		query = f"UPDATE clubs SET {', '.join(fields)} WHERE id=$1 RETURNING *"
		async with self._session() as conn:
			record = await conn.fetchrow(query, str(club_id), *values)
		return models.Club.model_validate(dict(record)) if record else None

	async def set_club_approval(
		self,
		club_id: UUID,
		*,
		status: str,
		approved_by: UUID,
		rejection_reason: Optional[str],
		log: models.ModerationLogDraft,
	) -> models.Club | None:
		async with self._session() as conn:
			record = await conn.fetchrow(
				"""
				UPDATE clubs
				SET approval_status=$2, approved_by=$3, approved_at=NOW(), rejection_reason=$4, updated_at=NOW()
				WHERE id=$1
				RETURNING *
				""",
				str(club_id),
				status,
				str(approved_by),
				rejection_reason,
			)
			if record:
				await self._write_log(conn, log)
		return models.Club.model_validate(dict(record)) if record else None

	async def delete_club(self, club_id: UUID, *, log: Optional[models.ModerationLogDraft] = None) -> bool:
		async with self._session() as conn:
			result = await conn.execute("DELETE FROM clubs WHERE id=$1", str(club_id))
			deleted = _affected(result) > 0
			if deleted and log is not None:
				await self._write_log(conn, log)
		return deleted

	async def club_status_counts(self) -> dict[str, int]:
		async with self._session() as conn:
			rows = await conn.fetch("SELECT approval_status, COUNT(*) AS total FROM clubs GROUP BY approval_status")
		return {row["approval_status"]: int(row["total"]) for row in rows}

	# --- Memberships -----------------------------------------------------------

	async def get_membership(self, club_id: UUID, user_id: UUID) -> models.ClubMember | None:
		async with self._session() as conn:
			record = await conn.fetchrow(
				"SELECT * FROM club_members WHERE club_id=$1 AND user_id=$2",
				str(club_id),
				str(user_id),
			)
		return models.ClubMember.model_validate(dict(record)) if record else None

	async def insert_membership(
		self,
		*,
		club_id: UUID,
		user_id: UUID,
		role: str,
		status: str,
	) -> models.ClubMember | None:
		"""Insert a membership row; None when one already exists for the pair."""
		async with self._session() as conn:
			record = await conn.fetchrow(
				"""
				INSERT INTO club_members (id, club_id, user_id, role, status)
				VALUES ($1, $2, $3, $4, $5)
				ON CONFLICT (club_id, user_id) DO NOTHING
				RETURNING *
				""",
				uuid4(),
				str(club_id),
				str(user_id),
				role,
				status,
			)
		return models.ClubMember.model_validate(dict(record)) if record else None

	async def list_memberships(self, club_id: UUID, *, status: Optional[str] = None) -> list[models.ClubMember]:
		async with self._session() as conn:
			if status is None:
				rows = await conn.fetch(
					"SELECT * FROM club_members WHERE club_id=$1 ORDER BY joined_at ASC",
					str(club_id),
				)
			else:
				rows = await conn.fetch(
					"SELECT * FROM club_members WHERE club_id=$1 AND status=$2 ORDER BY joined_at ASC",
					str(club_id),
					status,
				)
		return [models.ClubMember.model_validate(dict(row)) for row in rows]

	async def set_membership_status(
		self,
		club_id: UUID,
		user_id: UUID,
		*,
		expected: str,
		status: str,
	) -> models.ClubMember | None:
		"""Compare-and-set the status; None when the row moved on meanwhile."""
		async with self._session() as conn:
			record = await conn.fetchrow(
				"""
				UPDATE club_members SET status=$4
				WHERE club_id=$1 AND user_id=$2 AND status=$3
				RETURNING *
				""",
				str(club_id),
				str(user_id),
				expected,
				status,
			)
		return models.ClubMember.model_validate(dict(record)) if record else None

	async def delete_membership(self, club_id: UUID, user_id: UUID) -> bool:
		async with self._session() as conn:
			result = await conn.execute(
				"DELETE FROM club_members WHERE club_id=$1 AND user_id=$2",
				str(club_id),
				str(user_id),
			)
		return _affected(result) > 0

	# --- Events ------------------------------------------------------------------

	async def create_event(self, *, club_id: UUID, created_by: UUID, fields: dict[str, Any]) -> models.Event:
		async with self._session() as conn:
			record = await conn.fetchrow(
				"""
				INSERT INTO events (id, club_id, created_by, title, description, event_date, location,
					category, is_free, price)
				VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
				RETURNING *
				""",
				uuid4(),
				str(club_id),
				str(created_by),
				fields["title"],
				fields.get("description"),
				fields["event_date"],
				fields.get("location"),
				fields.get("category"),
				fields.get("is_free", True),
				fields.get("price"),
			)
		return models.Event.model_validate(dict(record))

	async def get_event(self, event_id: UUID) -> models.Event | None:
		async with self._session() as conn:
			record = await conn.fetchrow("SELECT * FROM events WHERE id=$1", str(event_id))
		return models.Event.model_validate(dict(record)) if record else None

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
		clauses: list[str] = []
		params: list[object] = []
		if club_id is not None:
			params.append(str(club_id))
			clauses.append(f"club_id=${len(params)}")
		if category is not None:
			params.append(category)
			clauses.append(f"category=${len(params)}")
		if is_free is not None:
			params.append(is_free)
			clauses.append(f"is_free=${len(params)}")
		if starts_after is not None:
			params.append(starts_after)
			clauses.append(f"event_date>=${len(params)}")
		where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
		params.extend([limit, offset])
		query = (
			f"SELECT * FROM events {where} ORDER BY event_date ASC "
			f"LIMIT ${len(params) - 1} OFFSET ${len(params)}"
		)
		async with self._session() as conn:
			rows = await conn.fetch(query, *params)
		return [models.Event.model_validate(dict(row)) for row in rows]

	async def update_event(self, event_id: UUID, changes: dict[str, Any]) -> models.Event | None:
		"""Apply the given column changes; keys with None values are written as NULL."""
		fields: list[str] = []
		values: list[object] = []
		for column in ("title", "description", "event_date", "location", "category", "is_free", "price"):
			if column in changes:
				fields.append(f"{column}=${len(values) + 2}")
				values.append(changes[column])
		fields.append("updated_at=NOW()")
		query = f"UPDATE events SET {', '.join(fields)} WHERE id=$1 RETURNING *"
		async with self._session() as conn:
			record = await conn.fetchrow(query, str(event_id), *values)
		return models.Event.model_validate(dict(record)) if record else None

	async def delete_event(self, event_id: UUID, *, log: Optional[models.ModerationLogDraft] = None) -> bool:
		async with self._session() as conn:
			result = await conn.execute("DELETE FROM events WHERE id=$1", str(event_id))
			deleted = _affected(result) > 0
			if deleted and log is not None:
				await self._write_log(conn, log)
		return deleted

	# --- Registrations -----------------------------------------------------------

	async def insert_registration(self, event_id: UUID, user_id: UUID) -> models.EventRegistration:
		async with self._session() as conn:
			try:
				record = await conn.fetchrow(
					"""
					INSERT INTO event_registrations (id, event_id, user_id)
					VALUES ($1, $2, $3)
					RETURNING *
					""",
					uuid4(),
					str(event_id),
					str(user_id),
				)
			except asyncpg.UniqueViolationError as exc:  # type: ignore[attr-defined]
				raise ConflictError("already_registered") from exc
		return models.EventRegistration.model_validate(dict(record))

	async def get_registration(self, event_id: UUID, user_id: UUID) -> models.EventRegistration | None:
		async with self._session() as conn:
			record = await conn.fetchrow(
				"SELECT * FROM event_registrations WHERE event_id=$1 AND user_id=$2",
				str(event_id),
				str(user_id),
			)
		return models.EventRegistration.model_validate(dict(record)) if record else None

	async def list_registrations(self, event_id: UUID) -> list[models.EventRegistration]:
		async with self._session() as conn:
			rows = await conn.fetch(
				"SELECT * FROM event_registrations WHERE event_id=$1 ORDER BY registered_at ASC",
				str(event_id),
			)
		return [models.EventRegistration.model_validate(dict(row)) for row in rows]

	async def count_registrations(self, event_ids: Iterable[UUID]) -> dict[UUID, int]:
		ids = [str(value) for value in event_ids]
		if not ids:
			return {}
		async with self._session() as conn:
			rows = await conn.fetch(
				"""
				SELECT event_id, COUNT(*) AS total FROM event_registrations
				WHERE event_id = ANY($1::uuid[])
				GROUP BY event_id
				""",
				ids,
			)
		return {row["event_id"]: int(row["total"]) for row in rows}

	async def delete_registration(self, event_id: UUID, user_id: UUID) -> bool:
		async with self._session() as conn:
			result = await conn.execute(
				"DELETE FROM event_registrations WHERE event_id=$1 AND user_id=$2",
				str(event_id),
				str(user_id),
			)
		return _affected(result) > 0

	# --- Flags -------------------------------------------------------------------

	async def insert_flag(
		self,
		*,
		kind: str,
		target_id: UUID,
		user_id: UUID,
		reason: str,
		details: Optional[str],
	) -> models.Flag:
		table, column = _FLAG_TABLES[kind]
		async with self._session() as conn:
			try:
				record = await conn.fetchrow(
					f"""
					INSERT INTO {table} (id, {column}, user_id, reason, details)
					VALUES ($1, $2, $3, $4, $5)
					RETURNING id
					""",
					uuid4(),
					str(target_id),
					str(user_id),
					reason,
					details,
				)
			except asyncpg.UniqueViolationError as exc:  # type: ignore[attr-defined]
				raise ConflictError("already_flagged") from exc
			row = await conn.fetchrow(f"{_flag_select(kind)} WHERE id=$1", record["id"])
		return models.Flag.model_validate(dict(row))

	async def get_flag(self, kind: str, flag_id: UUID) -> models.Flag | None:
		async with self._session() as conn:
			record = await conn.fetchrow(f"{_flag_select(kind)} WHERE id=$1", str(flag_id))
		return models.Flag.model_validate(dict(record)) if record else None

	async def get_reporter_flag(self, kind: str, target_id: UUID, user_id: UUID) -> models.Flag | None:
		_, column = _FLAG_TABLES[kind]
		async with self._session() as conn:
			record = await conn.fetchrow(
				f"{_flag_select(kind)} WHERE {column}=$1 AND user_id=$2",
				str(target_id),
				str(user_id),
			)
		return models.Flag.model_validate(dict(record)) if record else None

	async def list_flags(
		self,
		kind: Optional[str] = None,
		*,
		target_id: Optional[UUID] = None,
		status: Optional[str] = None,
	) -> list[models.Flag]:
		kinds = [kind] if kind else list(_FLAG_TABLES)
		flags: list[models.Flag] = []
		async with self._session() as conn:
			for current in kinds:
				_, column = _FLAG_TABLES[current]
				clauses: list[str] = []
				params: list[object] = []
				if target_id is not None:
					params.append(str(target_id))
					clauses.append(f"{column}=${len(params)}")
				if status is not None:
					params.append(status)
					clauses.append(f"status=${len(params)}")
				where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
				rows = await conn.fetch(f"{_flag_select(current)}{where}", *params)
				flags.extend(models.Flag.model_validate(dict(row)) for row in rows)
		flags.sort(key=lambda flag: flag.created_at, reverse=True)
		return flags

	async def set_flag_status(
		self,
		kind: str,
		flag_id: UUID,
		*,
		status: str,
		reviewed_by: UUID,
		log: Optional[models.ModerationLogDraft] = None,
	) -> models.Flag | None:
		table, _ = _FLAG_TABLES[kind]
		async with self._session() as conn:
			result = await conn.execute(
				f"""
				UPDATE {table}
				SET status=$2, reviewed_by=$3, reviewed_at=NOW(), updated_at=NOW()
				WHERE id=$1
				""",
				str(flag_id),
				status,
				str(reviewed_by),
			)
			if _affected(result) == 0:
				return None
			if log is not None:
				await self._write_log(conn, log)
			record = await conn.fetchrow(f"{_flag_select(kind)} WHERE id=$1", str(flag_id))
		return models.Flag.model_validate(dict(record))

	async def delete_flag(self, kind: str, flag_id: UUID) -> bool:
		table, _ = _FLAG_TABLES[kind]
		async with self._session() as conn:
			result = await conn.execute(f"DELETE FROM {table} WHERE id=$1", str(flag_id))
		return _affected(result) > 0

	async def flag_status_counts(self) -> dict[str, dict[str, int]]:
		counts: dict[str, dict[str, int]] = {}
		async with self._session() as conn:
			for kind, (table, _) in _FLAG_TABLES.items():
				rows = await conn.fetch(f"SELECT status, COUNT(*) AS total FROM {table} GROUP BY status")
				counts[kind] = {row["status"]: int(row["total"]) for row in rows}
		return counts

	# --- Announcements -------------------------------------------------------------

	async def create_announcement(
		self,
		*,
		club_id: UUID,
		created_by: UUID,
		title: str,
		content: str,
	) -> models.ClubAnnouncement:
		async with self._session() as conn:
			record = await conn.fetchrow(
				"""
				INSERT INTO club_announcements (id, club_id, created_by, title, content)
				VALUES ($1, $2, $3, $4, $5)
				RETURNING *
				""",
				uuid4(),
				str(club_id),
				str(created_by),
				title,
				content,
			)
		return models.ClubAnnouncement.model_validate(dict(record))

	async def get_announcement(self, announcement_id: UUID) -> models.ClubAnnouncement | None:
		async with self._session() as conn:
			record = await conn.fetchrow("SELECT * FROM club_announcements WHERE id=$1", str(announcement_id))
		return models.ClubAnnouncement.model_validate(dict(record)) if record else None

	async def list_announcements(self, club_id: UUID) -> list[models.ClubAnnouncement]:
		async with self._session() as conn:
			rows = await conn.fetch(
				"SELECT * FROM club_announcements WHERE club_id=$1 ORDER BY created_at DESC",
				str(club_id),
			)
		return [models.ClubAnnouncement.model_validate(dict(row)) for row in rows]

	async def update_announcement(
		self,
		announcement_id: UUID,
		*,
		title: Optional[str] = None,
		content: Optional[str] = None,
	) -> models.ClubAnnouncement | None:
		async with self._session() as conn:
			record = await conn.fetchrow(
				"""
				UPDATE club_announcements
				SET title=COALESCE($2, title), content=COALESCE($3, content), updated_at=NOW()
				WHERE id=$1
				RETURNING *
				""",
				str(announcement_id),
				title,
				content,
			)
		return models.ClubAnnouncement.model_validate(dict(record)) if record else None

	async def delete_announcement(self, announcement_id: UUID) -> bool:
		async with self._session() as conn:
			result = await conn.execute("DELETE FROM club_announcements WHERE id=$1", str(announcement_id))
		return _affected(result) > 0

	# --- Moderation log (append-only) ----------------------------------------------

	async def insert_moderation_log(self, draft: models.ModerationLogDraft) -> models.ModerationLog:
		async with self._session() as conn:
			return await self._write_log(conn, draft)

	async def list_moderation_logs(
		self,
		*,
		action: Optional[str] = None,
		entity_type: Optional[str] = None,
		limit: int = 50,
		offset: int = 0,
	) -> list[models.ModerationLog]:
		clauses: list[str] = []
		params: list[object] = []
		if action is not None:
			params.append(action)
			clauses.append(f"action=${len(params)}")
		if entity_type is not None:
			params.append(entity_type)
			clauses.append(f"entity_type=${len(params)}")
		where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
		params.extend([limit, offset])
		query = (
			f"SELECT * FROM moderation_logs {where} ORDER BY created_at DESC "
			f"LIMIT ${len(params) - 1} OFFSET ${len(params)}"
		)
		async with self._session() as conn:
			rows = await conn.fetch(query, *params)
		return [_log_model(row) for row in rows]
