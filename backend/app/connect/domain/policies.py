"""Authorization policies for ASU Connect tables.

Every (table, operation) pair has exactly one predicate taking the acting
principal and the target row and returning a Decision. Predicates resolve
ownership through the Lookup they are handed, and the Lookup only serves the
tables the predicate declared at registration. Declared tables must sit on a
strictly lower tier than the guarded table:

	principals, profiles < clubs, moderation_logs < club_members, events
	< event_registrations, event_flags, club_flags, club_announcements

so a predicate can never query its own table, directly or transitively.
The same rules are installed as row-level security in the migrations.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional, Protocol, Sequence, TypeVar
from uuid import UUID

from app.connect.domain.exceptions import AuthenticationError, AuthorizationError, PolicyRecursionError
from app.obs import metrics as obs_metrics
from app.settings import settings

logger = logging.getLogger(__name__)

TABLE_TIERS: dict[str, int] = {
	"principals": 0,
	"profiles": 0,
	"clubs": 1,
	"moderation_logs": 1,
	"club_members": 2,
	"events": 2,
	"event_registrations": 3,
	"event_flags": 3,
	"club_flags": 3,
	"club_announcements": 3,
}
OPERATIONS = ("select", "insert", "update", "delete", "moderate")

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Principal:
	"""The authenticated identity a request acts as."""

	id: UUID
	email: Optional[str] = None
	is_admin: bool = False


@dataclass(frozen=True, slots=True)
class Decision:
	allowed: bool
	reason: str

	def __bool__(self) -> bool:
		return self.allowed


def allow(reason: str) -> Decision:
	return Decision(True, reason)


def deny(reason: str) -> Decision:
	return Decision(False, reason)


class PolicySource(Protocol):
	"""Row reader the evaluator uses to resolve ancestors (clubs, events, memberships)."""

	async def policy_row(self, table: str, key: Any) -> Any | None: ...


class Lookup:
	"""Read access scoped to the tables a predicate declared."""

	def __init__(
		self,
		source: PolicySource,
		*,
		guarded: str,
		reads: frozenset[str],
		staged: Mapping[str, Mapping[Any, Any]] | None = None,
	) -> None:
		self._source = source
		self._guarded = guarded
		self._reads = reads
		self._staged = staged or {}

	async def row(self, table: str, key: Any) -> Any | None:
		if table not in self._reads:
			raise PolicyRecursionError(f"{self._guarded}_cannot_read_{table}")
		staged = self._staged.get(table) or {}
		if key in staged:
			return staged[key]
		return await self._source.policy_row(table, key)

	async def club(self, club_id: UUID) -> Any | None:
		return await self.row("clubs", club_id)

	async def event(self, event_id: UUID) -> Any | None:
		return await self.row("events", event_id)

	async def membership(self, club_id: UUID, user_id: UUID) -> Any | None:
		return await self.row("club_members", (club_id, user_id))


Predicate = Callable[[Optional[Principal], Any, Lookup], Awaitable[Decision]]


@dataclass(frozen=True, slots=True)
class Rule:
	table: str
	operation: str
	reads: frozenset[str]
	predicate: Predicate


class PolicySet:
	"""Registry and evaluator for per-row predicates."""

	def __init__(self, tiers: Mapping[str, int]) -> None:
		self._tiers = dict(tiers)
		self._rules: dict[tuple[str, str], Rule] = {}

	def rule(self, table: str, *operations: str, reads: Sequence[str] = ()) -> Callable[[Predicate], Predicate]:
		"""Register `predicate` for each operation on `table`."""
		declared = frozenset(reads)
		self._check_dependencies(table, declared)
		for operation in operations:
			if operation not in OPERATIONS:
				raise ValueError(f"unknown operation: {operation}")
			if (table, operation) in self._rules:
				raise ValueError(f"duplicate policy: {table}.{operation}")

		def decorator(predicate: Predicate) -> Predicate:
			for operation in operations:
				self._rules[(table, operation)] = Rule(table, operation, declared, predicate)
			return predicate

		return decorator

	def _check_dependencies(self, table: str, reads: Iterable[str]) -> None:
		if table not in self._tiers:
			raise ValueError(f"unknown table: {table}")
		for read in reads:
			if read not in self._tiers:
				raise ValueError(f"unknown table: {read}")
			if self._tiers[read] >= self._tiers[table]:
				raise PolicyRecursionError(f"{table}_cannot_read_{read}")

	def get_rule(self, table: str, operation: str) -> Rule | None:
		return self._rules.get((table, operation))

	def rules(self) -> list[Rule]:
		return list(self._rules.values())

	def describe(self) -> list[dict[str, Any]]:
		"""Registered rules ordered by tier, for operators auditing the set against the database policies."""
		ordered = sorted(self._rules.values(), key=lambda rule: (self._tiers[rule.table], rule.table, OPERATIONS.index(rule.operation)))
		return [
			{
				"table": rule.table,
				"tier": self._tiers[rule.table],
				"operation": rule.operation,
				"reads": sorted(rule.reads),
				"predicate": rule.predicate.__name__,
			}
			for rule in ordered
		]

	async def evaluate(
		self,
		principal: Optional[Principal],
		table: str,
		operation: str,
		target: Any,
		source: PolicySource,
		*,
		staged: Mapping[str, Mapping[Any, Any]] | None = None,
	) -> Decision:
		rule = self._rules.get((table, operation))
		if rule is None:
			decision = deny(f"no_policy_{table}_{operation}")
		elif principal is None and operation != "select":
			decision = deny("unauthenticated")
		else:
			lookup = Lookup(source, guarded=table, reads=rule.reads, staged=staged)
			decision = await rule.predicate(principal, target, lookup)
		obs_metrics.record_policy_decision(table, operation, decision.allowed)
		return decision

	async def authorize(
		self,
		principal: Optional[Principal],
		table: str,
		operation: str,
		target: Any,
		source: PolicySource,
		*,
		staged: Mapping[str, Mapping[Any, Any]] | None = None,
	) -> None:
		"""Raise unless the principal may perform `operation` on `target`."""
		if principal is None and operation != "select":
			raise AuthenticationError()
		decision = await self.evaluate(principal, table, operation, target, source, staged=staged)
		if not decision.allowed:
			logger.info(
				"policy.denied",
				extra={
					"table": table,
					"operation": operation,
					"reason": decision.reason,
					"principal_id": str(principal.id) if principal else None,
				},
			)
			raise AuthorizationError(decision.reason)

	async def visible(
		self,
		principal: Optional[Principal],
		table: str,
		rows: Iterable[T],
		source: PolicySource,
	) -> list[T]:
		"""Filter rows down to the ones the select predicate admits."""
		result: list[T] = []
		for row in rows:
			if await self.evaluate(principal, table, "select", row, source):
				result.append(row)
		return result


POLICIES = PolicySet(TABLE_TIERS)


def _owns(principal: Principal, row: Any | None) -> bool:
	return row is not None and row.created_by == principal.id


async def _public(principal: Optional[Principal], row: Any, lookup: Lookup) -> Decision:
	return allow("public")


# --- principals / profiles ---------------------------------------------------


@POLICIES.rule("principals", "insert")
@POLICIES.rule("profiles", "insert")
async def _self_registration(principal: Principal, row: Any, lookup: Lookup) -> Decision:
	if row.id == principal.id:
		return allow("self")
	return deny("self_only")


POLICIES.rule("principals", "select")(_public)
POLICIES.rule("profiles", "select")(_public)


@POLICIES.rule("profiles", "update")
async def _profile_update(principal: Principal, change: Any, lookup: Lookup) -> Decision:
	if principal.is_admin:
		return allow("platform_admin")
	if change.id != principal.id:
		return deny("self_only")
	if change.is_admin is not None:
		return deny("admin_flag_locked")
	return allow("self")


# --- clubs ---------------------------------------------------------------------


@POLICIES.rule("clubs", "select")
async def _club_select(principal: Optional[Principal], club: Any, lookup: Lookup) -> Decision:
	if club.approval_status == "approved":
		return allow("public")
	if principal is None:
		return deny("club_not_approved")
	if club.created_by == principal.id:
		return allow("club_owner")
	if principal.is_admin:
		return allow("platform_admin")
	return deny("club_not_approved")


@POLICIES.rule("clubs", "insert")
async def _club_insert(principal: Principal, club: Any, lookup: Lookup) -> Decision:
	if club.created_by != principal.id:
		return deny("self_only")
	if club.approval_status != "pending" and settings.club_approval_required and not principal.is_admin:
		return deny("approval_status_locked")
	return allow("club_owner")


@POLICIES.rule("clubs", "update", "delete")
async def _club_owner(principal: Principal, club: Any, lookup: Lookup) -> Decision:
	if _owns(principal, club):
		return allow("club_owner")
	return deny("owner_required")


@POLICIES.rule("clubs", "moderate")
@POLICIES.rule("events", "moderate")
@POLICIES.rule("moderation_logs", "select")
async def _platform_admin(principal: Principal, row: Any, lookup: Lookup) -> Decision:
	if principal.is_admin:
		return allow("platform_admin")
	return deny("admin_required")


@POLICIES.rule("moderation_logs", "insert")
async def _moderation_log_insert(principal: Principal, entry: Any, lookup: Lookup) -> Decision:
	if not principal.is_admin:
		return deny("admin_required")
	if entry.admin_id != principal.id:
		return deny("self_only")
	return allow("platform_admin")


# --- club_members (reads clubs, never club_members) ----------------------------


@POLICIES.rule("club_members", "select", reads=("clubs",))
async def _membership_select(principal: Optional[Principal], member: Any, lookup: Lookup) -> Decision:
	if member.status == "approved":
		return allow("public")
	if principal is None:
		return deny("membership_not_visible")
	if member.user_id == principal.id:
		return allow("own_row")
	if _owns(principal, await lookup.club(member.club_id)):
		return allow("club_owner")
	return deny("membership_not_visible")


@POLICIES.rule("club_members", "insert", reads=("clubs",))
async def _membership_insert(principal: Principal, member: Any, lookup: Lookup) -> Decision:
	if member.user_id == principal.id and member.role == "member" and member.status == "pending":
		return allow("self_join")
	if _owns(principal, await lookup.club(member.club_id)):
		return allow("club_owner")
	if member.user_id == principal.id:
		return deny("invalid_self_join")
	return deny("owner_required")


@POLICIES.rule("club_members", "update", reads=("clubs",))
async def _membership_update(principal: Principal, member: Any, lookup: Lookup) -> Decision:
	if _owns(principal, await lookup.club(member.club_id)):
		return allow("club_owner")
	return deny("owner_required")


@POLICIES.rule("club_members", "delete", reads=("clubs",))
async def _membership_delete(principal: Principal, member: Any, lookup: Lookup) -> Decision:
	if member.user_id == principal.id:
		return allow("self_removal")
	if _owns(principal, await lookup.club(member.club_id)):
		return allow("club_owner")
	return deny("owner_required")


# --- events (reads clubs) --------------------------------------------------------


POLICIES.rule("events", "select")(_public)


@POLICIES.rule("events", "insert", "update", "delete", reads=("clubs",))
async def _event_owner(principal: Principal, event: Any, lookup: Lookup) -> Decision:
	if event.created_by != principal.id:
		return deny("not_event_creator")
	if not _owns(principal, await lookup.club(event.club_id)):
		return deny("not_club_owner")
	return allow("club_owner")


# --- event_registrations (reads events) ----------------------------------------


POLICIES.rule("event_registrations", "select")(_public)


@POLICIES.rule("event_registrations", "insert")
async def _registration_insert(principal: Principal, registration: Any, lookup: Lookup) -> Decision:
	if registration.user_id == principal.id:
		return allow("self")
	return deny("self_only")


@POLICIES.rule("event_registrations", "delete", reads=("events",))
async def _registration_delete(principal: Principal, registration: Any, lookup: Lookup) -> Decision:
	if registration.user_id == principal.id:
		return allow("self")
	if _owns(principal, await lookup.event(registration.event_id)):
		return allow("event_owner")
	return deny("owner_required")


# --- flags (reads the flagged table) ---------------------------------------------


async def _flag_target_owned(principal: Principal, flag: Any, lookup: Lookup) -> bool:
	if flag.kind == "event":
		return _owns(principal, await lookup.event(flag.target_id))
	return _owns(principal, await lookup.club(flag.target_id))


async def _flag_select(principal: Optional[Principal], flag: Any, lookup: Lookup) -> Decision:
	if principal is None:
		return deny("flag_not_visible")
	if flag.user_id == principal.id:
		return allow("reporter")
	if principal.is_admin:
		return allow("platform_admin")
	if await _flag_target_owned(principal, flag, lookup):
		return allow("target_owner")
	return deny("flag_not_visible")


async def _flag_insert(principal: Principal, flag: Any, lookup: Lookup) -> Decision:
	if flag.user_id == principal.id:
		return allow("reporter")
	return deny("self_only")


async def _flag_update(principal: Principal, flag: Any, lookup: Lookup) -> Decision:
	if principal.is_admin:
		return allow("platform_admin")
	if await _flag_target_owned(principal, flag, lookup):
		return allow("target_owner")
	return deny("owner_required")


async def _flag_delete(principal: Principal, flag: Any, lookup: Lookup) -> Decision:
	if flag.user_id != principal.id:
		return deny("reporter_only")
	if flag.status != "pending":
		return deny("flag_not_pending")
	return allow("reporter")


for _table, _parent in (("event_flags", "events"), ("club_flags", "clubs")):
	POLICIES.rule(_table, "select", reads=(_parent,))(_flag_select)
	POLICIES.rule(_table, "insert")(_flag_insert)
	POLICIES.rule(_table, "update", reads=(_parent,))(_flag_update)
	POLICIES.rule(_table, "delete")(_flag_delete)


# --- club_announcements (reads clubs, club_members) ------------------------------


@POLICIES.rule("club_announcements", "select", reads=("clubs", "club_members"))
async def _announcement_select(principal: Optional[Principal], announcement: Any, lookup: Lookup) -> Decision:
	if principal is None:
		return deny("membership_required")
	if principal.is_admin:
		return allow("platform_admin")
	if _owns(principal, await lookup.club(announcement.club_id)):
		return allow("club_owner")
	member = await lookup.membership(announcement.club_id, principal.id)
	if member is not None and member.status == "approved":
		return allow("approved_member")
	return deny("membership_required")


@POLICIES.rule("club_announcements", "insert", "update", "delete", reads=("clubs",))
async def _announcement_write(principal: Principal, announcement: Any, lookup: Lookup) -> Decision:
	if announcement.created_by != principal.id:
		return deny("self_only")
	if not _owns(principal, await lookup.club(announcement.club_id)):
		return deny("owner_required")
	return allow("club_owner")


def flag_table(kind: str) -> str:
	return "event_flags" if kind == "event" else "club_flags"
