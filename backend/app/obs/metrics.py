"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, Info

REQUEST_COUNTER = Counter(
	"connect_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"connect_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

POLICY_DECISIONS = Counter(
	"connect_policy_decisions_total",
	"Authorization policy decisions",
	["table", "operation", "outcome"],
)

MEMBERSHIP_TRANSITIONS = Counter(
	"connect_membership_transitions_total",
	"Club membership state changes",
	["transition"],
)

FLAGS_FILED = Counter(
	"connect_flags_filed_total",
	"Flags filed against events and clubs",
	["kind"],
)

MODERATION_ACTIONS = Counter(
	"connect_moderation_actions_total",
	"Logged moderation actions",
	["action"],
)

POSTGRES_UP = Gauge(
	"connect_postgres_up",
	"Postgres reachability from the last readiness probe",
)

POSTGRES_LATENCY = Histogram(
	"connect_postgres_probe_seconds",
	"Postgres readiness probe latency in seconds",
	buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5),
)

MIGRATIONS_APPLIED = Counter(
	"connect_migrations_applied_total",
	"Schema migrations applied or reverted",
	["direction"],
)

ROW_SECURITY_UNPROTECTED = Gauge(
	"connect_row_security_unprotected_tables",
	"Connect tables found without forced row-level security by the last readiness probe",
)

BUILD_INFO = Info("connect_build", "Service build and deployment metadata")


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def record_policy_decision(table: str, operation: str, allowed: bool) -> None:
	POLICY_DECISIONS.labels(table=table, operation=operation, outcome="allow" if allowed else "deny").inc()


def record_membership_transition(transition: str) -> None:
	MEMBERSHIP_TRANSITIONS.labels(transition=transition).inc()


def record_flag_filed(kind: str) -> None:
	FLAGS_FILED.labels(kind=kind).inc()


def record_moderation_action(action: str) -> None:
	MODERATION_ACTIONS.labels(action=action).inc()


def record_migration(direction: str) -> None:
	MIGRATIONS_APPLIED.labels(direction=direction).inc()


def mark_postgres(ok: bool, *, latency_seconds: float | None = None) -> None:
	POSTGRES_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		POSTGRES_LATENCY.observe(latency_seconds)


def mark_row_security(unprotected_tables: int) -> None:
	ROW_SECURITY_UNPROTECTED.set(unprotected_tables)


def publish_build_info(*, service: str, environment: str, commit: str) -> None:
	BUILD_INFO.info({"service": service, "environment": environment, "commit": commit})
