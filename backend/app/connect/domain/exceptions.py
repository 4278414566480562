"""Error taxonomy for ASU Connect services."""

from __future__ import annotations

from fastapi import status


class ConnectError(Exception):
	"""Base class for domain errors surfaced to API callers."""

	status_code: int = status.HTTP_400_BAD_REQUEST
	detail: str = "connect_error"

	def __init__(self, detail: str | None = None) -> None:
		super().__init__(detail or self.detail)
		if detail:
			self.detail = detail


class AuthenticationError(ConnectError):
	"""No valid principal for an operation that needs one."""

	status_code = status.HTTP_401_UNAUTHORIZED
	detail = "unauthenticated"


class AuthorizationError(ConnectError):
	"""The principal lacks the ownership or role relation the policy requires."""

	status_code = status.HTTP_403_FORBIDDEN
	detail = "forbidden"


class ValidationError(ConnectError):
	"""Field constraints the request schema could not express."""

	status_code = status.HTTP_400_BAD_REQUEST
	detail = "validation_error"


class NotFoundError(ConnectError):
	"""Thrown when a resource is not visible or missing."""

	status_code = status.HTTP_404_NOT_FOUND
	detail = "not_found"


class ConflictError(ConnectError):
	"""Uniqueness violations and stale state transitions."""

	status_code = status.HTTP_409_CONFLICT
	detail = "conflict"


class PolicyRecursionError(ConnectError):
	"""A policy predicate would read the table it guards, or a table above it."""

	status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
	detail = "policy_recursion"


class MissingRelationError(Exception):
	"""An optional enrichment relation (e.g. profiles) does not exist."""

	def __init__(self, relation: str) -> None:
		super().__init__(f"missing relation: {relation}")
		self.relation = relation
