"""ASGI middleware for metrics and the structured access log."""

from __future__ import annotations

import logging
import time
from typing import Optional
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from app.obs import logging as obs_logging
from app.obs import metrics
from app.settings import settings

# Paths polled by orchestrators; counted in metrics but kept out of the access log.
_QUIET_PATHS = frozenset({"/health/live", "/health/ready", "/metrics"})


def _route_template(request: Request) -> str:
	route = request.scope.get("route")
	if route and getattr(route, "path", None):
		return route.path  # type: ignore[return-value]
	return "unmatched"


def _log_level(status_code: int) -> int:
	if status_code >= 500:
		return logging.ERROR
	if status_code in (401, 403):
		return logging.WARNING
	return logging.INFO


class ObservabilityMiddleware(BaseHTTPMiddleware):
	"""Time each request, count it by route template and write one access log line."""

	def __init__(self, app, *, enabled: bool = True) -> None:
		super().__init__(app)
		self._enabled = enabled
		self._logger = obs_logging.get_logger("connect.http")

	async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
		if not settings.obs_enabled or not self._enabled:
			return await call_next(request)

		request_id = getattr(request.state, "request_id", None) or str(uuid4())
		request.state.request_id = request_id
		client_ip = request.client.host if request.client else None
		tokens = obs_logging.bind_context(request_id=request_id, client_ip=client_ip)
		start = time.perf_counter()
		status_code = 500
		response: Optional[Response] = None
		try:
			response = await call_next(request)
			status_code = response.status_code
		except Exception:
			self._logger.exception("http_request_error", extra={"method": request.method, "path": request.url.path})
			raise
		finally:
			elapsed = time.perf_counter() - start
			# the route is only resolved once the router has run
			route = _route_template(request)
			metrics.observe_request(route, request.method, status_code, elapsed)
			if request.url.path not in _QUIET_PATHS or status_code >= 500:
				extra: dict[str, object] = {
					"status": status_code,
					"method": request.method,
					"route": route,
					"latency_ms": round(elapsed * 1000, 3),
				}
				principal_id = getattr(request.state, "principal_id", None)
				if principal_id:
					extra["user_id"] = principal_id
				self._logger.log(_log_level(status_code), "http_request", extra=extra)
			obs_logging.reset_context(tokens)

		response.headers.setdefault("X-Request-Id", request_id)
		return response


def install(app, *, enabled: bool = True) -> None:
	app.add_middleware(ObservabilityMiddleware, enabled=enabled)
