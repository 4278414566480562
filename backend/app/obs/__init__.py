"""Observability bootstrap: JSON logging, request middleware and build info."""

from __future__ import annotations

from fastapi import FastAPI

from app.obs import logging as obs_logging
from app.obs import metrics, middleware
from app.settings import settings

_initialised = False


def init(app: FastAPI) -> None:
	"""Wire observability into ``app`` once; a no-op when ``OBS_ENABLED`` is off."""
	global _initialised
	if _initialised or not settings.obs_enabled:
		return
	logger = obs_logging.configure_logging()
	middleware.install(app)
	metrics.publish_build_info(
		service=settings.service_name,
		environment=settings.environment,
		commit=settings.git_commit,
	)
	logger.info(
		"obs.initialised",
		extra={"log_level": settings.obs_log_level, "metrics_public": settings.obs_metrics_public},
	)
	_initialised = True


__all__ = ["init"]
