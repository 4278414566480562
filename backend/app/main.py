"""FastAPI application entrypoint for the ASU Connect API."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api import ops
from app.api.errors import install_error_handlers
from app.api.middleware_request_id import RequestIdMiddleware
from app.connect import router as connect_router
from app.infra import migrations, postgres
from app.obs import init as obs_init
from app.settings import settings

logger = logging.getLogger(__name__)

_DEV_ORIGINS = (
	"http://localhost:3000",
	"http://127.0.0.1:3000",
	"http://localhost:5173",
	"http://127.0.0.1:5173",
)


def _cors_origins() -> list[str]:
	"""Explicit origin list; credentials are allowed, so a wildcard is never passed through."""
	configured = [origin for origin in settings.cors_allow_origins if origin != "*"]
	if configured:
		return configured
	if settings.is_dev():
		return list(_DEV_ORIGINS)
	if "*" in settings.cors_allow_origins:
		logger.warning("cors.wildcard_ignored")
	return []


@asynccontextmanager
async def lifespan(app: FastAPI):
	await postgres.init_pool()
	if settings.migrations_auto_apply:
		applied = await migrations.upgrade_database()
		logger.info("migrations.auto_applied", extra={"versions": applied})
	try:
		yield
	finally:
		await postgres.close_pool()


app = FastAPI(title="ASU Connect", version="0.1.0", lifespan=lifespan)
install_error_handlers(app)

app.add_middleware(
	CORSMiddleware,
	allow_origins=_cors_origins(),
	allow_credentials=True,
	allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
	allow_headers=["Authorization", "Content-Type", "X-Request-Id", "X-User-Id", "X-User-Email"],
	expose_headers=["X-Request-Id"],
)

obs_init(app)

# added last so it wraps everything: the id exists before logging and error handlers run
app.add_middleware(RequestIdMiddleware)

app.include_router(ops.router)
app.include_router(connect_router)
