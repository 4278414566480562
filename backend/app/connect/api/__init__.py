"""FastAPI routers for ASU Connect."""

from __future__ import annotations

from fastapi import APIRouter

from app.connect.api import (
	admin,
	announcements,
	clubs,
	events,
	flags,
	members,
	profiles,
	registrations,
)

router = APIRouter(prefix="/api/connect/v1")

router.include_router(profiles.router)
router.include_router(clubs.router)
router.include_router(members.router)
router.include_router(announcements.router)
router.include_router(events.router)
router.include_router(registrations.router)
router.include_router(flags.router)
router.include_router(admin.router)

__all__ = ["router"]
