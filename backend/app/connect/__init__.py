"""ASU Connect: clubs, events, memberships and moderation."""

from app.connect.api import router

__all__ = ["router"]
