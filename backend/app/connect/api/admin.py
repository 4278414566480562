"""Platform moderation routes (admins only)."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response

from app.connect.api._deps import get_principal
from app.connect.api._errors import to_http_error
from app.connect.domain.exceptions import ConnectError
from app.connect.domain.moderation_service import ModerationService
from app.connect.domain.policies import Principal
from app.connect.schemas import dto

router = APIRouter(prefix="/admin", tags=["connect:admin"])
_service = ModerationService()


@router.get("/clubs/pending", response_model=dto.ClubListResponse)
async def list_pending_clubs_endpoint(
	limit: int = Query(default=50, ge=1, le=200),
	offset: int = Query(default=0, ge=0),
	principal: Principal = Depends(get_principal),
) -> dto.ClubListResponse:
	try:
		return await _service.list_clubs(principal, "pending", limit=limit, offset=offset)
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.get("/clubs/rejected", response_model=dto.ClubListResponse)
async def list_rejected_clubs_endpoint(
	limit: int = Query(default=50, ge=1, le=200),
	offset: int = Query(default=0, ge=0),
	principal: Principal = Depends(get_principal),
) -> dto.ClubListResponse:
	try:
		return await _service.list_clubs(principal, "rejected", limit=limit, offset=offset)
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.post("/clubs/{club_id}/approve", response_model=dto.ClubResponse)
async def approve_club_endpoint(club_id: UUID, principal: Principal = Depends(get_principal)) -> dto.ClubResponse:
	try:
		return await _service.approve_club(principal, club_id)
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.post("/clubs/{club_id}/reject", response_model=dto.ClubResponse)
async def reject_club_endpoint(
	club_id: UUID,
	payload: dto.ClubRejectRequest,
	principal: Principal = Depends(get_principal),
) -> dto.ClubResponse:
	try:
		return await _service.reject_club(principal, club_id, payload.reason)
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.get("/flags", response_model=dto.FlagListResponse)
async def list_flags_endpoint(
	kind: Optional[str] = Query(default=None, pattern="^(event|club)$"),
	status: Optional[str] = None,
	principal: Principal = Depends(get_principal),
) -> dto.FlagListResponse:
	try:
		return await _service.list_flags(principal, kind=kind, status=status)
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.patch("/flags/{kind}/{flag_id}", response_model=dto.FlagResponse)
async def set_flag_status_endpoint(
	kind: str,
	flag_id: UUID,
	payload: dto.FlagStatusRequest,
	principal: Principal = Depends(get_principal),
) -> dto.FlagResponse:
	try:
		return await _service.set_flag_status(principal, kind, flag_id, payload.status)
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.delete("/flags/{kind}/{flag_id}", status_code=204, response_class=Response, response_model=None)
async def resolve_flag_endpoint(
	kind: str,
	flag_id: UUID,
	delete_entity: bool = False,
	principal: Principal = Depends(get_principal),
) -> None:
	try:
		await _service.resolve_flag(principal, kind, flag_id, delete_entity=delete_entity)
		return None
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.patch("/profiles/{user_id}", response_model=dto.ProfileResponse)
async def set_admin_endpoint(
	user_id: UUID,
	payload: dto.AdminRoleRequest,
	principal: Principal = Depends(get_principal),
) -> dto.ProfileResponse:
	try:
		return await _service.set_admin(principal, user_id, payload.is_admin)
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.get("/logs", response_model=dto.ModerationLogListResponse)
async def list_logs_endpoint(
	action: Optional[str] = None,
	entity_type: Optional[str] = None,
	limit: int = Query(default=50, ge=1, le=200),
	offset: int = Query(default=0, ge=0),
	principal: Principal = Depends(get_principal),
) -> dto.ModerationLogListResponse:
	try:
		return await _service.list_logs(
			principal, action=action, entity_type=entity_type, limit=limit, offset=offset
		)
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.get("/stats", response_model=dto.ModerationStatsResponse)
async def stats_endpoint(principal: Principal = Depends(get_principal)) -> dto.ModerationStatsResponse:
	try:
		return await _service.stats(principal)
	except ConnectError as exc:
		raise to_http_error(exc) from exc
