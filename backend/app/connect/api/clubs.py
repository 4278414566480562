"""Club directory routes."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response

from app.connect.api._deps import get_optional_principal, get_principal
from app.connect.api._errors import to_http_error
from app.connect.domain.clubs_service import ClubsService
from app.connect.domain.exceptions import ConnectError
from app.connect.domain.policies import Principal
from app.connect.schemas import dto

router = APIRouter(tags=["connect:clubs"])
_service = ClubsService()


@router.get("/clubs", response_model=dto.ClubListResponse)
async def list_clubs_endpoint(
	sort_by: str = Query(default="name", pattern="^(name|newest|oldest)$"),
	limit: int = Query(default=50, ge=1, le=200),
	offset: int = Query(default=0, ge=0),
	principal: Optional[Principal] = Depends(get_optional_principal),
) -> dto.ClubListResponse:
	try:
		return await _service.list_clubs(principal, sort_by=sort_by, limit=limit, offset=offset)
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.post("/clubs", response_model=dto.ClubResponse, status_code=201)
async def create_club_endpoint(
	payload: dto.ClubCreateRequest,
	principal: Principal = Depends(get_principal),
) -> dto.ClubResponse:
	try:
		return await _service.create_club(principal, payload)
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.get("/clubs/mine", response_model=dto.ClubListResponse)
async def list_my_clubs_endpoint(principal: Principal = Depends(get_principal)) -> dto.ClubListResponse:
	try:
		return await _service.list_my_clubs(principal)
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.get("/clubs/{club_id}", response_model=dto.ClubResponse)
async def get_club_endpoint(
	club_id: UUID,
	principal: Optional[Principal] = Depends(get_optional_principal),
) -> dto.ClubResponse:
	try:
		return await _service.get_club(principal, club_id)
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.patch("/clubs/{club_id}", response_model=dto.ClubResponse)
async def update_club_endpoint(
	club_id: UUID,
	payload: dto.ClubUpdateRequest,
	principal: Principal = Depends(get_principal),
) -> dto.ClubResponse:
	try:
		return await _service.update_club(principal, club_id, payload)
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.delete("/clubs/{club_id}", status_code=204, response_class=Response, response_model=None)
async def delete_club_endpoint(club_id: UUID, principal: Principal = Depends(get_principal)) -> None:
	try:
		await _service.delete_club(principal, club_id)
		return None
	except ConnectError as exc:
		raise to_http_error(exc) from exc
