"""Club announcement routes."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Response

from app.connect.api._deps import get_principal
from app.connect.api._errors import to_http_error
from app.connect.domain.announcements_service import AnnouncementsService
from app.connect.domain.exceptions import ConnectError
from app.connect.domain.policies import Principal
from app.connect.schemas import dto

router = APIRouter(tags=["connect:announcements"])
_service = AnnouncementsService()


@router.get("/clubs/{club_id}/announcements", response_model=dto.AnnouncementListResponse)
async def list_announcements_endpoint(
	club_id: UUID,
	principal: Principal = Depends(get_principal),
) -> dto.AnnouncementListResponse:
	try:
		return await _service.list_announcements(principal, club_id)
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.post("/clubs/{club_id}/announcements", response_model=dto.AnnouncementResponse, status_code=201)
async def create_announcement_endpoint(
	club_id: UUID,
	payload: dto.AnnouncementCreateRequest,
	principal: Principal = Depends(get_principal),
) -> dto.AnnouncementResponse:
	try:
		return await _service.create_announcement(principal, club_id, payload)
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.patch("/clubs/{club_id}/announcements/{announcement_id}", response_model=dto.AnnouncementResponse)
async def update_announcement_endpoint(
	club_id: UUID,
	announcement_id: UUID,
	payload: dto.AnnouncementUpdateRequest,
	principal: Principal = Depends(get_principal),
) -> dto.AnnouncementResponse:
	try:
		return await _service.update_announcement(principal, club_id, announcement_id, payload)
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.delete(
	"/clubs/{club_id}/announcements/{announcement_id}",
	status_code=204,
	response_class=Response,
	response_model=None,
)
async def delete_announcement_endpoint(
	club_id: UUID,
	announcement_id: UUID,
	principal: Principal = Depends(get_principal),
) -> None:
	try:
		await _service.delete_announcement(principal, club_id, announcement_id)
		return None
	except ConnectError as exc:
		raise to_http_error(exc) from exc
