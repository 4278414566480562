"""Flag routes for events and clubs."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Response

from app.connect.api._deps import get_principal
from app.connect.api._errors import to_http_error
from app.connect.domain.exceptions import ConnectError
from app.connect.domain.flags_service import FlagsService
from app.connect.domain.policies import Principal
from app.connect.schemas import dto

router = APIRouter(tags=["connect:flags"])
_service = FlagsService()


@router.post("/events/{event_id}/flag", response_model=dto.FlagResponse, status_code=201)
async def flag_event_endpoint(
	event_id: UUID,
	payload: dto.FlagCreateRequest,
	principal: Principal = Depends(get_principal),
) -> dto.FlagResponse:
	try:
		return await _service.flag(principal, "event", event_id, payload)
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.get("/events/{event_id}/flag", response_model=dto.FlagStatusResponse)
async def event_flag_status_endpoint(
	event_id: UUID,
	principal: Principal = Depends(get_principal),
) -> dto.FlagStatusResponse:
	try:
		return await _service.own_flag(principal, "event", event_id)
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.get("/events/{event_id}/flags", response_model=dto.FlagListResponse)
async def list_event_flags_endpoint(
	event_id: UUID,
	principal: Principal = Depends(get_principal),
) -> dto.FlagListResponse:
	try:
		return await _service.list_flags(principal, "event", event_id)
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.post("/clubs/{club_id}/flag", response_model=dto.FlagResponse, status_code=201)
async def flag_club_endpoint(
	club_id: UUID,
	payload: dto.FlagCreateRequest,
	principal: Principal = Depends(get_principal),
) -> dto.FlagResponse:
	try:
		return await _service.flag(principal, "club", club_id, payload)
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.get("/clubs/{club_id}/flag", response_model=dto.FlagStatusResponse)
async def club_flag_status_endpoint(
	club_id: UUID,
	principal: Principal = Depends(get_principal),
) -> dto.FlagStatusResponse:
	try:
		return await _service.own_flag(principal, "club", club_id)
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.get("/clubs/{club_id}/flags", response_model=dto.FlagListResponse)
async def list_club_flags_endpoint(
	club_id: UUID,
	principal: Principal = Depends(get_principal),
) -> dto.FlagListResponse:
	try:
		return await _service.list_flags(principal, "club", club_id)
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.patch("/flags/{kind}/{flag_id}", response_model=dto.FlagResponse)
async def update_flag_status_endpoint(
	kind: str,
	flag_id: UUID,
	payload: dto.FlagStatusRequest,
	principal: Principal = Depends(get_principal),
) -> dto.FlagResponse:
	try:
		return await _service.update_status(principal, kind, flag_id, payload.status)
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.delete("/flags/{kind}/{flag_id}", status_code=204, response_class=Response, response_model=None)
async def withdraw_flag_endpoint(
	kind: str,
	flag_id: UUID,
	principal: Principal = Depends(get_principal),
) -> None:
	try:
		await _service.withdraw(principal, kind, flag_id)
		return None
	except ConnectError as exc:
		raise to_http_error(exc) from exc
