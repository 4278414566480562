"""Event routes."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response

from app.connect.api._deps import get_optional_principal, get_principal
from app.connect.api._errors import to_http_error
from app.connect.domain.events_service import EventsService
from app.connect.domain.exceptions import ConnectError
from app.connect.domain.policies import Principal
from app.connect.schemas import dto

router = APIRouter(tags=["connect:events"])
_service = EventsService()


@router.get("/events", response_model=dto.EventListResponse)
async def list_events_endpoint(
	club_id: Optional[UUID] = None,
	category: Optional[str] = None,
	is_free: Optional[bool] = None,
	upcoming: bool = False,
	limit: int = Query(default=50, ge=1, le=200),
	offset: int = Query(default=0, ge=0),
	principal: Optional[Principal] = Depends(get_optional_principal),
) -> dto.EventListResponse:
	try:
		return await _service.list_events(
			principal,
			club_id=club_id,
			category=category,
			is_free=is_free,
			upcoming=upcoming,
			limit=limit,
			offset=offset,
		)
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.post("/events", response_model=dto.EventResponse, status_code=201)
async def create_event_endpoint(
	payload: dto.EventCreateRequest,
	principal: Principal = Depends(get_principal),
) -> dto.EventResponse:
	try:
		return await _service.create_event(principal, payload)
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.get("/events/{event_id}", response_model=dto.EventResponse)
async def get_event_endpoint(
	event_id: UUID,
	principal: Optional[Principal] = Depends(get_optional_principal),
) -> dto.EventResponse:
	try:
		return await _service.get_event(principal, event_id)
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.patch("/events/{event_id}", response_model=dto.EventResponse)
async def update_event_endpoint(
	event_id: UUID,
	payload: dto.EventUpdateRequest,
	principal: Principal = Depends(get_principal),
) -> dto.EventResponse:
	try:
		return await _service.update_event(principal, event_id, payload)
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.delete("/events/{event_id}", status_code=204, response_class=Response, response_model=None)
async def delete_event_endpoint(event_id: UUID, principal: Principal = Depends(get_principal)) -> None:
	try:
		await _service.delete_event(principal, event_id)
		return None
	except ConnectError as exc:
		raise to_http_error(exc) from exc
