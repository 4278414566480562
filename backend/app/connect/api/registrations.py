"""Event registration routes."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Response

from app.connect.api._deps import get_optional_principal, get_principal
from app.connect.api._errors import to_http_error
from app.connect.domain.exceptions import ConnectError
from app.connect.domain.policies import Principal
from app.connect.domain.registrations_service import RegistrationsService
from app.connect.schemas import dto

router = APIRouter(tags=["connect:registrations"])
_service = RegistrationsService()


@router.post("/events/{event_id}/register", response_model=dto.RegistrationResponse, status_code=201)
async def register_endpoint(
	event_id: UUID,
	principal: Principal = Depends(get_principal),
) -> dto.RegistrationResponse:
	try:
		return await _service.register(principal, event_id)
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.delete("/events/{event_id}/register", status_code=204, response_class=Response, response_model=None)
async def cancel_registration_endpoint(event_id: UUID, principal: Principal = Depends(get_principal)) -> None:
	try:
		await _service.cancel(principal, event_id)
		return None
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.get("/events/{event_id}/registrations", response_model=dto.RegistrationListResponse)
async def list_registrations_endpoint(
	event_id: UUID,
	principal: Optional[Principal] = Depends(get_optional_principal),
) -> dto.RegistrationListResponse:
	try:
		return await _service.list_registrations(principal, event_id)
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.delete(
	"/events/{event_id}/registrations/{user_id}",
	status_code=204,
	response_class=Response,
	response_model=None,
)
async def remove_attendee_endpoint(
	event_id: UUID,
	user_id: UUID,
	principal: Principal = Depends(get_principal),
) -> None:
	try:
		await _service.remove_attendee(principal, event_id, user_id)
		return None
	except ConnectError as exc:
		raise to_http_error(exc) from exc
