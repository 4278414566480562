"""Own-profile routes. Authenticating already runs the registration hook."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.connect.api._deps import get_principal
from app.connect.api._errors import to_http_error
from app.connect.domain.exceptions import ConnectError
from app.connect.domain.policies import Principal
from app.connect.domain.profiles_service import ProfilesService
from app.connect.schemas import dto

router = APIRouter(tags=["connect:profiles"])
_service = ProfilesService()


@router.post("/profiles/me", response_model=dto.ProfileResponse)
async def register_profile_endpoint(principal: Principal = Depends(get_principal)) -> dto.ProfileResponse:
	try:
		return await _service.get_profile(principal)
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.get("/profiles/me", response_model=dto.ProfileResponse)
async def get_profile_endpoint(principal: Principal = Depends(get_principal)) -> dto.ProfileResponse:
	try:
		return await _service.get_profile(principal)
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.patch("/profiles/me", response_model=dto.ProfileResponse)
async def update_profile_endpoint(
	payload: dto.ProfileUpdateRequest,
	principal: Principal = Depends(get_principal),
) -> dto.ProfileResponse:
	try:
		return await _service.update_profile(principal, payload)
	except ConnectError as exc:
		raise to_http_error(exc) from exc
