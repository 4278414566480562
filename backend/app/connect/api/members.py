"""Club membership routes: join requests, reviews, removals."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Response

from app.connect.api._deps import get_optional_principal, get_principal
from app.connect.api._errors import to_http_error
from app.connect.domain.exceptions import ConnectError
from app.connect.domain.members_service import MembersService
from app.connect.domain.policies import Principal
from app.connect.schemas import dto

router = APIRouter(tags=["connect:members"])
_service = MembersService()


@router.get("/clubs/{club_id}/members", response_model=dto.MemberListResponse)
async def list_members_endpoint(
	club_id: UUID,
	principal: Optional[Principal] = Depends(get_optional_principal),
) -> dto.MemberListResponse:
	try:
		return await _service.list_members(principal, club_id)
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.get("/clubs/{club_id}/membership", response_model=Optional[dto.MemberResponse])
async def get_membership_endpoint(
	club_id: UUID,
	principal: Principal = Depends(get_principal),
) -> Optional[dto.MemberResponse]:
	try:
		return await _service.get_own_membership(principal, club_id)
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.post("/clubs/{club_id}/membership", response_model=dto.MemberResponse, status_code=201)
async def request_membership_endpoint(
	club_id: UUID,
	principal: Principal = Depends(get_principal),
) -> dto.MemberResponse:
	try:
		return await _service.request_join(principal, club_id)
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.delete("/clubs/{club_id}/membership", status_code=204, response_class=Response, response_model=None)
async def leave_club_endpoint(club_id: UUID, principal: Principal = Depends(get_principal)) -> None:
	try:
		await _service.leave(principal, club_id)
		return None
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.get("/clubs/{club_id}/membership/pending", response_model=dto.MemberListResponse)
async def list_pending_endpoint(
	club_id: UUID,
	principal: Principal = Depends(get_principal),
) -> dto.MemberListResponse:
	try:
		return await _service.list_pending(principal, club_id)
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.patch("/clubs/{club_id}/members/{user_id}", response_model=dto.MemberResponse)
async def review_member_endpoint(
	club_id: UUID,
	user_id: UUID,
	payload: dto.MembershipReviewRequest,
	principal: Principal = Depends(get_principal),
) -> dto.MemberResponse:
	try:
		return await _service.review(principal, club_id, user_id, payload.action)
	except ConnectError as exc:
		raise to_http_error(exc) from exc


@router.delete("/clubs/{club_id}/members/{user_id}", status_code=204, response_class=Response, response_model=None)
async def remove_member_endpoint(
	club_id: UUID,
	user_id: UUID,
	principal: Principal = Depends(get_principal),
) -> None:
	try:
		await _service.remove_member(principal, club_id, user_id)
		return None
	except ConnectError as exc:
		raise to_http_error(exc) from exc
