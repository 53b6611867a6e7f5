"""Invite API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from finsync.server.api.deps import get_current_token, get_db, http_error
from finsync.server.database import Database, MembershipError
from finsync.server.models import Token
from finsync.server.schemas import (
    InviteCreatedResponse,
    InviteCreateRequest,
    InviteResponse,
    StatusResponse,
    invite_to_response,
)

router = APIRouter(prefix="/api", tags=["invites"])


@router.get("/invites", response_model=list[InviteResponse])
def list_invites(
    db: Database = Depends(get_db),
    auth: Token = Depends(get_current_token),
) -> list[InviteResponse]:
    """List invites pending for the caller."""
    return [invite_to_response(i) for i in db.list_invites_for_user(auth.user_id)]


@router.post(
    "/groups/{group_id}/invites",
    response_model=InviteCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
def send_invite(
    group_id: str,
    request: InviteCreateRequest,
    db: Database = Depends(get_db),
    auth: Token = Depends(get_current_token),
) -> InviteCreatedResponse:
    """Invite an existing user to a group by email (admin only)."""
    try:
        invite = db.send_invite(group_id, request.email.strip(), auth.user_id)
    except MembershipError as e:
        raise http_error(e) from e
    return InviteCreatedResponse(invite_id=invite.id)


@router.post("/groups/{group_id}/invites/{invite_id}/accept", response_model=StatusResponse)
def accept_invite(
    group_id: str,
    invite_id: int,
    db: Database = Depends(get_db),
    auth: Token = Depends(get_current_token),
) -> StatusResponse:
    """Accept an invite and join the group."""
    try:
        db.accept_invite(group_id, invite_id, auth.user_id)
    except MembershipError as e:
        raise http_error(e) from e
    return StatusResponse()


@router.post("/groups/{group_id}/invites/{invite_id}/decline", response_model=StatusResponse)
def decline_invite(
    group_id: str,
    invite_id: int,
    db: Database = Depends(get_db),
    auth: Token = Depends(get_current_token),
) -> StatusResponse:
    """Decline an invite."""
    try:
        db.decline_invite(group_id, invite_id, auth.user_id)
    except MembershipError as e:
        raise http_error(e) from e
    return StatusResponse()
