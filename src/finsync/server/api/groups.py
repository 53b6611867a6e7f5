"""Group and membership API routes."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status

from finsync.server.api.deps import get_current_token, get_db, http_error
from finsync.server.database import Database, MembershipError
from finsync.server.models import Token
from finsync.server.schemas import (
    GroupCreateRequest,
    GroupResponse,
    StatusResponse,
    group_to_response,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/groups", tags=["groups"])


@router.get("", response_model=list[GroupResponse])
def list_groups(
    db: Database = Depends(get_db),
    auth: Token = Depends(get_current_token),
) -> list[GroupResponse]:
    """List the groups the caller is a member of."""
    return [group_to_response(g) for g in db.list_groups_for_user(auth.user_id)]


@router.post("", response_model=GroupResponse, status_code=status.HTTP_201_CREATED)
def create_group(
    request: GroupCreateRequest,
    db: Database = Depends(get_db),
    auth: Token = Depends(get_current_token),
) -> GroupResponse:
    """Create a shared group with the caller as admin."""
    try:
        group = db.create_group(request.name, auth.user_id)
    except MembershipError as e:
        raise http_error(e) from e
    logger.info("Group %s (%s) created by %s", group.id, group.name, auth.user_id)
    return group_to_response(group)


@router.delete("/{group_id}", response_model=StatusResponse)
def delete_group(
    group_id: str,
    db: Database = Depends(get_db),
    auth: Token = Depends(get_current_token),
) -> StatusResponse:
    """Delete a group and all of its records (admin only)."""
    try:
        db.delete_group(group_id, auth.user_id)
    except MembershipError as e:
        raise http_error(e) from e
    return StatusResponse()


@router.post("/{group_id}/leave", response_model=StatusResponse)
def leave_group(
    group_id: str,
    db: Database = Depends(get_db),
    auth: Token = Depends(get_current_token),
) -> StatusResponse:
    """Leave a group."""
    try:
        db.leave_group(group_id, auth.user_id)
    except MembershipError as e:
        raise http_error(e) from e
    return StatusResponse()


@router.delete("/{group_id}/members/{user_id}", response_model=StatusResponse)
def remove_member(
    group_id: str,
    user_id: str,
    db: Database = Depends(get_db),
    auth: Token = Depends(get_current_token),
) -> StatusResponse:
    """Remove a member from a group (admin only)."""
    try:
        db.remove_member(group_id, user_id, auth.user_id)
    except MembershipError as e:
        raise http_error(e) from e
    return StatusResponse()
