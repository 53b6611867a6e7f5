"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from finsync.core.records import parse_timestamp
from finsync.server.models import Group, Invite

# === Group schemas ===


class GroupCreateRequest(BaseModel):
    """Request body for group creation."""

    name: str = Field(min_length=1, max_length=255)


class MemberResponse(BaseModel):
    """Group member in responses."""

    user_id: str
    display_name: str
    email: str


class GroupResponse(BaseModel):
    """Group data in responses."""

    id: str
    name: str
    type: str
    admin: str
    members: list[str]
    member_details: list[MemberResponse]
    created_at: str


# === Invite schemas ===


class InviteCreateRequest(BaseModel):
    """Request body for inviting a user by email."""

    email: str = Field(min_length=3, max_length=255)


class InviteCreatedResponse(BaseModel):
    """Response for invite creation."""

    invite_id: int


class InviteResponse(BaseModel):
    """Pending invite in responses."""

    id: int
    group_id: str
    group_name: str
    inviter_name: str
    email: str
    created_at: str


# === Record schemas ===


class RecordDocumentRequest(BaseModel):
    """Record document sent by a client.

    Entity fields are opaque and kept as sent; only ``lastModified`` is
    checked.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    last_modified: str | None = Field(default=None, alias="lastModified")

    @field_validator("last_modified")
    @classmethod
    def validate_last_modified(cls, value: str | None) -> str | None:
        """Reject timestamps that are not ISO-8601."""
        if value is not None:
            parse_timestamp(value)
        return value

    def to_document(self) -> dict[str, Any]:
        """Get the document as sent, without adding an absent timestamp."""
        document = dict(self.model_extra or {})
        if "last_modified" in self.model_fields_set:
            document["lastModified"] = self.last_modified
        return document


# === Health schema ===


class HealthResponse(BaseModel):
    """Health check response."""

    status: str


class StatusResponse(BaseModel):
    """Generic acknowledgement."""

    status: str = "ok"


# === Converters ===


def group_to_response(group: Group) -> GroupResponse:
    """Convert Group model to response schema."""
    return GroupResponse(
        id=group.id,
        name=group.name,
        type=group.type,
        admin=group.admin_id,
        members=group.member_ids,
        member_details=[
            MemberResponse(user_id=m.user_id, display_name=m.display_name, email=m.email)
            for m in group.memberships
        ],
        created_at=group.created_at.isoformat(),
    )


def invite_to_response(invite: Invite) -> InviteResponse:
    """Convert Invite model to response schema."""
    return InviteResponse(
        id=invite.id,
        group_id=invite.group_id,
        group_name=invite.group_name,
        inviter_name=invite.inviter_name,
        email=invite.email,
        created_at=invite.created_at.isoformat(),
    )
