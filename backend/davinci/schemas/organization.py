"""
Organization schemas.

Request/response models for organization and member management endpoints.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from davinci.schemas.user import UserBaseInfo


# ---------------------------------------------------------------------------
# Organization
# ---------------------------------------------------------------------------

class OrganizationCreateRequest(BaseModel):
    """Request body for POST /organizations."""

    name: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=1000)

    @field_validator("name")
    @classmethod
    def name_must_not_be_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Organization name cannot be empty")
        return v


class OrganizationUpdateRequest(BaseModel):
    """Request body for PUT /organizations/{id}."""

    name: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=1000)
    allow_create_project: bool = True
    member_permission: int = Field(default=1, ge=0, le=1)

    @field_validator("name")
    @classmethod
    def name_must_not_be_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Organization name cannot be empty")
        return v


class OrganizationBaseInfo(BaseModel):
    """Organization summary returned after creation."""

    id: UUID
    name: str
    description: str | None
    avatar: str | None
    role: str

    model_config = {"from_attributes": True}


class OrganizationInfo(BaseModel):
    """Organization detail with the caller's role."""

    id: UUID
    name: str
    description: str | None
    avatar: str | None
    user_id: UUID
    project_num: int
    member_num: int
    role_num: int
    allow_create_project: bool
    member_permission: int
    created_at: datetime
    updated_at: datetime
    role: str

    model_config = {"from_attributes": True}


class AvatarResponse(BaseModel):
    avatar: str


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

class OrganizationMember(BaseModel):
    """Single membership row with user info and role."""

    id: UUID = Field(description="Membership (relation) id")
    user: UserBaseInfo
    role: str


class MemberRoleUpdateRequest(BaseModel):
    """Request body for PUT /organizations/members/{relation_id}."""

    role: str = Field(min_length=1, max_length=20)


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------

class InviteMembersRequest(BaseModel):
    """Request body for POST /organizations/{id}/members/invite."""

    members: set[UUID] = Field(min_length=1)
    need_confirm: bool = True


class BatchInviteMemberResult(BaseModel):
    """Outcome of a batch invitation."""

    status: int
    not_users: set[UUID] = Field(default_factory=set)
    exists: list[UserBaseInfo] = Field(default_factory=list)
    successes: list[UserBaseInfo] = Field(default_factory=list)


class InvitationConfirmRequest(BaseModel):
    """Request body for the invitation confirmation endpoints."""

    token: str = Field(min_length=1)
