"""
Organization management endpoints.

Create, update, delete, avatar, member management, invitations.
"""

from __future__ import annotations

from uuid import UUID

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, File, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from davinci.core.database import get_db
from davinci.core.dependencies import get_avatar_storage, get_current_user, get_redis
from davinci.core.storage import AvatarStorage
from davinci.models.user import User
from davinci.schemas.organization import (
    AvatarResponse,
    BatchInviteMemberResult,
    InvitationConfirmRequest,
    InviteMembersRequest,
    MemberRoleUpdateRequest,
    OrganizationBaseInfo,
    OrganizationCreateRequest,
    OrganizationInfo,
    OrganizationMember,
    OrganizationUpdateRequest,
)
from davinci.schemas.user import UserBaseInfo
from davinci.services.organization_service import OrganizationService

router = APIRouter()


def get_org_service(
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
    storage: AvatarStorage = Depends(get_avatar_storage),
) -> OrganizationService:
    """Dependency that constructs OrganizationService."""
    return OrganizationService(db=db, redis=redis, storage=storage)


# ---------------------------------------------------------------------------
# Create / List Organizations
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=OrganizationBaseInfo,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new organization",
)
async def create_organization(
    data: OrganizationCreateRequest,
    current_user: User = Depends(get_current_user),
    service: OrganizationService = Depends(get_org_service),
) -> OrganizationBaseInfo:
    """
    Create a new organization.

    - Name must be globally unique
    - Creator is automatically assigned Owner role
    """
    return await service.create_organization(data, current_user)


@router.get(
    "",
    response_model=list[OrganizationInfo],
    summary="List organizations of the current user",
)
async def get_organizations(
    current_user: User = Depends(get_current_user),
    service: OrganizationService = Depends(get_org_service),
) -> list[OrganizationInfo]:
    return await service.get_organizations(current_user)


# ---------------------------------------------------------------------------
# Invitations (token based)
# ---------------------------------------------------------------------------

@router.post(
    "/invitations/confirm",
    response_model=OrganizationInfo,
    summary="Confirm an invitation as the logged-in invitee",
)
async def confirm_invite(
    data: InvitationConfirmRequest,
    current_user: User = Depends(get_current_user),
    service: OrganizationService = Depends(get_org_service),
) -> OrganizationInfo:
    """
    Join the organization named in the invitation token.

    The token must have been issued to the current user.
    """
    return await service.confirm_invite(data.token, current_user)


@router.post(
    "/invitations/confirm-no-login",
    response_model=OrganizationInfo,
    summary="Confirm an invitation without a session",
)
async def confirm_invite_no_login(
    data: InvitationConfirmRequest,
    service: OrganizationService = Depends(get_org_service),
) -> OrganizationInfo:
    """Join the organization using only the invitation token."""
    return await service.confirm_invite_no_login(data.token)


# ---------------------------------------------------------------------------
# Member Role / Remove Member
# ---------------------------------------------------------------------------

@router.put(
    "/members/{relation_id}",
    response_model=OrganizationMember,
    summary="Change a member's role",
)
async def update_member_role(
    relation_id: UUID,
    data: MemberRoleUpdateRequest,
    current_user: User = Depends(get_current_user),
    service: OrganizationService = Depends(get_org_service),
) -> OrganizationMember:
    """
    Change a member's role.

    - Owner only
    - Cannot change your own role or the creator's role
    """
    return await service.update_member_role(relation_id, current_user, data.role)


@router.delete(
    "/members/{relation_id}",
    status_code=status.HTTP_200_OK,
    summary="Remove a member from the organization",
)
async def delete_org_member(
    relation_id: UUID,
    current_user: User = Depends(get_current_user),
    service: OrganizationService = Depends(get_org_service),
) -> dict:
    """
    Remove a member from the organization.

    - Owner only
    - Cannot remove the creator or yourself
    """
    await service.delete_org_member(relation_id, current_user)
    return {}


# ---------------------------------------------------------------------------
# Single Organization
# ---------------------------------------------------------------------------

@router.get(
    "/{org_id}",
    response_model=OrganizationInfo,
    summary="Get organization detail",
)
async def get_organization(
    org_id: UUID,
    current_user: User = Depends(get_current_user),
    service: OrganizationService = Depends(get_org_service),
) -> OrganizationInfo:
    """Get organization details. Must be a member."""
    return await service.get_organization(org_id, current_user)


@router.put(
    "/{org_id}",
    response_model=OrganizationInfo,
    summary="Update organization",
)
async def update_organization(
    org_id: UUID,
    data: OrganizationUpdateRequest,
    current_user: User = Depends(get_current_user),
    service: OrganizationService = Depends(get_org_service),
) -> OrganizationInfo:
    """Update name, description and member settings. Creator or Owner only."""
    return await service.update_organization(org_id, data, current_user)


@router.delete(
    "/{org_id}",
    status_code=status.HTTP_200_OK,
    summary="Delete organization",
)
async def delete_organization(
    org_id: UUID,
    current_user: User = Depends(get_current_user),
    service: OrganizationService = Depends(get_org_service),
) -> dict:
    """Delete an organization that has no projects. Creator or Owner only."""
    await service.delete_organization(org_id, current_user)
    return {}


@router.post(
    "/{org_id}/avatar",
    response_model=AvatarResponse,
    summary="Upload organization avatar",
)
async def upload_avatar(
    org_id: UUID,
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    service: OrganizationService = Depends(get_org_service),
) -> AvatarResponse:
    return await service.upload_avatar(org_id, file, current_user)


# ---------------------------------------------------------------------------
# Members / Invite
# ---------------------------------------------------------------------------

@router.get(
    "/{org_id}/members",
    response_model=list[OrganizationMember],
    summary="List organization members",
)
async def get_org_members(
    org_id: UUID,
    current_user: User = Depends(get_current_user),
    service: OrganizationService = Depends(get_org_service),
) -> list[OrganizationMember]:
    """List all members of the organization. Must be a member."""
    await service.get_organization(org_id, current_user)
    return await service.get_org_members(org_id)


@router.post(
    "/{org_id}/member/{member_id}",
    response_model=UserBaseInfo,
    summary="Invite a user to the organization",
)
async def invite_member(
    org_id: UUID,
    member_id: UUID,
    current_user: User = Depends(get_current_user),
    service: OrganizationService = Depends(get_org_service),
) -> UserBaseInfo:
    """
    Invite an existing user by email.

    - Requires Owner role
    - The email carries an encrypted confirmation token
    """
    return await service.invite_member(org_id, member_id, current_user)


@router.post(
    "/{org_id}/members/invite",
    response_model=BatchInviteMemberResult,
    summary="Invite several users at once",
)
async def batch_invite_members(
    org_id: UUID,
    data: InviteMembersRequest,
    response: Response,
    current_user: User = Depends(get_current_user),
    service: OrganizationService = Depends(get_org_service),
) -> BatchInviteMemberResult:
    """
    Invite or directly add several users.

    Responds 400 with the same body shape when nobody could be invited.
    """
    result = await service.batch_invite_members(org_id, data, current_user)
    response.status_code = result.status
    return result
