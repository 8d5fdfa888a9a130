"""
Organization role endpoints.
"""
from __future__ import annotations

from uuid import UUID

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from davinci.core.database import get_db
from davinci.core.dependencies import get_current_user, get_redis
from davinci.models.user import User
from davinci.schemas.role import RoleCreateRequest, RoleResponse
from davinci.services.role_service import RoleService

router = APIRouter()


def get_role_service(
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
) -> RoleService:
    return RoleService(db=db, redis=redis)


@router.get(
    "/organizations/{org_id}/roles",
    response_model=list[RoleResponse],
    summary="List roles of an organization",
)
async def list_roles(
    org_id: UUID,
    current_user: User = Depends(get_current_user),
    service: RoleService = Depends(get_role_service),
) -> list[RoleResponse]:
    return await service.list_roles(org_id, current_user)


@router.post(
    "/organizations/{org_id}/roles",
    response_model=RoleResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a role (owners only)",
)
async def create_role(
    org_id: UUID,
    data: RoleCreateRequest,
    current_user: User = Depends(get_current_user),
    service: RoleService = Depends(get_role_service),
) -> RoleResponse:
    return await service.create_role(org_id, data, current_user)
