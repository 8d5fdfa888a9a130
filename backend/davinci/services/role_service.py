"""
Organization role business logic.
"""

from __future__ import annotations

from uuid import UUID

import redis.asyncio as aioredis
from fastapi import HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from davinci.core.locks import CheckEntity, get_name_lock
from davinci.core.logging import operation_logger
from davinci.models.organization import Organization
from davinci.models.rel_user_organization import RelUserOrganization, UserOrgRole
from davinci.models.role import Role
from davinci.models.user import User
from davinci.schemas.role import RoleCreateRequest, RoleResponse


class RoleService:

    def __init__(self, db: AsyncSession, redis: aioredis.Redis) -> None:
        self.db = db
        self.redis = redis

    async def list_roles(self, org_id: UUID, user: User) -> list[RoleResponse]:
        """Roles of an organization; any member may list them."""
        await self._get_rel(org_id, user.id)
        result = await self.db.execute(
            select(Role).where(Role.org_id == org_id).order_by(Role.name)
        )
        return [RoleResponse.model_validate(r) for r in result.scalars().all()]

    async def create_role(self, org_id: UUID, data: RoleCreateRequest, user: User) -> RoleResponse:
        """Create a role. Owners only; names are unique per organization."""
        rel = await self._get_rel(org_id, user.id)
        if rel.role != UserOrgRole.owner:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"code": "NOT_OWNER", "message": "You have not permission to create role in this organization"},
            )

        existing = await self.db.execute(
            select(Role.id).where(Role.org_id == org_id, Role.name == data.name)
        )
        if existing.scalar_one_or_none() is not None:
            self._alert_name_taken(data.name)

        lock = get_name_lock(self.redis, CheckEntity.role, data.name, org_id)
        if not await lock.acquire():
            self._alert_name_taken(data.name)

        try:
            role = Role(
                org_id=org_id,
                name=data.name,
                description=data.description,
                create_by=user.id,
            )
            self.db.add(role)
            await self.db.flush()
            await self.db.execute(
                update(Organization)
                .where(Organization.id == org_id)
                .values(role_num=Organization.role_num + 1)
                .execution_options(synchronize_session=False)
            )
            await self.db.refresh(role)
        finally:
            await lock.release()

        operation_logger.info("Role(%s) create by user(%s)", role.id, user.id)
        return RoleResponse.model_validate(role)

    @staticmethod
    def _alert_name_taken(name: str) -> None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": "NAME_TAKEN", "message": f"The role name '{name}' is already taken"},
        )

    async def _get_rel(self, org_id: UUID, user_id: UUID) -> RelUserOrganization:
        if await self.db.get(Organization, org_id) is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail={"code": "ORG_NOT_FOUND", "message": "Organization is not found"},
            )
        result = await self.db.execute(
            select(RelUserOrganization).where(
                RelUserOrganization.org_id == org_id,
                RelUserOrganization.user_id == user_id,
            )
        )
        rel = result.scalar_one_or_none()
        if rel is None:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"code": "NOT_A_MEMBER", "message": "You are not a member of this organization"},
            )
        return rel
