"""
Project business logic.

Projects belong to an organization; creating one is governed by the
organization's allow_create_project switch.
"""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from davinci.core.logging import operation_logger
from davinci.models.organization import Organization
from davinci.models.project import Project
from davinci.models.rel_user_organization import RelUserOrganization, UserOrgRole
from davinci.models.user import User
from davinci.schemas.project import (
    ProjectCreateRequest,
    ProjectListResponse,
    ProjectResponse,
)

logger = logging.getLogger(__name__)


class ProjectService:

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def list_projects(self, org_id: UUID, user: User) -> ProjectListResponse:
        await self._get_membership(org_id, user.id)
        result = await self.db.execute(
            select(Project)
            .where(Project.org_id == org_id)
            .order_by(Project.created_at, Project.name)
        )
        projects = list(result.scalars().all())
        return ProjectListResponse(
            projects=[ProjectResponse.model_validate(p) for p in projects],
            total=len(projects),
        )

    async def create_project(
        self, org_id: UUID, data: ProjectCreateRequest, creator: User
    ) -> ProjectResponse:
        org, rel = await self._get_membership(org_id, creator.id)

        if rel.role != UserOrgRole.owner and not org.allow_create_project:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "code": "PROJECT_CREATION_DISABLED",
                    "message": "You have not permission to create project in this organization",
                },
            )

        existing = await self.db.execute(
            select(Project.id).where(Project.org_id == org_id, Project.name == data.name)
        )
        if existing.scalar_one_or_none() is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail={"code": "NAME_TAKEN", "message": f"The project name '{data.name}' is already taken"},
            )

        project = Project(
            org_id=org_id,
            user_id=creator.id,
            name=data.name,
            description=data.description,
            visibility=data.visibility,
            create_by=creator.id,
        )
        self.db.add(project)
        await self.db.flush()
        await self.db.execute(
            update(Organization)
            .where(Organization.id == org_id)
            .values(project_num=Organization.project_num + 1)
            .execution_options(synchronize_session=False)
        )
        await self.db.refresh(project)

        operation_logger.info("Project(%s) create by user(%s)", project.id, creator.id)
        return ProjectResponse.model_validate(project)

    async def get_project(self, project_id: UUID, org_id: UUID, user: User) -> ProjectResponse:
        await self._get_membership(org_id, user.id)
        result = await self.db.execute(
            select(Project).where(
                Project.id == project_id,
                Project.org_id == org_id,
            )
        )
        project = result.scalar_one_or_none()
        if project is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail={"code": "PROJECT_NOT_FOUND", "message": "Project not found"},
            )
        return ProjectResponse.model_validate(project)

    async def _get_membership(
        self, org_id: UUID, user_id: UUID
    ) -> tuple[Organization, RelUserOrganization]:
        result = await self.db.execute(
            select(Organization, RelUserOrganization)
            .join(RelUserOrganization, RelUserOrganization.org_id == Organization.id)
            .where(Organization.id == org_id, RelUserOrganization.user_id == user_id)
        )
        row = result.one_or_none()
        if row is None:
            org = await self.db.get(Organization, org_id)
            if org is None:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail={"code": "ORG_NOT_FOUND", "message": "Organization is not found"},
                )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"code": "NOT_A_MEMBER", "message": "You are not a member of this organization"},
            )
        org, rel = row
        return org, rel
