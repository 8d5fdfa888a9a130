"""
User lookup endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from davinci.core.dependencies import get_current_user
from davinci.models.user import User
from davinci.routers.auth import get_auth_service
from davinci.schemas.user import UserBaseInfo
from davinci.services.auth_service import AuthService

router = APIRouter()


@router.get(
    "/search",
    response_model=list[UserBaseInfo],
    summary="Search users by username, email or name",
)
async def search_users(
    keyword: str = Query(..., min_length=1, max_length=100),
    current_user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> list[UserBaseInfo]:
    return await service.search_users(keyword, current_user)
