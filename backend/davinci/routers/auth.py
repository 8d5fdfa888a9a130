"""
Authentication endpoints.

Register, login, me.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from davinci.core.database import get_db
from davinci.core.dependencies import get_current_user
from davinci.models.user import User
from davinci.schemas.user import LoginRequest, MeResponse, RegisterRequest, TokenResponse
from davinci.services.auth_service import AuthService

router = APIRouter()


def get_auth_service(db: AsyncSession = Depends(get_db)) -> AuthService:
    """Dependency that constructs AuthService."""
    return AuthService(db=db)


@router.post(
    "/register",
    response_model=TokenResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
)
async def register(
    data: RegisterRequest,
    service: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    """
    Create a new user account.

    - Username and email must be globally unique
    - Password must be min 8 chars and contain at least 1 number
    """
    return await service.register(data)


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Login with username (or email) and password",
)
async def login(
    data: LoginRequest,
    service: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    return await service.login(data)


@router.get(
    "/me",
    response_model=MeResponse,
    summary="Get current user profile",
)
async def get_me(
    current_user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> MeResponse:
    return await service.get_me(current_user)
