"""
Authentication and user business logic.

Handles registration, login, current-user profile and user lookup.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, status
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from davinci.core.config import settings
from davinci.core.security import create_access_token, hash_password, verify_password
from davinci.models.user import User
from davinci.schemas.user import (
    LoginRequest,
    MeResponse,
    RegisterRequest,
    TokenResponse,
    UserBaseInfo,
)

logger = logging.getLogger(__name__)

USER_SEARCH_LIMIT = 20


class AuthService:
    """Handles all authentication operations."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # -----------------------------------------------------------------------
    # Register
    # -----------------------------------------------------------------------

    async def register(self, data: RegisterRequest) -> TokenResponse:
        """
        Register a new user.

        - Validates username and email uniqueness
        - Hashes password
        - Issues an access token
        """
        existing = await self.db.execute(
            select(User).where(
                or_(User.username == data.username, User.email == data.email.lower())
            )
        )
        if existing.scalars().first() is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail={"code": "USER_EXISTS", "message": "Username or email is already registered"},
            )

        user = User(
            username=data.username,
            email=data.email.lower(),
            password_hash=hash_password(data.password),
            name=data.name,
        )
        self.db.add(user)
        await self.db.flush()

        logger.info("User(%s) registered as %s", user.id, user.username)
        return self._issue_token(user)

    # -----------------------------------------------------------------------
    # Login
    # -----------------------------------------------------------------------

    async def login(self, data: LoginRequest) -> TokenResponse:
        """
        Authenticate with username (or email) + password.

        Raises 401 for invalid credentials (never reveals which field is wrong).
        """
        result = await self.db.execute(
            select(User).where(
                or_(User.username == data.username, User.email == data.username.lower())
            )
        )
        user = result.scalars().first()

        if user is None or not verify_password(data.password, user.password_hash):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail={"code": "INVALID_CREDENTIALS", "message": "Invalid username or password"},
            )

        if not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"code": "ACCOUNT_DISABLED", "message": "Account is disabled"},
            )

        return self._issue_token(user)

    # -----------------------------------------------------------------------
    # Me / lookup
    # -----------------------------------------------------------------------

    async def get_me(self, user: User) -> MeResponse:
        """Return current user profile."""
        return MeResponse.model_validate(user)

    async def search_users(self, keyword: str, current_user: User) -> list[UserBaseInfo]:
        """Find active users by username, email or name (used when picking invitees)."""
        escaped = (
            keyword.strip().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        )
        pattern = f"%{escaped}%"
        result = await self.db.execute(
            select(User)
            .where(
                User.is_active.is_(True),
                User.id != current_user.id,
                or_(
                    User.username.ilike(pattern, escape="\\"),
                    User.email.ilike(pattern, escape="\\"),
                    User.name.ilike(pattern, escape="\\"),
                ),
            )
            .order_by(User.username)
            .limit(USER_SEARCH_LIMIT)
        )
        return [UserBaseInfo.model_validate(u) for u in result.scalars().all()]

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    @staticmethod
    def _issue_token(user: User) -> TokenResponse:
        return TokenResponse(
            access_token=create_access_token(user.id),
            expires_in=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        )
