"""
FastAPI dependencies shared by the routers.

The Redis client backs the name locks; the current user comes from the
bearer access token.
"""

from __future__ import annotations

import redis.asyncio as aioredis
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from davinci.core.config import settings
from davinci.core.database import get_db
from davinci.core.security import decode_access_token
from davinci.core.storage import AvatarStorage
from davinci.models.user import User

# auto_error=False so a missing header gets our own 401 body
bearer_scheme = HTTPBearer(auto_error=False)

_redis: aioredis.Redis | None = None


async def get_redis() -> aioredis.Redis:
    """Process-wide Redis client, created on first use."""
    global _redis
    if _redis is None:
        _redis = aioredis.from_url(str(settings.REDIS_URL), decode_responses=True)
    return _redis


async def close_redis() -> None:
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None


def get_avatar_storage() -> AvatarStorage:
    return AvatarStorage()


def _unauthorized(code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": code, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Resolve the bearer token to an active User.

    401 MISSING_TOKEN without a header, INVALID_TOKEN for a bad or expired
    token, USER_NOT_FOUND when the account is gone or disabled.
    """
    if credentials is None:
        raise _unauthorized("MISSING_TOKEN", "Authorization header required")

    try:
        user_id = decode_access_token(credentials.credentials)
    except JWTError as exc:
        raise _unauthorized("INVALID_TOKEN", "Token is invalid or expired") from exc

    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        raise _unauthorized("USER_NOT_FOUND", "User not found or inactive")
    return user
