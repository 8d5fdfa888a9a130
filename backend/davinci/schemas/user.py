"""
User schemas.

Registration, login and user representations.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator


class RegisterRequest(BaseModel):
    """Request body for POST /auth/register."""

    username: str = Field(min_length=2, max_length=100, pattern=r"^[A-Za-z0-9_.-]+$")
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    name: str | None = Field(default=None, max_length=100)

    @field_validator("password")
    @classmethod
    def password_must_contain_number(cls, v: str) -> str:
        if not any(c.isdigit() for c in v):
            raise ValueError("Password must contain at least one number")
        return v


class LoginRequest(BaseModel):
    """Request body for POST /auth/login. `username` may also be an email."""

    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(description="Access token TTL in seconds")


class UserBaseInfo(BaseModel):
    """Public user representation embedded in other responses."""

    id: UUID
    username: str
    email: str
    name: str | None = None
    avatar: str | None = None

    model_config = {"from_attributes": True}


class MeResponse(BaseModel):
    """Response for GET /auth/me."""

    id: UUID
    username: str
    email: str
    name: str | None
    avatar: str | None
    created_at: datetime

    model_config = {"from_attributes": True}
