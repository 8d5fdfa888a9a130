"""
Password hashing and access tokens.

Passwords are stored as bcrypt hashes. The hash doubles as a credential
fingerprint: invitation tokens embed it so they die when the password changes.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

import bcrypt
from jose import JWTError, jwt

from davinci.core.config import settings

ACCESS_TOKEN_TYPE = "access"

# bcrypt only looks at the first 72 bytes
BCRYPT_MAX_BYTES = 72


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8")[:BCRYPT_MAX_BYTES], salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Check a plaintext password; anything that is not a bcrypt hash never matches."""
    try:
        return bcrypt.checkpw(
            password.encode("utf-8")[:BCRYPT_MAX_BYTES], password_hash.encode("utf-8")
        )
    except ValueError:
        return False


def create_access_token(user_id: UUID | str) -> str:
    issued_at = datetime.now(UTC)
    claims: dict[str, Any] = {
        "sub": str(user_id),
        "type": ACCESS_TOKEN_TYPE,
        "iat": issued_at,
        "exp": issued_at + timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES),
    }
    return jwt.encode(claims, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> UUID:
    """
    Return the user id carried by an access token.

    Raises:
        JWTError: bad signature, expired, not an access token, or a subject
            that is not a user id.
    """
    claims = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    if claims.get("type") != ACCESS_TOKEN_TYPE:
        raise JWTError("Not an access token")
    try:
        return UUID(claims.get("sub") or "")
    except ValueError as exc:
        raise JWTError("Token subject is not a user id") from exc
