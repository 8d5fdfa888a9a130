"""
Invitation token encoding and parsing.

An invitation token carries:
- username: "<inviter_id>:-:<member_id>:-:<org_id>"
- password: the invitee's password hash at invitation time

The pair is signed as a short-lived JWT and the JWT is then AES-encrypted
(Fernet) so the password hash never travels in clear text.
"""

from __future__ import annotations

import base64
import hashlib
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from cryptography.fernet import Fernet, InvalidToken
from jose import JWTError, jwt

from davinci.core.config import settings

SPLIT_CHAR_STRING = ":-:"
TOKEN_TYPE = "invite"


class InvalidInvitationToken(ValueError):
    """Raised when an invitation token cannot be decrypted or is malformed."""


@dataclass(frozen=True)
class InvitationToken:
    inviter_id: UUID
    member_id: UUID
    org_id: UUID
    password: str


def _cipher() -> Fernet:
    # Fernet wants 32 url-safe base64 bytes; derive them from the configured secret
    digest = hashlib.sha256(settings.INVITE_TOKEN_SECRET.encode("utf-8")).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


def build_username(inviter_id: UUID, member_id: UUID, org_id: UUID) -> str:
    return SPLIT_CHAR_STRING.join(str(i) for i in (inviter_id, member_id, org_id))


def generate_invitation_token(
    inviter_id: UUID, member_id: UUID, org_id: UUID, password: str
) -> str:
    """Return an encrypted invitation token for the given inviter/invitee/org."""
    now = datetime.now(UTC)
    payload: dict[str, Any] = {
        "sub": build_username(inviter_id, member_id, org_id),
        "pwd": password,
        "type": TOKEN_TYPE,
        "iat": now,
        "exp": now + timedelta(hours=settings.INVITE_TOKEN_EXPIRE_HOURS),
    }
    signed = jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    return _cipher().encrypt(signed.encode("utf-8")).decode("ascii")


def parse_invitation_token(token: str) -> InvitationToken:
    """Decrypt and validate an invitation token.

    Raises InvalidInvitationToken for bad ciphertext, a bad or expired
    signature, missing username/password, or a username that does not hold
    exactly three ids.
    """
    if not token:
        raise InvalidInvitationToken("Token is empty")

    try:
        signed = _cipher().decrypt(token.encode("ascii")).decode("utf-8")
    except (InvalidToken, UnicodeError) as exc:
        raise InvalidInvitationToken("Token cannot be decrypted") from exc

    try:
        payload = jwt.decode(signed, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as exc:
        raise InvalidInvitationToken("Token signature is invalid or expired") from exc

    if payload.get("type") != TOKEN_TYPE:
        raise InvalidInvitationToken("Not an invitation token")

    username = payload.get("sub") or ""
    password = payload.get("pwd") or ""
    if not username or not password:
        raise InvalidInvitationToken("Username or password cannot be empty")

    ids = username.split(SPLIT_CHAR_STRING)
    if len(ids) != 3:
        raise InvalidInvitationToken("Invalid token username")

    try:
        inviter_id, member_id, org_id = (UUID(i) for i in ids)
    except ValueError as exc:
        raise InvalidInvitationToken("Invalid token username") from exc

    return InvitationToken(
        inviter_id=inviter_id,
        member_id=member_id,
        org_id=org_id,
        password=password,
    )
