"""
RelUserOrganization ORM model.
"""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Enum, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from davinci.models.base import AuditMixin, Base, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from davinci.models.organization import Organization
    from davinci.models.user import User


class UserOrgRole(str, enum.Enum):
    """Role of a user inside an organization."""

    owner = "owner"
    member = "member"

    @classmethod
    def role_of(cls, value: str) -> UserOrgRole | None:
        try:
            return cls(value)
        except ValueError:
            return None


class RelUserOrganization(Base, UUIDMixin, TimestampMixin, AuditMixin):
    """Membership row linking a user to an organization with a role."""

    __tablename__ = "rel_user_organization"
    __table_args__ = (
        UniqueConstraint("org_id", "user_id", name="uq_rel_user_organization_org_user"),
    )

    org_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role: Mapped[UserOrgRole] = mapped_column(
        Enum(UserOrgRole, name="user_org_role"), nullable=False, default=UserOrgRole.member
    )

    # Relationships
    organization: Mapped[Organization] = relationship(
        "Organization", back_populates="members"
    )
    user: Mapped[User] = relationship(
        "User", back_populates="org_memberships"
    )

    def __repr__(self) -> str:
        return (
            f"<RelUserOrganization id={self.id} org_id={self.org_id} "
            f"user_id={self.user_id} role={self.role.value}>"
        )
