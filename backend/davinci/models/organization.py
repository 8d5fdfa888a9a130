"""
Organization ORM model.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Integer, SmallInteger, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from davinci.models.base import AuditMixin, Base, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from davinci.models.project import Project
    from davinci.models.rel_user_organization import RelUserOrganization
    from davinci.models.role import Role


class Organization(Base, UUIDMixin, TimestampMixin, AuditMixin):
    """Represents a tenant organization."""

    __tablename__ = "organizations"
    __table_args__ = (
        CheckConstraint("member_num >= 0", name="ck_organizations_member_num_non_negative"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    avatar: Mapped[str | None] = mapped_column(String(500), nullable=True)
    # Creator; always treated as an owner
    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    project_num: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    member_num: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    role_num: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    allow_create_project: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # 0: members cannot see other projects, 1: read-only access
    member_permission: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=1)

    # Relationships
    members: Mapped[list[RelUserOrganization]] = relationship(
        "RelUserOrganization",
        back_populates="organization",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    projects: Mapped[list[Project]] = relationship(
        "Project", back_populates="organization", passive_deletes=True
    )
    roles: Mapped[list[Role]] = relationship(
        "Role",
        back_populates="organization",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return (
            f"<Organization id={self.id} name={self.name!r} member_num={self.member_num} "
            f"allow_create_project={self.allow_create_project} "
            f"member_permission={self.member_permission}>"
        )
