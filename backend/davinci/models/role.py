"""
Organization-scoped Role ORM model.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from davinci.models.base import AuditMixin, Base, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from davinci.models.organization import Organization


class Role(Base, UUIDMixin, TimestampMixin, AuditMixin):
    """Named permission group inside one organization."""

    __tablename__ = "roles"
    __table_args__ = (UniqueConstraint("org_id", "name", name="uq_roles_org_name"),)

    org_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    avatar: Mapped[str | None] = mapped_column(String(255), nullable=True)

    organization: Mapped[Organization] = relationship(
        "Organization", back_populates="roles"
    )

    def __repr__(self) -> str:
        return f"<Role id={self.id} name={self.name!r} org_id={self.org_id}>"
