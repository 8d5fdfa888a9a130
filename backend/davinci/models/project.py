"""
Project ORM model.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from davinci.models.base import AuditMixin, Base, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from davinci.models.organization import Organization


class Project(Base, UUIDMixin, TimestampMixin, AuditMixin):
    __tablename__ = "projects"

    org_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    pic: Mapped[str | None] = mapped_column(String(255), nullable=True)
    visibility: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    organization: Mapped[Organization] = relationship(
        "Organization", back_populates="projects"
    )

    def __repr__(self) -> str:
        return f"<Project id={self.id} name={self.name!r} org_id={self.org_id}>"
