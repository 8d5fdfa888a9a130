"""
SQLAlchemy ORM models.

All models imported here to ensure they are registered with Base.metadata.
Import order matters: base models before dependent models.
"""

from davinci.models.base import AuditMixin, Base, TimestampMixin, UUIDMixin
from davinci.models.user import User
from davinci.models.organization import Organization
from davinci.models.rel_user_organization import RelUserOrganization, UserOrgRole
from davinci.models.project import Project
from davinci.models.role import Role

__all__ = [
    "AuditMixin",
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    "Organization",
    "Project",
    "RelUserOrganization",
    "Role",
    "User",
    "UserOrgRole",
]
