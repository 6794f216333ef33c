"""
models/permission.py
--------------------
Role × feature permission grid.

Role design:
  - 'super_admin': the privileged operator role. Never read from storage,
    always treated as full access.
  - every other role is governed by role_permissions rows; a missing row
    means deny.
"""

from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import Boolean, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from crm_access.db.base import Base


class Role(str, PyEnum):
    super_admin = "super_admin"
    admin = "admin"
    lead_manager = "lead_manager"
    seo_manager = "seo_manager"
    sales_person = "sales_person"
    seo_person = "seo_person"
    client = "client"


class Feature(str, PyEnum):
    leads = "leads"
    users = "users"
    activity_logs = "activity_logs"
    subscriptions = "subscriptions"
    seo_meta_tags = "seo_meta_tags"
    blogs = "blogs"
    sites = "sites"
    ip_security = "ip_security"
    permissions = "permissions"


PRIVILEGED_ROLE = Role.super_admin.value

# Roles that may be stored in the matrix and assigned to tenant users
ASSIGNABLE_ROLES = [r.value for r in Role if r is not Role.super_admin]


class PermissionEntry(Base):
    __tablename__ = "role_permissions"

    role: Mapped[str] = mapped_column(String(50), primary_key=True)
    feature: Mapped[str] = mapped_column(String(100), primary_key=True)
    can_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_write: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<PermissionEntry {self.role}/{self.feature} "
            f"r={self.can_read} w={self.can_write}>"
        )
