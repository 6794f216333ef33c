"""
models/__init__.py
------------------
Re-export all models so table creation (and migrations) can import Base and
discover all tables via a single import:

    from crm_access.models import Base
"""

from crm_access.db.base import Base
from crm_access.models.account import PrivilegedAccount
from crm_access.models.permission import Feature, PermissionEntry, Role
from crm_access.models.session import SessionRecord, SubjectKind
from crm_access.models.tenant_site import TenantSite

__all__ = [
    "Base",
    "Feature",
    "PermissionEntry",
    "PrivilegedAccount",
    "Role",
    "SessionRecord",
    "SubjectKind",
    "TenantSite",
]
