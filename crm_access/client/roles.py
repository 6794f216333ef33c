"""
client/roles.py
---------------
Mapping from tenant-native (WordPress) role names to internal roles.

Tenants report free-form role strings. They are translated once, here, into
the closed Role enum; anything unknown becomes the least-privileged role.
"""

from typing import Iterable

from crm_access.models.permission import Role

EXTERNAL_ROLE_MAP: dict[str, Role] = {
    "administrator": Role.admin,
    "editor": Role.seo_manager,
    "author": Role.lead_manager,
    "contributor": Role.sales_person,
}

LEAST_PRIVILEGED = Role.client


def map_external_role(name: str | None) -> Role:
    if not name:
        return LEAST_PRIVILEGED
    return EXTERNAL_ROLE_MAP.get(name.strip().lower(), LEAST_PRIVILEGED)


def map_external_roles(names: Iterable[str] | None) -> Role:
    """
    Tenants return a list of roles per user; the first one that maps to a
    known internal role wins, in the order the tenant reports them.
    """
    for name in names or ():
        role = map_external_role(name)
        if role is not LEAST_PRIVILEGED:
            return role
    return LEAST_PRIVILEGED
