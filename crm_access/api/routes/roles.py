"""
api/routes/roles.py
-------------------
GET /roles — Roles that can appear in the permission matrix.
"""

from fastapi import APIRouter

from crm_access.models.permission import ASSIGNABLE_ROLES

router = APIRouter(prefix="/roles", tags=["Roles"])


@router.get("", response_model=list[str], summary="Available roles")
async def list_roles() -> list[str]:
    return list(ASSIGNABLE_ROLES)
