"""
api/routes/permissions.py
-------------------------
Permission matrix endpoints.

GET  /permissions       — Public: every stored (role, feature) row.
PUT  /permissions       — Privileged: upsert a single entry.
POST /permissions/bulk  — Privileged: upsert many entries in one transaction.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from crm_access.db.session import get_db
from crm_access.dependencies import require_privileged
from crm_access.models.account import PrivilegedAccount
from crm_access.schemas.permission import (
    BulkPermissionResult,
    BulkPermissionUpdate,
    PermissionRead,
    PermissionUpdate,
    PermissionWriteResult,
)
from crm_access.services.permission_matrix import PermissionMatrixService

router = APIRouter(prefix="/permissions", tags=["Permissions"])


@router.get(
    "",
    response_model=list[PermissionRead],
    summary="Full permission matrix (no authentication)",
)
async def list_permissions(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[PermissionRead]:
    rows = await PermissionMatrixService.list_rows(db)
    return [PermissionRead.model_validate(r) for r in rows]


@router.put(
    "",
    response_model=PermissionWriteResult,
    summary="Privileged: create or update one permission entry",
)
async def update_permission(
    body: PermissionUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    _admin: Annotated[PrivilegedAccount, Depends(require_privileged)],
) -> PermissionWriteResult:
    await PermissionMatrixService.upsert(
        db, body.role, body.feature, body.can_read, body.can_write
    )
    return PermissionWriteResult()


@router.post(
    "/bulk",
    response_model=BulkPermissionResult,
    summary="Privileged: bulk update, all-or-nothing",
)
async def bulk_update_permissions(
    body: BulkPermissionUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    _admin: Annotated[PrivilegedAccount, Depends(require_privileged)],
) -> BulkPermissionResult:
    """
    Entries are validated as they are applied. If any entry is malformed
    or fails to write, nothing is committed and a single error is returned.
    """
    updated = await PermissionMatrixService.bulk_upsert(db, body.permissions)
    return BulkPermissionResult(updated=updated)
