"""
api/routes/sites.py
-------------------
Tenant site management endpoints.

GET    /sites                      — Public list (secrets never included).
GET    /sites/{site_id}/credentials — Privileged: stored fallback credential.
POST   /sites                      — Privileged: create a site.
PUT    /sites/{site_id}            — Privileged: update a site.
DELETE /sites/{site_id}            — Privileged: delete a non-default site.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from crm_access.db.session import get_db
from crm_access.dependencies import require_privileged
from crm_access.models.account import PrivilegedAccount
from crm_access.schemas.tenant_site import (
    TenantSiteCreate,
    TenantSiteCredentials,
    TenantSiteRead,
    TenantSiteUpdate,
)
from crm_access.services.tenant_site_service import TenantSiteService

router = APIRouter(prefix="/sites", tags=["Sites"])


@router.get(
    "",
    response_model=list[TenantSiteRead],
    summary="List tenant sites",
)
async def list_sites(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[TenantSiteRead]:
    """
    Public so a tenant user can pick (or probe) a site before signing in.
    The stored credential is only reported as has_credentials.
    """
    sites = await TenantSiteService.list_sites(db)
    return [TenantSiteRead.model_validate(s) for s in sites]


@router.get(
    "/{site_id}/credentials",
    response_model=TenantSiteCredentials,
    summary="Privileged: read a site's stored credential",
)
async def get_site_credentials(
    site_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    _admin: Annotated[PrivilegedAccount, Depends(require_privileged)],
) -> TenantSiteCredentials:
    credentials = await TenantSiteService.get_credentials(db, site_id)
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Site '{site_id}' has no stored credentials",
        )
    username, secret = credentials
    return TenantSiteCredentials(site_id=site_id, username=username, secret=secret)


@router.post(
    "",
    response_model=TenantSiteRead,
    status_code=status.HTTP_201_CREATED,
    summary="Privileged: create a tenant site",
)
async def create_site(
    body: TenantSiteCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    _admin: Annotated[PrivilegedAccount, Depends(require_privileged)],
) -> TenantSiteRead:
    site = await TenantSiteService.create_site(db, body)
    return TenantSiteRead.model_validate(site)


@router.put(
    "/{site_id}",
    response_model=TenantSiteRead,
    summary="Privileged: update a tenant site",
)
async def update_site(
    site_id: str,
    body: TenantSiteUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    _admin: Annotated[PrivilegedAccount, Depends(require_privileged)],
) -> TenantSiteRead:
    site = await TenantSiteService.update_site(db, site_id, body)
    return TenantSiteRead.model_validate(site)


@router.delete(
    "/{site_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Privileged: delete a tenant site",
)
async def delete_site(
    site_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    _admin: Annotated[PrivilegedAccount, Depends(require_privileged)],
) -> None:
    await TenantSiteService.delete_site(db, site_id)
