"""
services/tenant_site_service.py
-------------------------------
Business logic for tenant sites and their stored fallback credentials.

Service layer is responsible for:
  - Constructing queries
  - Enforcing business rules (single default site, default site undeletable)
  - Returning domain objects (ORM models) to the route layer
  - Never returning HTTP responses (that's the route's job)
"""

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from crm_access.core.errors import SiteConflict, SiteNotFound
from crm_access.core.logging import get_logger
from crm_access.models.tenant_site import TenantSite
from crm_access.schemas.tenant_site import TenantSiteCreate, TenantSiteUpdate

logger = get_logger(__name__)


class TenantSiteService:

    @staticmethod
    async def list_sites(db: AsyncSession) -> list[TenantSite]:
        result = await db.execute(select(TenantSite).order_by(TenantSite.created_at))
        return list(result.scalars().all())

    @staticmethod
    async def get_site(db: AsyncSession, site_id: str) -> TenantSite:
        site = await db.get(TenantSite, site_id)
        if site is None:
            raise SiteNotFound(f"Site '{site_id}' not found")
        return site

    @staticmethod
    async def create_site(db: AsyncSession, data: TenantSiteCreate) -> TenantSite:
        """
        Create a new tenant site.
        Raises SiteConflict if the id is already taken.
        """
        values = data.model_dump(exclude_none=True)
        site = TenantSite(**values)
        if data.is_default:
            await TenantSiteService._clear_default(db)
        db.add(site)
        try:
            await db.flush()
            await db.refresh(site)
        except IntegrityError:
            await db.rollback()
            raise SiteConflict(f"Site '{data.id}' already exists")
        logger.info("Tenant site created", site_id=site.id, name=site.name)
        return site

    @staticmethod
    async def update_site(
        db: AsyncSession, site_id: str, data: TenantSiteUpdate
    ) -> TenantSite:
        site = await TenantSiteService.get_site(db, site_id)
        changes = data.model_dump(exclude_unset=True)
        if changes.get("is_default"):
            await TenantSiteService._clear_default(db, keep=site_id)
        for field, value in changes.items():
            setattr(site, field, value)
        await db.flush()
        await db.refresh(site)
        logger.info("Tenant site updated", site_id=site_id, fields=sorted(changes))
        return site

    @staticmethod
    async def delete_site(db: AsyncSession, site_id: str) -> None:
        site = await TenantSiteService.get_site(db, site_id)
        if site.is_default:
            raise SiteConflict("The default site cannot be deleted")
        await db.delete(site)
        await db.flush()
        logger.info("Tenant site deleted", site_id=site_id)

    @staticmethod
    async def get_credentials(db: AsyncSession, site_id: str) -> tuple[str, str] | None:
        """The site's stored (username, secret), or None if it has none."""
        site = await TenantSiteService.get_site(db, site_id)
        if not site.has_credentials:
            return None
        return site.username, site.secret

    @staticmethod
    async def _clear_default(db: AsyncSession, keep: str | None = None) -> None:
        stmt = update(TenantSite).where(TenantSite.is_default.is_(True))
        if keep is not None:
            stmt = stmt.where(TenantSite.id != keep)
        await db.execute(
            stmt.values(is_default=False).execution_options(synchronize_session=False)
        )
