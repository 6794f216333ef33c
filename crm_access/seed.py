"""
seed.py
-------
One-shot setup: create all tables, the privileged account and the default
permission matrix. Safe to re-run; the matrix is upserted and an existing
account only has its password reset when SEED_ADMIN_PASSWORD is set.

Usage:
    SEED_ADMIN_PASSWORD=... python -m crm_access.seed
"""

import asyncio

from sqlalchemy.ext.asyncio import AsyncEngine

from crm_access.core.config import settings
from crm_access.core.logging import configure_logging, get_logger
from crm_access.core.security import hash_password
from crm_access.db.session import build_engine, build_sessionmaker
from crm_access.models import Base  # Imports all models so metadata is populated
from crm_access.services.account_service import AccountService
from crm_access.services.permission_matrix import (
    DEFAULT_MATRIX,
    PermissionMatrixService,
    matrix_to_rows,
)

logger = get_logger(__name__)


async def seed(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = build_sessionmaker(engine)
    async with session_factory() as db:
        account = await AccountService.get_by_username(db, settings.SEED_ADMIN_USERNAME)
        if account is None:
            if not settings.SEED_ADMIN_PASSWORD:
                raise SystemExit("SEED_ADMIN_PASSWORD must be set to create the account")
            await AccountService.create_account(
                db,
                username=settings.SEED_ADMIN_USERNAME,
                password=settings.SEED_ADMIN_PASSWORD,
                email=settings.SEED_ADMIN_EMAIL,
            )
        elif settings.SEED_ADMIN_PASSWORD:
            account.hashed_password = hash_password(settings.SEED_ADMIN_PASSWORD)
            logger.info("Privileged account password reset", account_id=account.id)

        updated = await PermissionMatrixService.bulk_upsert(db, matrix_to_rows(DEFAULT_MATRIX))
        await db.commit()
    logger.info("Seed complete", permissions=updated, username=settings.SEED_ADMIN_USERNAME)


async def main() -> None:
    configure_logging()
    engine = build_engine(settings.DATABASE_URL)
    try:
        await seed(engine)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
