"""
services/account_service.py
---------------------------
Business logic for the privileged account: seeding, lookup and
password authentication.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from crm_access.core.logging import get_logger
from crm_access.core.security import hash_password, verify_password
from crm_access.models.account import PrivilegedAccount

logger = get_logger(__name__)


class AccountService:

    @staticmethod
    async def create_account(
        db: AsyncSession,
        username: str,
        password: str,
        email: str | None = None,
    ) -> PrivilegedAccount:
        """
        Out-of-band seed step for the privileged account.
        Raises ValueError on duplicate username.
        """
        account = PrivilegedAccount(
            username=username,
            email=email,
            hashed_password=hash_password(password),
        )
        db.add(account)
        try:
            await db.flush()
            await db.refresh(account)
            logger.info("Privileged account created", account_id=account.id)
            return account
        except IntegrityError:
            await db.rollback()
            raise ValueError(f"Username '{username}' is already taken")

    @staticmethod
    async def get_by_id(db: AsyncSession, account_id: str) -> PrivilegedAccount | None:
        return await db.get(PrivilegedAccount, account_id)

    @staticmethod
    async def get_by_username(db: AsyncSession, username: str) -> PrivilegedAccount | None:
        result = await db.execute(
            select(PrivilegedAccount).where(PrivilegedAccount.username == username)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def authenticate(
        db: AsyncSession, username: str, password: str
    ) -> PrivilegedAccount | None:
        """
        Verify credentials and return the account if valid, else None.
        Unknown usernames and wrong passwords are indistinguishable to the caller.
        """
        account = await AccountService.get_by_username(db, username)
        if account is None or not verify_password(password, account.hashed_password):
            logger.info("Privileged login rejected", username=username)
            return None
        return account
