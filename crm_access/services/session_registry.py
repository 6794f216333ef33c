"""
services/session_registry.py
----------------------------
Server-side record of the single valid bearer token per subject.

State machine per (subject_id, subject_kind): Active → Invalidated.
A new login always supersedes the previous active row, so signing in on a
second device silently signs out the first.

"Invalidate prior + insert new" runs in one transaction and the partial
unique index on active rows rejects a concurrent second insert; the losing
login rolls back and retries.
"""

from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from crm_access.core.config import settings
from crm_access.core.errors import SessionConflict
from crm_access.core.logging import get_logger
from crm_access.core.security import hash_token
from crm_access.db.base import utc_now
from crm_access.models.session import SessionRecord, SubjectKind

logger = get_logger(__name__)


class SessionRegistry:

    @staticmethod
    async def create(
        db: AsyncSession,
        subject_id: str,
        kind: SubjectKind,
        token: str,
        ttl: timedelta,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> str:
        """
        Invalidate existing active sessions for the subject and record the
        new one. Only the token hash is stored.

        Returns:
            The new session id.
        """
        attempts = max(1, settings.LOGIN_RETRY_ATTEMPTS)
        for attempt in range(1, attempts + 1):
            now = utc_now()
            await SessionRegistry._deactivate(db, subject_id, kind, now)
            record = SessionRecord(
                subject_id=subject_id,
                subject_kind=kind.value,
                token_hash=hash_token(token),
                is_active=True,
                ip_address=ip_address,
                user_agent=user_agent[:500] if user_agent else None,
                expires_at=now + ttl,
            )
            db.add(record)
            try:
                await db.flush()
            except IntegrityError:
                await db.rollback()
                logger.warning(
                    "Concurrent login collided on active session",
                    subject_id=subject_id,
                    kind=kind.value,
                    attempt=attempt,
                )
                continue
            logger.info(
                "Session created",
                session_id=record.id,
                subject_id=subject_id,
                kind=kind.value,
            )
            return record.id
        raise SessionConflict(f"Could not create session for {kind.value}:{subject_id}")

    @staticmethod
    async def is_active(db: AsyncSession, token: str) -> bool:
        result = await db.execute(
            select(SessionRecord.id).where(
                SessionRecord.token_hash == hash_token(token),
                SessionRecord.is_active.is_(True),
                SessionRecord.expires_at > utc_now(),
            )
        )
        return result.first() is not None

    @staticmethod
    async def invalidate(db: AsyncSession, token: str) -> bool:
        """Mark the session for this token invalidated. Idempotent."""
        result = await db.execute(
            update(SessionRecord)
            .where(
                SessionRecord.token_hash == hash_token(token),
                SessionRecord.is_active.is_(True),
            )
            .values(is_active=False, invalidated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        changed = result.rowcount > 0
        if changed:
            logger.info("Session invalidated")
        return changed

    @staticmethod
    async def invalidate_all(
        db: AsyncSession, subject_id: str, kind: SubjectKind
    ) -> int:
        """Forced logout: invalidate every active session of the subject."""
        count = await SessionRegistry._deactivate(db, subject_id, kind, utc_now())
        logger.info(
            "All sessions invalidated", subject_id=subject_id, kind=kind.value, count=count
        )
        return count

    @staticmethod
    async def active_sessions(
        db: AsyncSession, subject_id: str, kind: SubjectKind
    ) -> list[SessionRecord]:
        result = await db.execute(
            select(SessionRecord).where(
                SessionRecord.subject_id == subject_id,
                SessionRecord.subject_kind == kind.value,
                SessionRecord.is_active.is_(True),
            )
        )
        return list(result.scalars().all())

    @staticmethod
    async def _deactivate(
        db: AsyncSession, subject_id: str, kind: SubjectKind, now: datetime
    ) -> int:
        result = await db.execute(
            update(SessionRecord)
            .where(
                SessionRecord.subject_id == subject_id,
                SessionRecord.subject_kind == kind.value,
                SessionRecord.is_active.is_(True),
            )
            .values(is_active=False, invalidated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
