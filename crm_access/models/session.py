"""
models/session.py
-----------------
Server-side session registry rows.

A row moves Active → Invalidated exactly once and is never deleted. The
partial unique index uq_sessions_one_active makes "at most one active row
per (subject_id, subject_kind)" a storage-level guarantee, so two racing
logins cannot both end up active.
"""

from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import Boolean, DateTime, Index, String, func, text
from sqlalchemy.orm import Mapped, mapped_column

from crm_access.db.base import Base, generate_uuid


class SubjectKind(str, PyEnum):
    privileged = "privileged"
    tenant_user = "tenant_user"


class SessionRecord(Base):
    __tablename__ = "sessions"
    __table_args__ = (
        Index(
            "uq_sessions_one_active",
            "subject_id",
            "subject_kind",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
        Index("ix_sessions_subject_active", "subject_id", "subject_kind", "is_active"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    subject_id: Mapped[str] = mapped_column(String(64), nullable=False)
    subject_kind: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SubjectKind.privileged.value
    )
    # SHA-256 hex digest; the raw token is never stored
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    invalidated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return (
            f"<SessionRecord id={self.id} subject={self.subject_kind}:{self.subject_id} "
            f"active={self.is_active}>"
        )
