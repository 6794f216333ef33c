"""
models/account.py
-----------------
Privileged (operator) account.

There is exactly one such account in normal operation, created by the seed
command. It always holds full access regardless of the permission matrix.

The hashed_password column stores bcrypt hashes only; plain text is
never stored and never logged.
"""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from crm_access.db.base import Base, TimestampMixin, generate_uuid


class PrivilegedAccount(Base, TimestampMixin):
    __tablename__ = "privileged_accounts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    username: Mapped[str] = mapped_column(
        String(100), unique=True, nullable=False, index=True
    )
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<PrivilegedAccount id={self.id} username={self.username}>"
