"""
models/tenant_site.py
---------------------
Tenant site (external WordPress instance) ORM model.

username / secret form the tenant-level fallback credential. It is only
ever handed to the privileged subject; tenant users must authenticate
against the site with their own credential.
"""

from sqlalchemy import JSON, Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from crm_access.db.base import Base, TimestampMixin, generate_uuid


class TenantSite(Base, TimestampMixin):
    __tablename__ = "tenant_sites"

    id: Mapped[str] = mapped_column(String(50), primary_key=True, default=generate_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    url: Mapped[str] = mapped_column(String(500), nullable=False)
    username: Mapped[str | None] = mapped_column(String(255), nullable=True)
    secret: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    assigned_subject_ids: Mapped[list[str]] = mapped_column(
        JSON, nullable=False, default=list
    )

    @property
    def has_credentials(self) -> bool:
        return bool(self.username and self.secret)

    def __repr__(self) -> str:
        return f"<TenantSite id={self.id} name={self.name}>"
