"""
schemas/tenant_site.py
----------------------
Pydantic request/response models for TenantSite.

Naming convention:
  TenantSiteCreate       → inbound request body
  TenantSiteRead         → outbound response body (never exposes the secret)
  TenantSiteCredentials  → privileged-only credential read
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class TenantSiteCreate(BaseModel):
    id: Optional[str] = Field(None, min_length=1, max_length=50)
    name: str = Field(..., min_length=2, max_length=255, examples=["Bhairavi Healthcare"])
    url: str = Field(..., min_length=4, max_length=500, examples=["https://example.com/site"])
    username: Optional[str] = Field(None, max_length=255)
    secret: Optional[str] = Field(None, max_length=255)
    is_default: bool = False
    assigned_subject_ids: list[str] = Field(default_factory=list)

    @field_validator("name", "url")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return v.strip()


class TenantSiteUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=255)
    url: Optional[str] = Field(None, min_length=4, max_length=500)
    username: Optional[str] = Field(None, max_length=255)
    secret: Optional[str] = Field(None, max_length=255)
    is_default: Optional[bool] = None
    assigned_subject_ids: Optional[list[str]] = None

    # Omitted fields stay unchanged; an explicit null would blank a required column
    @field_validator("name", "url", "is_default", "assigned_subject_ids")
    @classmethod
    def reject_null(cls, v):
        if v is None:
            raise ValueError("may be omitted but not null")
        return v.strip() if isinstance(v, str) else v


class TenantSiteRead(BaseModel):
    id: str
    name: str
    url: str
    is_default: bool
    has_credentials: bool
    assigned_subject_ids: list[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class TenantSiteCredentials(BaseModel):
    site_id: str
    username: str
    secret: str
