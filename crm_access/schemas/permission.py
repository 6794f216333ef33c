"""
schemas/permission.py
---------------------
Pydantic models for the permission matrix.

Naming convention:
  PermissionUpdate     → inbound single upsert body
  BulkPermissionUpdate → inbound bulk body (applied all-or-nothing)
  PermissionRead       → outbound row
"""

from pydantic import BaseModel, Field, field_validator


class PermissionUpdate(BaseModel):
    role: str = Field(..., min_length=1, max_length=50, examples=["lead_manager"])
    feature: str = Field(..., min_length=1, max_length=100, examples=["leads"])
    can_read: bool = False
    can_write: bool = False

    @field_validator("role", "feature")
    @classmethod
    def strip_key(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class BulkPermissionUpdate(BaseModel):
    permissions: list[dict] = Field(..., min_length=1)


class PermissionRead(BaseModel):
    role: str
    feature: str
    can_read: bool
    can_write: bool

    model_config = {"from_attributes": True}


class BulkPermissionResult(BaseModel):
    success: bool = True
    updated: int


class PermissionWriteResult(BaseModel):
    success: bool = True
