"""
schemas/auth.py
---------------
Pydantic models for privileged sign-in, session checks and logout.

Security note:
  - hashed_password is NEVER included in any response schema.
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field

from crm_access.models.permission import PRIVILEGED_ROLE


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1, max_length=128)


class Profile(BaseModel):
    id: str
    username: str
    email: Optional[str] = None
    role: str = PRIVILEGED_ROLE

    model_config = {"from_attributes": True}


class LoginResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    expires_in: int  # seconds
    profile: Profile


class SessionValidResponse(BaseModel):
    valid: Literal[True] = True


class MessageResponse(BaseModel):
    message: str
