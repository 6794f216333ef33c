"""
api/routes/auth.py
------------------
Privileged authentication endpoints.

POST /auth/login          — Exchange username + password for a bearer token.
                            Supersedes any previous session of the account.
GET  /auth/me             — Return the authenticated profile.
POST /auth/logout         — Invalidate the presented token's session (idempotent).
GET  /auth/session-valid  — Polled by the console; 401 SESSION_INVALIDATED
                            once the session is superseded or expired.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from crm_access.core.errors import AuthenticationFailure, SessionInvalidated
from crm_access.core.logging import get_logger
from crm_access.core.security import issue_token, token_ttl
from crm_access.db.session import get_db
from crm_access.dependencies import (
    AuthenticatedToken,
    get_current_account,
    get_token_subject,
)
from crm_access.models.account import PrivilegedAccount
from crm_access.models.session import SubjectKind
from crm_access.schemas.auth import (
    LoginRequest,
    LoginResponse,
    MessageResponse,
    Profile,
    SessionValidResponse,
)
from crm_access.services.account_service import AccountService
from crm_access.services.session_registry import SessionRegistry

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


@router.post(
    "/login",
    response_model=LoginResponse,
    summary="Privileged sign-in",
)
async def login(
    body: LoginRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> LoginResponse:
    """
    Authenticate the privileged account and open its single active session.
    A wrong password creates no session row.
    """
    account = await AccountService.authenticate(db, body.username, body.password)
    if account is None:
        raise AuthenticationFailure("Invalid credentials")

    # Captured before the registry write, which may roll back and expire the row
    profile = Profile.model_validate(account)
    ttl = token_ttl()
    token = issue_token(account.id, account.username, expires_delta=ttl)
    await SessionRegistry.create(
        db,
        subject_id=account.id,
        kind=SubjectKind.privileged,
        token=token,
        ttl=ttl,
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )

    logger.info("Privileged login", account_id=profile.id)
    return LoginResponse(
        token=token,
        expires_in=int(ttl.total_seconds()),
        profile=profile,
    )


@router.get(
    "/me",
    response_model=Profile,
    summary="Get the currently authenticated profile",
)
async def get_me(
    account: Annotated[PrivilegedAccount, Depends(get_current_account)],
) -> Profile:
    return Profile.model_validate(account)


@router.post(
    "/logout",
    response_model=MessageResponse,
    summary="Invalidate the current session",
)
async def logout(
    auth: Annotated[AuthenticatedToken, Depends(get_token_subject)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> MessageResponse:
    await SessionRegistry.invalidate(db, auth.token)
    logger.info("Logout", subject_id=auth.subject.id)
    return MessageResponse(message="Logged out successfully")


@router.get(
    "/session-valid",
    response_model=SessionValidResponse,
    summary="Check whether the presented token still holds the active session",
)
async def session_valid(
    auth: Annotated[AuthenticatedToken, Depends(get_token_subject)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> SessionValidResponse:
    if not await SessionRegistry.is_active(db, auth.token):
        raise SessionInvalidated()
    return SessionValidResponse()
