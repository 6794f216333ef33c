"""
dependencies.py
---------------
FastAPI dependency injection functions for authentication and authorisation.

Flow:
  1. HTTPBearer extracts the Bearer token from the Authorization header.
  2. get_token_subject verifies signature and expiry (no DB round-trip).
  3. get_current_account additionally requires a live session registry row,
     so a superseded or logged-out token is rejected with
     SESSION_INVALIDATED even though its signature is still valid.
  4. require_privileged is the guard for every write endpoint.
"""

from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from crm_access.core.errors import AuthenticationFailure, SessionInvalidated
from crm_access.core.logging import get_logger
from crm_access.core.security import TokenSubject, verify_token
from crm_access.db.session import get_db
from crm_access.models.account import PrivilegedAccount
from crm_access.services.account_service import AccountService
from crm_access.services.session_registry import SessionRegistry

logger = get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthenticatedToken:
    token: str
    subject: TokenSubject


async def get_token_subject(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> AuthenticatedToken:
    """Cryptographic check only. Raises 401 on a missing or invalid token."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationFailure("Missing or invalid authorization header")
    subject = verify_token(credentials.credentials)
    if subject is None:
        logger.warning("Token verification failed")
        raise AuthenticationFailure("Invalid or expired token")
    return AuthenticatedToken(token=credentials.credentials, subject=subject)


async def get_current_account(
    auth: Annotated[AuthenticatedToken, Depends(get_token_subject)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> PrivilegedAccount:
    """
    Verify the token, require an active session row, then load the account.
    """
    if not await SessionRegistry.is_active(db, auth.token):
        logger.info("Rejected token without active session", subject_id=auth.subject.id)
        raise SessionInvalidated()

    account = await AccountService.get_by_id(db, auth.subject.id)
    if account is None:
        logger.warning("Account from valid token not found in DB", subject_id=auth.subject.id)
        raise AuthenticationFailure("Could not validate credentials")
    return account


# Only one account kind exists on the backend and it is privileged, so the
# guard is an alias kept for readability at the route level.
require_privileged = get_current_account
