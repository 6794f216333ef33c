"""
core/security.py
----------------
Password hashing, session-token issuing and token hashing.

Design decisions:
  - bcrypt work factor 12 for the privileged account password.
  - The JWT carries only sub (account id) and username. Revocation is not
    encoded in the token: a token that verifies here is necessary but not
    sufficient, callers must also ask the session registry.
  - Only the SHA-256 digest of a token is ever stored server-side.
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from crm_access.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=12)


@dataclass(frozen=True)
class TokenSubject:
    """Identity recovered from a verified token."""

    id: str
    username: str


# ── Password Utilities ────────────────────────────────────────────────────────

def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the plain-text password."""
    return pwd_context.hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    """Constant-time comparison of plain password against stored hash."""
    return pwd_context.verify(plain, hashed)


# ── Token Utilities ───────────────────────────────────────────────────────────

def token_ttl() -> timedelta:
    return timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)


def issue_token(
    subject_id: str,
    username: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Mint a signed, time-boxed bearer token for a privileged subject.

    Args:
        subject_id: Account id (stored in 'sub' claim).
        username: Account username, echoed back by verify_token.
        expires_delta: Optional custom expiry; defaults to settings value.

    Returns:
        Signed JWT string.
    """
    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "sub": subject_id,
        "username": username,
        "iat": now,
        "exp": now + (expires_delta or token_ttl()),
        # Two logins within the same second must still yield distinct tokens
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def verify_token(token: str) -> Optional[TokenSubject]:
    """
    Check signature and expiry only.

    Returns None for anything that does not verify. Does not consult the
    session registry.
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None
    subject_id = payload.get("sub")
    username = payload.get("username")
    if not subject_id or not username:
        return None
    return TokenSubject(id=str(subject_id), username=str(username))


def hash_token(token: str) -> str:
    """One-way SHA-256 hex digest used as the session lookup key."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
