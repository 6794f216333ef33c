"""
client/context.py
-----------------
Explicit per-session console state.

SessionContext replaces ambient globals: it is created once, filled by
start(), passed to every router / gate / monitor call, and emptied by
teardown(). persist() and restore() mirror the cacheable part of it into a
LocalStore under fixed keys.
"""

import base64
from dataclasses import dataclass, field
from typing import Any, Optional

from crm_access.client.store import (
    ADMIN_TOKEN_KEY,
    CURRENT_SITE_KEY,
    PROFILE_KEY,
    SESSION_KEYS,
    SITE_CREDENTIALS_KEY,
    LocalStore,
)
from crm_access.core.logging import get_logger
from crm_access.models.permission import PRIVILEGED_ROLE, Role

logger = get_logger(__name__)


@dataclass(frozen=True)
class Credential:
    username: str
    secret: str

    def header(self) -> str:
        raw = f"{self.username}:{self.secret}".encode("utf-8")
        return "Basic " + base64.b64encode(raw).decode("ascii")

    def to_dict(self) -> dict[str, str]:
        return {"username": self.username, "secret": self.secret}

    def __repr__(self) -> str:
        return f"Credential(username={self.username!r}, secret='***')"


@dataclass(frozen=True)
class GlobalCredential:
    """Credential from the most recent successful tenant login."""

    site_id: str
    credential: Credential


@dataclass(frozen=True)
class ConsoleProfile:
    id: str
    username: str
    role: Role
    email: Optional[str] = None
    site_id: Optional[str] = None

    @property
    def is_privileged(self) -> bool:
        return self.role.value == PRIVILEGED_ROLE

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "role": self.role.value,
            "email": self.email,
            "site_id": self.site_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConsoleProfile":
        return cls(
            id=str(data["id"]),
            username=str(data["username"]),
            role=Role(data["role"]),
            email=data.get("email"),
            site_id=data.get("site_id"),
        )


@dataclass
class SessionContext:
    profile: Optional[ConsoleProfile] = None
    current_site_id: Optional[str] = None
    # site id → credential the subject authenticated with on that site
    credentials: dict[str, Credential] = field(default_factory=dict)
    # privileged only: stored site credentials fetched from the backend
    site_credentials: dict[str, Credential] = field(default_factory=dict)
    admin_token: Optional[str] = None
    last_credential: Optional[GlobalCredential] = None
    permission_request_pending: bool = False

    @property
    def active(self) -> bool:
        return self.profile is not None

    @property
    def is_privileged(self) -> bool:
        return self.profile is not None and self.profile.is_privileged

    def start(
        self,
        profile: ConsoleProfile,
        *,
        admin_token: Optional[str] = None,
        site_id: Optional[str] = None,
    ) -> None:
        """Begin a session, dropping anything left from a previous subject."""
        self.teardown()
        self.profile = profile
        self.admin_token = admin_token
        self.current_site_id = site_id or profile.site_id
        logger.info("Console session started", subject_id=profile.id, role=profile.role.value)

    def teardown(self) -> None:
        if self.profile is not None:
            logger.info("Console session ended", subject_id=self.profile.id)
        self.profile = None
        self.current_site_id = None
        self.credentials.clear()
        self.site_credentials.clear()
        self.admin_token = None
        self.last_credential = None
        self.permission_request_pending = False

    def remember_credential(self, site_id: str, credential: Credential) -> None:
        self.credentials[site_id] = credential
        self.last_credential = GlobalCredential(site_id=site_id, credential=credential)

    # ── Local cache ───────────────────────────────────────────────────────

    def persist(self, store: LocalStore) -> None:
        if self.profile is None:
            store.remove(*SESSION_KEYS)
            return
        store.set(PROFILE_KEY, self.profile.to_dict())
        store.set(CURRENT_SITE_KEY, self.current_site_id)
        store.set(
            SITE_CREDENTIALS_KEY,
            {site_id: c.to_dict() for site_id, c in self.credentials.items()},
        )
        store.set(ADMIN_TOKEN_KEY, self.admin_token)

    @classmethod
    def restore(cls, store: LocalStore) -> "SessionContext":
        """
        Rebuild a context from the cache. A privileged profile restored here
        still has to pass the backend session check before it is trusted.
        """
        context = cls()
        raw_profile = store.get(PROFILE_KEY)
        if not raw_profile:
            return context
        try:
            context.profile = ConsoleProfile.from_dict(raw_profile)
        except (KeyError, ValueError, TypeError) as exc:
            logger.warning("Discarding unreadable cached profile", error=str(exc))
            store.remove(*SESSION_KEYS)
            return context
        context.current_site_id = store.get(CURRENT_SITE_KEY)
        context.admin_token = store.get(ADMIN_TOKEN_KEY)
        for site_id, raw in (store.get(SITE_CREDENTIALS_KEY) or {}).items():
            if isinstance(raw, dict) and raw.get("username") and raw.get("secret"):
                context.credentials[site_id] = Credential(raw["username"], raw["secret"])
        return context
