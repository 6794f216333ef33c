"""
client/backend.py
-----------------
Async client for the crm_access backend API.

logout() is fire-and-forget: a failure is logged and swallowed so the
console can always complete its local sign-out. The server-side registry
stays authoritative for later authorization.
"""

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

import httpx

from crm_access.client.context import ConsoleProfile, Credential
from crm_access.core.errors import (
    AuthenticationFailure,
    AuthorizationDenied,
    PermissionWriteError,
    SessionConflict,
    UpstreamUnreachable,
)
from crm_access.core.logging import get_logger
from crm_access.models.permission import Role

logger = get_logger(__name__)

SESSION_INVALIDATED = "SESSION_INVALIDATED"


@dataclass(frozen=True)
class SiteRecord:
    id: str
    name: str
    url: str
    is_default: bool = False
    has_credentials: bool = False
    assigned_subject_ids: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SiteRecord":
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            url=data["url"],
            is_default=bool(data.get("is_default", False)),
            has_credentials=bool(data.get("has_credentials", False)),
            assigned_subject_ids=[str(s) for s in data.get("assigned_subject_ids") or []],
        )


@dataclass(frozen=True)
class PrivilegedLogin:
    token: str
    profile: ConsoleProfile


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


class BackendClient:

    def __init__(self, http: httpx.AsyncClient, base_url: str) -> None:
        self._http = http
        self._base_url = base_url.rstrip("/")

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._http.request(method, f"{self._base_url}{path}", **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("Backend unreachable", path=path, error=str(exc))
            raise UpstreamUnreachable(f"Backend unreachable: {exc.__class__.__name__}") from exc

    # ── Auth ──────────────────────────────────────────────────────────────

    async def login(self, username: str, password: str) -> PrivilegedLogin:
        response = await self._send(
            "POST", "/auth/login", json={"username": username, "password": password}
        )
        if response.status_code in (400, 401, 422):
            raise AuthenticationFailure("Invalid credentials")
        if response.status_code == 409:
            raise SessionConflict(_error_detail(response) or "Concurrent login in progress")
        if response.is_error:
            raise UpstreamUnreachable(f"Login failed (HTTP {response.status_code})")
        try:
            data = response.json()
            raw = data["profile"]
            profile = ConsoleProfile(
                id=str(raw["id"]),
                username=raw["username"],
                role=Role(raw["role"]),
                email=raw.get("email"),
            )
            return PrivilegedLogin(token=data["token"], profile=profile)
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Malformed login response", error=str(exc))
            raise UpstreamUnreachable("Login response was malformed") from exc

    async def session_valid(self, token: str) -> bool:
        """
        False when the backend reports the session superseded, expired or
        the token unusable. Raises UpstreamUnreachable if it cannot be asked.
        """
        response = await self._send("GET", "/auth/session-valid", headers=_bearer(token))
        if response.status_code == 401:
            code = _error_code(response)
            if code == SESSION_INVALIDATED:
                logger.info("Session invalidated by backend")
            return False
        if response.is_error:
            raise UpstreamUnreachable(f"Session check failed (HTTP {response.status_code})")
        try:
            return bool(response.json().get("valid"))
        except (ValueError, AttributeError) as exc:
            raise UpstreamUnreachable("Session check returned a malformed body") from exc

    async def logout(self, token: str) -> None:
        try:
            response = await self._send("POST", "/auth/logout", headers=_bearer(token))
        except UpstreamUnreachable:
            return
        if response.is_error:
            logger.warning("Backend logout failed", status=response.status_code)

    # ── Permissions ───────────────────────────────────────────────────────

    async def list_permissions(self) -> list[dict[str, Any]]:
        response = await self._send("GET", "/permissions")
        if response.is_error:
            raise UpstreamUnreachable(f"Permission read failed (HTTP {response.status_code})")
        return response.json()

    async def update_permission(
        self, token: str, role: str, feature: str, can_read: bool, can_write: bool
    ) -> None:
        response = await self._send(
            "PUT",
            "/permissions",
            headers=_bearer(token),
            json={"role": role, "feature": feature, "can_read": can_read, "can_write": can_write},
        )
        self._raise_for_write(response)

    async def bulk_update_permissions(
        self, token: str, entries: Iterable[dict[str, Any]]
    ) -> int:
        response = await self._send(
            "POST", "/permissions/bulk", headers=_bearer(token), json={"permissions": list(entries)}
        )
        self._raise_for_write(response)
        return int(response.json().get("updated", 0))

    # ── Sites ─────────────────────────────────────────────────────────────

    async def list_sites(self) -> list[SiteRecord]:
        response = await self._send("GET", "/sites")
        if response.is_error:
            raise UpstreamUnreachable(f"Site list failed (HTTP {response.status_code})")
        return [SiteRecord.from_dict(s) for s in response.json()]

    async def get_site_credentials(self, token: str, site_id: str) -> Optional[Credential]:
        response = await self._send(
            "GET", f"/sites/{site_id}/credentials", headers=_bearer(token)
        )
        if response.status_code == 404:
            return None
        if response.status_code in (401, 403):
            raise AuthorizationDenied("Stored site credentials require the privileged session")
        if response.is_error:
            raise UpstreamUnreachable(f"Credential read failed (HTTP {response.status_code})")
        data = response.json()
        return Credential(username=data["username"], secret=data["secret"])

    @staticmethod
    def _raise_for_write(response: httpx.Response) -> None:
        if response.status_code in (401, 403):
            raise AuthorizationDenied("Permission writes require the privileged session")
        if response.is_error:
            detail = _error_detail(response)
            raise PermissionWriteError(detail or f"Permission write failed (HTTP {response.status_code})")


def _error_code(response: httpx.Response) -> Optional[str]:
    try:
        return response.json().get("code")
    except (ValueError, AttributeError):
        return None


def _error_detail(response: httpx.Response) -> Optional[str]:
    try:
        detail = response.json().get("detail")
    except (ValueError, AttributeError):
        return None
    return detail if isinstance(detail, str) else None
