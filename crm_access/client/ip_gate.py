"""
client/ip_gate.py
-----------------
IP access gate, evaluated once per session bootstrap.

Validating → Allowed | Restricted, decided as follows:

  1. privileged subject                          → allowed, nothing consulted
  2. caller IP cannot be determined              → restricted (fail closed)
  3. caller IP is the configured bypass address  → allowed
  4. remote whitelist has (ip, subject)          → allowed
  5. remote whitelist unreachable                → same match on the local
                                                   cache of that site (degraded)
  6. otherwise                                   → restricted, audited

Audit entries go to the tenant's log endpoint first and to a local ring
buffer when that write fails. "Unreachable and no cached match" is always
restricted.
"""

import secrets
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

import httpx

from crm_access.client.config import ConsoleSettings
from crm_access.client.context import SessionContext
from crm_access.client.credentials import CredentialRouter
from crm_access.client.store import IP_LOGS_KEY, LocalStore, whitelist_key
from crm_access.client.tenant_api import TenantApiClient
from crm_access.core.errors import (
    AccessError,
    AuthorizationDenied,
    UpstreamUnreachable,
    VerificationImpossible,
)
from crm_access.core.logging import get_logger
from crm_access.models.permission import Role

logger = get_logger(__name__)

UNAUTHORIZED_ATTEMPT = "unauthorized_attempt"
PERMISSION_REQUEST = "permission_request"
WHITELIST_GRANTED = "ip_whitelisted"


class GateState(str, Enum):
    allowed = "allowed"
    restricted = "restricted"


@dataclass(frozen=True)
class GateDecision:
    state: GateState
    reason: str
    observed_ip: Optional[str] = None
    degraded: bool = False

    @property
    def allowed(self) -> bool:
        return self.state is GateState.allowed


@dataclass(frozen=True)
class WhitelistEntry:
    id: str
    ip: str
    subject_id: str
    label: str = ""
    added_by: str = ""
    added_at: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Optional["WhitelistEntry"]:
        """Accepts the tenant's camelCase shape as well as the cached one."""
        ip = data.get("ip")
        subject_id = next(
            (data[k] for k in ("subject_id", "userId", "subjectId") if data.get(k) not in (None, "")),
            None,
        )
        if not ip or subject_id is None:
            return None
        return cls(
            id=str(data.get("id", "")),
            ip=str(ip).strip(),
            subject_id=str(subject_id),
            label=str(data.get("label", "")),
            added_by=str(data.get("added_by", data.get("addedBy", ""))),
            added_at=str(data.get("added_at", data.get("addedAt", ""))),
        )

    def to_remote(self, username: str = "") -> dict[str, str]:
        return {
            "id": self.id,
            "ip": self.ip,
            "userId": self.subject_id,
            "username": username,
            "label": self.label,
            "addedBy": self.added_by,
            "addedAt": self.added_at,
        }


def subject_matches(stored_id: str, subject_id: str) -> bool:
    """
    Stored ids come as a bare id ("42") or as "<tenantId>_<userId>"
    ("site1_42"); both match a caller id of "42".
    """
    stored_id = str(stored_id)
    return stored_id == subject_id or stored_id.rsplit("_", 1)[-1] == subject_id


def whitelist_matches(
    entries: Iterable[WhitelistEntry], ip: str, subject_id: str
) -> bool:
    return any(e.ip == ip and subject_matches(e.subject_id, subject_id) for e in entries)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class IpAccessGate:

    def __init__(
        self,
        http: httpx.AsyncClient,
        router: CredentialRouter,
        tenant_api: TenantApiClient,
        store: LocalStore,
        settings: ConsoleSettings,
    ) -> None:
        self._http = http
        self._router = router
        self._tenant_api = tenant_api
        self._store = store
        self._settings = settings

    async def evaluate(self, context: SessionContext) -> GateDecision:
        profile = context.profile
        if profile is None:
            return GateDecision(GateState.restricted, "no_session")
        if profile.is_privileged:
            return GateDecision(GateState.allowed, "privileged")

        try:
            ip = await self.observe_ip()
        except VerificationImpossible:
            logger.warning("Caller IP unverifiable, restricting", subject_id=profile.id)
            return GateDecision(GateState.restricted, "ip_unverifiable")

        bypass = self._settings.IP_BYPASS_ADDRESS
        if bypass and ip == bypass:
            return GateDecision(GateState.allowed, "bypass_address", observed_ip=ip)

        try:
            remote = await self.fetch_whitelist(context)
        except AccessError as exc:
            logger.warning(
                "Remote whitelist unreachable, using local cache",
                degraded=True,
                site_id=context.current_site_id,
                error=exc.code,
            )
            cached = self.cached_whitelist(context.current_site_id)
            if whitelist_matches(cached, ip, profile.id):
                return GateDecision(
                    GateState.allowed, "whitelisted_cached", observed_ip=ip, degraded=True
                )
            decision = GateDecision(
                GateState.restricted, "not_whitelisted", observed_ip=ip, degraded=True
            )
        else:
            if whitelist_matches(remote, ip, profile.id):
                return GateDecision(GateState.allowed, "whitelisted", observed_ip=ip)
            decision = GateDecision(GateState.restricted, "not_whitelisted", observed_ip=ip)

        logger.warning("IP not whitelisted, restricting", subject_id=profile.id, ip=ip)
        await self.audit(context, UNAUTHORIZED_ATTEMPT, ip=ip)
        return decision

    async def observe_ip(self) -> str:
        """Public address of the caller, as reported by the IP echo service."""
        try:
            response = await self._http.get(self._settings.IP_ECHO_URL)
            response.raise_for_status()
            ip = response.json().get("ip")
        except (httpx.HTTPError, ValueError, AttributeError) as exc:
            raise VerificationImpossible(f"IP echo failed: {exc.__class__.__name__}") from exc
        if not ip or not isinstance(ip, str):
            raise VerificationImpossible("IP echo returned no address")
        return ip.strip()

    # ── Whitelist ─────────────────────────────────────────────────────────

    async def fetch_whitelist(self, context: SessionContext) -> list[WhitelistEntry]:
        """
        Remote whitelist of the current site. A successful fetch is mirrored
        into the local cache.

        Raises:
            UpstreamUnreachable: no site, no usable credential, or the tenant
            could not serve the list.
        """
        site_id = context.current_site_id
        if site_id is None:
            raise UpstreamUnreachable("No current site")
        site = self._router.get_site(site_id)
        header = await self._router.resolve_auth_header(context, site_id)
        if header is None:
            raise UpstreamUnreachable(f"No credential for site '{site_id}'")
        raw = await self._tenant_api.get_ip_whitelist(site.url, header)
        entries = [e for e in map(WhitelistEntry.from_mapping, raw) if e is not None]
        self._store.set(whitelist_key(site_id), [asdict(e) for e in entries])
        return entries

    def cached_whitelist(self, site_id: Optional[str]) -> list[WhitelistEntry]:
        if site_id is None:
            return []
        raw = self._store.get(whitelist_key(site_id)) or []
        if not isinstance(raw, list):
            return []
        return [
            e for e in (WhitelistEntry.from_mapping(r) for r in raw if isinstance(r, dict))
            if e is not None
        ]

    async def grant(
        self,
        context: SessionContext,
        ip: str,
        subject_id: str,
        label: str = "",
    ) -> WhitelistEntry:
        """
        Operator action: add a whitelist entry on the current site.
        Only the privileged subject and tenant admins may grant access.
        """
        profile = context.profile
        if profile is None or not (profile.is_privileged or profile.role is Role.admin):
            raise AuthorizationDenied("Only administrators can whitelist addresses")
        site_id = context.current_site_id
        if site_id is None:
            raise UpstreamUnreachable("No current site")
        site = self._router.get_site(site_id)
        header = await self._router.resolve_auth_header(context, site_id)
        if header is None:
            raise UpstreamUnreachable(f"No credential for site '{site_id}'")

        entry = WhitelistEntry(
            id=secrets.token_hex(5),
            ip=ip.strip(),
            subject_id=str(subject_id),
            label=label,
            added_by=profile.username,
            added_at=_now(),
        )
        await self._tenant_api.add_ip_whitelist(site.url, header, entry.to_remote())
        cached = self.cached_whitelist(site_id) + [entry]
        self._store.set(whitelist_key(site_id), [asdict(e) for e in cached])
        await self.audit(context, WHITELIST_GRANTED, ip=entry.ip, target=entry.subject_id)
        return entry

    # ── Permission requests & audit ───────────────────────────────────────

    async def request_permission(self, context: SessionContext, note: str = "") -> bool:
        """
        Record a request for access from a restricted session. Does not
        change access; an operator still has to add a whitelist entry.

        Returns:
            The pending indicator (always True once recorded).
        """
        if context.profile is None:
            raise AuthorizationDenied("No active session")
        try:
            ip: Optional[str] = await self.observe_ip()
        except VerificationImpossible:
            ip = None
        await self.audit(context, PERMISSION_REQUEST, ip=ip, note=note)
        context.permission_request_pending = True
        return True

    async def audit(self, context: SessionContext, action: str, **details: Any) -> bool:
        """
        Write an audit entry to the current site, else to the local ring
        buffer.

        Returns:
            True if the tenant accepted the entry.
        """
        profile = context.profile
        entry = {
            "action": action,
            "subject_id": profile.id if profile else None,
            "username": profile.username if profile else None,
            "site_id": context.current_site_id,
            "timestamp": _now(),
            **details,
        }
        text = " ".join(f"{k}={v}" for k, v in entry.items() if k not in ("action", "timestamp"))
        try:
            site_id = context.current_site_id
            if site_id is None:
                raise UpstreamUnreachable("No current site")
            site = self._router.get_site(site_id)
            header = await self._router.resolve_auth_header(context, site_id)
            if header is None:
                raise UpstreamUnreachable(f"No credential for site '{site_id}'")
            await self._tenant_api.log_activity(site.url, header, action, text)
            return True
        except AccessError as exc:
            logger.warning(
                "Remote audit failed, writing local audit log",
                degraded=True,
                action=action,
                error=exc.code,
            )
            self._store.push_capped(IP_LOGS_KEY, entry, self._settings.AUDIT_LOG_CAPACITY)
            return False

    def audit_log(self) -> list[dict]:
        """Local ring buffer, newest first."""
        logs = self._store.get(IP_LOGS_KEY) or []
        return list(logs) if isinstance(logs, list) else []
