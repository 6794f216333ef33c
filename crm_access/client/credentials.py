"""
client/credentials.py
---------------------
Site / credential routing.

Every call to a tenant API needs Basic credentials, and which credential
applies depends on who is asking and which site is targeted. The policy is
an explicit ordered tuple of resolvers, each returning a Credential or None:

  1. session credential the caller authenticated with on that site
  2. privileged callers only: the site's stored credential
  3. credential from the most recent successful login, only for the site
     it was obtained on (or for privileged callers)
  4. nothing: the caller has to authenticate against the site

A tenant user therefore never receives a credential for a site they have
not signed in to.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Optional

from crm_access.client.backend import BackendClient, SiteRecord
from crm_access.client.context import ConsoleProfile, Credential, SessionContext
from crm_access.client.roles import map_external_roles
from crm_access.client.tenant_api import TenantApiClient
from crm_access.core.errors import (
    AccessError,
    AuthenticationFailure,
    AuthorizationDenied,
    SiteNotFound,
    UpstreamUnreachable,
)
from crm_access.core.logging import get_logger
from crm_access.models.permission import Role

logger = get_logger(__name__)

Resolver = Callable[[SessionContext, str], Awaitable[Optional[Credential]]]


@dataclass(frozen=True)
class SiteLogin:
    profile: ConsoleProfile
    site_id: str


@dataclass(frozen=True)
class SiteSwitch:
    site_id: str
    needs_authentication: bool


class CredentialRouter:

    def __init__(
        self,
        tenant_api: TenantApiClient,
        backend: Optional[BackendClient] = None,
        sites: Iterable[SiteRecord] = (),
    ) -> None:
        self._tenant_api = tenant_api
        self._backend = backend
        self._sites: dict[str, SiteRecord] = {}
        self.set_sites(sites)
        self.resolvers: tuple[Resolver, ...] = (
            self._from_session,
            self._from_site_store,
            self._from_last_login,
        )

    # ── Site directory ────────────────────────────────────────────────────

    @property
    def sites(self) -> list[SiteRecord]:
        return list(self._sites.values())

    def set_sites(self, sites: Iterable[SiteRecord]) -> None:
        self._sites = {s.id: s for s in sites}

    async def refresh_sites(self) -> list[SiteRecord]:
        if self._backend is None:
            return self.sites
        self.set_sites(await self._backend.list_sites())
        return self.sites

    def get_site(self, site_id: str) -> SiteRecord:
        try:
            return self._sites[site_id]
        except KeyError:
            raise SiteNotFound(f"Site '{site_id}' is not configured") from None

    # ── Resolution ────────────────────────────────────────────────────────

    async def resolve_credential(
        self, context: SessionContext, site_id: str
    ) -> Optional[Credential]:
        for resolver in self.resolvers:
            credential = await resolver(context, site_id)
            if credential is not None:
                return credential
        return None

    async def resolve_auth_header(
        self, context: SessionContext, site_id: Optional[str] = None
    ) -> Optional[str]:
        """Authorization header value for the target site, or None."""
        site_id = site_id or context.current_site_id
        if site_id is None:
            return None
        credential = await self.resolve_credential(context, site_id)
        return credential.header() if credential else None

    async def _from_session(
        self, context: SessionContext, site_id: str
    ) -> Optional[Credential]:
        return context.credentials.get(site_id)

    async def _from_site_store(
        self, context: SessionContext, site_id: str
    ) -> Optional[Credential]:
        if not context.is_privileged:
            return None
        cached = context.site_credentials.get(site_id)
        if cached is not None:
            return cached
        if self._backend is None or not context.admin_token:
            return None
        try:
            credential = await self._backend.get_site_credentials(context.admin_token, site_id)
        except (UpstreamUnreachable, AuthorizationDenied) as exc:
            logger.warning("Stored site credential unavailable", site_id=site_id, error=exc.code)
            return None
        if credential is not None:
            context.site_credentials[site_id] = credential
        return credential

    async def _from_last_login(
        self, context: SessionContext, site_id: str
    ) -> Optional[Credential]:
        last = context.last_credential
        if last is None:
            return None
        if context.is_privileged or last.site_id == site_id:
            return last.credential
        return None

    # ── Tenant sign-in ────────────────────────────────────────────────────

    async def login_to_site(
        self,
        context: SessionContext,
        username: str,
        secret: str,
        site_id: Optional[str] = None,
    ) -> SiteLogin:
        """
        Probe candidate sites one after another with the credential and stop
        at the first that accepts it. Without an explicit site every
        configured site is a candidate, in configured order.

        Raises:
            AuthenticationFailure / UpstreamUnreachable: the last error seen
            once every candidate has failed.
        """
        candidates = [self.get_site(site_id)] if site_id else self.sites
        if not candidates:
            raise SiteNotFound("No tenant sites are configured")

        credential = Credential(username=username, secret=secret)
        last_error: AccessError = AuthenticationFailure("Invalid credentials")
        for site in candidates:
            try:
                me = await self._tenant_api.who_am_i(site.url, credential.header())
            except (AuthenticationFailure, UpstreamUnreachable) as exc:
                logger.info("Tenant probe failed", site_id=site.id, error=exc.code)
                last_error = exc
                continue
            profile = _profile_from_tenant(me, username, site.id)
            self._record_login(context, profile, site.id, credential)
            logger.info(
                "Tenant login",
                site_id=site.id,
                subject_id=profile.id,
                role=profile.role.value,
            )
            return SiteLogin(profile=profile, site_id=site.id)
        raise last_error

    def _record_login(
        self,
        context: SessionContext,
        profile: ConsoleProfile,
        site_id: str,
        credential: Credential,
    ) -> None:
        # A privileged operator keeps its own profile. A tenant user re-signing
        # on another site keeps the sites already unlocked; a different tenant
        # user starts from an empty context.
        if not context.active or (
            not context.is_privileged and context.profile.username != profile.username
        ):
            context.start(profile, site_id=site_id)
        elif not context.is_privileged:
            context.profile = profile
            context.current_site_id = site_id
        context.remember_credential(site_id, credential)

    # ── Site switching ────────────────────────────────────────────────────

    async def switch_site(self, context: SessionContext, site_id: str) -> SiteSwitch:
        """
        Make site_id current. If no credential resolves for it the caller
        must authenticate against that site before using it.
        """
        self.get_site(site_id)
        context.current_site_id = site_id
        credential = await self.resolve_credential(context, site_id)
        if credential is None:
            logger.info("Site switch requires authentication", site_id=site_id)
        return SiteSwitch(site_id=site_id, needs_authentication=credential is None)

    def accessible_sites(self, context: SessionContext) -> list[SiteRecord]:
        if context.profile is None:
            return []
        if context.is_privileged:
            return self.sites
        if context.profile.role is Role.admin:
            return [
                s for s in self.sites
                if context.profile.id in s.assigned_subject_ids or s.is_default
            ]
        current = self._sites.get(context.current_site_id or "")
        return [current] if current else []


def _profile_from_tenant(me: object, username: str, site_id: str) -> ConsoleProfile:
    if not isinstance(me, dict):
        me = {}
    roles = me.get("roles")
    return ConsoleProfile(
        id=str(me.get("id") or username),
        username=username,
        role=map_external_roles(roles if isinstance(roles, list) else None),
        email=me.get("email"),
        site_id=site_id,
    )
