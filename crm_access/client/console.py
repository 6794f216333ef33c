"""
client/console.py
-----------------
AccessConsole: the one object a console front end holds.

It owns the shared httpx.AsyncClient, the SessionContext and the local
store, and wires the backend client, credential router, IP gate, session
monitor, idle timer and permission matrix together.

Lifecycle:
    console = AccessConsole(settings)
    await console.open()            # restore cache, load sites + matrix
    await console.sign_in_privileged(username, password)
      or await console.sign_in_tenant(username, secret[, site_id])
    decision = await console.bootstrap()   # IP gate
    ...
    console.touch()                 # on user activity (tenant sessions)
    await console.sign_out()
    await console.close()
"""

import inspect
from typing import Optional

import httpx

from crm_access.client.backend import BackendClient
from crm_access.client.config import ConsoleSettings, get_console_settings
from crm_access.client.context import SessionContext
from crm_access.client.credentials import CredentialRouter, SiteLogin, SiteSwitch
from crm_access.client.idle_timeout import IdleCallback, IdleTimeout
from crm_access.client.ip_gate import GateDecision, IpAccessGate
from crm_access.client.permissions import has_permission, load_matrix_with_fallback
from crm_access.client.session_monitor import InvalidatedCallback, SessionMonitor
from crm_access.client.store import LocalStore
from crm_access.client.tenant_api import TenantApiClient
from crm_access.core.errors import UpstreamUnreachable
from crm_access.core.logging import get_logger
from crm_access.services.permission_matrix import DEFAULT_MATRIX, AccessType, Matrix

logger = get_logger(__name__)


class AccessConsole:

    def __init__(
        self,
        settings: Optional[ConsoleSettings] = None,
        http: Optional[httpx.AsyncClient] = None,
        store: Optional[LocalStore] = None,
        on_session_invalidated: Optional[InvalidatedCallback] = None,
        on_idle_warning: Optional[IdleCallback] = None,
    ) -> None:
        self.settings = settings or get_console_settings()
        self._owns_http = http is None
        self.http = http or httpx.AsyncClient(timeout=self.settings.HTTP_TIMEOUT_SECONDS)
        self.store = store or LocalStore(self.settings.LOCAL_STORE_PATH)
        self.context = SessionContext()
        self._on_session_invalidated = on_session_invalidated or (lambda: None)

        self.backend = BackendClient(self.http, self.settings.BACKEND_URL)
        self.tenant_api = TenantApiClient(self.http)
        self.router = CredentialRouter(self.tenant_api, self.backend)
        self.gate = IpAccessGate(self.http, self.router, self.tenant_api, self.store, self.settings)
        self.monitor = SessionMonitor(
            self.backend,
            self.context,
            on_invalidated=self._on_session_invalidated,
            interval=self.settings.SESSION_POLL_INTERVAL_SECONDS,
            store=self.store,
        )
        self.idle = IdleTimeout(
            on_idle=self._sign_out_idle,
            on_warning=on_idle_warning,
            timeout=self.settings.IDLE_TIMEOUT_SECONDS,
            warning_before=self.settings.IDLE_WARNING_SECONDS,
        )

        self.matrix: Matrix = DEFAULT_MATRIX
        self.matrix_degraded = True
        self.last_decision: Optional[GateDecision] = None

    # ── Lifecycle ─────────────────────────────────────────────────────────

    async def open(self) -> None:
        """Restore the cached session and load sites and the matrix."""
        restored = SessionContext.restore(self.store)
        self._adopt(restored)
        try:
            await self.router.refresh_sites()
        except UpstreamUnreachable as exc:
            logger.warning("Site list unreachable", degraded=True, error=exc.detail)
        await self.refresh_matrix()

        if self.context.is_privileged:
            if await self.monitor.check_once():
                self.monitor.start()
        elif self.context.active:
            self.idle.start()

    async def close(self) -> None:
        await self.monitor.stop()
        await self.idle.stop()
        if self._owns_http:
            await self.http.aclose()

    async def refresh_matrix(self) -> Matrix:
        self.matrix, self.matrix_degraded = await load_matrix_with_fallback(self.backend)
        return self.matrix

    def _adopt(self, other: SessionContext) -> None:
        # The monitor, router and gate hold this exact context object
        self.context.teardown()
        for name in (
            "profile",
            "current_site_id",
            "admin_token",
            "last_credential",
            "permission_request_pending",
        ):
            setattr(self.context, name, getattr(other, name))
        self.context.credentials.update(other.credentials)
        self.context.site_credentials.update(other.site_credentials)

    # ── Sign-in / sign-out ────────────────────────────────────────────────

    async def sign_in_privileged(self, username: str, password: str) -> None:
        login = await self.backend.login(username, password)
        await self.monitor.stop()
        await self.idle.stop()
        self.context.start(login.profile, admin_token=login.token)
        default = next((s for s in self.router.sites if s.is_default), None)
        if default is not None:
            self.context.current_site_id = default.id
        self.context.persist(self.store)
        self.monitor.start()

    async def sign_in_tenant(
        self, username: str, secret: str, site_id: Optional[str] = None
    ) -> SiteLogin:
        login = await self.router.login_to_site(self.context, username, secret, site_id)
        self.context.persist(self.store)
        if not self.context.is_privileged:
            await self.idle.stop()
            self.idle.start()
        return login

    async def switch_site(self, site_id: str) -> SiteSwitch:
        result = await self.router.switch_site(self.context, site_id)
        self.context.persist(self.store)
        return result

    async def sign_out(self) -> None:
        token = self.context.admin_token
        await self.monitor.stop()
        await self.idle.stop()
        self.context.teardown()
        self.context.persist(self.store)
        self.last_decision = None
        if token:
            await self.backend.logout(token)

    async def _sign_out_idle(self) -> None:
        profile = self.context.profile
        logger.info("Signing out after inactivity", subject_id=profile.id if profile else None)
        await self.sign_out()
        result = self._on_session_invalidated()
        if inspect.isawaitable(result):
            await result

    # ── Activity ──────────────────────────────────────────────────────────

    def touch(self) -> bool:
        """User activity; restarts the idle countdown unless the warning is up."""
        return self.idle.touch()

    async def stay_signed_in(self) -> None:
        await self.idle.stay_signed_in()

    # ── Gate & permissions ────────────────────────────────────────────────

    async def bootstrap(self) -> GateDecision:
        self.last_decision = await self.gate.evaluate(self.context)
        return self.last_decision

    async def request_permission(self, note: str = "") -> bool:
        return await self.gate.request_permission(self.context, note)

    def can(self, feature: str, access: AccessType = "read") -> bool:
        if self.last_decision is not None and not self.last_decision.allowed:
            return False
        return has_permission(self.matrix, self.context, feature, access)
