from __future__ import annotations

import asyncio

import httpx
import pytest
from conftest import ADMIN_PASSWORD, ADMIN_USERNAME

from crm_access.client.config import ConsoleSettings
from crm_access.client.console import AccessConsole
from crm_access.client.context import Credential
from crm_access.client.store import LocalStore
from crm_access.core.errors import AuthenticationFailure
from crm_access.models import PermissionEntry, TenantSite
from crm_access.models.permission import Role

JANE = Credential("jane", "pw")


def tenant_and_echo(request: httpx.Request) -> httpx.Response:
    if request.url.host == "api.ipify.org":
        return httpx.Response(200, json={"ip": "1.2.3.4"})
    if request.headers.get("Authorization") != JANE.header():
        return httpx.Response(401)
    if request.url.path == "/wp-json/wp/v2/users/me":
        return httpx.Response(200, json={"id": 42, "roles": ["contributor"]})
    if request.url.path == "/wp-json/crm/v1/ip-whitelist":
        return httpx.Response(200, json=[{"ip": "1.2.3.4", "userId": "site1_42"}])
    return httpx.Response(200, json={"success": True})


@pytest.fixture
async def seeded(session_factory, admin_account) -> None:
    async with session_factory() as db:
        db.add(
            TenantSite(
                id="site1",
                name="One",
                url="https://one.example",
                username="api-user",
                secret="stored-secret",
                is_default=True,
            )
        )
        db.add(PermissionEntry(role=Role.sales_person.value, feature="leads", can_read=True))
        await db.commit()


@pytest.fixture
async def http(app):
    async with httpx.AsyncClient(
        mounts={
            "http://backend": httpx.ASGITransport(app=app),
            "all://": httpx.MockTransport(tenant_and_echo),
        }
    ) as client:
        yield client


@pytest.fixture
def make_console(http):
    async def _make(invalidated=None, idle_warning=None, **overrides) -> AccessConsole:
        settings = ConsoleSettings(
            BACKEND_URL="http://backend", SESSION_POLL_INTERVAL_SECONDS=3600, **overrides
        )
        console = AccessConsole(
            settings,
            http=http,
            store=LocalStore(),
            on_session_invalidated=invalidated,
            on_idle_warning=idle_warning,
        )
        await console.open()
        return console

    return _make


async def test_privileged_console_flow(make_console, seeded) -> None:
    console = await make_console()

    await console.sign_in_privileged(ADMIN_USERNAME, ADMIN_PASSWORD)
    decision = await console.bootstrap()
    header = await console.router.resolve_auth_header(console.context)

    assert console.matrix_degraded is False
    assert console.context.is_privileged
    assert console.context.current_site_id == "site1"
    assert decision.allowed
    assert console.can("permissions", "write")
    assert header == Credential("api-user", "stored-secret").header()

    token = console.context.admin_token
    await console.sign_out()
    await console.close()

    assert not console.context.active
    assert await console.backend.session_valid(token) is False


async def test_second_privileged_login_signs_out_first_console(make_console, seeded) -> None:
    signed_out: list[bool] = []
    first = await make_console(invalidated=lambda: signed_out.append(True))
    second = await make_console()

    await first.sign_in_privileged(ADMIN_USERNAME, ADMIN_PASSWORD)
    await second.sign_in_privileged(ADMIN_USERNAME, ADMIN_PASSWORD)

    assert await first.monitor.check_once() is False
    assert signed_out == [True]
    assert not first.context.active
    assert await second.monitor.check_once() is True

    await first.close()
    await second.close()


async def test_wrong_privileged_password(make_console, seeded) -> None:
    console = await make_console()

    with pytest.raises(AuthenticationFailure):
        await console.sign_in_privileged(ADMIN_USERNAME, "nope")

    assert not console.context.active
    await console.close()


async def test_tenant_console_flow(make_console, seeded) -> None:
    console = await make_console()

    login = await console.sign_in_tenant("jane", "pw")
    decision = await console.bootstrap()

    assert login.site_id == "site1"
    assert login.profile.role is Role.sales_person
    assert decision.allowed
    assert console.can("leads", "read")
    assert not console.can("leads", "write")
    assert not console.can("permissions", "read")
    await console.close()


async def test_idle_tenant_session_is_signed_out(make_console, seeded) -> None:
    warned: list[bool] = []
    signed_out = asyncio.Event()
    console = await make_console(
        invalidated=signed_out.set,
        idle_warning=lambda: warned.append(True),
        IDLE_TIMEOUT_SECONDS=0.2,
        IDLE_WARNING_SECONDS=0.1,
    )

    await console.sign_in_tenant("jane", "pw")
    assert console.idle.running
    await asyncio.wait_for(signed_out.wait(), timeout=2)

    assert warned == [True]
    assert not console.context.active
    assert not console.touch()
    await console.close()


async def test_privileged_session_has_no_idle_timer(make_console, seeded) -> None:
    console = await make_console(IDLE_TIMEOUT_SECONDS=0.2, IDLE_WARNING_SECONDS=0.1)

    await console.sign_in_privileged(ADMIN_USERNAME, ADMIN_PASSWORD)

    assert not console.idle.running
    assert console.touch() is False
    await console.close()
