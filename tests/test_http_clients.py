from __future__ import annotations

import httpx
import pytest

from crm_access.client.backend import BackendClient
from crm_access.client.context import Credential
from crm_access.client.permissions import load_matrix_with_fallback
from crm_access.client.tenant_api import TenantApiClient, api_base
from crm_access.core.errors import (
    AuthenticationFailure,
    AuthorizationDenied,
    PermissionWriteError,
    SessionConflict,
    UpstreamUnreachable,
)
from crm_access.services.permission_matrix import DEFAULT_MATRIX, Grant


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _refuse(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


@pytest.mark.parametrize(
    "url, expected",
    [
        ("https://one.example", "https://one.example/wp-json"),
        ("https://one.example/", "https://one.example/wp-json"),
        ("one.example/blog", "https://one.example/blog/wp-json"),
        ("https://one.example/wp-json/", "https://one.example/wp-json"),
    ],
)
def test_api_base(url, expected) -> None:
    assert api_base(url) == expected


# ── Tenant API ────────────────────────────────────────────────────────────────

async def test_who_am_i_sends_basic_auth_and_edit_context() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": 42, "roles": ["editor"]})

    header = Credential("jane", "pw").header()
    async with _client(handler) as http:
        me = await TenantApiClient(http).who_am_i("https://one.example", header)

    assert me["id"] == 42
    assert seen[0].url.path == "/wp-json/wp/v2/users/me"
    assert seen[0].url.params["context"] == "edit"
    assert seen[0].headers["Authorization"] == header


@pytest.mark.parametrize("status", [401, 403])
async def test_tenant_rejection_is_authentication_failure(status) -> None:
    async with _client(lambda request: httpx.Response(status)) as http:
        with pytest.raises(AuthenticationFailure):
            await TenantApiClient(http).who_am_i("https://one.example", "Basic x")


@pytest.mark.parametrize(
    "handler",
    [
        lambda request: httpx.Response(500, text="fatal error"),
        lambda request: httpx.Response(200, text="<html>maintenance</html>"),
        _refuse,
    ],
)
async def test_tenant_outage_is_upstream_unreachable(handler) -> None:
    async with _client(handler) as http:
        with pytest.raises(UpstreamUnreachable):
            await TenantApiClient(http).who_am_i("https://one.example", "Basic x")


async def test_whitelist_must_be_a_list() -> None:
    async with _client(lambda request: httpx.Response(200, json={"ip": "1.2.3.4"})) as http:
        with pytest.raises(UpstreamUnreachable):
            await TenantApiClient(http).get_ip_whitelist("https://one.example", "Basic x")


# ── Backend client ────────────────────────────────────────────────────────────

async def test_backend_login_rejection() -> None:
    response = httpx.Response(401, json={"detail": "Invalid credentials", "code": "AUTHENTICATION_FAILED"})
    async with _client(lambda request: response) as http:
        with pytest.raises(AuthenticationFailure):
            await BackendClient(http, "http://backend").login("superadmin", "nope")


async def test_backend_session_valid() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.headers["Authorization"] == "Bearer good":
            return httpx.Response(200, json={"valid": True})
        return httpx.Response(401, json={"detail": "Session invalidated.", "code": "SESSION_INVALIDATED"})

    async with _client(handler) as http:
        backend = BackendClient(http, "http://backend/")
        assert await backend.session_valid("good") is True
        assert await backend.session_valid("stale") is False


async def test_backend_login_conflict_is_not_an_outage() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            409, json={"detail": "Could not create session", "code": "SESSION_CONFLICT"}
        )

    async with _client(handler) as http:
        with pytest.raises(SessionConflict, match="Could not create session"):
            await BackendClient(http, "http://backend").login("superadmin", "pw")


@pytest.mark.parametrize(
    "body",
    [b"<html>proxy</html>", b'{"token": "t"}', b"[]"],
)
async def test_backend_login_malformed_body_is_upstream_unreachable(body) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=body)

    async with _client(handler) as http:
        with pytest.raises(UpstreamUnreachable):
            await BackendClient(http, "http://backend").login("superadmin", "pw")


async def test_backend_session_check_with_html_body_is_upstream_unreachable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>proxy</html>")

    async with _client(handler) as http:
        with pytest.raises(UpstreamUnreachable):
            await BackendClient(http, "http://backend").session_valid("good")


async def test_backend_logout_swallows_outage() -> None:
    async with _client(_refuse) as http:
        await BackendClient(http, "http://backend").logout("token")


async def test_backend_site_credentials() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        site = request.url.path.split("/")[2]
        if site == "site1":
            return httpx.Response(200, json={"site_id": "site1", "username": "api", "secret": "pw"})
        if site == "bare":
            return httpx.Response(404, json={"detail": "none"})
        return httpx.Response(403, json={"detail": "no"})

    async with _client(handler) as http:
        backend = BackendClient(http, "http://backend")
        assert await backend.get_site_credentials("t", "site1") == Credential("api", "pw")
        assert await backend.get_site_credentials("t", "bare") is None
        with pytest.raises(AuthorizationDenied):
            await backend.get_site_credentials("t", "other")


async def test_backend_bulk_error_carries_detail() -> None:
    response = httpx.Response(
        400,
        json={"detail": "Permission entry #3 is invalid: x", "code": "PERMISSION_WRITE_FAILED"},
    )
    async with _client(lambda request: response) as http:
        with pytest.raises(PermissionWriteError) as excinfo:
            await BackendClient(http, "http://backend").bulk_update_permissions("t", [{}])

    assert "#3" in excinfo.value.detail


async def test_matrix_falls_back_to_defaults_when_unreachable() -> None:
    async with _client(_refuse) as http:
        matrix, degraded = await load_matrix_with_fallback(BackendClient(http, "http://backend"))

    assert degraded is True
    assert matrix is DEFAULT_MATRIX


async def test_matrix_loaded_from_backend() -> None:
    rows = [{"role": "client", "feature": "leads", "can_read": True, "can_write": False}]
    async with _client(lambda request: httpx.Response(200, json=rows)) as http:
        matrix, degraded = await load_matrix_with_fallback(BackendClient(http, "http://backend"))

    assert degraded is False
    assert matrix["client"] == {"leads": Grant(True, False)}
