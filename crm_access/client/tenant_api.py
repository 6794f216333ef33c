"""
client/tenant_api.py
--------------------
Thin async client for the tenant (WordPress) REST endpoints the access
subsystem needs:

  GET  /wp-json/wp/v2/users/me?context=edit   — "who am I" probe
  GET  /wp-json/crm/v1/ip-whitelist           — remote IP whitelist
  POST /wp-json/crm/v1/ip-whitelist           — add a whitelist entry
  POST /wp-json/crm/v1/log                    — audit log entry

Failure mapping:
  401 / 403          → AuthenticationFailure (bad or insufficient credential)
  transport error,
  any other non-2xx,
  unparseable body   → UpstreamUnreachable
"""

from typing import Any, Optional

import httpx

from crm_access.core.errors import AuthenticationFailure, UpstreamUnreachable
from crm_access.core.logging import get_logger

logger = get_logger(__name__)


def api_base(url: str) -> str:
    """Normalise a site URL to its /wp-json root."""
    base = url.strip().rstrip("/")
    if not base.startswith(("http://", "https://")):
        base = "https://" + base
    if "/wp-json" not in base:
        base = f"{base}/wp-json"
    return base


class TenantApiClient:

    def __init__(self, http: httpx.AsyncClient) -> None:
        self._http = http

    async def who_am_i(self, site_url: str, auth_header: str) -> dict[str, Any]:
        return await self._request(
            "GET",
            f"{api_base(site_url)}/wp/v2/users/me",
            auth_header,
            params={"context": "edit"},
        )

    async def get_ip_whitelist(self, site_url: str, auth_header: str) -> list[dict[str, Any]]:
        data = await self._request(
            "GET", f"{api_base(site_url)}/crm/v1/ip-whitelist", auth_header
        )
        if not isinstance(data, list):
            raise UpstreamUnreachable("IP whitelist response is not a list")
        return [e for e in data if isinstance(e, dict)]

    async def add_ip_whitelist(
        self, site_url: str, auth_header: str, entry: dict[str, Any]
    ) -> dict[str, Any]:
        return await self._request(
            "POST", f"{api_base(site_url)}/crm/v1/ip-whitelist", auth_header, json=entry
        )

    async def log_activity(
        self, site_url: str, auth_header: str, action: str, details: str
    ) -> None:
        await self._request(
            "POST",
            f"{api_base(site_url)}/crm/v1/log",
            auth_header,
            json={"action": action, "details": details},
        )

    async def _request(
        self,
        method: str,
        url: str,
        auth_header: Optional[str],
        **kwargs: Any,
    ) -> Any:
        headers = {"Authorization": auth_header} if auth_header else {}
        try:
            response = await self._http.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("Tenant unreachable", url=url, error=str(exc))
            raise UpstreamUnreachable(f"Tenant unreachable: {exc.__class__.__name__}") from exc

        if response.status_code in (401, 403):
            raise AuthenticationFailure(f"Tenant rejected the credential (HTTP {response.status_code})")
        if response.is_error:
            logger.warning(
                "Tenant request failed",
                url=url,
                status=response.status_code,
                body=response.text[:120],
            )
            raise UpstreamUnreachable(f"Tenant request failed (HTTP {response.status_code})")
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamUnreachable("Tenant returned a non-JSON response") from exc
