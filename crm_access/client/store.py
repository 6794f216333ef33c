"""
client/store.py
---------------
Small key/value store for console-side caches.

Everything kept here is a cache: the profile, the current site, per-site
session credentials, the privileged token, the per-site mirrored IP whitelists and
the local audit ring buffer. None of it is ever the sole source of truth
for an authorization decision.
"""

import json
from pathlib import Path
from typing import Any, Optional

from crm_access.core.logging import get_logger

logger = get_logger(__name__)

# Fixed keys, one namespace per cached concern
PROFILE_KEY = "crm_profile"
CURRENT_SITE_KEY = "crm_current_site_id"
SITE_CREDENTIALS_KEY = "crm_site_credentials"
ADMIN_TOKEN_KEY = "crm_admin_token"
IP_WHITELIST_KEY = "crm_ip_whitelist"
IP_LOGS_KEY = "crm_ip_logs"

SESSION_KEYS = (PROFILE_KEY, CURRENT_SITE_KEY, SITE_CREDENTIALS_KEY, ADMIN_TOKEN_KEY)


def whitelist_key(site_id: str) -> str:
    """Whitelist mirrors are per site; subject ids are only unique within a tenant."""
    return f"{IP_WHITELIST_KEY}:{site_id}"


class LocalStore:
    """
    JSON-file backed dictionary. With no path it lives in memory only.
    A corrupt or unreadable file is treated as empty.
    """

    def __init__(self, path: Optional[str | Path] = None) -> None:
        self._path = Path(path) if path else None
        self._data: dict[str, Any] = self._read()

    def _read(self) -> dict[str, Any]:
        if self._path is None or not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Local store unreadable, starting empty", path=str(self._path), error=str(exc))
            return {}
        return data if isinstance(data, dict) else {}

    def _flush(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(self._data, indent=2), encoding="utf-8")
        tmp.replace(self._path)

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._flush()

    def remove(self, *keys: str) -> None:
        for key in keys:
            self._data.pop(key, None)
        self._flush()

    def push_capped(self, key: str, item: dict, capacity: int) -> list[dict]:
        """Prepend item to the list under key, keeping the newest `capacity` items."""
        items = self._data.get(key)
        if not isinstance(items, list):
            items = []
        items = [item] + items
        del items[capacity:]
        self.set(key, items)
        return items
