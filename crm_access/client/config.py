"""
client/config.py
----------------
Console-side settings, loaded the same way as the backend's: environment
variables (prefixed CRM_CONSOLE_) or a .env file.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class ConsoleSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="CRM_CONSOLE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Backend ──────────────────────────────────────────────────────────
    BACKEND_URL: str = "http://localhost:8000"
    HTTP_TIMEOUT_SECONDS: float = 10.0
    SESSION_POLL_INTERVAL_SECONDS: float = 60.0

    # ── Idle sign-out (tenant sessions) ─────────────────────────────────
    IDLE_TIMEOUT_SECONDS: float = 900.0
    # Warning fires this long before the idle sign-out
    IDLE_WARNING_SECONDS: float = 120.0

    # ── IP gate ──────────────────────────────────────────────────────────
    IP_ECHO_URL: str = "https://api.ipify.org?format=json"
    # Observed address that skips the whitelist entirely; empty disables it
    IP_BYPASS_ADDRESS: str = ""
    AUDIT_LOG_CAPACITY: int = 100

    # ── Local cache ──────────────────────────────────────────────────────
    # JSON file backing the local key/value store; None keeps it in memory
    LOCAL_STORE_PATH: Optional[str] = None


@lru_cache()
def get_console_settings() -> ConsoleSettings:
    return ConsoleSettings()
