from __future__ import annotations

from conftest import ADMIN_USERNAME, bearer, count_sessions

from crm_access.core.errors import SessionConflict
from crm_access.models.permission import PRIVILEGED_ROLE
from crm_access.services.session_registry import SessionRegistry


async def test_login_returns_token_and_privileged_profile(api, admin_account, session_factory) -> None:
    response = await api.post(
        "/auth/login",
        json={"username": ADMIN_USERNAME, "password": "correct-horse-battery-staple"},
        headers={"User-Agent": "pytest", "X-Forwarded-For": "203.0.113.7, 10.0.0.1"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["token"]
    assert body["token_type"] == "bearer"
    assert body["expires_in"] == 24 * 60 * 60
    assert body["profile"]["role"] == PRIVILEGED_ROLE
    assert body["profile"]["username"] == ADMIN_USERNAME
    assert "hashed_password" not in body["profile"]
    assert await count_sessions(session_factory, active_only=True) == 1


async def test_wrong_password_creates_no_session(api, admin_account, session_factory) -> None:
    response = await api.post(
        "/auth/login", json={"username": ADMIN_USERNAME, "password": "nope"}
    )

    assert response.status_code == 401
    assert response.json()["code"] == "AUTHENTICATION_FAILED"
    assert await count_sessions(session_factory) == 0


async def test_unknown_user_is_indistinguishable_from_wrong_password(api, admin_account) -> None:
    response = await api.post("/auth/login", json={"username": "ghost", "password": "nope"})

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid credentials"


async def test_login_race_exhaustion_is_a_conflict(api, admin_account, monkeypatch) -> None:
    async def collide(*args, **kwargs) -> str:
        raise SessionConflict("Could not create session for privileged:acc-1")

    monkeypatch.setattr(SessionRegistry, "create", staticmethod(collide))

    response = await api.post(
        "/auth/login", json={"username": ADMIN_USERNAME, "password": "correct-horse-battery-staple"}
    )

    assert response.status_code == 409
    assert response.json()["code"] == "SESSION_CONFLICT"


async def test_me_returns_profile(api, login) -> None:
    token = await login()

    response = await api.get("/auth/me", headers=bearer(token))

    assert response.status_code == 200
    assert response.json()["username"] == ADMIN_USERNAME


async def test_second_login_invalidates_first_token(api, login, session_factory) -> None:
    first = await login()
    second = await login()

    stale = await api.get("/auth/me", headers=bearer(first))
    assert stale.status_code == 401
    assert stale.json()["code"] == "SESSION_INVALIDATED"
    assert stale.headers["www-authenticate"] == "Bearer"

    check = await api.get("/auth/session-valid", headers=bearer(first))
    assert check.status_code == 401
    assert check.json()["code"] == "SESSION_INVALIDATED"

    current = await api.get("/auth/session-valid", headers=bearer(second))
    assert current.status_code == 200
    assert current.json() == {"valid": True}

    assert await count_sessions(session_factory) == 2
    assert await count_sessions(session_factory, active_only=True) == 1


async def test_logout_invalidates_and_is_idempotent(api, login) -> None:
    token = await login()

    first = await api.post("/auth/logout", headers=bearer(token))
    second = await api.post("/auth/logout", headers=bearer(token))

    assert first.status_code == 200
    assert second.status_code == 200
    check = await api.get("/auth/session-valid", headers=bearer(token))
    assert check.json()["code"] == "SESSION_INVALIDATED"


async def test_missing_or_garbage_token_is_authentication_failure(api, admin_account) -> None:
    missing = await api.get("/auth/me")
    garbage = await api.get("/auth/me", headers=bearer("garbage"))

    assert missing.status_code == 401
    assert missing.json()["code"] == "AUTHENTICATION_FAILED"
    assert garbage.status_code == 401
    assert garbage.json()["code"] == "AUTHENTICATION_FAILED"


async def test_health(api) -> None:
    response = await api.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
