from __future__ import annotations

import os
import tempfile
from pathlib import Path

# Settings are read at import time; point them at throwaway values first.
os.environ["SECRET_KEY"] = "test-secret-key-not-for-production"
os.environ["DATABASE_URL"] = (
    f"sqlite+aiosqlite:///{Path(tempfile.gettempdir()) / 'crm_access_import.db'}"
)

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select

from crm_access.db.session import build_engine, build_sessionmaker, get_db
from crm_access.main import create_application
from crm_access.models import Base, SessionRecord
from crm_access.services.account_service import AccountService

ADMIN_USERNAME = "superadmin"
ADMIN_PASSWORD = "correct-horse-battery-staple"


@pytest.fixture
async def engine(tmp_path):
    # One SQLite file per test keeps registry and matrix state isolated.
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'access.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_sessionmaker(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def app(session_factory):
    application = create_application()

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    application.dependency_overrides[get_db] = override_get_db
    return application


@pytest.fixture
async def api(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture
async def admin_account(session_factory):
    async with session_factory() as session:
        account = await AccountService.create_account(
            session, ADMIN_USERNAME, ADMIN_PASSWORD, email="ops@crm.local"
        )
        await session.commit()
    return account


@pytest.fixture
def login(api, admin_account):
    async def _login(password: str = ADMIN_PASSWORD) -> str:
        response = await api.post(
            "/auth/login", json={"username": ADMIN_USERNAME, "password": password}
        )
        assert response.status_code == 200, response.text
        return response.json()["token"]

    return _login


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


async def count_sessions(session_factory, active_only: bool = False) -> int:
    stmt = select(func.count()).select_from(SessionRecord)
    if active_only:
        stmt = stmt.where(SessionRecord.is_active.is_(True))
    async with session_factory() as session:
        return (await session.execute(stmt)).scalar_one()
