from __future__ import annotations

import pytest

from crm_access.core.config import settings
from crm_access.core.security import verify_password
from crm_access.seed import seed
from crm_access.services.account_service import AccountService
from crm_access.services.permission_matrix import (
    DEFAULT_MATRIX,
    PermissionMatrixService,
    matrix_to_rows,
)


async def test_seed_creates_account_and_matrix(engine, session_factory, monkeypatch) -> None:
    monkeypatch.setattr(settings, "SEED_ADMIN_PASSWORD", "first-password")

    await seed(engine)
    await seed(engine)

    async with session_factory() as db:
        account = await AccountService.get_by_username(db, settings.SEED_ADMIN_USERNAME)
        rows = await PermissionMatrixService.list_rows(db)

    assert account is not None
    assert verify_password("first-password", account.hashed_password)
    assert len(rows) == len(matrix_to_rows(DEFAULT_MATRIX))


async def test_seed_resets_existing_password(engine, session_factory, monkeypatch) -> None:
    monkeypatch.setattr(settings, "SEED_ADMIN_PASSWORD", "first-password")
    await seed(engine)
    monkeypatch.setattr(settings, "SEED_ADMIN_PASSWORD", "rotated-password")
    await seed(engine)

    async with session_factory() as db:
        account = await AccountService.get_by_username(db, settings.SEED_ADMIN_USERNAME)

    assert verify_password("rotated-password", account.hashed_password)


async def test_seed_refuses_to_create_account_without_password(engine, monkeypatch) -> None:
    monkeypatch.setattr(settings, "SEED_ADMIN_PASSWORD", "")

    with pytest.raises(SystemExit):
        await seed(engine)
