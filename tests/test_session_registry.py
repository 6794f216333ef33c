from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from crm_access.core.errors import SessionConflict
from crm_access.core.security import hash_token, issue_token
from crm_access.db.base import utc_now
from crm_access.models import SessionRecord, SubjectKind
from crm_access.services.session_registry import SessionRegistry

TTL = timedelta(hours=24)


async def _create(db, subject_id: str = "acc-1", kind: SubjectKind = SubjectKind.privileged) -> str:
    token = issue_token(subject_id, "superadmin")
    await SessionRegistry.create(db, subject_id, kind, token, TTL, ip_address="10.0.0.1")
    await db.commit()
    return token


async def test_create_stores_only_token_hash(db) -> None:
    token = await _create(db)

    [record] = await SessionRegistry.active_sessions(db, "acc-1", SubjectKind.privileged)

    assert record.token_hash == hash_token(token)
    assert token not in (record.token_hash, record.id)
    assert record.ip_address == "10.0.0.1"
    assert await SessionRegistry.is_active(db, token)


async def test_repeated_logins_leave_one_active_session(db) -> None:
    tokens = [await _create(db) for _ in range(4)]

    active = await SessionRegistry.active_sessions(db, "acc-1", SubjectKind.privileged)

    assert len(active) == 1
    assert active[0].token_hash == hash_token(tokens[-1])
    for old in tokens[:-1]:
        assert not await SessionRegistry.is_active(db, old)


async def test_subject_kinds_are_tracked_separately(db) -> None:
    privileged = await _create(db, "42", SubjectKind.privileged)
    tenant = await _create(db, "42", SubjectKind.tenant_user)

    assert await SessionRegistry.is_active(db, privileged)
    assert await SessionRegistry.is_active(db, tenant)


async def test_invalidate_is_idempotent(db) -> None:
    token = await _create(db)

    assert await SessionRegistry.invalidate(db, token) is True
    assert await SessionRegistry.invalidate(db, token) is False
    await db.commit()

    assert not await SessionRegistry.is_active(db, token)


async def test_invalidate_all_forces_logout(db) -> None:
    token = await _create(db)

    count = await SessionRegistry.invalidate_all(db, "acc-1", SubjectKind.privileged)
    await db.commit()

    assert count == 1
    assert not await SessionRegistry.is_active(db, token)


async def test_expired_session_is_not_active(db) -> None:
    token = issue_token("acc-1", "superadmin")
    await SessionRegistry.create(
        db, "acc-1", SubjectKind.privileged, token, timedelta(seconds=-1)
    )
    await db.commit()

    assert not await SessionRegistry.is_active(db, token)


async def test_storage_rejects_second_active_row(db) -> None:
    await _create(db)
    db.add(
        SessionRecord(
            subject_id="acc-1",
            subject_kind=SubjectKind.privileged.value,
            token_hash=hash_token("racing-login"),
            is_active=True,
            expires_at=utc_now() + TTL,
        )
    )

    with pytest.raises(IntegrityError):
        await db.flush()
    await db.rollback()


async def test_create_gives_up_after_repeated_collisions(db, monkeypatch) -> None:
    await _create(db)

    async def never_deactivates(*args, **kwargs) -> int:
        return 0

    monkeypatch.setattr(SessionRegistry, "_deactivate", staticmethod(never_deactivates))

    with pytest.raises(SessionConflict):
        await SessionRegistry.create(
            db, "acc-1", SubjectKind.privileged, issue_token("acc-1", "superadmin"), TTL
        )

    active = await SessionRegistry.active_sessions(db, "acc-1", SubjectKind.privileged)
    assert len(active) == 1
