"""
services/permission_matrix.py
-----------------------------
Role × feature read/write grid.

Rules:
  - The privileged role is never read from storage. load() overwrites it
    with FULL_ACCESS and evaluate() short-circuits it to True.
  - Missing role, missing feature or missing entry ⇒ deny.
  - bulk_upsert is all-or-nothing: any bad entry rolls back every write.

DEFAULT_MATRIX is the least-privilege fallback the console substitutes when
storage cannot be reached. It mirrors the seeded matrix, it is not a
superset of it.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Literal, Mapping

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from crm_access.core.errors import PermissionWriteError
from crm_access.core.logging import get_logger
from crm_access.models.permission import PRIVILEGED_ROLE, Feature, PermissionEntry, Role
from crm_access.schemas.permission import PermissionUpdate

logger = get_logger(__name__)

AccessType = Literal["read", "write"]


@dataclass(frozen=True)
class Grant:
    can_read: bool = False
    can_write: bool = False


Matrix = Dict[str, Dict[str, Grant]]

FULL_ACCESS: Dict[str, Grant] = {f.value: Grant(True, True) for f in Feature}


def _grid(**features: tuple[bool, bool]) -> Dict[str, Grant]:
    grid = {f.value: Grant() for f in Feature}
    for feature, (r, w) in features.items():
        grid[feature] = Grant(r, w)
    return grid


DEFAULT_MATRIX: Matrix = {
    Role.admin.value: _grid(
        leads=(True, True),
        users=(True, True),
        activity_logs=(True, True),
        subscriptions=(True, True),
        seo_meta_tags=(True, True),
        blogs=(True, True),
        sites=(True, True),
        ip_security=(True, True),
    ),
    Role.lead_manager.value: _grid(
        leads=(True, True),
        users=(True, False),
        activity_logs=(True, False),
    ),
    Role.seo_manager.value: _grid(
        users=(True, False),
        activity_logs=(True, False),
        seo_meta_tags=(True, True),
        blogs=(True, True),
    ),
    Role.sales_person.value: _grid(
        leads=(True, True),
        users=(True, False),
    ),
    Role.seo_person.value: _grid(
        users=(True, False),
        seo_meta_tags=(True, True),
        blogs=(True, True),
    ),
    Role.client.value: _grid(
        leads=(True, False),
        subscriptions=(True, False),
    ),
    PRIVILEGED_ROLE: dict(FULL_ACCESS),
}


def fold_rows(rows: Iterable[Any]) -> Matrix:
    """
    Fold (role, feature, can_read, can_write) rows into role → feature → Grant.

    Rows may be ORM objects or mappings (as returned by the public read
    endpoint). The privileged role is always overwritten with full access.
    """
    matrix: Matrix = {}
    for row in rows:
        if isinstance(row, Mapping):
            role, feature = row["role"], row["feature"]
            grant = Grant(bool(row.get("can_read")), bool(row.get("can_write")))
        else:
            role, feature = row.role, row.feature
            grant = Grant(bool(row.can_read), bool(row.can_write))
        matrix.setdefault(role, {})[feature] = grant
    matrix[PRIVILEGED_ROLE] = dict(FULL_ACCESS)
    return matrix


def evaluate(matrix: Matrix, role: str, feature: str, access: AccessType) -> bool:
    if role == PRIVILEGED_ROLE:
        return True
    grant = matrix.get(role, {}).get(feature)
    if grant is None:
        return False
    return grant.can_read if access == "read" else grant.can_write


def matrix_to_rows(matrix: Matrix) -> list[dict]:
    """Flatten a matrix (e.g. DEFAULT_MATRIX) back into seedable rows."""
    return [
        {"role": role, "feature": feature, "can_read": g.can_read, "can_write": g.can_write}
        for role, grid in matrix.items()
        if role != PRIVILEGED_ROLE
        for feature, g in grid.items()
    ]


class PermissionMatrixService:

    @staticmethod
    async def list_rows(db: AsyncSession) -> list[PermissionEntry]:
        result = await db.execute(
            select(PermissionEntry).order_by(PermissionEntry.role, PermissionEntry.feature)
        )
        return list(result.scalars().all())

    @staticmethod
    async def load(db: AsyncSession) -> Matrix:
        return fold_rows(await PermissionMatrixService.list_rows(db))

    @staticmethod
    async def upsert(
        db: AsyncSession,
        role: str,
        feature: str,
        can_read: bool,
        can_write: bool,
    ) -> PermissionEntry:
        """Create or update the (role, feature) entry. Idempotent."""
        entry = await db.get(PermissionEntry, (role, feature))
        if entry is None:
            entry = PermissionEntry(role=role, feature=feature)
            db.add(entry)
        entry.can_read = can_read
        entry.can_write = can_write
        await db.flush()
        return entry

    @staticmethod
    async def bulk_upsert(
        db: AsyncSession,
        entries: Iterable[PermissionUpdate | Mapping[str, Any]],
    ) -> int:
        """
        Apply every entry or none of them.

        Entries are validated one by one as they are written; the first
        invalid entry or storage error rolls back the whole batch.

        Raises:
            PermissionWriteError: naming the failing entry index.
        """
        count = 0
        try:
            for index, raw in enumerate(entries):
                try:
                    entry = (
                        raw
                        if isinstance(raw, PermissionUpdate)
                        else PermissionUpdate.model_validate(raw)
                    )
                except ValidationError as exc:
                    raise PermissionWriteError(
                        f"Permission entry #{index + 1} is invalid: "
                        f"{exc.errors()[0]['msg']}"
                    ) from exc
                await PermissionMatrixService.upsert(
                    db, entry.role, entry.feature, entry.can_read, entry.can_write
                )
                count += 1
        except (PermissionWriteError, SQLAlchemyError) as exc:
            await db.rollback()
            logger.warning("Bulk permission update rolled back", error=str(exc))
            if isinstance(exc, PermissionWriteError):
                raise
            raise PermissionWriteError("Bulk permission update failed") from exc
        if count == 0:
            raise PermissionWriteError("Permissions array is required")
        logger.info("Bulk permission update applied", updated=count)
        return count
