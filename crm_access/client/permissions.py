"""
client/permissions.py
---------------------
Console-side view of the permission matrix.

The matrix is read from the backend's public endpoint. When that read
fails the hardcoded DEFAULT_MATRIX is used instead and the substitution is
logged as degraded mode.
"""

from crm_access.client.backend import BackendClient
from crm_access.client.context import SessionContext
from crm_access.core.errors import UpstreamUnreachable
from crm_access.core.logging import get_logger
from crm_access.services.permission_matrix import (
    DEFAULT_MATRIX,
    AccessType,
    Matrix,
    evaluate,
    fold_rows,
)

logger = get_logger(__name__)


async def load_matrix_with_fallback(backend: BackendClient) -> tuple[Matrix, bool]:
    """
    Returns:
        (matrix, degraded) where degraded is True if DEFAULT_MATRIX was
        substituted.
    """
    try:
        rows = await backend.list_permissions()
    except UpstreamUnreachable as exc:
        logger.warning("Permission matrix unreachable, using defaults", degraded=True, error=exc.detail)
        return DEFAULT_MATRIX, True
    return fold_rows(rows), False


def has_permission(
    matrix: Matrix, context: SessionContext, feature: str, access: AccessType = "read"
) -> bool:
    if context.profile is None:
        return False
    return evaluate(matrix, context.profile.role.value, feature, access)
