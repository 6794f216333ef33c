"""
core/errors.py
--------------
Error taxonomy for the trust & access subsystem.

Every error carries an HTTP status and a stable machine-readable code so the
API layer and the console client can tell, for example, a superseded session
apart from a bad password.
"""

from fastapi import status


class AccessError(Exception):
    """Base error for the access subsystem."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "ACCESS_ERROR"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.__class__.__doc__ or self.code
        super().__init__(self.detail)


class AuthenticationFailure(AccessError):
    """Invalid credentials."""

    status_code = status.HTTP_401_UNAUTHORIZED
    code = "AUTHENTICATION_FAILED"


class AuthorizationDenied(AccessError):
    """Authenticated, but the role may not perform this operation."""

    status_code = status.HTTP_403_FORBIDDEN
    code = "AUTHORIZATION_DENIED"


class SessionInvalidated(AccessError):
    """Session invalidated."""

    status_code = status.HTTP_401_UNAUTHORIZED
    code = "SESSION_INVALIDATED"


class UpstreamUnreachable(AccessError):
    """Tenant API or IP echo service could not be reached."""

    status_code = status.HTTP_502_BAD_GATEWAY
    code = "UPSTREAM_UNREACHABLE"


class VerificationImpossible(AccessError):
    """Caller network address could not be determined."""

    status_code = status.HTTP_403_FORBIDDEN
    code = "VERIFICATION_IMPOSSIBLE"


class PermissionWriteError(AccessError):
    """Permission update rejected; nothing was committed."""

    code = "PERMISSION_WRITE_FAILED"


class SiteNotFound(AccessError):
    """Tenant site not found."""

    status_code = status.HTTP_404_NOT_FOUND
    code = "SITE_NOT_FOUND"


class SiteConflict(AccessError):
    """Tenant site conflicts with an existing one."""

    status_code = status.HTTP_409_CONFLICT
    code = "SITE_CONFLICT"


class SessionConflict(AccessError):
    """Concurrent logins kept colliding on the active-session index."""

    status_code = status.HTTP_409_CONFLICT
    code = "SESSION_CONFLICT"
