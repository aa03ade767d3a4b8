from __future__ import annotations

from fastapi import status


class AccessError(Exception):
    """Base class for every failure of the access pipeline.

    ``kind`` is the stable identifier used in audit logs, ``status_code`` the
    HTTP status the web layer maps it to and ``public_detail`` the only text
    that may reach a caller. Internal ids, names and query details never go
    into ``public_detail``.
    """

    kind: str = "access_error"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_detail: str = "Access check failed"

    def __init__(self, reason: str | None = None) -> None:
        # ``reason`` is for logs only.
        super().__init__(reason or self.public_detail)
        self.reason = reason or self.public_detail


class Unauthenticated(AccessError):
    kind = "unauthenticated"
    status_code = status.HTTP_401_UNAUTHORIZED
    public_detail = "Invalid or missing authentication token"


class ProfileNotFound(AccessError):
    kind = "profile_not_found"
    status_code = status.HTTP_404_NOT_FOUND
    public_detail = "No profile is provisioned for this account"


class Forbidden(AccessError):
    kind = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN
    public_detail = "Not authorized to access this resource"


class ServiceUnavailable(AccessError):
    kind = "service_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    public_detail = "Authentication service temporarily unavailable"
