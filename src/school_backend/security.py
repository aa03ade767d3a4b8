from __future__ import annotations

from typing import Callable, Optional

from fastapi import Header, HTTPException, Request, status

from src.school_backend.access.errors import AccessError, Forbidden, ProfileNotFound
from src.school_backend.access.pipeline import ALL_ROLES, AccessContext, get_access_pipeline
from src.school_backend.config import settings
from src.school_backend.domain.models.role import Role
from src.school_backend.services.audit.service import audit_service


def to_http_exception(exc: AccessError) -> HTTPException:
    """Map an access failure to the HTTP error the caller sees.

    When MASK_PROFILE_NOT_FOUND is enabled, an unprovisioned identity is
    presented exactly like a forbidden one.
    """

    if isinstance(exc, ProfileNotFound) and settings.mask_profile_not_found:
        exc = Forbidden(exc.reason)

    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == status.HTTP_401_UNAUTHORIZED else None
    return HTTPException(status_code=exc.status_code, detail=exc.public_detail, headers=headers)


def _requested_value(request: Request, name: Optional[str]) -> Optional[str]:
    if not name:
        return None
    value = request.path_params.get(name)
    if value is None:
        value = request.query_params.get(name)
    return str(value) if value not in (None, "") else None


def require_access(
    *allowed_roles: Role,
    record_param: Optional[str] = None,
    class_param: Optional[str] = None,
    include_class_scope: bool = False,
    provisioned: bool = False,
) -> Callable:
    """FastAPI dependency factory running the full access pipeline.

    - ``allowed_roles``: roles the route accepts (all roles when empty).
    - ``record_param``: path or query parameter naming a student id the caller
      wants to act on; it must be inside the caller's scope.
    - ``class_param``: path or query parameter naming a class id; it must be
      inside the caller's class scope.
    - ``provisioned``: reject synthesized profiles; set on routes whose data
      is school-wide rather than filtered by scope.

    The dependency resolves to an :class:`AccessContext`.
    """

    roles = frozenset(allowed_roles) or ALL_ROLES

    async def dependency(
        request: Request,
        authorization: Optional[str] = Header(None, alias="Authorization"),
    ) -> AccessContext:
        requested_id = _requested_value(request, record_param)
        raw_class_id = _requested_value(request, class_param)
        requested_class_id: Optional[int] = None
        if raw_class_id is not None:
            try:
                requested_class_id = int(raw_class_id)
            except ValueError:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid class id")

        try:
            return await get_access_pipeline().authorize(
                authorization,
                allowed_roles=roles,
                requested_id=requested_id,
                requested_class_id=requested_class_id,
                include_class_scope=include_class_scope,
                provisioned=provisioned,
            )
        except AccessError as exc:
            raise to_http_exception(exc) from exc

    return dependency


def ensure_student_access(context: AccessContext, student_id: str) -> None:
    """Gate a student id that only becomes known inside the handler."""

    try:
        context.ensure_student(student_id)
    except AccessError as exc:
        _audit_in_handler_rejection(context, exc, "student")
        raise to_http_exception(exc) from exc


def ensure_class_access(context: AccessContext, class_id: int) -> None:
    try:
        context.ensure_class(class_id)
    except AccessError as exc:
        _audit_in_handler_rejection(context, exc, "class")
        raise to_http_exception(exc) from exc


def forbid(context: AccessContext, resource_type: str, reason: str) -> HTTPException:
    """Build the 403 for a record the handler found missing or out of scope.

    Both cases look the same to the caller.
    """

    exc = Forbidden(reason)
    _audit_in_handler_rejection(context, exc, resource_type)
    return to_http_exception(exc)


def _audit_in_handler_rejection(context: AccessContext, exc: AccessError, resource_type: str) -> None:
    audit_service.log_event(
        action="access_denied",
        resource_type=resource_type,
        subject=context.identity.external_id,
        extra=context.audit_extra(kind=exc.kind),
    )
