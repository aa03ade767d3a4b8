from __future__ import annotations

from typing import AbstractSet, Hashable, Iterable, Optional

from src.school_backend.access.errors import Forbidden
from src.school_backend.domain.models.role import Role


def authorize(
    role: Role,
    allowed_roles: Iterable[Role],
    scope: AbstractSet[Hashable],
    requested_id: Optional[Hashable] = None,
) -> None:
    """Raise :class:`Forbidden` unless the role and requested record are allowed.

    A requested id outside ``scope`` is rejected as Forbidden, never as not
    found, so callers cannot discover which records exist. This must run
    before any data-bearing query.
    """

    if role not in set(allowed_roles):
        raise Forbidden(f"role {role.value} not allowed")
    if requested_id is not None and requested_id not in scope:
        raise Forbidden("requested record outside caller scope")
