from __future__ import annotations

from typing import FrozenSet, Optional

from starlette.concurrency import run_in_threadpool

from src.school_backend.access.profiles import ResolvedProfile
from src.school_backend.domain.models.role import Role
from src.school_backend.infra.db.repositories import ClassRepository, ProfileRepository


ScopeSet = FrozenSet[str]


class ScopeCalculator:
    """Computes which student records a resolved caller may access.

    The result is recomputed from current relationships on every call and is
    used as an allow-list by the access gate:

    - student: only themself; a requested id never widens this.
    - parent: students whose ``parent_id`` is the caller.
    - teacher: students currently enrolled in classes the teacher supervises
      or holds at least one lesson in.
    - admin / accountant: exactly the requested id when one is given (its
      existence is checked downstream), otherwise every student.

    Synthesized profiles have no correlated records and always get an empty
    scope.
    """

    def __init__(self, profiles: ProfileRepository, classes: ClassRepository) -> None:
        self._profiles = profiles
        self._classes = classes

    async def compute_scope(self, resolved: ResolvedProfile, requested_id: Optional[str] = None) -> ScopeSet:
        return await run_in_threadpool(self._compute_scope, resolved, requested_id)

    def _compute_scope(self, resolved: ResolvedProfile, requested_id: Optional[str]) -> ScopeSet:
        if resolved.synthesized:
            return frozenset()

        profile_id = resolved.profile.id
        role = resolved.role

        if role == Role.STUDENT:
            return frozenset({profile_id})

        if role == Role.PARENT:
            return frozenset(child.id for child in self._profiles.children_of_parent(profile_id))

        if role == Role.TEACHER:
            class_ids = self._classes.class_ids_for_teacher(profile_id)
            if not class_ids:
                return frozenset()
            return frozenset(self._classes.student_ids_in_classes(class_ids))

        if role in (Role.ADMIN, Role.ACCOUNTANT):
            if requested_id:
                return frozenset({requested_id})
            return frozenset(self._profiles.list_student_ids())

        return frozenset()

    async def compute_class_scope(self, resolved: ResolvedProfile) -> FrozenSet[int]:
        """Class ids the caller may address directly (teacher and admin only)."""

        if resolved.synthesized:
            return frozenset()
        if resolved.role == Role.TEACHER:
            return frozenset(await run_in_threadpool(self._classes.class_ids_for_teacher, resolved.profile.id))
        if resolved.role == Role.ADMIN:
            classes = await run_in_threadpool(self._classes.list_classes)
            return frozenset(c.id for c in classes)
        return frozenset()
