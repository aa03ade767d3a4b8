from __future__ import annotations

from dataclasses import dataclass

from src.school_backend.infra.db.inmemory import (
    InMemoryAttendanceRepository,
    InMemoryClassRepository,
    InMemoryFeeRepository,
    InMemoryNotificationRepository,
    InMemoryProfileRepository,
    InMemoryResultRepository,
    InMemorySchoolStore,
    InMemoryTeacherAttendanceRepository,
)
from src.school_backend.infra.db.repositories import (
    AttendanceRepository,
    ClassRepository,
    FeeRepository,
    NotificationRepository,
    ProfileRepository,
    ResultRepository,
    TeacherAttendanceRepository,
)


@dataclass
class Repositories:
    profiles: ProfileRepository
    classes: ClassRepository
    attendance: AttendanceRepository
    teacher_attendance: TeacherAttendanceRepository
    fees: FeeRepository
    results: ResultRepository
    notifications: NotificationRepository


def build_inmemory_repositories(store: InMemorySchoolStore) -> Repositories:
    return Repositories(
        profiles=InMemoryProfileRepository(store),
        classes=InMemoryClassRepository(store),
        attendance=InMemoryAttendanceRepository(store),
        teacher_attendance=InMemoryTeacherAttendanceRepository(store),
        fees=InMemoryFeeRepository(store),
        results=InMemoryResultRepository(store),
        notifications=InMemoryNotificationRepository(store),
    )


# In-memory repositories are active until init_sql_repositories() or a test
# swaps them out with set_repositories().
_repositories: Repositories = build_inmemory_repositories(InMemorySchoolStore())


def get_repositories() -> Repositories:
    """Return the active repository bundle.

    Callers must go through this accessor instead of caching the bundle so
    that swapping implementations at startup takes effect everywhere.
    """

    return _repositories


def set_repositories(repositories: Repositories) -> None:
    global _repositories
    _repositories = repositories
