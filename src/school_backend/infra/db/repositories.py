from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from src.school_backend.domain.models.academics import Enrollment, Lesson, SchoolClass
from src.school_backend.domain.models.attendance import (
    AttendanceEntry,
    AttendanceRecord,
    AttendanceStatus,
    TeacherAttendanceRecord,
)
from src.school_backend.domain.models.fees import Fee, FeeStatus, Payment
from src.school_backend.domain.models.notification import Notification, NotificationAudience
from src.school_backend.domain.models.profiles import Accountant, Admin, Parent, Student, Teacher
from src.school_backend.domain.models.results import Exam, Result


class ProfileRepository(ABC):
    """Read access to the five profile collections, keyed by external id."""

    @abstractmethod
    def get_student(self, profile_id: str) -> Optional[Student]:
        raise NotImplementedError

    @abstractmethod
    def get_teacher(self, profile_id: str) -> Optional[Teacher]:
        raise NotImplementedError

    @abstractmethod
    def get_parent(self, profile_id: str) -> Optional[Parent]:
        raise NotImplementedError

    @abstractmethod
    def get_admin(self, profile_id: str) -> Optional[Admin]:
        raise NotImplementedError

    @abstractmethod
    def get_accountant(self, profile_id: str) -> Optional[Accountant]:
        raise NotImplementedError

    @abstractmethod
    def list_students(self, student_ids: Optional[Iterable[str]] = None) -> List[Student]:
        """Return students ordered by name; all of them when ``student_ids`` is None."""
        raise NotImplementedError

    @abstractmethod
    def list_student_ids(self) -> Set[str]:
        raise NotImplementedError

    @abstractmethod
    def children_of_parent(self, parent_id: str) -> List[Student]:
        raise NotImplementedError

    @abstractmethod
    def list_teachers(self) -> List[Teacher]:
        raise NotImplementedError

    @abstractmethod
    def list_parents(self) -> List[Parent]:
        raise NotImplementedError


class ClassRepository(ABC):
    """Classes, lesson assignments and enrollments."""

    @abstractmethod
    def get_class(self, class_id: int) -> Optional[SchoolClass]:
        raise NotImplementedError

    @abstractmethod
    def list_classes(self, class_ids: Optional[Iterable[int]] = None) -> List[SchoolClass]:
        raise NotImplementedError

    @abstractmethod
    def class_ids_for_teacher(self, teacher_id: str) -> Set[int]:
        """Classes the teacher supervises or holds at least one lesson in."""
        raise NotImplementedError

    @abstractmethod
    def student_ids_in_classes(self, class_ids: Iterable[int]) -> Set[str]:
        """Students with a current enrollment in any of the given classes."""
        raise NotImplementedError

    @abstractmethod
    def current_enrollment(self, student_id: str) -> Optional[Enrollment]:
        raise NotImplementedError

    @abstractmethod
    def list_lessons(
        self,
        *,
        teacher_id: Optional[str] = None,
        class_id: Optional[int] = None,
    ) -> List[Lesson]:
        raise NotImplementedError

    @abstractmethod
    def list_enrollments(self, *, since: Optional[datetime] = None, limit: Optional[int] = None) -> List[Enrollment]:
        """Return enrollments newest first, optionally only those joined since ``since``."""
        raise NotImplementedError


class AttendanceRepository(ABC):
    @abstractmethod
    def list_records(
        self,
        *,
        student_ids: Optional[Iterable[str]] = None,
        class_ids: Optional[Iterable[int]] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
        limit: Optional[int] = None,
    ) -> List[AttendanceRecord]:
        """Return records newest first, filtered by the given criteria."""
        raise NotImplementedError

    def upsert_record(
        self,
        *,
        day: date,
        student_id: str,
        class_id: int,
        lesson_id: Optional[int],
        status: AttendanceStatus,
        in_time: Optional[datetime] = None,
        out_time: Optional[datetime] = None,
    ) -> AttendanceRecord:
        """Atomically create or update the record for (student, class, lesson, day)."""
        entry = AttendanceEntry(student_id=student_id, status=status, in_time=in_time, out_time=out_time)
        return self.upsert_records(day=day, class_id=class_id, lesson_id=lesson_id, entries=[entry])[0]

    @abstractmethod
    def upsert_records(
        self,
        *,
        day: date,
        class_id: int,
        lesson_id: Optional[int],
        entries: Sequence[AttendanceEntry],
    ) -> List[AttendanceRecord]:
        """Create or update one record per entry; all of them are written or none."""
        raise NotImplementedError


class FeeRepository(ABC):
    @abstractmethod
    def get_fee(self, fee_id: int) -> Optional[Fee]:
        raise NotImplementedError

    @abstractmethod
    def list_fees(
        self,
        *,
        student_ids: Optional[Iterable[str]] = None,
        statuses: Optional[Iterable[FeeStatus]] = None,
    ) -> List[Fee]:
        raise NotImplementedError

    @abstractmethod
    def apply_payment(
        self,
        *,
        fee_id: int,
        amount: int,
        method: str,
        reference: Optional[str] = None,
    ) -> Tuple[Fee, Payment]:
        """Record a payment and update the fee's paid amount and status atomically.

        The PAID check happens in the same atomic step as the update. Raises
        ``KeyError`` if the fee does not exist and ``FeeAlreadyPaid`` if it is
        already fully paid.
        """
        raise NotImplementedError

    @abstractmethod
    def recent_payments(self, *, since: datetime, limit: int = 10) -> List[Payment]:
        raise NotImplementedError


class ResultRepository(ABC):
    @abstractmethod
    def list_results(self, *, student_ids: Iterable[str], limit: Optional[int] = None) -> List[Result]:
        """Return results newest first."""
        raise NotImplementedError

    @abstractmethod
    def list_exams(self, *, class_ids: Optional[Iterable[int]] = None) -> List[Exam]:
        raise NotImplementedError


class NotificationRepository(ABC):
    @abstractmethod
    def list_for_audience(
        self,
        audience: NotificationAudience,
        *,
        unread_only: bool = False,
        type_filter: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Notification]:
        """Return visible notifications, newest first."""
        raise NotImplementedError

    @abstractmethod
    def mark_read(self, notification_id: int, audience: NotificationAudience) -> Optional[Notification]:
        """Mark one visible notification as read; None if it is not visible."""
        raise NotImplementedError

    @abstractmethod
    def mark_all_read(self, audience: NotificationAudience) -> int:
        raise NotImplementedError


class TeacherAttendanceRepository(ABC):
    @abstractmethod
    def list_records(
        self,
        *,
        teacher_ids: Optional[Iterable[str]] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> List[TeacherAttendanceRecord]:
        """Return records newest first."""
        raise NotImplementedError

    @abstractmethod
    def upsert_record(self, *, teacher_id: str, day: date, status: AttendanceStatus) -> TeacherAttendanceRecord:
        """Atomically create or update the record for (teacher, day)."""
        raise NotImplementedError
