from __future__ import annotations

from datetime import date, datetime, timezone
from itertools import count
from threading import Lock
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from src.school_backend.domain.models.academics import Enrollment, Lesson, SchoolClass
from src.school_backend.domain.models.attendance import (
    AttendanceEntry,
    AttendanceRecord,
    AttendanceStatus,
    TeacherAttendanceRecord,
)
from src.school_backend.domain.models.fees import Fee, FeeAlreadyPaid, FeeStatus, Payment
from src.school_backend.domain.models.notification import Notification, NotificationAudience
from src.school_backend.domain.models.profiles import Accountant, Admin, Parent, Student, Teacher
from src.school_backend.domain.models.results import Exam, Result
from src.school_backend.infra.db.repositories import (
    AttendanceRepository,
    ClassRepository,
    FeeRepository,
    NotificationRepository,
    ProfileRepository,
    ResultRepository,
    TeacherAttendanceRepository,
)


class InMemorySchoolStore:
    """Process-local storage shared by the in-memory repositories.

    Intended for development and tests. All mutations of existing records go
    through ``lock`` so that read-decide-write sequences on a single record
    cannot lose updates under concurrent requests.
    """

    def __init__(self) -> None:
        self.lock = Lock()
        # Generated ids start high so hand-seeded fixtures can use small ones.
        self._ids = count(1000)
        self.students: Dict[str, Student] = {}
        self.teachers: Dict[str, Teacher] = {}
        self.parents: Dict[str, Parent] = {}
        self.admins: Dict[str, Admin] = {}
        self.accountants: Dict[str, Accountant] = {}
        self.classes: Dict[int, SchoolClass] = {}
        self.lessons: Dict[int, Lesson] = {}
        self.enrollments: Dict[int, Enrollment] = {}
        self.attendance: Dict[int, AttendanceRecord] = {}
        self.teacher_attendance: Dict[int, TeacherAttendanceRecord] = {}
        self.fees: Dict[int, Fee] = {}
        self.payments: Dict[int, Payment] = {}
        self.exams: Dict[int, Exam] = {}
        self.results: Dict[int, Result] = {}
        self.notifications: Dict[int, Notification] = {}

    def next_id(self) -> int:
        return next(self._ids)

    # Provisioning helpers (administrative seeding, tests)

    def add_student(self, student: Student) -> Student:
        self.students[student.id] = student
        return student

    def add_teacher(self, teacher: Teacher) -> Teacher:
        self.teachers[teacher.id] = teacher
        return teacher

    def add_parent(self, parent: Parent) -> Parent:
        self.parents[parent.id] = parent
        return parent

    def add_admin(self, admin: Admin) -> Admin:
        self.admins[admin.id] = admin
        return admin

    def add_accountant(self, accountant: Accountant) -> Accountant:
        self.accountants[accountant.id] = accountant
        return accountant

    def add_class(self, school_class: SchoolClass) -> SchoolClass:
        self.classes[school_class.id] = school_class
        return school_class

    def add_lesson(self, lesson: Lesson) -> Lesson:
        self.lessons[lesson.id] = lesson
        return lesson

    def enroll(self, student_id: str, class_id: int, school_year: str = "2025/2026") -> Enrollment:
        enrollment = Enrollment(
            id=self.next_id(),
            student_id=student_id,
            class_id=class_id,
            school_year=school_year,
            joined_at=datetime.now(timezone.utc),
        )
        self.enrollments[enrollment.id] = enrollment
        return enrollment

    def add_fee(self, fee: Fee) -> Fee:
        self.fees[fee.id] = fee
        return fee

    def add_exam(self, exam: Exam) -> Exam:
        self.exams[exam.id] = exam
        return exam

    def add_result(self, result: Result) -> Result:
        self.results[result.id] = result
        return result

    def add_attendance(self, record: AttendanceRecord) -> AttendanceRecord:
        self.attendance[record.id] = record
        return record

    def add_teacher_attendance(self, record: TeacherAttendanceRecord) -> TeacherAttendanceRecord:
        self.teacher_attendance[record.id] = record
        return record

    def add_notification(self, notification: Notification) -> Notification:
        self.notifications[notification.id] = notification
        return notification


def _by_name(people: Iterable[Student]) -> List[Student]:
    return sorted(people, key=lambda p: (p.name, p.surname, p.id))


class InMemoryProfileRepository(ProfileRepository):
    def __init__(self, store: InMemorySchoolStore) -> None:
        self._store = store

    def get_student(self, profile_id: str) -> Optional[Student]:
        return self._store.students.get(profile_id)

    def get_teacher(self, profile_id: str) -> Optional[Teacher]:
        return self._store.teachers.get(profile_id)

    def get_parent(self, profile_id: str) -> Optional[Parent]:
        return self._store.parents.get(profile_id)

    def get_admin(self, profile_id: str) -> Optional[Admin]:
        return self._store.admins.get(profile_id)

    def get_accountant(self, profile_id: str) -> Optional[Accountant]:
        return self._store.accountants.get(profile_id)

    def list_students(self, student_ids: Optional[Iterable[str]] = None) -> List[Student]:
        if student_ids is None:
            return _by_name(self._store.students.values())
        wanted = set(student_ids)
        return _by_name(s for s in self._store.students.values() if s.id in wanted)

    def list_student_ids(self) -> Set[str]:
        return set(self._store.students)

    def children_of_parent(self, parent_id: str) -> List[Student]:
        return _by_name(s for s in self._store.students.values() if s.parent_id == parent_id)

    def list_teachers(self) -> List[Teacher]:
        return sorted(self._store.teachers.values(), key=lambda t: (t.name, t.surname, t.id))

    def list_parents(self) -> List[Parent]:
        return sorted(self._store.parents.values(), key=lambda p: (p.name, p.surname, p.id))


class InMemoryClassRepository(ClassRepository):
    def __init__(self, store: InMemorySchoolStore) -> None:
        self._store = store

    def get_class(self, class_id: int) -> Optional[SchoolClass]:
        return self._store.classes.get(class_id)

    def list_classes(self, class_ids: Optional[Iterable[int]] = None) -> List[SchoolClass]:
        classes = self._store.classes.values()
        if class_ids is not None:
            wanted = set(class_ids)
            classes = [c for c in classes if c.id in wanted]
        return sorted(classes, key=lambda c: (c.grade_level, c.name))

    def class_ids_for_teacher(self, teacher_id: str) -> Set[int]:
        supervised = {c.id for c in self._store.classes.values() if c.supervisor_id == teacher_id}
        taught = {lesson.class_id for lesson in self._store.lessons.values() if lesson.teacher_id == teacher_id}
        return supervised | taught

    def student_ids_in_classes(self, class_ids: Iterable[int]) -> Set[str]:
        wanted = set(class_ids)
        return {
            e.student_id
            for e in self._store.enrollments.values()
            if e.is_current and e.class_id in wanted
        }

    def current_enrollment(self, student_id: str) -> Optional[Enrollment]:
        current = [e for e in self._store.enrollments.values() if e.student_id == student_id and e.is_current]
        if not current:
            return None
        return max(current, key=lambda e: e.joined_at)

    def list_lessons(
        self,
        *,
        teacher_id: Optional[str] = None,
        class_id: Optional[int] = None,
    ) -> List[Lesson]:
        lessons = [
            lesson
            for lesson in self._store.lessons.values()
            if (teacher_id is None or lesson.teacher_id == teacher_id)
            and (class_id is None or lesson.class_id == class_id)
        ]
        return sorted(lessons, key=lambda l: (l.start_time is None, l.start_time or datetime.min, l.id))

    def list_enrollments(self, *, since: Optional[datetime] = None, limit: Optional[int] = None) -> List[Enrollment]:
        enrollments = [e for e in self._store.enrollments.values() if since is None or e.joined_at >= since]
        enrollments.sort(key=lambda e: (e.joined_at, e.id), reverse=True)
        return enrollments[:limit] if limit is not None else enrollments


class InMemoryAttendanceRepository(AttendanceRepository):
    def __init__(self, store: InMemorySchoolStore) -> None:
        self._store = store

    def list_records(
        self,
        *,
        student_ids: Optional[Iterable[str]] = None,
        class_ids: Optional[Iterable[int]] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
        limit: Optional[int] = None,
    ) -> List[AttendanceRecord]:
        students = set(student_ids) if student_ids is not None else None
        classes = set(class_ids) if class_ids is not None else None
        records = [
            r
            for r in self._store.attendance.values()
            if (students is None or r.student_id in students)
            and (classes is None or r.class_id in classes)
            and (start is None or r.date >= start)
            and (end is None or r.date <= end)
        ]
        records.sort(key=lambda r: (r.date, r.id), reverse=True)
        return records[:limit] if limit is not None else records

    def upsert_records(
        self,
        *,
        day: date,
        class_id: int,
        lesson_id: Optional[int],
        entries: Sequence[AttendanceEntry],
    ) -> List[AttendanceRecord]:
        with self._store.lock:
            slots = {
                record.student_id: record
                for record in self._store.attendance.values()
                if record.date == day and record.class_id == class_id and record.lesson_id == lesson_id
            }
            saved = []
            for entry in entries:
                fields = {"status": entry.status, "in_time": entry.in_time, "out_time": entry.out_time}
                existing = slots.get(entry.student_id)
                if existing is not None:
                    record = existing.model_copy(update=fields)
                else:
                    record = AttendanceRecord(
                        id=self._store.next_id(),
                        date=day,
                        student_id=entry.student_id,
                        class_id=class_id,
                        lesson_id=lesson_id,
                        **fields,
                    )
                self._store.attendance[record.id] = record
                slots[entry.student_id] = record
                saved.append(record)
            return saved


class InMemoryFeeRepository(FeeRepository):
    def __init__(self, store: InMemorySchoolStore) -> None:
        self._store = store

    def _with_payments(self, fee: Fee) -> Fee:
        payments = sorted(
            (p for p in self._store.payments.values() if p.fee_id == fee.id),
            key=lambda p: p.date,
            reverse=True,
        )
        return fee.model_copy(update={"payments": payments})

    def get_fee(self, fee_id: int) -> Optional[Fee]:
        fee = self._store.fees.get(fee_id)
        return self._with_payments(fee) if fee is not None else None

    def list_fees(
        self,
        *,
        student_ids: Optional[Iterable[str]] = None,
        statuses: Optional[Iterable[FeeStatus]] = None,
    ) -> List[Fee]:
        students = set(student_ids) if student_ids is not None else None
        wanted_statuses = set(statuses) if statuses is not None else None
        fees = [
            self._with_payments(f)
            for f in self._store.fees.values()
            if (students is None or f.student_id in students)
            and (wanted_statuses is None or f.status in wanted_statuses)
        ]
        return sorted(fees, key=lambda f: (f.due_date, f.id))

    def apply_payment(
        self,
        *,
        fee_id: int,
        amount: int,
        method: str,
        reference: Optional[str] = None,
    ) -> Tuple[Fee, Payment]:
        with self._store.lock:
            fee = self._store.fees[fee_id]
            if fee.status == FeeStatus.PAID:
                raise FeeAlreadyPaid(fee_id)
            payment = Payment(
                id=self._store.next_id(),
                fee_id=fee_id,
                amount=amount,
                method=method,
                reference=reference,
                date=datetime.now(timezone.utc),
            )
            paid = fee.paid_amount + amount
            status = FeeStatus.PAID if paid >= fee.total_amount else FeeStatus.PARTIAL
            self._store.payments[payment.id] = payment
            self._store.fees[fee_id] = fee.model_copy(update={"paid_amount": paid, "status": status})
            return self._with_payments(self._store.fees[fee_id]), payment

    def recent_payments(self, *, since: datetime, limit: int = 10) -> List[Payment]:
        payments = [p for p in self._store.payments.values() if p.date >= since]
        payments.sort(key=lambda p: p.date, reverse=True)
        return payments[:limit]


class InMemoryResultRepository(ResultRepository):
    def __init__(self, store: InMemorySchoolStore) -> None:
        self._store = store

    def list_results(self, *, student_ids: Iterable[str], limit: Optional[int] = None) -> List[Result]:
        wanted = set(student_ids)
        results = sorted(
            (r for r in self._store.results.values() if r.student_id in wanted),
            key=lambda r: r.id,
            reverse=True,
        )
        return results[:limit] if limit is not None else results

    def list_exams(self, *, class_ids: Optional[Iterable[int]] = None) -> List[Exam]:
        exams = self._store.exams.values()
        if class_ids is not None:
            wanted = set(class_ids)
            exams = [e for e in exams if e.class_id in wanted]
        return sorted(exams, key=lambda e: e.start_time)


class InMemoryNotificationRepository(NotificationRepository):
    def __init__(self, store: InMemorySchoolStore) -> None:
        self._store = store

    def list_for_audience(
        self,
        audience: NotificationAudience,
        *,
        unread_only: bool = False,
        type_filter: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Notification]:
        items = [
            n
            for n in self._store.notifications.values()
            if audience.can_see(n)
            and (not unread_only or not n.is_read)
            and (type_filter is None or n.type == type_filter)
        ]
        items.sort(key=lambda n: (n.created_at, n.id), reverse=True)
        return items[:limit] if limit is not None else items

    def mark_read(self, notification_id: int, audience: NotificationAudience) -> Optional[Notification]:
        with self._store.lock:
            notification = self._store.notifications.get(notification_id)
            if notification is None or not audience.can_see(notification):
                return None
            if not notification.is_read:
                notification = notification.model_copy(
                    update={"is_read": True, "read_at": datetime.now(timezone.utc)}
                )
                self._store.notifications[notification_id] = notification
            return notification

    def mark_all_read(self, audience: NotificationAudience) -> int:
        now = datetime.now(timezone.utc)
        updated = 0
        with self._store.lock:
            for notification_id, notification in list(self._store.notifications.items()):
                if notification.is_read or not audience.can_see(notification):
                    continue
                self._store.notifications[notification_id] = notification.model_copy(
                    update={"is_read": True, "read_at": now}
                )
                updated += 1
        return updated


class InMemoryTeacherAttendanceRepository(TeacherAttendanceRepository):
    def __init__(self, store: InMemorySchoolStore) -> None:
        self._store = store

    def list_records(
        self,
        *,
        teacher_ids: Optional[Iterable[str]] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> List[TeacherAttendanceRecord]:
        teachers = set(teacher_ids) if teacher_ids is not None else None
        records = [
            r
            for r in self._store.teacher_attendance.values()
            if (teachers is None or r.teacher_id in teachers)
            and (start is None or r.date >= start)
            and (end is None or r.date <= end)
        ]
        records.sort(key=lambda r: (r.date, r.id), reverse=True)
        return records

    def upsert_record(self, *, teacher_id: str, day: date, status: AttendanceStatus) -> TeacherAttendanceRecord:
        with self._store.lock:
            for record in self._store.teacher_attendance.values():
                if record.teacher_id == teacher_id and record.date == day:
                    updated = record.model_copy(update={"status": status})
                    self._store.teacher_attendance[record.id] = updated
                    return updated

            record = TeacherAttendanceRecord(id=self._store.next_id(), teacher_id=teacher_id, date=day, status=status)
            self._store.teacher_attendance[record.id] = record
            return record
