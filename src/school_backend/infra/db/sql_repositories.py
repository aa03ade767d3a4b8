from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from sqlalchemy import case, or_, update
from sqlalchemy.exc import IntegrityError

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
from src.school_backend.infra.db.models import (
    AccountantORM,
    AdminORM,
    AttendanceORM,
    ClassORM,
    EnrollmentORM,
    ExamORM,
    FeeORM,
    LessonORM,
    NotificationORM,
    ParentORM,
    PaymentORM,
    ResultORM,
    StudentORM,
    TeacherAttendanceORM,
    TeacherORM,
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
from src.school_backend.infra.db.session import SessionFactory
from src.school_backend.infra.db.wiring import Repositories


class _SqlRepository:
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory


class SqlProfileRepository(_SqlRepository, ProfileRepository):
    def _get(self, orm_class, profile_id: str):
        session = self._session_factory()
        try:
            orm = session.get(orm_class, profile_id)
            return orm.to_domain() if orm is not None else None
        finally:
            session.close()

    def get_student(self, profile_id: str) -> Optional[Student]:
        return self._get(StudentORM, profile_id)

    def get_teacher(self, profile_id: str) -> Optional[Teacher]:
        return self._get(TeacherORM, profile_id)

    def get_parent(self, profile_id: str) -> Optional[Parent]:
        return self._get(ParentORM, profile_id)

    def get_admin(self, profile_id: str) -> Optional[Admin]:
        return self._get(AdminORM, profile_id)

    def get_accountant(self, profile_id: str) -> Optional[Accountant]:
        return self._get(AccountantORM, profile_id)

    def list_students(self, student_ids: Optional[Iterable[str]] = None) -> List[Student]:
        session = self._session_factory()
        try:
            query = session.query(StudentORM)
            if student_ids is not None:
                query = query.filter(StudentORM.id.in_(list(student_ids)))
            return [orm.to_domain() for orm in query.order_by(StudentORM.name, StudentORM.surname).all()]
        finally:
            session.close()

    def list_student_ids(self) -> Set[str]:
        session = self._session_factory()
        try:
            return {row[0] for row in session.query(StudentORM.id).all()}
        finally:
            session.close()

    def children_of_parent(self, parent_id: str) -> List[Student]:
        session = self._session_factory()
        try:
            query = session.query(StudentORM).filter(StudentORM.parent_id == parent_id)
            return [orm.to_domain() for orm in query.order_by(StudentORM.name, StudentORM.surname).all()]
        finally:
            session.close()

    def list_teachers(self) -> List[Teacher]:
        session = self._session_factory()
        try:
            query = session.query(TeacherORM).order_by(TeacherORM.name, TeacherORM.surname)
            return [orm.to_domain() for orm in query.all()]
        finally:
            session.close()

    def list_parents(self) -> List[Parent]:
        session = self._session_factory()
        try:
            query = session.query(ParentORM).order_by(ParentORM.name, ParentORM.surname)
            return [orm.to_domain() for orm in query.all()]
        finally:
            session.close()


class SqlClassRepository(_SqlRepository, ClassRepository):
    def get_class(self, class_id: int) -> Optional[SchoolClass]:
        session = self._session_factory()
        try:
            orm = session.get(ClassORM, class_id)
            return orm.to_domain() if orm is not None else None
        finally:
            session.close()

    def list_classes(self, class_ids: Optional[Iterable[int]] = None) -> List[SchoolClass]:
        session = self._session_factory()
        try:
            query = session.query(ClassORM)
            if class_ids is not None:
                query = query.filter(ClassORM.id.in_(list(class_ids)))
            return [orm.to_domain() for orm in query.order_by(ClassORM.grade_level, ClassORM.name).all()]
        finally:
            session.close()

    def class_ids_for_teacher(self, teacher_id: str) -> Set[int]:
        session = self._session_factory()
        try:
            supervised = session.query(ClassORM.id).filter(ClassORM.supervisor_id == teacher_id)
            taught = session.query(LessonORM.class_id).filter(LessonORM.teacher_id == teacher_id)
            return {row[0] for row in supervised.union(taught).all()}
        finally:
            session.close()

    def student_ids_in_classes(self, class_ids: Iterable[int]) -> Set[str]:
        wanted = list(class_ids)
        if not wanted:
            return set()
        session = self._session_factory()
        try:
            query = session.query(EnrollmentORM.student_id).filter(
                EnrollmentORM.class_id.in_(wanted),
                EnrollmentORM.left_at.is_(None),
            )
            return {row[0] for row in query.all()}
        finally:
            session.close()

    def current_enrollment(self, student_id: str) -> Optional[Enrollment]:
        session = self._session_factory()
        try:
            orm = (
                session.query(EnrollmentORM)
                .filter(EnrollmentORM.student_id == student_id, EnrollmentORM.left_at.is_(None))
                .order_by(EnrollmentORM.joined_at.desc())
                .first()
            )
            return orm.to_domain() if orm is not None else None
        finally:
            session.close()

    def list_lessons(
        self,
        *,
        teacher_id: Optional[str] = None,
        class_id: Optional[int] = None,
    ) -> List[Lesson]:
        session = self._session_factory()
        try:
            query = session.query(LessonORM)
            if teacher_id is not None:
                query = query.filter(LessonORM.teacher_id == teacher_id)
            if class_id is not None:
                query = query.filter(LessonORM.class_id == class_id)
            return [orm.to_domain() for orm in query.order_by(LessonORM.start_time, LessonORM.id).all()]
        finally:
            session.close()

    def list_enrollments(self, *, since: Optional[datetime] = None, limit: Optional[int] = None) -> List[Enrollment]:
        session = self._session_factory()
        try:
            query = session.query(EnrollmentORM)
            if since is not None:
                query = query.filter(EnrollmentORM.joined_at >= since)
            query = query.order_by(EnrollmentORM.joined_at.desc(), EnrollmentORM.id.desc())
            if limit is not None:
                query = query.limit(limit)
            return [orm.to_domain() for orm in query.all()]
        finally:
            session.close()


class SqlAttendanceRepository(_SqlRepository, AttendanceRepository):
    def list_records(
        self,
        *,
        student_ids: Optional[Iterable[str]] = None,
        class_ids: Optional[Iterable[int]] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
        limit: Optional[int] = None,
    ) -> List[AttendanceRecord]:
        session = self._session_factory()
        try:
            query = session.query(AttendanceORM)
            if student_ids is not None:
                query = query.filter(AttendanceORM.student_id.in_(list(student_ids)))
            if class_ids is not None:
                query = query.filter(AttendanceORM.class_id.in_(list(class_ids)))
            if start is not None:
                query = query.filter(AttendanceORM.day >= start)
            if end is not None:
                query = query.filter(AttendanceORM.day <= end)
            query = query.order_by(AttendanceORM.day.desc(), AttendanceORM.id.desc())
            if limit is not None:
                query = query.limit(limit)
            return [orm.to_domain() for orm in query.all()]
        finally:
            session.close()

    def upsert_records(
        self,
        *,
        day: date,
        class_id: int,
        lesson_id: Optional[int],
        entries: Sequence[AttendanceEntry],
    ) -> List[AttendanceRecord]:
        session = self._session_factory()
        try:
            for attempt in range(2):
                saved = []
                for entry in entries:
                    orm = (
                        session.query(AttendanceORM)
                        .filter(
                            AttendanceORM.day == day,
                            AttendanceORM.student_id == entry.student_id,
                            AttendanceORM.class_id == class_id,
                            AttendanceORM.lesson_id.is_(None) if lesson_id is None else AttendanceORM.lesson_id == lesson_id,
                        )
                        .with_for_update()
                        .one_or_none()
                    )
                    if orm is None:
                        orm = AttendanceORM(day=day, student_id=entry.student_id, class_id=class_id, lesson_id=lesson_id)
                        session.add(orm)
                    orm.status = entry.status.value
                    orm.in_time = entry.in_time
                    orm.out_time = entry.out_time
                    saved.append(orm)
                try:
                    session.commit()
                except IntegrityError:
                    session.rollback()
                    if attempt:
                        raise
                    # A concurrent request inserted one of the slots first; redo the batch as updates.
                    continue
                return [orm.to_domain() for orm in saved]
        finally:
            session.close()


class SqlFeeRepository(_SqlRepository, FeeRepository):
    @staticmethod
    def _payments_by_fee(session, fee_ids: List[int]) -> Dict[int, List[Payment]]:
        payments: Dict[int, List[Payment]] = {fee_id: [] for fee_id in fee_ids}
        if not fee_ids:
            return payments
        query = session.query(PaymentORM).filter(PaymentORM.fee_id.in_(fee_ids)).order_by(PaymentORM.date.desc())
        for orm in query.all():
            payments[orm.fee_id].append(orm.to_domain())
        return payments

    def get_fee(self, fee_id: int) -> Optional[Fee]:
        session = self._session_factory()
        try:
            orm = session.get(FeeORM, fee_id)
            if orm is None:
                return None
            return orm.to_domain(self._payments_by_fee(session, [fee_id])[fee_id])
        finally:
            session.close()

    def list_fees(
        self,
        *,
        student_ids: Optional[Iterable[str]] = None,
        statuses: Optional[Iterable[FeeStatus]] = None,
    ) -> List[Fee]:
        session = self._session_factory()
        try:
            query = session.query(FeeORM)
            if student_ids is not None:
                query = query.filter(FeeORM.student_id.in_(list(student_ids)))
            if statuses is not None:
                query = query.filter(FeeORM.status.in_([s.value for s in statuses]))
            fees = query.order_by(FeeORM.due_date, FeeORM.id).all()
            payments = self._payments_by_fee(session, [f.id for f in fees])
            return [orm.to_domain(payments[orm.id]) for orm in fees]
        finally:
            session.close()

    def apply_payment(
        self,
        *,
        fee_id: int,
        amount: int,
        method: str,
        reference: Optional[str] = None,
    ) -> Tuple[Fee, Payment]:
        session = self._session_factory()
        try:
            # Single UPDATE so the PAID check, the new paid amount and the status
            # are all computed from the row's current values.
            new_paid = FeeORM.paid_amount + amount
            result = session.execute(
                update(FeeORM)
                .where(FeeORM.id == fee_id, FeeORM.status != FeeStatus.PAID.value)
                .values(
                    paid_amount=new_paid,
                    status=case((new_paid >= FeeORM.total_amount, FeeStatus.PAID.value), else_=FeeStatus.PARTIAL.value),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                session.rollback()
                if session.get(FeeORM, fee_id) is None:
                    raise KeyError(fee_id)
                raise FeeAlreadyPaid(fee_id)

            payment = PaymentORM(
                fee_id=fee_id,
                amount=amount,
                method=method,
                reference=reference,
                date=datetime.now(timezone.utc),
            )
            session.add(payment)
            session.commit()

            fee = session.get(FeeORM, fee_id, populate_existing=True)
            return fee.to_domain(self._payments_by_fee(session, [fee_id])[fee_id]), payment.to_domain()
        finally:
            session.close()

    def recent_payments(self, *, since: datetime, limit: int = 10) -> List[Payment]:
        session = self._session_factory()
        try:
            query = (
                session.query(PaymentORM)
                .filter(PaymentORM.date >= since)
                .order_by(PaymentORM.date.desc())
                .limit(limit)
            )
            return [orm.to_domain() for orm in query.all()]
        finally:
            session.close()


class SqlResultRepository(_SqlRepository, ResultRepository):
    def list_results(self, *, student_ids: Iterable[str], limit: Optional[int] = None) -> List[Result]:
        session = self._session_factory()
        try:
            query = (
                session.query(ResultORM)
                .filter(ResultORM.student_id.in_(list(student_ids)))
                .order_by(ResultORM.id.desc())
            )
            if limit is not None:
                query = query.limit(limit)
            return [orm.to_domain() for orm in query.all()]
        finally:
            session.close()

    def list_exams(self, *, class_ids: Optional[Iterable[int]] = None) -> List[Exam]:
        session = self._session_factory()
        try:
            query = session.query(ExamORM)
            if class_ids is not None:
                query = query.filter(ExamORM.class_id.in_(list(class_ids)))
            return [orm.to_domain() for orm in query.order_by(ExamORM.start_time).all()]
        finally:
            session.close()


def _visible_to(audience: NotificationAudience):
    """SQL counterpart of NotificationAudience.can_see."""

    own_column = getattr(NotificationORM, f"{audience.role.value}_id")
    clauses = [NotificationORM.target_role == audience.role.value, own_column == audience.profile_id]
    if audience.class_ids:
        clauses.append(NotificationORM.related_class_id.in_(audience.class_ids))
    if audience.student_ids:
        clauses.append(NotificationORM.student_id.in_(audience.student_ids))
    return or_(*clauses)


class SqlNotificationRepository(_SqlRepository, NotificationRepository):
    def list_for_audience(
        self,
        audience: NotificationAudience,
        *,
        unread_only: bool = False,
        type_filter: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Notification]:
        session = self._session_factory()
        try:
            query = session.query(NotificationORM).filter(_visible_to(audience))
            if unread_only:
                query = query.filter(NotificationORM.is_read.is_(False))
            if type_filter is not None:
                query = query.filter(NotificationORM.type == type_filter)
            query = query.order_by(NotificationORM.created_at.desc(), NotificationORM.id.desc())
            if limit is not None:
                query = query.limit(limit)
            return [orm.to_domain() for orm in query.all()]
        finally:
            session.close()

    def mark_read(self, notification_id: int, audience: NotificationAudience) -> Optional[Notification]:
        session = self._session_factory()
        try:
            session.execute(
                update(NotificationORM)
                .where(
                    NotificationORM.id == notification_id,
                    NotificationORM.is_read.is_(False),
                    _visible_to(audience),
                )
                .values(is_read=True, read_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
            session.commit()
            orm = (
                session.query(NotificationORM)
                .filter(NotificationORM.id == notification_id, _visible_to(audience))
                .one_or_none()
            )
            return orm.to_domain() if orm is not None else None
        finally:
            session.close()

    def mark_all_read(self, audience: NotificationAudience) -> int:
        session = self._session_factory()
        try:
            result = session.execute(
                update(NotificationORM)
                .where(NotificationORM.is_read.is_(False), _visible_to(audience))
                .values(is_read=True, read_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
            session.commit()
            return result.rowcount
        finally:
            session.close()


class SqlTeacherAttendanceRepository(_SqlRepository, TeacherAttendanceRepository):
    def list_records(
        self,
        *,
        teacher_ids: Optional[Iterable[str]] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> List[TeacherAttendanceRecord]:
        session = self._session_factory()
        try:
            query = session.query(TeacherAttendanceORM)
            if teacher_ids is not None:
                query = query.filter(TeacherAttendanceORM.teacher_id.in_(list(teacher_ids)))
            if start is not None:
                query = query.filter(TeacherAttendanceORM.day >= start)
            if end is not None:
                query = query.filter(TeacherAttendanceORM.day <= end)
            query = query.order_by(TeacherAttendanceORM.day.desc(), TeacherAttendanceORM.id.desc())
            return [orm.to_domain() for orm in query.all()]
        finally:
            session.close()

    def upsert_record(self, *, teacher_id: str, day: date, status: AttendanceStatus) -> TeacherAttendanceRecord:
        session = self._session_factory()
        try:
            for attempt in range(2):
                orm = (
                    session.query(TeacherAttendanceORM)
                    .filter(TeacherAttendanceORM.teacher_id == teacher_id, TeacherAttendanceORM.day == day)
                    .with_for_update()
                    .one_or_none()
                )
                if orm is None:
                    orm = TeacherAttendanceORM(teacher_id=teacher_id, day=day)
                    session.add(orm)
                orm.status = status.value
                try:
                    session.commit()
                except IntegrityError:
                    session.rollback()
                    if attempt:
                        raise
                    continue
                return orm.to_domain()
        finally:
            session.close()


def build_sql_repositories(session_factory: SessionFactory) -> Repositories:
    return Repositories(
        profiles=SqlProfileRepository(session_factory),
        classes=SqlClassRepository(session_factory),
        attendance=SqlAttendanceRepository(session_factory),
        teacher_attendance=SqlTeacherAttendanceRepository(session_factory),
        fees=SqlFeeRepository(session_factory),
        results=SqlResultRepository(session_factory),
        notifications=SqlNotificationRepository(session_factory),
    )
