from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, List, Optional, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from src.school_backend.access.pipeline import AccessContext
from src.school_backend.api.v1.routes_exams import exam_class_ids
from src.school_backend.domain.models.academics import Lesson, SchoolClass
from src.school_backend.domain.models.attendance import AttendanceRecord, AttendanceStatus, TeacherAttendanceRecord
from src.school_backend.domain.models.fees import Fee, FeeStatus
from src.school_backend.domain.models.profiles import Student, SynthesizedProfile, Teacher
from src.school_backend.domain.models.results import Exam, Result
from src.school_backend.domain.models.role import Role
from src.school_backend.infra.db.wiring import Repositories, get_repositories
from src.school_backend.security import require_access
from src.school_backend.services.attendance.service import attendance_service
from src.school_backend.services.audit.service import audit_service


router = APIRouter(prefix="/dashboard", tags=["dashboard"])

student_access = require_access(Role.STUDENT)
teacher_access = require_access(Role.TEACHER, include_class_scope=True)
parent_access = require_access(Role.PARENT)
# Counts and activity are school-wide, so a synthesized admin gets nothing.
admin_access = require_access(Role.ADMIN, provisioned=True)

PENDING_STATUSES = (FeeStatus.UNPAID, FeeStatus.PARTIAL)
ATTENDANCE_WINDOW_DAYS = 30
ACTIVITY_WINDOW_DAYS = 7
ACTIVITY_PER_SOURCE = 5
ACTIVITY_LIMIT = 10


class StudentDashboardStats(BaseModel):
    attendance_percentage: int
    total_fees_due: int
    average_grade: int


class StudentDashboard(BaseModel):
    student: Union[Student, SynthesizedProfile]
    current_class: Optional[SchoolClass] = None
    attendance: List[AttendanceRecord]
    fees: List[Fee]
    results: List[Result]
    upcoming_exams: List[Exam]
    stats: StudentDashboardStats


class ClassWithStudents(SchoolClass):
    students: List[Student]


class TeacherDashboardStats(BaseModel):
    total_classes: int
    total_students: int
    attendance_percentage: int
    pending_tasks: int


class TeacherDashboard(BaseModel):
    teacher: Union[Teacher, SynthesizedProfile]
    classes: List[ClassWithStudents]
    today_lessons: List[Lesson]
    teacher_attendance: List[TeacherAttendanceRecord]
    upcoming_exams: List[Exam]
    stats: TeacherDashboardStats


class ChildWithClass(BaseModel):
    student: Student
    current_class: Optional[SchoolClass] = None


class ParentDashboardStats(BaseModel):
    total_children: int
    total_fees_due: int
    overall_attendance_percentage: int


class ParentDashboard(BaseModel):
    children: List[ChildWithClass]
    attendance: List[AttendanceRecord]
    fees: List[Fee]
    upcoming_exams: List[Exam]
    stats: ParentDashboardStats


class AdminDashboardStats(BaseModel):
    total_students: int
    total_teachers: int
    total_parents: int
    total_classes: int


class Activity(BaseModel):
    id: str
    type: str
    message: str
    time: datetime


class AdminDashboard(BaseModel):
    stats: AdminDashboardStats
    recent_activity: List[Activity]


def _current_class(repos: Repositories, student_id: str) -> Optional[SchoolClass]:
    enrollment = repos.classes.current_enrollment(student_id)
    return repos.classes.get_class(enrollment.class_id) if enrollment is not None else None


def _upcoming_exams(repos: Repositories, class_ids: Iterable[int], limit: int) -> List[Exam]:
    now = datetime.now(timezone.utc)
    exams = [exam for exam in repos.results.list_exams(class_ids=class_ids) if exam.start_time >= now]
    exams.sort(key=lambda e: e.start_time)
    return exams[:limit]


def _log_view(context: AccessContext) -> None:
    audit_service.log_event(
        action="view_dashboard",
        resource_type="dashboard",
        resource_id=context.role.value,
        subject=context.profile_id,
        extra=context.audit_extra(),
    )


@router.get("/student", response_model=StudentDashboard)
def get_student_dashboard(
    context: AccessContext = Depends(student_access),
    repos: Repositories = Depends(get_repositories),
) -> StudentDashboard:
    since = date.today() - timedelta(days=ATTENDANCE_WINDOW_DAYS)
    attendance = repos.attendance.list_records(student_ids=context.scope, start=since, limit=10)
    fees = repos.fees.list_fees(student_ids=context.scope, statuses=PENDING_STATUSES)
    results = repos.results.list_results(student_ids=context.scope, limit=5)
    scores = [r.score for r in results]

    _log_view(context)

    return StudentDashboard(
        student=context.profile,
        current_class=_current_class(repos, context.profile_id),
        attendance=attendance,
        fees=fees,
        results=results,
        upcoming_exams=_upcoming_exams(repos, exam_class_ids(context, repos), limit=5),
        stats=StudentDashboardStats(
            attendance_percentage=attendance_service.stats(attendance).percentage,
            total_fees_due=sum(f.remaining_amount for f in fees),
            average_grade=round(sum(scores) / len(scores)) if scores else 0,
        ),
    )


@router.get("/teacher", response_model=TeacherDashboard)
def get_teacher_dashboard(
    context: AccessContext = Depends(teacher_access),
    repos: Repositories = Depends(get_repositories),
) -> TeacherDashboard:
    classes = [
        ClassWithStudents(
            **school_class.model_dump(),
            students=repos.profiles.list_students(repos.classes.student_ids_in_classes([school_class.id])),
        )
        for school_class in repos.classes.list_classes(context.class_scope)
        if school_class.supervisor_id == context.profile_id
    ]

    today = date.today()
    weekday = today.strftime("%A").upper()
    today_lessons = [
        lesson
        for lesson in repos.classes.list_lessons(teacher_id=context.profile_id)
        if (lesson.day or "").upper() == weekday
    ]
    own_attendance = repos.teacher_attendance.list_records(
        teacher_ids=[context.profile_id],
        start=today.replace(day=1),
    )
    upcoming = _upcoming_exams(repos, context.class_scope, limit=10)

    _log_view(context)

    present = sum(1 for r in own_attendance if r.status == AttendanceStatus.PRESENT)
    return TeacherDashboard(
        teacher=context.profile,
        classes=classes,
        today_lessons=today_lessons,
        teacher_attendance=own_attendance,
        upcoming_exams=upcoming,
        stats=TeacherDashboardStats(
            total_classes=len(classes),
            total_students=sum(len(c.students) for c in classes),
            attendance_percentage=round(present / len(own_attendance) * 100) if own_attendance else 100,
            pending_tasks=len(upcoming),
        ),
    )


@router.get("/parent", response_model=ParentDashboard)
def get_parent_dashboard(
    context: AccessContext = Depends(parent_access),
    repos: Repositories = Depends(get_repositories),
) -> ParentDashboard:
    children = [
        ChildWithClass(student=child, current_class=_current_class(repos, child.id))
        for child in repos.profiles.list_students(context.scope)
    ]
    since = date.today() - timedelta(days=ATTENDANCE_WINDOW_DAYS)
    attendance = repos.attendance.list_records(student_ids=context.scope, start=since)
    fees = repos.fees.list_fees(student_ids=context.scope, statuses=PENDING_STATUSES)

    _log_view(context)

    return ParentDashboard(
        children=children,
        attendance=attendance,
        fees=fees,
        upcoming_exams=_upcoming_exams(repos, exam_class_ids(context, repos), limit=10),
        stats=ParentDashboardStats(
            total_children=len(children),
            total_fees_due=sum(f.remaining_amount for f in fees),
            overall_attendance_percentage=attendance_service.stats(attendance).percentage,
        ),
    )


def _recent_activity(repos: Repositories) -> List[Activity]:
    now = datetime.now(timezone.utc)
    since = now - timedelta(days=ACTIVITY_WINDOW_DAYS)
    activity: List[Activity] = []

    for enrollment in repos.classes.list_enrollments(since=since, limit=ACTIVITY_PER_SOURCE):
        student = repos.profiles.get_student(enrollment.student_id)
        school_class = repos.classes.get_class(enrollment.class_id)
        activity.append(
            Activity(
                id=f"enrollment-{enrollment.id}",
                type="enrollment",
                message=(
                    f"{student.full_name if student else enrollment.student_id} enrolled in "
                    f"{school_class.name if school_class else enrollment.class_id}"
                ),
                time=enrollment.joined_at,
            )
        )

    for payment in repos.fees.recent_payments(since=since, limit=ACTIVITY_PER_SOURCE):
        fee = repos.fees.get_fee(payment.fee_id)
        student = repos.profiles.get_student(fee.student_id) if fee is not None else None
        activity.append(
            Activity(
                id=f"payment-{payment.id}",
                type="payment",
                message=f"Fee payment of {payment.amount} received from {student.full_name if student else 'unknown'}",
                time=payment.date,
            )
        )

    yesterday = date.today() - timedelta(days=1)
    for record in repos.attendance.list_records(start=yesterday, limit=ACTIVITY_PER_SOURCE):
        school_class = repos.classes.get_class(record.class_id)
        activity.append(
            Activity(
                id=f"attendance-{record.id}",
                type="attendance",
                message=f"Attendance marked for {school_class.name if school_class else record.class_id}",
                time=datetime.combine(record.date, time.min, tzinfo=timezone.utc),
            )
        )

    activity.sort(key=lambda a: a.time, reverse=True)
    return activity[:ACTIVITY_LIMIT]


@router.get("/admin", response_model=AdminDashboard)
def get_admin_dashboard(
    context: AccessContext = Depends(admin_access),
    repos: Repositories = Depends(get_repositories),
) -> AdminDashboard:
    stats = AdminDashboardStats(
        total_students=len(repos.profiles.list_student_ids()),
        total_teachers=len(repos.profiles.list_teachers()),
        total_parents=len(repos.profiles.list_parents()),
        total_classes=len(repos.classes.list_classes()),
    )
    recent = _recent_activity(repos)

    _log_view(context)

    return AdminDashboard(stats=stats, recent_activity=recent)
