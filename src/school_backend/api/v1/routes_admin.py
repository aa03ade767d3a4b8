from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator

from src.school_backend.access.pipeline import AccessContext
from src.school_backend.domain.models.academics import SchoolClass
from src.school_backend.domain.models.attendance import AttendanceRecord, AttendanceStatus, TeacherAttendanceRecord
from src.school_backend.domain.models.profiles import Parent, Student, Teacher
from src.school_backend.domain.models.role import Role
from src.school_backend.infra.db.wiring import Repositories, get_repositories
from src.school_backend.security import ensure_class_access, ensure_student_access, require_access
from src.school_backend.services.audit.service import audit_service


router = APIRouter(prefix="/admin", tags=["admin"])

admin_access = require_access(Role.ADMIN, include_class_scope=True, provisioned=True)
admin_class_access = require_access(Role.ADMIN, class_param="class_id", provisioned=True)


class AdminStudent(BaseModel):
    student: Student
    current_class: Optional[SchoolClass] = None
    parent: Optional[Parent] = None


class AdminTeacher(BaseModel):
    teacher: Teacher
    class_ids: List[int]


class AdminClass(SchoolClass):
    student_count: int
    supervisor: Optional[Teacher] = None


class AdminStats(BaseModel):
    total_students: int
    total_teachers: int
    total_classes: int
    total_fees: int
    total_payments: int


class _StatusInput(BaseModel):
    status: AttendanceStatus = AttendanceStatus.PRESENT
    day: Optional[date] = Field(None, alias="date")

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: object) -> AttendanceStatus:
        return AttendanceStatus.normalize(value)


class StudentAttendanceMark(_StatusInput):
    student_id: str
    class_id: int


class TeacherAttendanceMark(_StatusInput):
    teacher_id: str


@router.get("/students", response_model=List[AdminStudent])
def list_students(
    context: AccessContext = Depends(admin_access),
    repos: Repositories = Depends(get_repositories),
) -> List[AdminStudent]:
    # An admin's scope covers every student.
    items = []
    for student in repos.profiles.list_students(context.scope):
        enrollment = repos.classes.current_enrollment(student.id)
        items.append(
            AdminStudent(
                student=student,
                current_class=repos.classes.get_class(enrollment.class_id) if enrollment is not None else None,
                parent=repos.profiles.get_parent(student.parent_id) if student.parent_id else None,
            )
        )

    audit_service.log_event(
        action="list_students",
        resource_type="student",
        subject=context.profile_id,
        extra=context.audit_extra(count=len(items)),
    )

    return items


@router.get("/teachers", response_model=List[AdminTeacher])
def list_teachers(
    context: AccessContext = Depends(admin_access),
    repos: Repositories = Depends(get_repositories),
) -> List[AdminTeacher]:
    return [
        AdminTeacher(teacher=teacher, class_ids=sorted(repos.classes.class_ids_for_teacher(teacher.id)))
        for teacher in repos.profiles.list_teachers()
    ]


@router.get("/classes", response_model=List[AdminClass])
def list_classes(
    context: AccessContext = Depends(admin_access),
    repos: Repositories = Depends(get_repositories),
) -> List[AdminClass]:
    return [
        AdminClass(
            **school_class.model_dump(),
            student_count=len(repos.classes.student_ids_in_classes([school_class.id])),
            supervisor=repos.profiles.get_teacher(school_class.supervisor_id),
        )
        for school_class in repos.classes.list_classes(context.class_scope)
    ]


@router.get("/stats", response_model=AdminStats)
def get_stats(
    context: AccessContext = Depends(admin_access),
    repos: Repositories = Depends(get_repositories),
) -> AdminStats:
    fees = repos.fees.list_fees()
    return AdminStats(
        total_students=len(context.scope),
        total_teachers=len(repos.profiles.list_teachers()),
        total_classes=len(context.class_scope),
        total_fees=len(fees),
        total_payments=sum(len(fee.payments) for fee in fees),
    )


@router.get("/attendance/{class_id}", response_model=List[AttendanceRecord])
def get_class_attendance(
    class_id: int,
    since: Optional[date] = Query(None, description="Defaults to today"),
    context: AccessContext = Depends(admin_class_access),
    repos: Repositories = Depends(get_repositories),
) -> List[AttendanceRecord]:
    return repos.attendance.list_records(class_ids=[class_id], start=since or date.today())


@router.post("/attendance/mark", response_model=AttendanceRecord)
def mark_student_attendance(
    payload: StudentAttendanceMark,
    context: AccessContext = Depends(admin_access),
    repos: Repositories = Depends(get_repositories),
) -> AttendanceRecord:
    ensure_class_access(context, payload.class_id)
    ensure_student_access(context, payload.student_id)
    if payload.student_id not in repos.classes.student_ids_in_classes([payload.class_id]):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Student is not enrolled in this class")

    day = payload.day or date.today()
    record = repos.attendance.upsert_record(
        day=day,
        student_id=payload.student_id,
        class_id=payload.class_id,
        lesson_id=None,
        status=payload.status,
    )

    audit_service.log_event(
        action="mark_attendance",
        resource_type="attendance",
        resource_id=str(record.id),
        subject=context.profile_id,
        extra=context.audit_extra(day=day.isoformat()),
    )

    return record


@router.get("/teacher-attendance", response_model=List[TeacherAttendanceRecord])
def get_teacher_attendance(
    day: Optional[date] = Query(None, alias="date", description="Defaults to today"),
    context: AccessContext = Depends(admin_access),
    repos: Repositories = Depends(get_repositories),
) -> List[TeacherAttendanceRecord]:
    day = day or date.today()
    return repos.teacher_attendance.list_records(start=day, end=day)


@router.post("/teacher-attendance/mark", response_model=TeacherAttendanceRecord)
def mark_teacher_attendance(
    payload: TeacherAttendanceMark,
    context: AccessContext = Depends(admin_access),
    repos: Repositories = Depends(get_repositories),
) -> TeacherAttendanceRecord:
    if repos.profiles.get_teacher(payload.teacher_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Teacher not found")

    day = payload.day or date.today()
    record = repos.teacher_attendance.upsert_record(teacher_id=payload.teacher_id, day=day, status=payload.status)

    audit_service.log_event(
        action="mark_teacher_attendance",
        resource_type="teacher_attendance",
        resource_id=str(record.id),
        subject=context.profile_id,
        extra=context.audit_extra(teacher_id=payload.teacher_id, day=day.isoformat()),
    )

    return record
