from __future__ import annotations

from datetime import date
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator

from src.school_backend.access.pipeline import AccessContext
from src.school_backend.domain.models.academics import Lesson, SchoolClass
from src.school_backend.domain.models.attendance import AttendanceEntry, AttendanceRecord, AttendanceStatus
from src.school_backend.domain.models.profiles import Student, SynthesizedProfile, Teacher
from src.school_backend.domain.models.role import Role
from src.school_backend.infra.db.wiring import Repositories, get_repositories
from src.school_backend.security import ensure_class_access, ensure_student_access, require_access
from src.school_backend.services.attendance.service import AttendanceStats, attendance_service
from src.school_backend.services.audit.service import audit_service


router = APIRouter(prefix="/teachers", tags=["teachers"])

teacher_access = require_access(Role.TEACHER)
teacher_class_access = require_access(Role.TEACHER, include_class_scope=True)
class_gated_access = require_access(Role.TEACHER, class_param="class_id")


class TeacherClass(SchoolClass):
    student_count: int
    is_supervisor: bool


class TeacherProfileResponse(BaseModel):
    teacher: Union[Teacher, SynthesizedProfile]
    classes: List[TeacherClass]
    lessons: List[Lesson]


class TeacherAttendanceResponse(BaseModel):
    attendance: List[AttendanceRecord]
    stats: AttendanceStats


class AttendanceMark(AttendanceEntry):
    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: object) -> AttendanceStatus:
        return AttendanceStatus.normalize(value)


class MarkAttendanceRequest(BaseModel):
    class_id: int
    lesson_id: Optional[int] = None
    day: Optional[date] = Field(None, alias="date")
    records: List[AttendanceMark] = Field(..., min_length=1)


class MarkAttendanceResponse(BaseModel):
    day: date = Field(..., alias="date")
    class_id: int
    lesson_id: Optional[int] = None
    records: List[AttendanceRecord]


class ClassAttendanceResponse(BaseModel):
    school_class: SchoolClass
    students: List[Student]
    attendance: List[AttendanceRecord]
    stats: AttendanceStats


def _teacher_classes(context: AccessContext, repos: Repositories) -> List[TeacherClass]:
    classes = []
    for school_class in repos.classes.list_classes(context.class_scope):
        classes.append(
            TeacherClass(
                **school_class.model_dump(),
                student_count=len(repos.classes.student_ids_in_classes([school_class.id])),
                is_supervisor=school_class.supervisor_id == context.profile_id,
            )
        )
    return classes


@router.get("/profile", response_model=TeacherProfileResponse)
def get_teacher_profile(
    context: AccessContext = Depends(teacher_class_access),
    repos: Repositories = Depends(get_repositories),
) -> TeacherProfileResponse:
    return TeacherProfileResponse(
        teacher=context.profile,
        classes=_teacher_classes(context, repos),
        lessons=repos.classes.list_lessons(teacher_id=context.profile_id),
    )


@router.get("/classes", response_model=List[TeacherClass])
def list_teacher_classes(
    context: AccessContext = Depends(teacher_class_access),
    repos: Repositories = Depends(get_repositories),
) -> List[TeacherClass]:
    return _teacher_classes(context, repos)


@router.get("/lessons", response_model=List[Lesson])
def list_teacher_lessons(
    day: Optional[str] = Query(None, description="Weekday name, e.g. MONDAY"),
    class_id: Optional[int] = None,
    context: AccessContext = Depends(class_gated_access),
    repos: Repositories = Depends(get_repositories),
) -> List[Lesson]:
    lessons = repos.classes.list_lessons(teacher_id=context.profile_id, class_id=class_id)
    if day:
        lessons = [lesson for lesson in lessons if (lesson.day or "").upper() == day.upper()]
    return lessons


@router.get("/attendance", response_model=TeacherAttendanceResponse)
def get_teacher_attendance(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    limit: int = Query(100, ge=1, le=1000),
    context: AccessContext = Depends(teacher_access),
    repos: Repositories = Depends(get_repositories),
) -> TeacherAttendanceResponse:
    records = repos.attendance.list_records(student_ids=context.scope, start=start_date, end=end_date, limit=limit)

    audit_service.log_event(
        action="list_attendance",
        resource_type="attendance",
        subject=context.profile_id,
        extra=context.audit_extra(count=len(records)),
    )

    return TeacherAttendanceResponse(
        attendance=records,
        stats=attendance_service.stats(records, empty_percentage=100),
    )


@router.post("/mark-attendance", response_model=MarkAttendanceResponse)
def mark_attendance(
    payload: MarkAttendanceRequest,
    context: AccessContext = Depends(teacher_class_access),
    repos: Repositories = Depends(get_repositories),
) -> MarkAttendanceResponse:
    # Every id in the body is gated before anything is written.
    ensure_class_access(context, payload.class_id)
    for mark in payload.records:
        ensure_student_access(context, mark.student_id)

    if payload.lesson_id is not None:
        lessons = repos.classes.list_lessons(class_id=payload.class_id)
        if payload.lesson_id not in {lesson.id for lesson in lessons}:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Lesson does not belong to this class",
            )

    enrolled = repos.classes.student_ids_in_classes([payload.class_id])
    if any(mark.student_id not in enrolled for mark in payload.records):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Student is not enrolled in this class",
        )

    day = payload.day or date.today()
    saved = repos.attendance.upsert_records(
        day=day,
        class_id=payload.class_id,
        lesson_id=payload.lesson_id,
        entries=payload.records,
    )

    audit_service.log_event(
        action="mark_attendance",
        resource_type="attendance",
        resource_id=str(payload.class_id),
        subject=context.profile_id,
        extra=context.audit_extra(count=len(saved), day=day.isoformat()),
    )

    return MarkAttendanceResponse(date=day, class_id=payload.class_id, lesson_id=payload.lesson_id, records=saved)


@router.get("/class/{class_id}/attendance", response_model=ClassAttendanceResponse)
def get_class_attendance(
    class_id: int,
    day: Optional[date] = Query(None, alias="date"),
    context: AccessContext = Depends(class_gated_access),
    repos: Repositories = Depends(get_repositories),
) -> ClassAttendanceResponse:
    school_class = repos.classes.get_class(class_id)
    if school_class is None:
        # Unreachable for a gated id unless the class vanished mid-request.
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Class not found")

    students = repos.profiles.list_students(repos.classes.student_ids_in_classes([class_id]))
    records = repos.attendance.list_records(class_ids=[class_id], start=day, end=day)

    return ClassAttendanceResponse(
        school_class=school_class,
        students=students,
        attendance=records,
        stats=attendance_service.stats(records),
    )
