from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from src.school_backend.access.pipeline import AccessContext
from src.school_backend.domain.models.academics import SchoolClass
from src.school_backend.domain.models.attendance import AttendanceRecord
from src.school_backend.domain.models.profiles import Student
from src.school_backend.domain.models.role import Role
from src.school_backend.infra.db.wiring import Repositories, get_repositories
from src.school_backend.security import require_access
from src.school_backend.services.attendance.service import (
    DailyAttendance,
    OverallAttendanceStats,
    StudentAttendanceStats,
    attendance_service,
)
from src.school_backend.services.audit.service import audit_service


router = APIRouter(prefix="/attendance", tags=["attendance"])

summary_access = require_access(Role.STUDENT, Role.PARENT, Role.TEACHER, Role.ADMIN)
report_access = require_access(Role.STUDENT, Role.PARENT, Role.TEACHER, Role.ADMIN, record_param="student_id")
roster_access = require_access(Role.TEACHER, Role.ADMIN, include_class_scope=True)


class AttendanceSummaryResponse(BaseModel):
    students: List[StudentAttendanceStats]
    overall: OverallAttendanceStats


class ClassRoster(SchoolClass):
    students: List[Student]


class AttendanceTrendResponse(BaseModel):
    trend: List[DailyAttendance]


class AttendanceReportResponse(BaseModel):
    attendance: List[AttendanceRecord]


@router.get("/summary", response_model=AttendanceSummaryResponse)
def get_attendance_summary(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    class_id: Optional[int] = None,
    context: AccessContext = Depends(summary_access),
    repos: Repositories = Depends(get_repositories),
) -> AttendanceSummaryResponse:
    """Per-student and overall attendance for everyone in the caller's scope.

    ``class_id`` only narrows the records; it never widens the scope, so it
    does not need its own gate.
    """

    records = repos.attendance.list_records(
        student_ids=context.scope,
        class_ids=[class_id] if class_id is not None else None,
        start=start_date,
        end=end_date,
    )
    per_student = attendance_service.per_student(repos.profiles.list_students(context.scope), records)
    return AttendanceSummaryResponse(students=per_student, overall=attendance_service.overall(per_student))


@router.get("/classes", response_model=List[ClassRoster])
def list_attendance_classes(
    context: AccessContext = Depends(roster_access),
    repos: Repositories = Depends(get_repositories),
) -> List[ClassRoster]:
    """Classes the caller can take attendance for, with their current students."""

    return [
        ClassRoster(
            **school_class.model_dump(),
            students=repos.profiles.list_students(repos.classes.student_ids_in_classes([school_class.id])),
        )
        for school_class in repos.classes.list_classes(context.class_scope)
    ]


@router.get("/trend", response_model=AttendanceTrendResponse)
def get_attendance_trend(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    class_id: Optional[int] = None,
    context: AccessContext = Depends(summary_access),
    repos: Repositories = Depends(get_repositories),
) -> AttendanceTrendResponse:
    records = repos.attendance.list_records(
        student_ids=context.scope,
        class_ids=[class_id] if class_id is not None else None,
        start=start_date,
        end=end_date,
    )
    return AttendanceTrendResponse(trend=attendance_service.daily_trend(records))


@router.get("/report", response_model=AttendanceReportResponse)
def get_attendance_report(
    student_id: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    class_id: Optional[int] = None,
    context: AccessContext = Depends(report_access),
    repos: Repositories = Depends(get_repositories),
) -> AttendanceReportResponse:
    targets = [context.requested_id] if context.requested_id is not None else context.scope
    records = repos.attendance.list_records(
        student_ids=targets,
        class_ids=[class_id] if class_id is not None else None,
        start=start_date,
        end=end_date,
    )

    audit_service.log_event(
        action="attendance_report",
        resource_type="attendance",
        resource_id=context.requested_id,
        subject=context.profile_id,
        extra=context.audit_extra(count=len(records)),
    )

    return AttendanceReportResponse(attendance=records)
