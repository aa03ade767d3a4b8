from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from src.school_backend.access.pipeline import AccessContext
from src.school_backend.domain.models.academics import SchoolClass
from src.school_backend.domain.models.attendance import AttendanceRecord
from src.school_backend.domain.models.fees import Fee, FeeStatus
from src.school_backend.domain.models.profiles import Parent, Student, Teacher
from src.school_backend.domain.models.results import Result
from src.school_backend.domain.models.role import Role
from src.school_backend.infra.db.wiring import Repositories, get_repositories
from src.school_backend.security import require_access
from src.school_backend.services.attendance.service import AttendanceStats, attendance_service
from src.school_backend.services.audit.service import audit_service
from src.school_backend.services.fees.service import FeeStats, fee_service
from src.school_backend.services.results.service import ResultStats, result_service


router = APIRouter(prefix="/students", tags=["students"])

student_access = require_access(Role.STUDENT)


class StudentProfileResponse(BaseModel):
    student: Student
    current_class: Optional[SchoolClass] = None
    supervisor: Optional[Teacher] = None
    parent: Optional[Parent] = None


class StudentAttendanceResponse(BaseModel):
    attendance: List[AttendanceRecord]
    stats: AttendanceStats


class StudentFeesResponse(BaseModel):
    fees: List[Fee]
    stats: FeeStats


class StudentResultsResponse(BaseModel):
    results: List[Result]
    stats: ResultStats


@router.get("/profile", response_model=StudentProfileResponse)
def get_student_profile(
    context: AccessContext = Depends(student_access),
    repos: Repositories = Depends(get_repositories),
) -> StudentProfileResponse:
    if not isinstance(context.profile, Student):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Student record not provisioned")

    student = context.profile
    current_class = None
    supervisor = None
    enrollment = repos.classes.current_enrollment(student.id)
    if enrollment is not None:
        current_class = repos.classes.get_class(enrollment.class_id)
        if current_class is not None:
            supervisor = repos.profiles.get_teacher(current_class.supervisor_id)
    parent = repos.profiles.get_parent(student.parent_id) if student.parent_id else None

    return StudentProfileResponse(student=student, current_class=current_class, supervisor=supervisor, parent=parent)


@router.get("/attendance", response_model=StudentAttendanceResponse)
def get_student_attendance(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    limit: int = Query(50, ge=1, le=500),
    context: AccessContext = Depends(student_access),
    repos: Repositories = Depends(get_repositories),
) -> StudentAttendanceResponse:
    records = repos.attendance.list_records(student_ids=context.scope, start=start_date, end=end_date, limit=limit)

    audit_service.log_event(
        action="list_attendance",
        resource_type="attendance",
        subject=context.profile_id,
        extra=context.audit_extra(count=len(records)),
    )

    return StudentAttendanceResponse(attendance=records, stats=attendance_service.stats(records))


@router.get("/fees", response_model=StudentFeesResponse)
def get_student_fees(
    status_filter: Optional[FeeStatus] = Query(None, alias="status"),
    context: AccessContext = Depends(student_access),
    repos: Repositories = Depends(get_repositories),
) -> StudentFeesResponse:
    fees = repos.fees.list_fees(
        student_ids=context.scope,
        statuses=[status_filter] if status_filter is not None else None,
    )
    return StudentFeesResponse(fees=fees, stats=fee_service.stats(fees))


@router.get("/results", response_model=StudentResultsResponse)
def get_student_results(
    limit: int = Query(20, ge=1, le=500),
    context: AccessContext = Depends(student_access),
    repos: Repositories = Depends(get_repositories),
) -> StudentResultsResponse:
    results = repos.results.list_results(student_ids=context.scope, limit=limit)
    return StudentResultsResponse(results=results, stats=result_service.stats(results))
