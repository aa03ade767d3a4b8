from __future__ import annotations

from datetime import date
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from src.school_backend.access.pipeline import AccessContext
from src.school_backend.domain.models.attendance import AttendanceRecord
from src.school_backend.domain.models.fees import Fee, FeeStatus
from src.school_backend.domain.models.profiles import Parent, Student, SynthesizedProfile
from src.school_backend.domain.models.results import Result
from src.school_backend.domain.models.role import Role
from src.school_backend.infra.db.wiring import Repositories, get_repositories
from src.school_backend.security import require_access
from src.school_backend.services.attendance.service import StudentAttendanceStats, attendance_service
from src.school_backend.services.audit.service import audit_service
from src.school_backend.services.fees.service import FeeStats, fee_service
from src.school_backend.services.results.service import StudentResultStats, result_service


router = APIRouter(prefix="/parents", tags=["parents"])

parent_access = require_access(Role.PARENT)
# Routes taking ?child_id=... gate it against the parent's children.
child_access = require_access(Role.PARENT, record_param="child_id")

# Attendance rate for the children overview is taken over this many of the
# most recent records.
RECENT_ATTENDANCE_WINDOW = 30


class ChildSummary(BaseModel):
    id: str
    name: str
    student_number: str
    class_name: str
    grade_level: Optional[int] = None
    attendance: int
    pending_fees: int
    email: Optional[str] = None
    phone: Optional[str] = None


class ParentProfileResponse(BaseModel):
    parent: Union[Parent, SynthesizedProfile]
    children: List[ChildSummary]


class ChildrenAttendanceResponse(BaseModel):
    attendance: List[AttendanceRecord]
    stats: List[StudentAttendanceStats]


class ChildrenFeesResponse(BaseModel):
    fees: List[Fee]
    stats: FeeStats


class ChildrenResultsResponse(BaseModel):
    results: List[Result]
    stats: List[StudentResultStats]


def _targets(context: AccessContext) -> List[str]:
    # The gate has already checked a requested child against the scope.
    if context.requested_id is not None:
        return [context.requested_id]
    return sorted(context.scope)


def _summarize_child(child: Student, repos: Repositories) -> ChildSummary:
    enrollment = repos.classes.current_enrollment(child.id)
    school_class = repos.classes.get_class(enrollment.class_id) if enrollment is not None else None
    recent = repos.attendance.list_records(student_ids=[child.id], limit=RECENT_ATTENDANCE_WINDOW)
    pending = repos.fees.list_fees(student_ids=[child.id], statuses=[FeeStatus.UNPAID, FeeStatus.PARTIAL])
    return ChildSummary(
        id=child.id,
        name=child.full_name,
        student_number=child.student_number,
        class_name=school_class.name if school_class is not None else "Not Enrolled",
        grade_level=school_class.grade_level if school_class is not None else None,
        attendance=attendance_service.stats(recent, empty_percentage=100).percentage,
        pending_fees=sum(fee.remaining_amount for fee in pending),
        email=child.email,
        phone=child.phone,
    )


def _children(context: AccessContext, repos: Repositories) -> List[ChildSummary]:
    # The scope of a parent is exactly the set of their children.
    return [_summarize_child(child, repos) for child in repos.profiles.list_students(context.scope)]


@router.get("/profile", response_model=ParentProfileResponse)
def get_parent_profile(
    context: AccessContext = Depends(parent_access),
    repos: Repositories = Depends(get_repositories),
) -> ParentProfileResponse:
    return ParentProfileResponse(parent=context.profile, children=_children(context, repos))


@router.get("/children", response_model=List[ChildSummary])
def list_children(
    context: AccessContext = Depends(parent_access),
    repos: Repositories = Depends(get_repositories),
) -> List[ChildSummary]:
    children = _children(context, repos)

    audit_service.log_event(
        action="list_children",
        resource_type="student",
        subject=context.profile_id,
        extra=context.audit_extra(count=len(children)),
    )

    return children


@router.get("/children/attendance", response_model=ChildrenAttendanceResponse)
def get_children_attendance(
    child_id: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    limit: int = Query(50, ge=1, le=500),
    context: AccessContext = Depends(child_access),
    repos: Repositories = Depends(get_repositories),
) -> ChildrenAttendanceResponse:
    targets = _targets(context)
    records = repos.attendance.list_records(student_ids=targets, start=start_date, end=end_date, limit=limit)
    students = repos.profiles.list_students(targets)
    return ChildrenAttendanceResponse(attendance=records, stats=attendance_service.per_student(students, records))


@router.get("/children/fees", response_model=ChildrenFeesResponse)
def get_children_fees(
    child_id: Optional[str] = None,
    status_filter: Optional[FeeStatus] = Query(None, alias="status"),
    context: AccessContext = Depends(child_access),
    repos: Repositories = Depends(get_repositories),
) -> ChildrenFeesResponse:
    fees = repos.fees.list_fees(
        student_ids=_targets(context),
        statuses=[status_filter] if status_filter is not None else None,
    )
    return ChildrenFeesResponse(fees=fees, stats=fee_service.stats(fees))


@router.get("/children/results", response_model=ChildrenResultsResponse)
def get_children_results(
    child_id: Optional[str] = None,
    limit: int = Query(20, ge=1, le=500),
    context: AccessContext = Depends(child_access),
    repos: Repositories = Depends(get_repositories),
) -> ChildrenResultsResponse:
    targets = _targets(context)
    results = repos.results.list_results(student_ids=targets, limit=limit)
    students = repos.profiles.list_students(targets)
    return ChildrenResultsResponse(results=results, stats=result_service.per_student(students, results))
