from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional, Set

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from src.school_backend.access.pipeline import AccessContext
from src.school_backend.domain.models.results import Exam, Result
from src.school_backend.domain.models.role import Role
from src.school_backend.infra.db.wiring import Repositories, get_repositories
from src.school_backend.security import forbid, require_access
from src.school_backend.services.audit.service import audit_service
from src.school_backend.services.results.service import ReportCard, result_service


router = APIRouter(prefix="/exams", tags=["exams"])

results_access = require_access(Role.STUDENT, Role.PARENT, Role.TEACHER, Role.ADMIN, record_param="student_id")
upcoming_access = require_access(Role.STUDENT, Role.PARENT, Role.TEACHER, Role.ADMIN, include_class_scope=True)


class ResultsResponse(BaseModel):
    results: List[Result]


class UpcomingExamsResponse(BaseModel):
    exams: List[Exam]


def exam_class_ids(context: AccessContext, repos: Repositories) -> Set[int]:
    """Classes whose exams the caller may see."""

    if context.role in (Role.TEACHER, Role.ADMIN):
        return set(context.class_scope)
    # Students and parents follow the current enrollment of everyone in scope.
    class_ids = set()
    for student_id in context.scope:
        enrollment = repos.classes.current_enrollment(student_id)
        if enrollment is not None:
            class_ids.add(enrollment.class_id)
    return class_ids


@router.get("/results", response_model=ResultsResponse)
def get_exam_results(
    student_id: Optional[str] = None,
    exam_id: Optional[int] = None,
    context: AccessContext = Depends(results_access),
    repos: Repositories = Depends(get_repositories),
) -> ResultsResponse:
    targets = [context.requested_id] if context.requested_id is not None else sorted(context.scope)
    results = repos.results.list_results(student_ids=targets)
    if exam_id is not None:
        results = [r for r in results if r.exam_id == exam_id]

    audit_service.log_event(
        action="list_results",
        resource_type="result",
        subject=context.profile_id,
        extra=context.audit_extra(count=len(results)),
    )

    return ResultsResponse(results=results)


@router.get("/upcoming", response_model=UpcomingExamsResponse)
def get_upcoming_exams(
    class_id: Optional[int] = None,
    context: AccessContext = Depends(upcoming_access),
    repos: Repositories = Depends(get_repositories),
) -> UpcomingExamsResponse:
    class_ids = exam_class_ids(context, repos)
    if class_id is not None:
        if class_id not in class_ids:
            raise forbid(context, "class", "requested class outside caller scope")
        class_ids = {class_id}

    now = datetime.now(timezone.utc)
    exams = [exam for exam in repos.results.list_exams(class_ids=class_ids) if exam.start_time >= now]
    exams.sort(key=lambda e: e.start_time)
    return UpcomingExamsResponse(exams=exams)


@router.get("/report-card", response_model=ReportCard)
def get_report_card(
    student_id: Optional[str] = Query(None, description="Required for every role except student"),
    context: AccessContext = Depends(results_access),
    repos: Repositories = Depends(get_repositories),
) -> ReportCard:
    if context.role == Role.STUDENT:
        target = context.profile_id
    elif context.requested_id is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="student_id is required")
    else:
        target = context.requested_id

    student = repos.profiles.get_student(target)
    if student is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Student not found")

    enrollment = repos.classes.current_enrollment(student.id)
    school_class = repos.classes.get_class(enrollment.class_id) if enrollment is not None else None
    results = repos.results.list_results(student_ids=[student.id])
    exams = {exam.id: exam for exam in repos.results.list_exams()}

    audit_service.log_event(
        action="view_report_card",
        resource_type="student",
        resource_id=student.id,
        subject=context.profile_id,
        extra=context.audit_extra(results=len(results)),
    )

    return result_service.report_card(
        student,
        results,
        exams,
        current_class=school_class.name if school_class is not None else None,
    )
