from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from pydantic import BaseModel, Field

from src.school_backend.domain.models.profiles import Student
from src.school_backend.domain.models.results import Exam, Result


class ResultStats(BaseModel):
    total: int
    exams: int
    assignments: int
    average_score: int
    highest_score: int
    lowest_score: int


class StudentResultStats(BaseModel):
    student_id: str
    student_name: str
    total: int
    average_score: int
    highest_score: int
    lowest_score: int


class SubjectResults(BaseModel):
    subject: str
    exam_results: List[Result] = Field(default_factory=list)
    assignment_results: List[Result] = Field(default_factory=list)
    average_score: int = 0


class ReportCard(BaseModel):
    student_id: str
    student_name: str
    current_class: Optional[str] = None
    subjects: List[SubjectResults]
    overall_average: int


def _average(scores: Sequence[int]) -> int:
    return round(sum(scores) / len(scores)) if scores else 0


class ResultService:
    def stats(self, results: Sequence[Result]) -> ResultStats:
        scores = [r.score for r in results]
        return ResultStats(
            total=len(results),
            exams=sum(1 for r in results if r.is_exam),
            assignments=sum(1 for r in results if not r.is_exam),
            average_score=_average(scores),
            highest_score=max(scores, default=0),
            lowest_score=min(scores, default=0),
        )

    def per_student(self, students: Iterable[Student], results: Sequence[Result]) -> List[StudentResultStats]:
        by_student: Dict[str, List[int]] = {}
        for result in results:
            by_student.setdefault(result.student_id, []).append(result.score)
        return [
            StudentResultStats(
                student_id=student.id,
                student_name=student.full_name,
                total=len(by_student.get(student.id, [])),
                average_score=_average(by_student.get(student.id, [])),
                highest_score=max(by_student.get(student.id, []), default=0),
                lowest_score=min(by_student.get(student.id, []), default=0),
            )
            for student in students
        ]

    def report_card(
        self,
        student: Student,
        results: Sequence[Result],
        exams: Mapping[int, Exam],
        current_class: Optional[str] = None,
    ) -> ReportCard:
        """Group results by subject; results without a known subject are left out."""

        subjects: Dict[str, SubjectResults] = {}
        for result in results:
            exam = exams.get(result.exam_id) if result.exam_id is not None else None
            subject = exam.subject if exam is not None else result.subject
            if not subject:
                continue
            entry = subjects.setdefault(subject, SubjectResults(subject=subject))
            if result.is_exam:
                entry.exam_results.append(result)
            else:
                entry.assignment_results.append(result)

        for entry in subjects.values():
            entry.average_score = _average([r.score for r in entry.exam_results + entry.assignment_results])

        return ReportCard(
            student_id=student.id,
            student_name=student.full_name,
            current_class=current_class,
            subjects=sorted(subjects.values(), key=lambda s: s.subject),
            overall_average=_average([r.score for r in results]),
        )


result_service = ResultService()
