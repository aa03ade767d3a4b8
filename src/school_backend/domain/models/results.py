from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class Exam(BaseModel):
    id: int
    title: str
    subject: str
    class_id: int
    start_time: datetime


class Result(BaseModel):
    """A scored result for either an exam or an assignment."""

    id: int
    student_id: str
    score: int
    exam_id: Optional[int] = None
    assignment_title: Optional[str] = None
    # Subject of the assignment; exam results take the subject from the exam.
    subject: Optional[str] = None

    @property
    def is_exam(self) -> bool:
        return self.exam_id is not None
