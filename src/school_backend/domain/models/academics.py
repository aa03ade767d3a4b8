from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class SchoolClass(BaseModel):
    """A class (homeroom) with exactly one supervising teacher."""

    id: int
    name: str
    grade_level: int
    capacity: int = 30
    supervisor_id: str


class Lesson(BaseModel):
    """A lesson assignment: a teacher teaching a subject to a class."""

    id: int
    name: str
    subject: str
    class_id: int
    teacher_id: str
    day: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None


class Enrollment(BaseModel):
    id: int
    student_id: str
    class_id: int
    school_year: str
    joined_at: datetime
    # A null departure timestamp marks the current enrollment.
    left_at: Optional[datetime] = None

    @property
    def is_current(self) -> bool:
        return self.left_at is None
