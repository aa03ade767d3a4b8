from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class AttendanceStatus(str, Enum):
    PRESENT = "PRESENT"
    ABSENT = "ABSENT"
    LATE = "LATE"

    @classmethod
    def normalize(cls, value: object) -> "AttendanceStatus":
        """Map loosely-cased client input to a status, defaulting to PRESENT."""

        try:
            return cls(str(value).upper())
        except ValueError:
            return cls.PRESENT


class AttendanceRecord(BaseModel):
    id: int
    date: date
    student_id: str
    class_id: int
    lesson_id: Optional[int] = None
    status: AttendanceStatus
    in_time: Optional[datetime] = None
    out_time: Optional[datetime] = None


class AttendanceEntry(BaseModel):
    """One student's mark within a batch for the same class, lesson and day."""

    student_id: str
    status: AttendanceStatus = AttendanceStatus.PRESENT
    in_time: Optional[datetime] = None
    out_time: Optional[datetime] = None


class TeacherAttendanceRecord(BaseModel):
    # At most one record per teacher and day.
    id: int
    teacher_id: str
    date: date
    status: AttendanceStatus
