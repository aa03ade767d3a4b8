from __future__ import annotations

from datetime import date
from typing import Dict, Iterable, List, Sequence

from pydantic import BaseModel

from src.school_backend.domain.models.attendance import AttendanceRecord, AttendanceStatus
from src.school_backend.domain.models.profiles import Student


class AttendanceStats(BaseModel):
    total: int
    present: int
    absent: int
    late: int
    # Share of PRESENT records, rounded to a whole percent.
    percentage: int


class StudentAttendanceStats(AttendanceStats):
    student_id: str
    student_name: str


class DailyAttendance(AttendanceStats):
    date: date


class OverallAttendanceStats(BaseModel):
    total_students: int
    average_attendance: int
    # Students at or above 90% / below 75%.
    excellent_attendance: int
    poor_attendance: int


EXCELLENT_THRESHOLD = 90
POOR_THRESHOLD = 75


class AttendanceService:
    def stats(self, records: Sequence[AttendanceRecord], *, empty_percentage: int = 0) -> AttendanceStats:
        counts: Dict[AttendanceStatus, int] = {status: 0 for status in AttendanceStatus}
        for record in records:
            counts[record.status] += 1
        total = len(records)
        present = counts[AttendanceStatus.PRESENT]
        return AttendanceStats(
            total=total,
            present=present,
            absent=counts[AttendanceStatus.ABSENT],
            late=counts[AttendanceStatus.LATE],
            percentage=round(present / total * 100) if total else empty_percentage,
        )

    def per_student(
        self,
        students: Iterable[Student],
        records: Sequence[AttendanceRecord],
    ) -> List[StudentAttendanceStats]:
        by_student: Dict[str, List[AttendanceRecord]] = {}
        for record in records:
            by_student.setdefault(record.student_id, []).append(record)

        result = []
        for student in students:
            stats = self.stats(by_student.get(student.id, []))
            result.append(
                StudentAttendanceStats(
                    student_id=student.id,
                    student_name=student.full_name,
                    **stats.model_dump(),
                )
            )
        return result

    def daily_trend(self, records: Sequence[AttendanceRecord]) -> List[DailyAttendance]:
        """Stats per calendar day, oldest day first."""

        by_day: Dict[date, List[AttendanceRecord]] = {}
        for record in records:
            by_day.setdefault(record.date, []).append(record)
        return [DailyAttendance(date=day, **self.stats(by_day[day]).model_dump()) for day in sorted(by_day)]

    def overall(self, per_student: Sequence[StudentAttendanceStats]) -> OverallAttendanceStats:
        with_records = [s for s in per_student if s.total > 0]
        average = round(sum(s.percentage for s in with_records) / len(with_records)) if with_records else 0
        return OverallAttendanceStats(
            total_students=len(per_student),
            average_attendance=average,
            excellent_attendance=sum(1 for s in with_records if s.percentage >= EXCELLENT_THRESHOLD),
            poor_attendance=sum(1 for s in with_records if s.percentage < POOR_THRESHOLD),
        )


attendance_service = AttendanceService()
