from datetime import date, datetime, timezone

from src.school_backend.domain.models.attendance import AttendanceRecord, AttendanceStatus
from src.school_backend.domain.models.fees import Fee, FeeStatus
from src.school_backend.domain.models.profiles import Student
from src.school_backend.domain.models.results import Exam, Result
from src.school_backend.services.attendance.service import attendance_service
from src.school_backend.services.fees.service import fee_service
from src.school_backend.services.results.service import result_service


def _record(record_id, student_id, status):
    return AttendanceRecord(id=record_id, date=date(2025, 3, record_id), student_id=student_id, class_id=1, status=status)


def _student(student_id):
    return Student(id=student_id, name=student_id.title(), student_number=student_id.upper())


def test_attendance_stats_rounding_and_empty_default():
    records = [
        _record(1, "a", AttendanceStatus.PRESENT),
        _record(2, "a", AttendanceStatus.PRESENT),
        _record(3, "a", AttendanceStatus.LATE),
    ]
    stats = attendance_service.stats(records)
    assert (stats.total, stats.present, stats.late, stats.percentage) == (3, 2, 1, 67)

    assert attendance_service.stats([]).percentage == 0
    assert attendance_service.stats([], empty_percentage=100).percentage == 100


def test_overall_attendance_buckets():
    records = [_record(i, "a", AttendanceStatus.PRESENT) for i in range(1, 11)]
    records += [_record(i, "b", AttendanceStatus.ABSENT if i % 2 else AttendanceStatus.PRESENT) for i in range(11, 21)]
    per_student = attendance_service.per_student([_student("a"), _student("b"), _student("c")], records)

    overall = attendance_service.overall(per_student)

    assert [s.percentage for s in per_student] == [100, 50, 0]
    # Students without records do not drag the average down.
    assert overall.total_students == 3
    assert overall.average_attendance == 75
    assert overall.excellent_attendance == 1
    assert overall.poor_attendance == 1


def test_attendance_status_normalization():
    assert AttendanceStatus.normalize("late") == AttendanceStatus.LATE
    assert AttendanceStatus.normalize("unknown") == AttendanceStatus.PRESENT


def test_fee_stats_and_summary():
    now = datetime.now(timezone.utc)
    fees = [
        Fee(id=1, student_id="a", title="T", total_amount=100, paid_amount=100, status=FeeStatus.PAID, due_date=date(2025, 1, 1), created_at=now),
        Fee(id=2, student_id="a", title="T", total_amount=100, paid_amount=30, status=FeeStatus.PARTIAL, due_date=date(2025, 1, 1), created_at=now),
        Fee(id=3, student_id="b", title="T", total_amount=50, status=FeeStatus.OVERDUE, due_date=date(2025, 1, 1), created_at=now),
    ]

    stats = fee_service.stats(fees)
    summary = fee_service.financial_summary(fees)

    assert (stats.total, stats.paid, stats.partial, stats.overdue, stats.unpaid) == (3, 1, 1, 1, 0)
    assert stats.total_due == 120
    assert (summary.total_collected, summary.total_pending, summary.total_overdue) == (130, 120, 50)


def test_result_stats_and_report_card():
    exams = {7: Exam(id=7, title="Quiz", subject="Science", class_id=1, start_time=datetime(2025, 1, 1, tzinfo=timezone.utc))}
    results = [
        Result(id=1, student_id="a", score=60, exam_id=7),
        Result(id=2, student_id="a", score=75, subject="Science", assignment_title="Lab"),
        Result(id=3, student_id="a", score=90, subject="History", assignment_title="Essay"),
        # No subject anywhere: counted overall, left out of the subject breakdown.
        Result(id=4, student_id="a", score=95),
    ]

    stats = result_service.stats(results)
    card = result_service.report_card(_student("a"), results, exams, current_class="7A")

    assert (stats.total, stats.exams, stats.assignments) == (4, 1, 3)
    assert (stats.highest_score, stats.lowest_score, stats.average_score) == (95, 60, 80)
    assert [s.subject for s in card.subjects] == ["History", "Science"]
    assert card.subjects[1].average_score == 68
    assert card.overall_average == 80
    assert card.current_class == "7A"
