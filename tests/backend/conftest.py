from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import ClassVar, Dict, Optional

import pytest

from src.school_backend.access.identity_provider import ProviderUser, StaticIdentityProvider, set_identity_provider
from src.school_backend.access.tokens import token_issuer
from src.school_backend.domain.models.academics import Lesson, SchoolClass
from src.school_backend.domain.models.attendance import AttendanceRecord, AttendanceStatus
from src.school_backend.domain.models.fees import Fee, FeeStatus, Payment
from src.school_backend.domain.models.notification import Notification
from src.school_backend.domain.models.profiles import Accountant, Admin, Parent, Student, Teacher
from src.school_backend.domain.models.results import Exam, Result
from src.school_backend.domain.models.role import Role
from src.school_backend.infra.db.inmemory import InMemorySchoolStore
from src.school_backend.infra.db.wiring import build_inmemory_repositories, get_repositories, set_repositories


PASSWORD = "correct-horse"

# Provider-side tokens (web client sessions) and who they belong to.
TEACHER_WEB_TOKEN = "web-session-teacher-1"
UNPROVISIONED_WEB_TOKEN = "web-session-ghost"


@dataclass
class School:
    """Handle on the seeded store and provider used by a test."""

    store: InMemorySchoolStore
    provider: StaticIdentityProvider

    password: ClassVar[str] = PASSWORD
    teacher_web_token: ClassVar[str] = TEACHER_WEB_TOKEN
    unprovisioned_web_token: ClassVar[str] = UNPROVISIONED_WEB_TOKEN

    def headers(self, subject: str, role: Optional[str] = None) -> Dict[str, str]:
        return {"Authorization": f"Bearer {token_issuer.issue(subject=subject, role=role)}"}

    @staticmethod
    def bearer(token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {token}"}


def _seed(store: InMemorySchoolStore) -> None:
    now = datetime.now(timezone.utc)
    today = date.today()

    store.add_teacher(Teacher(id="teacher-1", name="Amina", surname="Okafor", email="amina@greenfield.edu", subjects=["Mathematics"]))
    store.add_teacher(Teacher(id="teacher-2", name="Bruno", surname="Silva", email="bruno@greenfield.edu", subjects=["English"]))

    store.add_parent(Parent(id="parent-1", name="Carla", surname="Mendes", email="carla@mailbox.org"))
    store.add_parent(Parent(id="parent-2", name="Dario", surname="Rossi", email="dario@mailbox.org"))

    store.add_student(Student(id="student-1", name="Ana", surname="Mendes", student_number="S-001", parent_id="parent-1"))
    store.add_student(Student(id="student-2", name="Ben", surname="Cole", student_number="S-002"))
    store.add_student(Student(id="student-3", name="Caio", surname="Mendes", student_number="S-003", parent_id="parent-1"))
    store.add_student(Student(id="student-4", name="Dora", surname="Rossi", student_number="S-004", parent_id="parent-2"))
    store.add_student(Student(id="student-5", name="Eli", surname="Park", student_number="S-005"))

    store.add_admin(Admin(id="admin-1", name="Fatima", surname="Noor", email="fatima@greenfield.edu"))
    store.add_accountant(Accountant(id="accountant-1", name="Gil", surname="Moreau", email="gil@greenfield.edu"))

    # teacher-1 supervises 7A and teaches one lesson in 7B; teacher-2 owns 8A.
    store.add_class(SchoolClass(id=1, name="7A", grade_level=7, supervisor_id="teacher-1"))
    store.add_class(SchoolClass(id=2, name="7B", grade_level=7, supervisor_id="teacher-2"))
    store.add_class(SchoolClass(id=3, name="8A", grade_level=8, supervisor_id="teacher-2"))
    store.add_lesson(Lesson(id=1, name="Algebra", subject="Mathematics", class_id=1, teacher_id="teacher-1", day="MONDAY"))
    store.add_lesson(Lesson(id=2, name="Geometry", subject="Mathematics", class_id=2, teacher_id="teacher-1", day="TUESDAY"))
    store.add_lesson(Lesson(id=3, name="Reading", subject="English", class_id=3, teacher_id="teacher-2", day="MONDAY"))

    store.enroll("student-1", 1)
    store.enroll("student-2", 1)
    store.enroll("student-3", 2)
    store.enroll("student-4", 3)
    # student-5 left 7A and is now in 8A.
    former = store.enroll("student-5", 1, school_year="2024/2025")
    store.enrollments[former.id] = former.model_copy(update={"left_at": now - timedelta(days=200)})
    store.enroll("student-5", 3)

    store.add_attendance(AttendanceRecord(id=1, date=today - timedelta(days=2), student_id="student-1", class_id=1, lesson_id=1, status=AttendanceStatus.PRESENT))
    store.add_attendance(AttendanceRecord(id=2, date=today - timedelta(days=1), student_id="student-1", class_id=1, lesson_id=1, status=AttendanceStatus.ABSENT))
    store.add_attendance(AttendanceRecord(id=3, date=today - timedelta(days=1), student_id="student-2", class_id=1, lesson_id=1, status=AttendanceStatus.LATE))
    store.add_attendance(AttendanceRecord(id=4, date=today - timedelta(days=1), student_id="student-4", class_id=3, lesson_id=3, status=AttendanceStatus.PRESENT))

    store.add_fee(Fee(id=1, student_id="student-1", title="Tuition Term 1", total_amount=1000, due_date=today + timedelta(days=10), created_at=now - timedelta(days=5)))
    store.add_fee(Fee(id=2, student_id="student-1", title="Books", total_amount=200, paid_amount=200, status=FeeStatus.PAID, due_date=today - timedelta(days=20), created_at=now - timedelta(days=40)))
    store.payments[1] = Payment(id=1, fee_id=2, amount=200, method="card", date=now - timedelta(days=21))
    store.add_fee(Fee(id=3, student_id="student-3", title="Tuition Term 1", total_amount=1000, paid_amount=400, status=FeeStatus.PARTIAL, due_date=today + timedelta(days=10), created_at=now - timedelta(days=5)))
    store.payments[2] = Payment(id=2, fee_id=3, amount=400, method="cash", date=now - timedelta(days=3))
    store.add_fee(Fee(id=4, student_id="student-4", title="Tuition Term 1", total_amount=1000, status=FeeStatus.OVERDUE, due_date=today - timedelta(days=1), created_at=now - timedelta(days=60)))

    store.add_exam(Exam(id=1, title="Midterm", subject="Mathematics", class_id=1, start_time=now - timedelta(days=7)))
    store.add_exam(Exam(id=2, title="Final", subject="Mathematics", class_id=1, start_time=now + timedelta(days=14)))
    store.add_exam(Exam(id=3, title="Final", subject="English", class_id=3, start_time=now + timedelta(days=14)))
    store.add_result(Result(id=1, student_id="student-1", score=80, exam_id=1))
    store.add_result(Result(id=2, student_id="student-1", score=91, assignment_title="Essay", subject="English"))
    store.add_result(Result(id=3, student_id="student-3", score=70, assignment_title="Worksheet", subject="Mathematics"))
    store.add_result(Result(id=4, student_id="student-4", score=55, exam_id=3))

    store.add_notification(Notification(id=1, title="Holiday", message="School closed Friday", created_at=now - timedelta(hours=5), target_role=Role.STUDENT))
    store.add_notification(Notification(id=2, title="Fee due", message="Tuition due soon", type="FEE", created_at=now - timedelta(hours=4), student_id="student-1"))
    store.add_notification(Notification(id=3, title="Field trip", message="7A trip next week", created_at=now - timedelta(hours=3), related_class_id=1))
    store.add_notification(Notification(id=4, title="Meeting", message="Parents evening", created_at=now - timedelta(hours=2), parent_id="parent-1"))
    store.add_notification(Notification(id=5, title="Staff", message="Staff meeting", created_at=now - timedelta(hours=1), teacher_id="teacher-1"))
    store.add_notification(Notification(id=6, title="Fee due", message="Tuition overdue", type="FEE", created_at=now, student_id="student-4"))


def _provider() -> StaticIdentityProvider:
    provider = StaticIdentityProvider()
    accounts = [
        ("student-1", "ana@greenfield.edu", "student"),
        ("teacher-1", "amina@greenfield.edu", "teacher"),
        ("parent-1", "carla@mailbox.org", "parent"),
        ("admin-1", "fatima@greenfield.edu", "admin"),
        # Known to the provider but not provisioned in any profile collection.
        ("ghost-teacher", "ghost@greenfield.edu", "teacher"),
        ("ghost-norole", "norole@greenfield.edu", None),
    ]
    for user_id, email, role in accounts:
        metadata = {"role": role} if role else {}
        provider.add_user(
            ProviderUser(id=user_id, email=email, first_name=user_id.split("-")[0].title(), public_metadata=metadata),
            password=PASSWORD,
        )
    provider.add_token(TEACHER_WEB_TOKEN, "teacher-1")
    provider.add_token(UNPROVISIONED_WEB_TOKEN, "ghost-norole")
    return provider


@pytest.fixture(autouse=True)
def school():
    """Fresh seeded repositories and identity provider for every test."""

    previous = get_repositories()
    store = InMemorySchoolStore()
    _seed(store)
    provider = _provider()

    set_repositories(build_inmemory_repositories(store))
    set_identity_provider(provider)
    yield School(store=store, provider=provider)
    set_identity_provider(None)
    set_repositories(previous)
