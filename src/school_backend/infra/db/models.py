from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from src.school_backend.domain.models.academics import Enrollment, Lesson, SchoolClass
from src.school_backend.domain.models.attendance import AttendanceRecord, AttendanceStatus, TeacherAttendanceRecord
from src.school_backend.domain.models.fees import Fee, FeeStatus, Payment
from src.school_backend.domain.models.notification import Notification
from src.school_backend.domain.models.profiles import Accountant, Admin, Parent, Student, Teacher
from src.school_backend.domain.models.results import Exam, Result
from src.school_backend.domain.models.role import Role


class Base(DeclarativeBase):
    pass


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo on the way back; every stored timestamp is UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class PersonColumns:
    """Columns shared by all profile tables.

    The primary key is the external identity id.
    """

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    surname: Mapped[str] = mapped_column(String, nullable=False, default="")
    email: Mapped[Optional[str]] = mapped_column(String, nullable=True, unique=True)
    phone: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    def _person_fields(self) -> dict:
        return {"id": self.id, "name": self.name, "surname": self.surname, "email": self.email, "phone": self.phone}


class ParentORM(PersonColumns, Base):
    __tablename__ = "parents"

    address: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    def to_domain(self) -> Parent:
        return Parent(**self._person_fields(), address=self.address)


class StudentORM(PersonColumns, Base):
    __tablename__ = "students"

    student_number: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    address: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    sex: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    birthday: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    blood_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    father_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    mother_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    parent_id: Mapped[Optional[str]] = mapped_column(ForeignKey("parents.id"), nullable=True, index=True)

    def to_domain(self) -> Student:
        return Student(
            **self._person_fields(),
            student_number=self.student_number,
            address=self.address,
            sex=self.sex,
            birthday=self.birthday,
            blood_type=self.blood_type,
            father_name=self.father_name,
            mother_name=self.mother_name,
            parent_id=self.parent_id,
        )


class TeacherORM(PersonColumns, Base):
    __tablename__ = "teachers"

    teacher_number: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    address: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    # Subject names stored as a simple comma-separated list.
    subjects: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    def to_domain(self) -> Teacher:
        return Teacher(
            **self._person_fields(),
            teacher_number=self.teacher_number,
            address=self.address,
            subjects=[s for s in (self.subjects or "").split(",") if s],
        )


class AdminORM(PersonColumns, Base):
    __tablename__ = "admins"

    def to_domain(self) -> Admin:
        return Admin(**self._person_fields())


class AccountantORM(PersonColumns, Base):
    __tablename__ = "accountants"

    def to_domain(self) -> Accountant:
        return Accountant(**self._person_fields())


class ClassORM(Base):
    __tablename__ = "classes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    grade_level: Mapped[int] = mapped_column(Integer, nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    supervisor_id: Mapped[str] = mapped_column(ForeignKey("teachers.id"), nullable=False, index=True)

    def to_domain(self) -> SchoolClass:
        return SchoolClass(
            id=self.id,
            name=self.name,
            grade_level=self.grade_level,
            capacity=self.capacity,
            supervisor_id=self.supervisor_id,
        )


class LessonORM(Base):
    __tablename__ = "lessons"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    subject: Mapped[str] = mapped_column(String, nullable=False)
    class_id: Mapped[int] = mapped_column(ForeignKey("classes.id"), nullable=False, index=True)
    teacher_id: Mapped[str] = mapped_column(ForeignKey("teachers.id"), nullable=False, index=True)
    day: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    start_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def to_domain(self) -> Lesson:
        return Lesson(
            id=self.id,
            name=self.name,
            subject=self.subject,
            class_id=self.class_id,
            teacher_id=self.teacher_id,
            day=self.day,
            start_time=_utc(self.start_time),
            end_time=_utc(self.end_time),
        )


class EnrollmentORM(Base):
    __tablename__ = "enrollments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    student_id: Mapped[str] = mapped_column(ForeignKey("students.id"), nullable=False, index=True)
    class_id: Mapped[int] = mapped_column(ForeignKey("classes.id"), nullable=False, index=True)
    school_year: Mapped[str] = mapped_column(String, nullable=False)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    left_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def to_domain(self) -> Enrollment:
        return Enrollment(
            id=self.id,
            student_id=self.student_id,
            class_id=self.class_id,
            school_year=self.school_year,
            joined_at=_utc(self.joined_at),
            left_at=_utc(self.left_at),
        )


class AttendanceORM(Base):
    __tablename__ = "attendance"
    __table_args__ = (
        # One record per student, class, lesson and day; upserts rely on it.
        UniqueConstraint("date", "student_id", "class_id", "lesson_id", name="uq_attendance_slot"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    day: Mapped[date] = mapped_column("date", Date, nullable=False, index=True)
    student_id: Mapped[str] = mapped_column(ForeignKey("students.id"), nullable=False, index=True)
    class_id: Mapped[int] = mapped_column(ForeignKey("classes.id"), nullable=False, index=True)
    lesson_id: Mapped[Optional[int]] = mapped_column(ForeignKey("lessons.id"), nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False)
    in_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    out_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def to_domain(self) -> AttendanceRecord:
        return AttendanceRecord(
            id=self.id,
            date=self.day,
            student_id=self.student_id,
            class_id=self.class_id,
            lesson_id=self.lesson_id,
            status=AttendanceStatus(self.status),
            in_time=_utc(self.in_time),
            out_time=_utc(self.out_time),
        )


class TeacherAttendanceORM(Base):
    __tablename__ = "teacher_attendance"
    __table_args__ = (UniqueConstraint("teacher_id", "date", name="uq_teacher_attendance_day"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    teacher_id: Mapped[str] = mapped_column(ForeignKey("teachers.id"), nullable=False, index=True)
    day: Mapped[date] = mapped_column("date", Date, nullable=False, index=True)
    status: Mapped[str] = mapped_column(String, nullable=False)

    def to_domain(self) -> TeacherAttendanceRecord:
        return TeacherAttendanceRecord(
            id=self.id,
            teacher_id=self.teacher_id,
            date=self.day,
            status=AttendanceStatus(self.status),
        )


class FeeORM(Base):
    __tablename__ = "fees"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    student_id: Mapped[str] = mapped_column(ForeignKey("students.id"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    total_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    paid_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default=FeeStatus.UNPAID.value)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def to_domain(self, payments: Optional[list] = None) -> Fee:
        return Fee(
            id=self.id,
            student_id=self.student_id,
            title=self.title,
            total_amount=self.total_amount,
            paid_amount=self.paid_amount,
            due_date=self.due_date,
            status=FeeStatus(self.status),
            created_at=_utc(self.created_at),
            payments=payments or [],
        )


class PaymentORM(Base):
    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    fee_id: Mapped[int] = mapped_column(ForeignKey("fees.id"), nullable=False, index=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    method: Mapped[str] = mapped_column(String, nullable=False)
    reference: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    def to_domain(self) -> Payment:
        return Payment(
            id=self.id,
            fee_id=self.fee_id,
            amount=self.amount,
            method=self.method,
            reference=self.reference,
            date=_utc(self.date),
        )


class ExamORM(Base):
    __tablename__ = "exams"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    subject: Mapped[str] = mapped_column(String, nullable=False)
    class_id: Mapped[int] = mapped_column(ForeignKey("classes.id"), nullable=False, index=True)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def to_domain(self) -> Exam:
        return Exam(
            id=self.id,
            title=self.title,
            subject=self.subject,
            class_id=self.class_id,
            start_time=_utc(self.start_time),
        )


class ResultORM(Base):
    __tablename__ = "results"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    student_id: Mapped[str] = mapped_column(ForeignKey("students.id"), nullable=False, index=True)
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    exam_id: Mapped[Optional[int]] = mapped_column(ForeignKey("exams.id"), nullable=True)
    assignment_title: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    subject: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    def to_domain(self) -> Result:
        return Result(
            id=self.id,
            student_id=self.student_id,
            score=self.score,
            exam_id=self.exam_id,
            assignment_title=self.assignment_title,
            subject=self.subject,
        )


class NotificationORM(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String, nullable=False, default="GENERAL")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    target_role: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    student_id: Mapped[Optional[str]] = mapped_column(String, nullable=True, index=True)
    teacher_id: Mapped[Optional[str]] = mapped_column(String, nullable=True, index=True)
    parent_id: Mapped[Optional[str]] = mapped_column(String, nullable=True, index=True)
    admin_id: Mapped[Optional[str]] = mapped_column(String, nullable=True, index=True)
    accountant_id: Mapped[Optional[str]] = mapped_column(String, nullable=True, index=True)
    related_class_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    def to_domain(self) -> Notification:
        return Notification(
            id=self.id,
            title=self.title,
            message=self.message,
            type=self.type,
            created_at=_utc(self.created_at),
            is_read=self.is_read,
            read_at=_utc(self.read_at),
            target_role=Role(self.target_role) if self.target_role else None,
            student_id=self.student_id,
            teacher_id=self.teacher_id,
            parent_id=self.parent_id,
            admin_id=self.admin_id,
            accountant_id=self.accountant_id,
            related_class_id=self.related_class_id,
        )
