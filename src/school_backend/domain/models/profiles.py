from __future__ import annotations

from datetime import date
from typing import List, Optional, Union

from pydantic import BaseModel, Field


class PersonProfile(BaseModel):
    """Fields shared by every role-scoped profile.

    ``id`` is the external identity id issued by the identity provider; it is
    the only link between a caller and their domain record.
    """

    id: str
    name: str
    surname: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.name} {self.surname}".strip()


class Student(PersonProfile):
    # Human-readable school number, distinct from the internal id.
    student_number: str
    address: Optional[str] = None
    sex: Optional[str] = None
    birthday: Optional[date] = None
    blood_type: Optional[str] = None
    father_name: Optional[str] = None
    mother_name: Optional[str] = None
    parent_id: Optional[str] = None


class Teacher(PersonProfile):
    teacher_number: Optional[str] = None
    address: Optional[str] = None
    subjects: List[str] = Field(default_factory=list)


class Parent(PersonProfile):
    address: Optional[str] = None


class Admin(PersonProfile):
    pass


class Accountant(PersonProfile):
    pass


class SynthesizedProfile(PersonProfile):
    """Minimal, never-persisted profile built from provider metadata.

    Only created when a verified identity has no domain record but carries a
    usable role hint. No internal records correlate with it, so every
    data-scoped query for it is empty.
    """

    synthesized: bool = True


Profile = Union[Student, Teacher, Parent, Admin, Accountant, SynthesizedProfile]
