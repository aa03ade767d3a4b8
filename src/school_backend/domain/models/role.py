from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    STUDENT = "student"
    TEACHER = "teacher"
    PARENT = "parent"
    ADMIN = "admin"
    ACCOUNTANT = "accountant"

    @classmethod
    def parse(cls, value: object) -> "Role | None":
        """Return the Role for a loosely-typed hint, or None if it is not one."""

        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None
