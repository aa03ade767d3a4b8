from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from src.school_backend.domain.models.role import Role


class Notification(BaseModel):
    """A notification addressed to a profile, a whole role, or a class."""

    id: int
    title: str
    message: str
    type: str = "GENERAL"
    created_at: datetime
    is_read: bool = False
    read_at: Optional[datetime] = None
    target_role: Optional[Role] = None
    student_id: Optional[str] = None
    teacher_id: Optional[str] = None
    parent_id: Optional[str] = None
    admin_id: Optional[str] = None
    accountant_id: Optional[str] = None
    related_class_id: Optional[int] = None


class NotificationAudience(BaseModel):
    """Who a caller is, for the purpose of notification visibility.

    A notification is visible if it is addressed to ``profile_id`` through the
    column for ``role``, broadcast to ``role``, related to one of
    ``class_ids``, or addressed to one of ``student_ids``.
    """

    role: Role
    profile_id: str
    class_ids: List[int] = Field(default_factory=list)
    student_ids: List[str] = Field(default_factory=list)

    def can_see(self, notification: Notification) -> bool:
        if notification.target_role == self.role:
            return True
        if getattr(notification, f"{self.role.value}_id") == self.profile_id:
            return True
        if notification.related_class_id is not None and notification.related_class_id in self.class_ids:
            return True
        return notification.student_id is not None and notification.student_id in self.student_ids
