from __future__ import annotations

from src.school_backend.access.pipeline import AccessContext
from src.school_backend.domain.models.notification import NotificationAudience
from src.school_backend.domain.models.role import Role
from src.school_backend.infra.db.repositories import ClassRepository


class NotificationService:
    def audience_for(self, context: AccessContext, classes: ClassRepository) -> NotificationAudience:
        """Describe which notifications the caller may see.

        Students also see notifications for their current class; parents see
        notifications addressed to any child in their scope.
        """

        class_ids = []
        student_ids = []
        if context.role == Role.STUDENT:
            enrollment = classes.current_enrollment(context.profile_id)
            if enrollment is not None:
                class_ids.append(enrollment.class_id)
        elif context.role == Role.PARENT:
            student_ids = sorted(context.scope)

        return NotificationAudience(
            role=context.role,
            profile_id=context.profile_id,
            class_ids=class_ids,
            student_ids=student_ids,
        )


notification_service = NotificationService()
