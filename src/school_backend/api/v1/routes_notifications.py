from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from src.school_backend.access.pipeline import AccessContext
from src.school_backend.domain.models.notification import Notification
from src.school_backend.infra.db.wiring import Repositories, get_repositories
from src.school_backend.security import require_access
from src.school_backend.services.audit.service import audit_service
from src.school_backend.services.notifications.service import notification_service


router = APIRouter(prefix="/notifications", tags=["notifications"])

# Every role has a notification inbox.
any_role = require_access()


class NotificationsResponse(BaseModel):
    notifications: List[Notification]
    unread_count: int


class UnreadCountResponse(BaseModel):
    unread_count: int


class MarkAllReadResponse(BaseModel):
    updated: int


@router.get("", response_model=NotificationsResponse)
def list_notifications(
    unread_only: bool = False,
    type_filter: Optional[str] = Query(None, alias="type"),
    limit: int = Query(50, ge=1, le=200),
    context: AccessContext = Depends(any_role),
    repos: Repositories = Depends(get_repositories),
) -> NotificationsResponse:
    audience = notification_service.audience_for(context, repos.classes)
    notifications = repos.notifications.list_for_audience(
        audience, unread_only=unread_only, type_filter=type_filter, limit=limit
    )
    unread = repos.notifications.list_for_audience(audience, unread_only=True)
    return NotificationsResponse(notifications=notifications, unread_count=len(unread))


@router.patch("/read-all", response_model=MarkAllReadResponse)
def mark_all_notifications_read(
    context: AccessContext = Depends(any_role),
    repos: Repositories = Depends(get_repositories),
) -> MarkAllReadResponse:
    audience = notification_service.audience_for(context, repos.classes)
    updated = repos.notifications.mark_all_read(audience)

    audit_service.log_event(
        action="mark_all_notifications_read",
        resource_type="notification",
        subject=context.profile_id,
        extra=context.audit_extra(count=updated),
    )

    return MarkAllReadResponse(updated=updated)


@router.patch("/{notification_id}/read", response_model=Notification)
def mark_notification_read(
    notification_id: int,
    context: AccessContext = Depends(any_role),
    repos: Repositories = Depends(get_repositories),
) -> Notification:
    audience = notification_service.audience_for(context, repos.classes)
    notification = repos.notifications.mark_read(notification_id, audience)
    if notification is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return notification


@router.get("/unread-count", response_model=UnreadCountResponse)
def get_unread_count(
    context: AccessContext = Depends(any_role),
    repos: Repositories = Depends(get_repositories),
) -> UnreadCountResponse:
    audience = notification_service.audience_for(context, repos.classes)
    return UnreadCountResponse(unread_count=len(repos.notifications.list_for_audience(audience, unread_only=True)))
