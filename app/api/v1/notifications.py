"""
Notification API endpoints (bell popover)
"""
from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.api.deps import get_db, get_current_user_id, get_messenger
from app.application.notifications import NotificationService
from app.application.telegram_bridge import MessagingBridge


router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


class NotificationResponse(BaseModel):
    id: int
    title: str
    message: str
    notification_type: str
    action_id: int | None
    action_type: str | None
    is_read: bool
    created_at: datetime


@router.get("/", response_model=list[NotificationResponse])
def list_notifications(
    unread_only: bool = False,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    messenger: MessagingBridge = Depends(get_messenger),
):
    items = NotificationService(db, messenger).list_for_user(user_id, unread_only=unread_only)
    return [
        NotificationResponse(
            id=n.id,
            title=n.title,
            message=n.message,
            notification_type=n.notification_type,
            action_id=n.action_id,
            action_type=n.action_type,
            is_read=n.is_read,
            created_at=n.created_at,
        )
        for n in items
    ]


@router.post("/{notification_id}/dismiss")
def dismiss_notification(
    notification_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    messenger: MessagingBridge = Depends(get_messenger),
):
    """Mark as read and remove the Telegram copy (no-op for foreign ids)"""
    NotificationService(db, messenger).dismiss(user_id, notification_id)
    return {"success": True}


@router.post("/read-all")
def mark_all_read(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    messenger: MessagingBridge = Depends(get_messenger),
):
    count = NotificationService(db, messenger).mark_all_read(user_id)
    return {"success": True, "count": count}
