"""Notification service."""

from typing import Any, Protocol

from sqlalchemy.orm import Session

from school_results.models.notification import Notification
from school_results.schemas.notification import NotificationCreate


class NotificationService:
    """In-app notification service."""

    def __init__(self, db: Session):
        self.db = db

    def create_notification(self, request: NotificationCreate) -> Notification:
        """Create a new notification."""
        notification = Notification(
            user_id=request.user_id,
            title=request.title,
            message=request.message,
            notification_type=request.notification_type,
            action_url=request.action_url,
            action_data=request.action_data,
        )
        self.db.add(notification)
        self.db.flush()
        return notification


class ResultNotifier(Protocol):
    """Delivery channel for result notifications.

    Implementations may raise; callers treat every send as best-effort.
    """

    def send(
        self,
        recipient_user_id: int,
        notification_type: str,
        title: str,
        message: str,
        link: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None: ...


class InAppNotifier:
    """Delivers result notifications as in-app notifications."""

    def __init__(self, db: Session):
        self.db = db

    def send(
        self,
        recipient_user_id: int,
        notification_type: str,
        title: str,
        message: str,
        link: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        # Savepoint so a failed insert leaves the caller's transaction usable
        with self.db.begin_nested():
            NotificationService(self.db).create_notification(
                NotificationCreate(
                    user_id=recipient_user_id,
                    title=title,
                    message=message,
                    notification_type=notification_type,
                    action_url=link,
                    action_data=data,
                )
            )
