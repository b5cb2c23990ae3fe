"""Notification schemas."""

from typing import Any

from pydantic import Field

from school_results.schemas.common import BaseSchema


class NotificationCreate(BaseSchema):
    """Notification creation schema (internal use)."""

    user_id: int
    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1)
    notification_type: str = Field(..., min_length=1, max_length=50)
    action_url: str | None = None
    action_data: dict[str, Any] | None = None
