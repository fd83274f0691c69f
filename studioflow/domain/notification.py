"""Notification domain models and enums."""

from enum import StrEnum

from pydantic import BaseModel, Field


class NotificationType(StrEnum):
    """Event class a notification was created for."""

    TASK_ASSIGNED = "task_assigned"
    TASK_STATUS_CHANGED = "task_status_changed"
    DESIGNER_CHANGED = "designer_changed"
    COMMENT_ADDED = "comment_added"
    TASK_DUE_SOON = "task_due_soon"
    TASK_OVERDUE = "task_overdue"


class Notification(BaseModel):
    """Notification data transfer object."""

    id: str
    created: str
    user_id: str = Field(..., description="Recipient user ID")
    organization_id: str
    type: NotificationType
    title: str
    message: str
    task_id: str | None = None
    project_id: str | None = None
    action_by: str | None = Field(default=None, description="User ID of the actor who caused it")
    is_read: bool = False
    expires_at: str = Field(..., description="Expiry timestamp (ISO format)")
