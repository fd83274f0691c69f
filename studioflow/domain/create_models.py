"""Pydantic models for creating records in the document store."""

from pydantic import BaseModel, Field


class TaskCreate(BaseModel):
    """Task creation payload.

    Fields are loosely typed so that every violation can be reported together
    by the task service instead of failing on the first one.
    """

    task_name: str | None = None
    brief: str | None = None
    task_type: str | None = None
    priority: str = Field(default="medium")
    due_date: str | None = Field(default=None, description="Due date (ISO format)")
    due_time: str | None = Field(default=None, description="Optional due time (HH:MM)")
    tags: list[str] = Field(default_factory=list)
    assets: list[str] = Field(default_factory=list)
    references: list[str] = Field(default_factory=list)
    is_rework: bool = False
    original_task_id: str | None = None
    rework_suggestions: str | None = None


class ActivityCreate(BaseModel):
    """Activity/comment entry payload."""

    type: str | None = None
    comment: str | None = None
    asset: str | None = Field(default=None, description="Optional asset reference (URL)")


class StatusChangeCreate(BaseModel):
    """Explicit status change payload."""

    status: str | None = None
    notes: str | None = None


class DeliverableCreate(BaseModel):
    """Deliverable submission payload."""

    deliverable: str | None = None
