"""Task domain models and enums."""

from enum import StrEnum

from pydantic import BaseModel, Field


class TaskStatus(StrEnum):
    """Task workflow state."""

    BRIEF_SUBMITTED = "brief_submitted"
    REWORK_REQUESTED = "rework_requested"
    DESIGNER_ASSIGNED = "designer_assigned"
    PICKED_UP = "picked_up"
    HOLD_BY_DESIGNER = "hold_by_designer"
    DRAFT_SUBMITTED = "draft_submitted"
    INTERNAL_APPROVED = "internal_approved"
    SENT_TO_CLIENT = "sent_to_client"
    CLIENT_APPROVED = "client_approved"
    CLIENT_FEEDBACK = "client_feedback"
    # Review states, reachable only through activity entries
    BRIEF_REWORK = "brief_rework"
    INTERNAL_FEEDBACK = "internal_feedback"
    INTERNAL_REVIEW = "internal_review"


class ActivityType(StrEnum):
    """Kind of an activity/comment entry."""

    BRIEF_SUBMITTED = "brief_submitted"
    BRIEF_REWORK = "brief_rework"
    DESIGN_REWORK = "design_rework"
    DESIGNER_FEEDBACK = "designer_feedback"
    CLIENT_FEEDBACK = "client_feedback"
    INTERNAL_FEEDBACK = "internal_feedback"
    REWORK_REQUESTED = "rework_requested"
    DESIGNER_ASSIGNED = "designer_assigned"
    DESIGNER_CHANGED = "designer_changed"
    INTERNAL_DISCUSSION = "internal_discussion"
    HOLD_BY_DESIGNER = "hold_by_designer"
    ONHOLD = "onhold"
    REACTIVATE = "reactivate"
    NEED_CLARITY = "need_clarity"
    CLARIFICATION = "clarification"
    PICKED_UP = "picked_up"
    DRAFT_SUBMITTED = "draft_submitted"
    AM_FEEDBACK = "am_feedback"
    FEEDBACK_RESPONSE = "feedback_response"
    INTERNAL_APPROVED = "internal_approved"
    SENT_TO_CLIENT = "sent_to_client"
    CLIENT_APPROVED = "client_approved"
    INTERNAL_REVIEW = "internal_review"
    ACCEPT_FEEDBACK = "accept_feedback"
    REJECT_FEEDBACK = "reject_feedback"
    APPROVE_REWORK = "approve_rework"
    REJECT_REWORK = "reject_rework"


class TaskType(StrEnum):
    """Kind of creative work."""

    GRAPHIC_DESIGN = "graphic_design"
    MOTION_GRAPHIC_DESIGN = "motion_graphic_design"
    THREE_D_DESIGN = "3d_design"
    AI_GENERATION = "ai_generation"
    WEB_DESIGN = "web_design"
    COPY_WRITING = "copy_writing"
    STRATEGY_THINKING = "strategy_thinking"


# Task types that count towards a designer's workload
DESIGN_TASK_TYPES = frozenset(
    {
        TaskType.GRAPHIC_DESIGN,
        TaskType.MOTION_GRAPHIC_DESIGN,
        TaskType.THREE_D_DESIGN,
        TaskType.AI_GENERATION,
        TaskType.WEB_DESIGN,
    }
)


class TaskPriority(StrEnum):
    """Task priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class StatusChange(BaseModel):
    """One entry of a task's status history."""

    status: TaskStatus
    changed_at: str = Field(..., description="Change timestamp (ISO format)")
    changed_by: str = Field(..., description="User ID of the actor")
    notes: str | None = None


class ActivityEntry(BaseModel):
    """One entry of a task's activity and comment log."""

    by_who: str = Field(..., description="User ID of the author")
    comment: str = Field(default="")
    time: str = Field(..., description="Entry timestamp (ISO format)")
    type: ActivityType
    asset: str | None = Field(default=None, description="Optional asset reference (URL)")


class Deliverable(BaseModel):
    """A final output submitted for a task."""

    deliverable: str = Field(..., description="Reference (URL or link) to the deliverable")
    submitted_by: str
    submitted_at: str


class Task(BaseModel):
    """Task data transfer object."""

    id: str = Field(..., description="Unique task ID")
    created: str = Field(..., description="Creation timestamp (ISO format)")
    updated: str = Field(..., description="Last update timestamp (ISO format)")
    organization_id: str = Field(..., description="Owning organization (tenant)")
    project_id: str
    task_name: str
    brief: str
    task_type: TaskType
    priority: TaskPriority = TaskPriority.MEDIUM
    tags: list[str] = Field(default_factory=list)
    due_date: str = Field(..., description="Due date (ISO format)")
    due_time: str | None = Field(default=None, description="Optional due time (HH:MM)")
    assets: list[str] = Field(default_factory=list)
    references: list[str] = Field(default_factory=list)
    created_by: str
    assigned_designer: str | None = None
    designers: list[str] = Field(default_factory=list, description="Everyone ever assigned, in order")
    design_lead: str | None = None
    star_rate: int | None = Field(default=None, ge=0, le=5)
    status: TaskStatus = TaskStatus.BRIEF_SUBMITTED
    status_history: list[StatusChange] = Field(default_factory=list)
    activity_and_comments: list[ActivityEntry] = Field(default_factory=list)
    is_rework: bool = False
    original_task_id: str | None = None
    rework_suggestions: str | None = None
    deliverables: list[Deliverable] = Field(default_factory=list)
    completed_at: str | None = None
