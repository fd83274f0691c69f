"""User domain models and enums."""

from enum import StrEnum

from pydantic import BaseModel, Field


class UserStatus(StrEnum):
    """User account status."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class Team(StrEnum):
    """Team labels used by the workload views."""

    DESIGN = "Design"
    AM = "AM"


class TaskDifficulty(BaseModel):
    """Star rating recorded against a designer for one active task."""

    task_id: str
    star_rating: int = Field(default=0, ge=0)


class User(BaseModel):
    """User data transfer object (workload-relevant subset)."""

    id: str = Field(..., description="Unique user ID")
    organization_id: str
    full_name: str
    email: str = ""
    role: str = Field(default="", description="Free-text role name, e.g. 'Design Lead'")
    team: str | None = Field(default=None, description="Team label, e.g. 'Design'")
    status: UserStatus = UserStatus.ACTIVE
    ongoing_tasks: int = Field(default=0, description="Count of active assignments")
    workload_score: int = Field(default=0, description="Sum of star ratings of active assignments")
    task_difficulties: list[TaskDifficulty] = Field(default_factory=list)
