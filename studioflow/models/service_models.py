"""Pydantic models for service layer return types.

These models provide type safety at service boundaries, converting store
documents into typed objects for dashboards and listings.
"""

from enum import StrEnum

from pydantic import BaseModel


class Capacity(StrEnum):
    """Workload capacity band of a designer."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    OVERLOADED = "OVERLOADED"


class TaskRating(BaseModel):
    """Star rating a dashboard counted for one task."""

    task_id: str
    star_rating: int


class WorkloadEntry(BaseModel):
    """Per-designer row of the organization-wide workload dashboard."""

    user_id: str
    full_name: str
    role: str = ""
    ongoing_tasks: int
    workload_score: int
    capacity: Capacity
    task_difficulties: list[TaskRating]


class DesignTeamMember(BaseModel):
    """Design team member with live workload and overdue figures."""

    user_id: str
    full_name: str
    email: str = ""
    role: str = ""
    status: str | None = None
    team: str | None = None
    workload_score: int
    overdue_tasks: int


class ProjectProgress(BaseModel):
    """Completion ratio of a project's tasks."""

    project_id: str
    total_tasks: int
    completed_tasks: int
    progress: int


class UserSummary(BaseModel):
    """Compact user reference embedded in task views."""

    user_id: str
    full_name: str
    email: str = ""
    role: str = ""


class ProjectSummary(BaseModel):
    """Compact project reference embedded in task views."""

    project_id: str
    project_name: str
    client_id: str | None = None
    campaign_name: str | None = None


class ReconcileResult(BaseModel):
    """Outcome of rebuilding a designer's workload counters."""

    user_id: str
    ongoing_tasks: int
    workload_score: int
    previous_ongoing_tasks: int
    previous_workload_score: int

    @property
    def drifted(self) -> bool:
        return (
            self.ongoing_tasks != self.previous_ongoing_tasks or self.workload_score != self.previous_workload_score
        )
