"""Pydantic models for partial updates."""

from pydantic import BaseModel, ConfigDict


class TaskUpdate(BaseModel):
    """Partial task update.

    Only fields present in ``model_fields_set`` are applied, so an explicit
    ``assigned_designer: null`` unassigns while an omitted field is left alone.
    Status changes go through the status and activity operations instead.
    """

    model_config = ConfigDict(extra="forbid")

    task_name: str | None = None
    brief: str | None = None
    priority: str | None = None
    due_date: str | None = None
    due_time: str | None = None
    tags: list[str] | None = None
    assets: list[str] | None = None
    references: list[str] | None = None
    assigned_designer: str | None = None
    design_lead: str | None = None
    star_rate: int | None = None
    rework_suggestions: str | None = None

    def provided(self) -> dict:
        """Fields explicitly set by the caller, including explicit nulls."""
        return {name: getattr(self, name) for name in self.model_fields_set}
