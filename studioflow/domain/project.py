"""Project domain model (read-only subset used by the task workflow)."""

from pydantic import BaseModel, Field


class Project(BaseModel):
    """Project data transfer object."""

    id: str = Field(..., description="Unique project ID")
    organization_id: str
    project_name: str
    client_id: str | None = None
    campaign_name: str | None = None
    assigned_am: str | None = Field(default=None, description="Account manager for the project")
    assigned_design_lead: str | None = None
