"""HTTP routes for the task workflow."""

from typing import Any

from fastapi import APIRouter, Depends, Query, status

from studioflow.core.config import Constants
from studioflow.domain.actor import Actor
from studioflow.domain.create_models import ActivityCreate, DeliverableCreate, StatusChangeCreate, TaskCreate
from studioflow.domain.update_models import TaskUpdate
from studioflow.interface.dependencies import get_actor, require_supervisor
from studioflow.services import task_service, workload_service
from studioflow.services.task_service import TaskFilters


router = APIRouter(tags=["tasks"])


def _ok(data: Any, message: str | None = None) -> dict[str, Any]:  # noqa: ANN401
    body: dict[str, Any] = {"success": True, "data": data}
    if message:
        body["message"] = message
    return body


def task_filters(
    status: str | None = None,
    priority: str | None = None,
    search: str | None = None,
    assigned_designer: str | None = None,
    project_id: str | None = None,
    tag: str | None = None,
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=Constants.DEFAULT_PER_PAGE_LIMIT, ge=1, le=500),
    sort: str = "-created",
) -> TaskFilters:
    return TaskFilters(
        status=status,
        priority=priority,
        search=search,
        assigned_designer=assigned_designer,
        project_id=project_id,
        tag=tag,
        page=page,
        per_page=per_page,
        sort=sort,
    )


@router.post("/projects/{project_id}/tasks", status_code=status.HTTP_201_CREATED)
async def create_task(project_id: str, payload: TaskCreate, actor: Actor = Depends(get_actor)) -> dict[str, Any]:
    task = await task_service.create_task(actor=actor, project_id=project_id, payload=payload)
    message = "Rework task created successfully" if payload.is_rework else "Task created successfully"
    return _ok(task, message)


@router.get("/projects/{project_id}/tasks")
async def list_project_tasks(
    project_id: str,
    actor: Actor = Depends(get_actor),
    filters: TaskFilters = Depends(task_filters),
) -> dict[str, Any]:
    return _ok(await task_service.list_project_tasks(actor=actor, project_id=project_id, filters=filters))


@router.get("/projects/{project_id}/tasks/completed")
async def list_completed_tasks(project_id: str, actor: Actor = Depends(get_actor)) -> dict[str, Any]:
    return _ok(await task_service.list_completed_tasks(actor=actor, project_id=project_id))


@router.get("/projects/{project_id}/progress")
async def get_project_progress(project_id: str, actor: Actor = Depends(get_actor)) -> dict[str, Any]:
    return _ok(await task_service.get_project_progress(actor=actor, project_id=project_id))


@router.get("/tasks")
async def list_tasks(
    actor: Actor = Depends(get_actor),
    filters: TaskFilters = Depends(task_filters),
) -> dict[str, Any]:
    tasks = await task_service.list_tasks_for_actor(actor=actor, filters=filters)
    return {**_ok(tasks), "meta": {"total": len(tasks), "role": actor.role}}


@router.get("/tasks/unassigned")
async def list_unassigned_tasks(
    actor: Actor = Depends(get_actor),
    filters: TaskFilters = Depends(task_filters),
) -> dict[str, Any]:
    return _ok(await task_service.list_unassigned_tasks(actor=actor, filters=filters))


@router.get("/workload/designers")
async def get_designer_workload(actor: Actor = Depends(get_actor)) -> dict[str, Any]:
    """Organization-wide designer workload, highest first."""
    return _ok(await workload_service.get_designer_workload(organization_id=actor.organization_id))


@router.get("/workload/design-team")
async def get_design_team_workload(actor: Actor = Depends(get_actor)) -> dict[str, Any]:
    return _ok(await workload_service.get_design_team_workload(actor=actor))


@router.post("/workload/designers/{user_id}/reconcile")
async def reconcile_designer_workload(user_id: str, actor: Actor = Depends(require_supervisor)) -> dict[str, Any]:
    result = await workload_service.reconcile_designer_workload(organization_id=actor.organization_id, user_id=user_id)
    return _ok({**result.model_dump(), "drifted": result.drifted}, "Workload reconciled")


@router.get("/tasks/{task_id}")
async def get_task(task_id: str, actor: Actor = Depends(get_actor)) -> dict[str, Any]:
    return _ok(await task_service.get_task(actor=actor, task_id=task_id))


@router.patch("/tasks/{task_id}")
async def update_task(task_id: str, changes: TaskUpdate, actor: Actor = Depends(get_actor)) -> dict[str, Any]:
    task = await task_service.update_task(actor=actor, task_id=task_id, changes=changes)
    return _ok(task, "Task updated successfully")


@router.post("/tasks/{task_id}/activity")
async def add_activity(task_id: str, payload: ActivityCreate, actor: Actor = Depends(get_actor)) -> dict[str, Any]:
    task = await task_service.add_activity(actor=actor, task_id=task_id, payload=payload)
    return _ok(task, "Comment added successfully")


@router.patch("/tasks/{task_id}/status")
async def set_status(task_id: str, payload: StatusChangeCreate, actor: Actor = Depends(get_actor)) -> dict[str, Any]:
    task = await task_service.set_status(actor=actor, task_id=task_id, status=payload.status, notes=payload.notes)
    return _ok(task, "Task status updated successfully")


@router.post("/tasks/{task_id}/deliverables")
async def add_deliverable(
    task_id: str,
    payload: DeliverableCreate,
    actor: Actor = Depends(get_actor),
) -> dict[str, Any]:
    task = await task_service.add_deliverable(actor=actor, task_id=task_id, deliverable=payload.deliverable)
    return _ok(task, "Deliverable added successfully")


@router.delete("/tasks/{task_id}")
async def delete_task(task_id: str, actor: Actor = Depends(get_actor)) -> dict[str, Any]:
    await task_service.delete_task(actor=actor, task_id=task_id)
    return {"success": True, "message": "Task deleted successfully"}
