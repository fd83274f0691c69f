"""Task operations: creation, updates, activity, status changes and listings.

Every mutation loads the task, re-checks the actor's organization, and commits
the task changes in one atomic document update. Workload counters follow as
separate per-user updates whose failures are logged, and notifications are
dispatched in the background.
"""

import asyncio
import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any

from studioflow.core import db_client
from studioflow.core.config import Constants
from studioflow.core.db_client import AtomicUpdate, join_filters, sanitize_param
from studioflow.core.errors import AccessDeniedError, DependencyFailureError, NotFoundError, ValidationFailedError
from studioflow.core.logging import log_with_actor_context, span
from studioflow.domain.actor import Actor
from studioflow.domain.create_models import ActivityCreate, TaskCreate
from studioflow.domain.task import ActivityType, TaskPriority, TaskStatus, TaskType
from studioflow.domain.update_models import TaskUpdate
from studioflow.models.service_models import ProjectProgress, ProjectSummary, UserSummary
from studioflow.services import notification_service, task_state_machine, visibility_service, workload_service
from studioflow.services.task_state_machine import WorkloadEffect


logger = logging.getLogger(__name__)

_DUE_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

_TASK_NOT_FOUND = "Task not found"

_ASSIGNMENT_ATTEMPTS = 3


class _StaleAssignmentError(Exception):
    """The assigned designer changed after display names were resolved."""

    def __init__(self, user_id: str) -> None:
        super().__init__(user_id)
        self.user_id = user_id


class AssignmentChange(StrEnum):
    """How an update changed the task's assigned designer."""

    NEW = "new"
    REASSIGN = "reassign"
    UNASSIGN = "unassign"


@dataclass
class TaskFilters:
    """Free filters for task listings, applied on top of the visibility predicate."""

    status: str | None = None
    priority: str | None = None
    search: str | None = None
    assigned_designer: str | None = None
    project_id: str | None = None
    tag: str | None = None
    page: int = 1
    per_page: int = Constants.DEFAULT_PER_PAGE_LIMIT
    sort: str = "-created"

    def to_filter_query(self) -> str:
        """Translate into a filter expression, validating enum values.

        Raises:
            ValidationFailedError: If status or priority is not a known value
        """
        errors = []
        clauses = []
        if self.status:
            if self.status not in TaskStatus.__members__.values():
                errors.append(f"Invalid status filter: {self.status}")
            clauses.append(f'status = "{sanitize_param(self.status)}"')
        if self.priority:
            if self.priority not in TaskPriority.__members__.values():
                errors.append(f"Invalid priority filter: {self.priority}")
            clauses.append(f'priority = "{sanitize_param(self.priority)}"')
        if errors:
            raise ValidationFailedError(errors)

        if self.search and self.search.strip():
            term = sanitize_param(self.search.strip())
            clauses.append(f'task_name ~ "{term}" || brief ~ "{term}"')
        if self.assigned_designer:
            clauses.append(f'assigned_designer = "{sanitize_param(self.assigned_designer)}"')
        if self.project_id:
            clauses.append(f'project_id = "{sanitize_param(self.project_id)}"')
        if self.tag:
            clauses.append(f'tags ?= "{sanitize_param(self.tag)}"')
        return join_filters(*clauses)


# Lookups and enrichment


async def _load_task(actor: Actor, task_id: str) -> dict[str, Any]:
    """Fetch a task, reporting cross-tenant access exactly like absence."""
    try:
        task = await db_client.get_record(collection="tasks", record_id=task_id)
    except KeyError:
        raise NotFoundError(_TASK_NOT_FOUND) from None

    if task.get("organization_id") != actor.organization_id:
        log_with_actor_context(
            logger,
            "warning",
            "Cross-tenant task access blocked",
            organization_id=actor.organization_id,
            user_id=actor.user_id,
            task_id=task_id,
        )
        raise NotFoundError(_TASK_NOT_FOUND)
    return task


async def _load_project(organization_id: str, project_id: str | None) -> dict[str, Any] | None:
    if not project_id:
        return None
    try:
        project = await db_client.get_record(collection="projects", record_id=project_id)
    except KeyError:
        return None
    return project if project.get("organization_id") == organization_id else None


async def _load_org_user(organization_id: str, user_id: str) -> dict[str, Any] | None:
    try:
        user = await db_client.get_record(collection="users", record_id=user_id)
    except KeyError:
        return None
    return user if user.get("organization_id") == organization_id else None


async def _user_summary(user_id: str | None) -> dict[str, Any] | None:
    if not user_id:
        return None
    try:
        user = await db_client.get_record(collection="users", record_id=user_id)
    except KeyError:
        return None
    return UserSummary(
        user_id=user["id"],
        full_name=user.get("full_name", ""),
        email=user.get("email", ""),
        role=user.get("role", ""),
    ).model_dump()


async def _project_summary(organization_id: str, project_id: str | None) -> dict[str, Any] | None:
    project = await _load_project(organization_id, project_id)
    if project is None:
        return None
    return ProjectSummary(
        project_id=project["id"],
        project_name=project.get("project_name", ""),
        client_id=project.get("client_id"),
        campaign_name=project.get("campaign_name"),
    ).model_dump()


async def enrich_task(task: dict[str, Any]) -> dict[str, Any]:
    """Attach project and user summaries to a task, looked up concurrently."""
    project, designer, lead, creator = await asyncio.gather(
        _project_summary(task["organization_id"], task.get("project_id")),
        _user_summary(task.get("assigned_designer")),
        _user_summary(task.get("design_lead")),
        _user_summary(task.get("created_by")),
    )
    return {
        **task,
        "project": project,
        "assigned_designer_user": designer,
        "design_lead_user": lead,
        "created_by_user": creator,
    }


async def _enrich_all(tasks: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return list(await asyncio.gather(*(enrich_task(task) for task in tasks)))


async def _modify_task(
    actor: Actor,
    task_id: str,
    build: Any,  # noqa: ANN401
) -> tuple[dict[str, Any], dict[str, Any]]:
    """Apply ``build(current) -> AtomicUpdate`` to a task in one transaction.

    Returns:
        Tuple of (task before the update, task after the update)
    """
    before: dict[str, Any] = {}

    def mutate(current: dict[str, Any]) -> AtomicUpdate | None:
        if current.get("organization_id") != actor.organization_id:
            raise NotFoundError(_TASK_NOT_FOUND)
        before.update(current)
        return build(current)

    try:
        after = await db_client.modify_record(collection="tasks", record_id=task_id, mutate=mutate)
    except NotFoundError:
        raise
    except KeyError:
        raise NotFoundError(_TASK_NOT_FOUND) from None
    return before, after


# Validation helpers


def _normalize_due_date(raw: str | None, errors: list[str]) -> str | None:
    if not raw or not str(raw).strip():
        errors.append("Due date is required")
        return None
    try:
        return datetime.fromisoformat(str(raw).strip()).isoformat()
    except ValueError:
        errors.append("Invalid due date")
        return None


def _check_due_time(raw: str | None, errors: list[str]) -> str | None:
    if raw is None or not raw.strip():
        return None
    if not _DUE_TIME_PATTERN.match(raw.strip()):
        errors.append("Invalid due time (expected HH:MM)")
        return None
    return raw.strip()


def _clean_list(values: list[str] | None) -> list[str]:
    return [value.strip() for value in values or [] if value and value.strip()]


# Workload side effects


async def _apply_workload_effect(task: dict[str, Any], effect: WorkloadEffect | None) -> None:
    """Release or restore the assigned designer's entry, logging failures."""
    designer = task.get("assigned_designer")
    if effect is None or not designer:
        return
    try:
        if effect == WorkloadEffect.RELEASE:
            await workload_service.release_task(user_id=designer, task_id=task["id"])
        else:
            await workload_service.assign_task(user_id=designer, task_id=task["id"], star_rating=task.get("star_rate"))
    except DependencyFailureError:
        logger.exception("Workload %s failed for task %s designer %s", effect, task["id"], designer)


async def _apply_assignment_workload(
    *,
    task: dict[str, Any],
    change: AssignmentChange | None,
    old_designer: str | None,
    rating_changed: bool,
) -> None:
    task_id = task["id"]
    new_designer = task.get("assigned_designer")
    rating = task.get("star_rate")
    active = task.get("status") != TaskStatus.CLIENT_APPROVED

    try:
        if change in {AssignmentChange.REASSIGN, AssignmentChange.UNASSIGN} and old_designer:
            await workload_service.release_task(user_id=old_designer, task_id=task_id)
        if change in {AssignmentChange.NEW, AssignmentChange.REASSIGN} and new_designer and active:
            await workload_service.assign_task(user_id=new_designer, task_id=task_id, star_rating=rating)
        if change is None and rating_changed and new_designer and active:
            await workload_service.rerate_task(user_id=new_designer, task_id=task_id, star_rating=rating)
    except DependencyFailureError:
        logger.exception(
            "Workload update failed for task %s (change=%s, old=%s, new=%s)",
            task_id,
            change,
            old_designer,
            new_designer,
        )


# Background notifications


async def _notify_activity(
    *,
    actor: Actor,
    task: dict[str, Any],
    old_status: str,
    new_status: str | None,
    comment: str,
) -> None:
    project = await _load_project(actor.organization_id, task.get("project_id"))
    assigned_am = project.get("assigned_am") if project else None

    if new_status and new_status != old_status:
        await notification_service.notify_status_change(
            actor=actor,
            task_id=task["id"],
            task_name=task["task_name"],
            old_status=old_status,
            new_status=new_status,
            assigned_designer=task.get("assigned_designer"),
            design_lead=task.get("design_lead"),
            assigned_am=assigned_am,
        )
    if comment:
        await notification_service.notify_comment_added(
            actor=actor,
            task_id=task["id"],
            task_name=task["task_name"],
            comment=comment,
            assigned_designer=task.get("assigned_designer"),
            design_lead=task.get("design_lead"),
            assigned_am=assigned_am,
        )


async def _notify_assignment(
    *,
    actor: Actor,
    task: dict[str, Any],
    change: AssignmentChange,
    old_designer: str | None,
) -> None:
    if change == AssignmentChange.NEW:
        project = await _load_project(actor.organization_id, task.get("project_id"))
        await notification_service.notify_task_assigned(
            actor=actor,
            task_id=task["id"],
            task_name=task["task_name"],
            project_name=project.get("project_name", "Unknown Project") if project else "Unknown Project",
            assigned_designer=task["assigned_designer"],
            design_lead=task.get("design_lead"),
        )
    elif change == AssignmentChange.REASSIGN and old_designer:
        await notification_service.notify_designer_change(
            actor=actor,
            task_id=task["id"],
            task_name=task["task_name"],
            old_designer=old_designer,
            new_designer=task["assigned_designer"],
            design_lead=task.get("design_lead"),
        )


# Operations


async def create_task(*, actor: Actor, project_id: str, payload: TaskCreate) -> dict[str, Any]:
    """Create a task in a project, seeding its status history and activity log.

    Rework tasks start in ``rework_requested`` and must reference a task of
    the same project.

    Raises:
        ValidationFailedError: With every violated field rule
        NotFoundError: If the project is absent or in another organization
    """
    with span("task_service.create_task"):
        errors: list[str] = []
        if not project_id or not project_id.strip():
            errors.append("Project ID is required")
        if not payload.task_name or not payload.task_name.strip():
            errors.append("Task name is required")
        if not payload.brief or not payload.brief.strip():
            errors.append("Task brief is required")
        if not payload.task_type or not payload.task_type.strip():
            errors.append("Task type is required")
        elif payload.task_type not in TaskType.__members__.values():
            errors.append("Invalid task type")
        if payload.priority not in TaskPriority.__members__.values():
            errors.append("Invalid priority")
        due_date = _normalize_due_date(payload.due_date, errors)
        due_time = _check_due_time(payload.due_time, errors)
        if payload.is_rework:
            if not payload.original_task_id or not payload.original_task_id.strip():
                errors.append("Original task ID is required for rework tasks")
            if not payload.rework_suggestions or not payload.rework_suggestions.strip():
                errors.append("Rework suggestions are required for rework tasks")
        if errors:
            raise ValidationFailedError(errors)

        project_id = project_id.strip()
        project = await _load_project(actor.organization_id, project_id)
        if project is None:
            raise NotFoundError("Project not found")

        original_task_id = None
        rework_suggestions = None
        if payload.is_rework:
            original_task_id = payload.original_task_id.strip()  # type: ignore[union-attr]
            rework_suggestions = payload.rework_suggestions.strip()  # type: ignore[union-attr]
            original = await _load_project_task(actor, project_id, original_task_id)
            if original is None:
                raise ValidationFailedError(["Original task not found or not in same project"])

        status = TaskStatus.REWORK_REQUESTED if payload.is_rework else TaskStatus.BRIEF_SUBMITTED
        activity_type = ActivityType.REWORK_REQUESTED if payload.is_rework else ActivityType.BRIEF_SUBMITTED
        comment = f"Rework task created: {rework_suggestions}" if payload.is_rework else "Task created"

        task = await db_client.create_record(
            collection="tasks",
            data={
                "organization_id": actor.organization_id,
                "project_id": project_id,
                "task_name": payload.task_name.strip(),  # type: ignore[union-attr]
                "brief": payload.brief.strip(),  # type: ignore[union-attr]
                "task_type": payload.task_type,
                "priority": payload.priority,
                "tags": _clean_list(payload.tags),
                "due_date": due_date,
                "due_time": due_time,
                "assets": _clean_list(payload.assets),
                "references": _clean_list(payload.references),
                "created_by": actor.user_id,
                "assigned_designer": None,
                "designers": [],
                "design_lead": None,
                "star_rate": None,
                "status": status,
                "status_history": [
                    task_state_machine.build_status_change(status, changed_by=actor.user_id, notes="Task created")
                ],
                "activity_and_comments": [
                    task_state_machine.build_activity(activity_type, by_who=actor.user_id, comment=comment)
                ],
                "is_rework": payload.is_rework,
                "original_task_id": original_task_id,
                "rework_suggestions": rework_suggestions,
                "deliverables": [],
                "completed_at": None,
            },
        )

        log_with_actor_context(
            logger,
            "info",
            "Task created",
            organization_id=actor.organization_id,
            user_id=actor.user_id,
            task_id=task["id"],
            project_id=project_id,
            is_rework=payload.is_rework,
        )
        return await enrich_task(task)


async def _load_project_task(actor: Actor, project_id: str, task_id: str) -> dict[str, Any] | None:
    try:
        task = await _load_task(actor, task_id)
    except NotFoundError:
        return None
    return task if task.get("project_id") == project_id else None


async def get_task(*, actor: Actor, task_id: str) -> dict[str, Any]:
    """Fetch one task with project, user and status-history author summaries.

    Raises:
        NotFoundError: If absent or in another organization
    """
    with span("task_service.get_task"):
        task = await _load_task(actor, task_id)
        enriched = await enrich_task(task)
        authors = await asyncio.gather(
            *(_user_summary(change.get("changed_by")) for change in task.get("status_history", []))
        )
        enriched["status_history"] = [
            {**change, "changed_by_user": author}
            for change, author in zip(task.get("status_history", []), authors, strict=True)
        ]
        return enriched


def _validate_update(provided: dict[str, Any]) -> dict[str, Any]:
    """Validate and normalize update fields (excluding assignment)."""
    errors: list[str] = []
    fields: dict[str, Any] = {}

    for name in ("task_name", "brief"):
        if name in provided:
            value = provided[name]
            if value is None or not value.strip():
                errors.append(f"{name.replace('_', ' ').capitalize()} cannot be empty")
            else:
                fields[name] = value.strip()

    if "priority" in provided:
        if provided["priority"] not in TaskPriority.__members__.values():
            errors.append("Invalid priority")
        else:
            fields["priority"] = provided["priority"]

    if "due_date" in provided:
        due_date = _normalize_due_date(provided["due_date"], errors)
        if due_date:
            fields["due_date"] = due_date

    if "due_time" in provided:
        due_errors: list[str] = []
        fields["due_time"] = _check_due_time(provided["due_time"], due_errors)
        errors.extend(due_errors)

    if "star_rate" in provided:
        star_rate = provided["star_rate"]
        if star_rate is not None and not 0 <= star_rate <= Constants.MAX_STAR_RATING:
            errors.append(f"Star rate must be between 0 and {Constants.MAX_STAR_RATING}")
        else:
            fields["star_rate"] = star_rate

    for name in ("tags", "assets", "references"):
        if name in provided:
            fields[name] = _clean_list(provided[name])

    if "rework_suggestions" in provided:
        fields["rework_suggestions"] = (provided["rework_suggestions"] or "").strip() or None

    if "design_lead" in provided:
        fields["design_lead"] = provided["design_lead"] or None

    if errors:
        raise ValidationFailedError(errors)
    return fields


async def update_task(*, actor: Actor, task_id: str, changes: TaskUpdate) -> dict[str, Any]:
    """Apply partial field changes, handling designer assignment, reassignment and unassignment.

    The field changes, the ``designers`` addition and the assignment activity
    entry are written in one atomic update. The previous designer's workload
    entry is released and the new designer's recorded afterwards.

    Raises:
        ValidationFailedError: If a field is invalid or a referenced user is not in the organization
        NotFoundError: If the task is absent or in another organization
    """
    with span("task_service.update_task"):
        provided = changes.provided()
        if not provided:
            raise ValidationFailedError(["No fields to update"])

        fields = _validate_update(provided)
        task = await _load_task(actor, task_id)

        assigning = "assigned_designer" in provided
        new_designer = provided.get("assigned_designer") or None
        referenced = {user_id for user_id in (new_designer, fields.get("design_lead")) if user_id}
        users = dict(
            zip(
                referenced,
                await asyncio.gather(*(_load_org_user(actor.organization_id, user_id) for user_id in referenced)),
                strict=True,
            )
        )
        missing = [f"User not found: {user_id}" for user_id, user in users.items() if user is None]
        if missing:
            raise ValidationFailedError(missing)

        names = {user_id: user.get("full_name") for user_id, user in users.items() if user}
        old_candidate = task.get("assigned_designer")
        if old_candidate and old_candidate not in names:
            old_user = await _load_org_user(actor.organization_id, old_candidate)
            names[old_candidate] = old_user.get("full_name") if old_user else None
        actor_user = await _load_org_user(actor.organization_id, actor.user_id)
        actor_name = (actor_user or {}).get("full_name") or "Lead"

        plan: dict[str, Any] = {"change": None, "old_designer": None}

        def build(current: dict[str, Any]) -> AtomicUpdate:
            update = AtomicUpdate(set_fields=dict(fields))
            old_designer = current.get("assigned_designer")
            plan["old_designer"] = old_designer
            plan["rating_changed"] = "star_rate" in fields and fields["star_rate"] != current.get("star_rate")
            if not assigning:
                return update
            if old_designer and old_designer not in names:
                raise _StaleAssignmentError(old_designer)

            update.set_fields["assigned_designer"] = new_designer
            if not old_designer and new_designer:
                plan["change"] = AssignmentChange.NEW
                comment = f"Task assigned to {names.get(new_designer) or 'Designer'} by {actor_name}"
                activity_type = ActivityType.DESIGNER_ASSIGNED
            elif old_designer and new_designer and old_designer != new_designer:
                plan["change"] = AssignmentChange.REASSIGN
                comment = (
                    f"Task reassigned from {names.get(old_designer) or 'Designer'} "
                    f"to {names.get(new_designer) or 'Designer'}"
                )
                activity_type = ActivityType.DESIGNER_CHANGED
            elif old_designer and not new_designer:
                plan["change"] = AssignmentChange.UNASSIGN
                comment = f"Task unassigned from {names.get(old_designer) or 'Designer'} by {actor_name}"
                activity_type = ActivityType.DESIGNER_CHANGED
            else:
                return update

            if new_designer:
                update.add_to_set["designers"] = [new_designer]
            update.push["activity_and_comments"] = [
                task_state_machine.build_activity(activity_type, by_who=actor.user_id, comment=comment)
            ]
            return update

        for attempt in range(1, _ASSIGNMENT_ATTEMPTS + 1):
            try:
                _, updated = await _modify_task(actor, task_id, build)
                break
            except _StaleAssignmentError as e:
                # Reassigned since the first read; name the current designer and retry
                if attempt == _ASSIGNMENT_ATTEMPTS:
                    raise DependencyFailureError(f"Task {task_id} keeps changing designer") from e
                old_user = await _load_org_user(actor.organization_id, e.user_id)
                names[e.user_id] = old_user.get("full_name") if old_user else None

        change: AssignmentChange | None = plan["change"]
        await _apply_assignment_workload(
            task=updated,
            change=change,
            old_designer=plan["old_designer"],
            rating_changed=plan.get("rating_changed", False),
        )
        if change in {AssignmentChange.NEW, AssignmentChange.REASSIGN}:
            notification_service.schedule(
                _notify_assignment(actor=actor, task=updated, change=change, old_designer=plan["old_designer"]),
                name=f"assignment:{task_id}",
            )

        log_with_actor_context(
            logger,
            "info",
            "Task updated",
            organization_id=actor.organization_id,
            user_id=actor.user_id,
            task_id=task_id,
            fields=sorted(provided),
            assignment=change,
        )
        return await enrich_task(updated)


async def add_activity(*, actor: Actor, task_id: str, payload: ActivityCreate) -> dict[str, Any]:
    """Append an activity/comment entry, applying the status its type selects.

    Raises:
        ValidationFailedError: If the type is unknown or both comment and asset are empty
        NotFoundError: If the task is absent or in another organization
    """
    with span("task_service.add_activity"):
        errors: list[str] = []
        activity_type: ActivityType | None = None
        comment, asset = "", None
        try:
            activity_type = task_state_machine.parse_activity_type(payload.type)
        except ValidationFailedError as e:
            errors.extend(e.errors)
        try:
            comment, asset = task_state_machine.validate_activity_content(comment=payload.comment, asset=payload.asset)
        except ValidationFailedError as e:
            errors.extend(e.errors)
        if errors or activity_type is None:
            raise ValidationFailedError(errors)

        await _load_task(actor, task_id)

        applied: dict[str, TaskStatus | None] = {"status": None}

        def build(current: dict[str, Any]) -> AtomicUpdate:
            update, target = task_state_machine.activity_update(
                current,
                activity_type=activity_type,
                by_who=actor.user_id,
                comment=comment,
                asset=asset,
            )
            applied["status"] = target
            return update

        before, updated = await _modify_task(actor, task_id, build)
        new_status = applied["status"]

        if new_status is not None:
            await _apply_workload_effect(updated, task_state_machine.workload_effect(before.get("status"), new_status))

        notification_service.schedule(
            _notify_activity(
                actor=actor,
                task=updated,
                old_status=before.get("status", ""),
                new_status=new_status,
                comment=comment,
            ),
            name=f"activity:{task_id}",
        )

        log_with_actor_context(
            logger,
            "info",
            "Activity added",
            organization_id=actor.organization_id,
            user_id=actor.user_id,
            task_id=task_id,
            activity_type=activity_type,
            status=new_status,
        )
        return await enrich_task(updated)


async def set_status(*, actor: Actor, task_id: str, status: str | None, notes: str | None = None) -> dict[str, Any]:
    """Set a task's status explicitly and append its history entry.

    Reaching ``client_approved`` records completion and releases the
    designer's workload entry; leaving it clears completion and restores it.

    Raises:
        InvalidTransitionError: If the status is not one of the settable statuses
        NotFoundError: If the task is absent or in another organization
    """
    with span("task_service.set_status"):
        new_status = task_state_machine.parse_settable_status(status)
        await _load_task(actor, task_id)

        before, updated = await _modify_task(
            actor,
            task_id,
            lambda current: task_state_machine.status_update(
                new_status,
                changed_by=actor.user_id,
                notes=(notes or "").strip() or None,
                old_status=current.get("status"),
            ),
        )

        await _apply_workload_effect(updated, task_state_machine.workload_effect(before.get("status"), new_status))
        notification_service.schedule(
            _notify_activity(
                actor=actor,
                task=updated,
                old_status=before.get("status", ""),
                new_status=new_status,
                comment="",
            ),
            name=f"status:{task_id}",
        )

        log_with_actor_context(
            logger,
            "info",
            "Task status set",
            organization_id=actor.organization_id,
            user_id=actor.user_id,
            task_id=task_id,
            old_status=before.get("status"),
            new_status=new_status,
        )
        return await enrich_task(updated)


async def add_deliverable(*, actor: Actor, task_id: str, deliverable: str | None) -> dict[str, Any]:
    """Append a deliverable reference submitted by the actor.

    Raises:
        ValidationFailedError: If the reference is empty
        NotFoundError: If the task is absent or in another organization
    """
    with span("task_service.add_deliverable"):
        reference = (deliverable or "").strip()
        if not reference:
            raise ValidationFailedError(["Deliverable reference is required"])
        await _load_task(actor, task_id)

        entry = {"deliverable": reference, "submitted_by": actor.user_id, "submitted_at": db_client.utc_now()}
        _, updated = await _modify_task(actor, task_id, lambda _current: AtomicUpdate(push={"deliverables": [entry]}))
        logger.info("Deliverable added to task %s by %s", task_id, actor.user_id)
        return await enrich_task(updated)


async def delete_task(*, actor: Actor, task_id: str) -> None:
    """Administrative hard delete, bypassing the workflow.

    Raises:
        AccessDeniedError: If the actor is not an administrator
        NotFoundError: If the task is absent or in another organization
    """
    with span("task_service.delete_task"):
        if not actor.is_admin:
            raise AccessDeniedError("Only administrators can delete tasks")

        task = await _load_task(actor, task_id)
        try:
            await db_client.delete_record(collection="tasks", record_id=task_id)
        except KeyError:
            raise NotFoundError(_TASK_NOT_FOUND) from None

        await _apply_workload_effect(task, WorkloadEffect.RELEASE)
        log_with_actor_context(
            logger,
            "warning",
            "Task deleted",
            organization_id=actor.organization_id,
            user_id=actor.user_id,
            task_id=task_id,
        )


async def _list(base_filter: str, filters: TaskFilters | None) -> list[dict[str, Any]]:
    filters = filters or TaskFilters()
    tasks = await db_client.list_records(
        collection="tasks",
        filter_query=join_filters(base_filter, filters.to_filter_query()),
        sort=filters.sort,
        page=filters.page,
        per_page=filters.per_page,
    )
    return await _enrich_all(tasks)


async def list_tasks_for_actor(*, actor: Actor, filters: TaskFilters | None = None) -> list[dict[str, Any]]:
    """Tasks the actor may see, narrowed by the free filters."""
    with span("task_service.list_tasks_for_actor"):
        tasks = await _list(visibility_service.task_visibility_filter(actor), filters)
        logger.info("Listed %d tasks for user %s (%s)", len(tasks), actor.user_id, actor.role)
        return tasks


async def list_unassigned_tasks(*, actor: Actor, filters: TaskFilters | None = None) -> list[dict[str, Any]]:
    """Tasks awaiting a designer.

    Raises:
        AccessDeniedError: If the actor is not an admin, design head or design lead
    """
    with span("task_service.list_unassigned_tasks"):
        return await _list(visibility_service.unassigned_tasks_filter(actor), filters)


async def _require_project(actor: Actor, project_id: str) -> dict[str, Any]:
    project = await _load_project(actor.organization_id, project_id)
    if project is None:
        raise NotFoundError("Project not found")
    return project


def _project_filter(actor: Actor, project_id: str) -> str:
    return join_filters(visibility_service.organization_filter(actor), f'project_id = "{sanitize_param(project_id)}"')


async def get_project_progress(*, actor: Actor, project_id: str) -> ProjectProgress:
    """Share of a project's tasks that are client approved, rounded to a whole percent.

    Raises:
        NotFoundError: If the project is absent or in another organization
    """
    with span("task_service.get_project_progress"):
        await _require_project(actor, project_id)
        base = _project_filter(actor, project_id)
        total, completed = await asyncio.gather(
            db_client.count_records(collection="tasks", filter_query=base),
            db_client.count_records(
                collection="tasks",
                filter_query=join_filters(base, f'status = "{TaskStatus.CLIENT_APPROVED}"'),
            ),
        )
        progress = math.floor(completed / total * 100 + 0.5) if total else 0
        return ProjectProgress(project_id=project_id, total_tasks=total, completed_tasks=completed, progress=progress)


async def list_project_tasks(
    *,
    actor: Actor,
    project_id: str,
    filters: TaskFilters | None = None,
) -> dict[str, Any]:
    """A project's tasks with the project's completion progress.

    Raises:
        NotFoundError: If the project is absent or in another organization
    """
    with span("task_service.list_project_tasks"):
        await _require_project(actor, project_id)
        tasks, progress = await asyncio.gather(
            _list(_project_filter(actor, project_id), filters),
            get_project_progress(actor=actor, project_id=project_id),
        )
        return {"tasks": tasks, "progress": progress.model_dump(), "total": len(tasks)}


async def list_completed_tasks(*, actor: Actor, project_id: str) -> list[dict[str, Any]]:
    """Client-approved tasks of a project, newest first, to pick a rework source from.

    Raises:
        NotFoundError: If the project is absent or in another organization
    """
    with span("task_service.list_completed_tasks"):
        await _require_project(actor, project_id)
        return await db_client.list_all_records(
            collection="tasks",
            filter_query=join_filters(
                _project_filter(actor, project_id), f'status = "{TaskStatus.CLIENT_APPROVED}"'
            ),
            sort="-completed_at",
        )
