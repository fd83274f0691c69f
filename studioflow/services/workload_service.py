"""Designer workload counters and workload dashboards.

Each designer's user document carries ``ongoing_tasks``, ``workload_score`` and
``task_difficulties`` (one ``{task_id, star_rating}`` entry per active task).
Counter operations are guarded on the presence or absence of that entry and
always decrement by the recorded rating, so replaying one is a no-op.
"""

import asyncio
import logging
from datetime import UTC, datetime, time
from typing import Any

from studioflow.core import db_client
from studioflow.core.config import Constants
from studioflow.core.db_client import AtomicUpdate, sanitize_param
from studioflow.core.errors import DependencyFailureError, NotFoundError
from studioflow.core.logging import span
from studioflow.domain.actor import Actor
from studioflow.domain.task import DESIGN_TASK_TYPES, TaskStatus
from studioflow.domain.user import Team
from studioflow.models.service_models import (
    Capacity,
    DesignTeamMember,
    ReconcileResult,
    TaskRating,
    WorkloadEntry,
)


logger = logging.getLogger(__name__)

# Statuses the design team view no longer counts as active work
DESIGN_TEAM_INACTIVE_STATUSES = (
    TaskStatus.DRAFT_SUBMITTED,
    TaskStatus.INTERNAL_APPROVED,
    TaskStatus.SENT_TO_CLIENT,
    TaskStatus.CLIENT_APPROVED,
)


def capacity_for_score(workload_score: int) -> Capacity:
    """Classify a workload score into a capacity band."""
    if workload_score <= Constants.CAPACITY_LOW_MAX_SCORE:
        return Capacity.LOW
    if workload_score <= Constants.CAPACITY_MEDIUM_MAX_SCORE:
        return Capacity.MEDIUM
    if workload_score <= Constants.CAPACITY_HIGH_MAX_SCORE:
        return Capacity.HIGH
    return Capacity.OVERLOADED


def _find_entry(user: dict[str, Any], task_id: str) -> dict[str, Any] | None:
    for entry in user.get("task_difficulties") or []:
        if entry.get("task_id") == task_id:
            return entry
    return None


async def _modify_user(*, user_id: str, operation: str, mutate: Any) -> None:  # noqa: ANN401
    try:
        await db_client.modify_record(collection="users", record_id=user_id, mutate=mutate)
    except KeyError as e:
        msg = f"Cannot {operation} workload: user {user_id} not found"
        raise DependencyFailureError(msg) from e
    except RuntimeError as e:
        msg = f"Cannot {operation} workload for user {user_id}: {e}"
        raise DependencyFailureError(msg) from e


async def assign_task(*, user_id: str, task_id: str, star_rating: int | None) -> bool:
    """Record an active assignment on a designer.

    Increments ``ongoing_tasks`` by one and ``workload_score`` by the rating
    (0 if unrated) and adds the task's difficulty entry. Does nothing if the
    designer already holds an entry for the task.

    Returns:
        True if the counters changed

    Raises:
        DependencyFailureError: If the designer is missing or the store fails
    """
    with span("workload_service.assign_task"):
        rating = star_rating or 0
        applied = False

        def mutate(user: dict[str, Any]) -> AtomicUpdate | None:
            nonlocal applied
            if _find_entry(user, task_id) is not None:
                return None
            applied = True
            return AtomicUpdate(
                increments={"ongoing_tasks": 1, "workload_score": rating},
                push={"task_difficulties": [{"task_id": task_id, "star_rating": rating}]},
            )

        await _modify_user(user_id=user_id, operation="assign", mutate=mutate)
        logger.info(
            "Workload assign user=%s task=%s rating=%s applied=%s",
            user_id,
            task_id,
            rating,
            applied,
        )
        return applied


async def release_task(*, user_id: str, task_id: str) -> bool:
    """Remove a task from a designer's active workload.

    Decrements by the rating recorded at assignment time, not the task's
    current rating. Does nothing if the designer holds no entry for the task.

    Returns:
        True if the counters changed

    Raises:
        DependencyFailureError: If the designer is missing or the store fails
    """
    with span("workload_service.release_task"):
        released_rating: int | None = None

        def mutate(user: dict[str, Any]) -> AtomicUpdate | None:
            nonlocal released_rating
            entry = _find_entry(user, task_id)
            if entry is None:
                return None
            released_rating = int(entry.get("star_rating") or 0)
            return AtomicUpdate(
                increments={"ongoing_tasks": -1, "workload_score": -released_rating},
                pull={"task_difficulties": {"task_id": task_id}},
            )

        await _modify_user(user_id=user_id, operation="release", mutate=mutate)
        logger.info("Workload release user=%s task=%s rating=%s", user_id, task_id, released_rating)
        return released_rating is not None


async def rerate_task(*, user_id: str, task_id: str, star_rating: int | None) -> bool:
    """Replace the recorded rating of a designer's active task, adjusting the score by the difference.

    Returns:
        True if the counters changed

    Raises:
        DependencyFailureError: If the designer is missing or the store fails
    """
    with span("workload_service.rerate_task"):
        new_rating = star_rating or 0
        applied = False

        def mutate(user: dict[str, Any]) -> AtomicUpdate | None:
            nonlocal applied
            entry = _find_entry(user, task_id)
            if entry is None:
                return None
            old_rating = int(entry.get("star_rating") or 0)
            if old_rating == new_rating:
                return None
            applied = True
            return AtomicUpdate(
                increments={"workload_score": new_rating - old_rating},
                pull={"task_difficulties": {"task_id": task_id}},
                push={"task_difficulties": [{"task_id": task_id, "star_rating": new_rating}]},
            )

        await _modify_user(user_id=user_id, operation="rerate", mutate=mutate)
        logger.info("Workload rerate user=%s task=%s rating=%s applied=%s", user_id, task_id, new_rating, applied)
        return applied


async def reconcile_designer_workload(*, organization_id: str, user_id: str) -> ReconcileResult:
    """Rebuild a designer's counters from the tasks currently assigned to them.

    Every assigned task that is not client approved counts, with its current
    rating (0 if unrated).

    Raises:
        NotFoundError: If the user does not exist in the organization
    """
    with span("workload_service.reconcile_designer_workload"):
        try:
            user = await db_client.get_record(collection="users", record_id=user_id)
        except KeyError:
            raise NotFoundError("User not found") from None
        if user.get("organization_id") != organization_id:
            raise NotFoundError("User not found")

        tasks = await db_client.list_all_records(
            collection="tasks",
            filter_query=(
                f'organization_id = "{sanitize_param(organization_id)}" '
                f'&& assigned_designer = "{sanitize_param(user_id)}" '
                f'&& status != "{TaskStatus.CLIENT_APPROVED}"'
            ),
        )
        difficulties = [{"task_id": task["id"], "star_rating": int(task.get("star_rate") or 0)} for task in tasks]
        ongoing = len(difficulties)
        score = sum(entry["star_rating"] for entry in difficulties)
        previous: dict[str, int] = {}

        def mutate(current: dict[str, Any]) -> AtomicUpdate:
            previous["ongoing_tasks"] = int(current.get("ongoing_tasks") or 0)
            previous["workload_score"] = int(current.get("workload_score") or 0)
            return AtomicUpdate(
                set_fields={"ongoing_tasks": ongoing, "workload_score": score, "task_difficulties": difficulties}
            )

        await db_client.modify_record(collection="users", record_id=user_id, mutate=mutate)

        result = ReconcileResult(
            user_id=user_id,
            ongoing_tasks=ongoing,
            workload_score=score,
            previous_ongoing_tasks=previous["ongoing_tasks"],
            previous_workload_score=previous["workload_score"],
        )
        if result.drifted:
            logger.warning(
                "Workload drift repaired",
                extra={
                    "user_id": user_id,
                    "organization_id": organization_id,
                    "ongoing_tasks": f"{result.previous_ongoing_tasks}->{ongoing}",
                    "workload_score": f"{result.previous_workload_score}->{score}",
                },
            )
        return result


def _design_type_filter() -> str:
    return " || ".join(f'task_type = "{task_type}"' for task_type in sorted(DESIGN_TASK_TYPES))


async def _list_design_team(organization_id: str) -> list[dict[str, Any]]:
    return await db_client.list_all_records(
        collection="users",
        filter_query=f'organization_id = "{sanitize_param(organization_id)}" && team = "{Team.DESIGN}"',
    )


async def get_designer_workload(*, organization_id: str) -> list[WorkloadEntry]:
    """Organization-wide workload dashboard, highest workload first.

    Counts design-type tasks that are not client approved, assuming a rating
    of 3 for unrated tasks.
    """
    with span("workload_service.get_designer_workload"):
        designers, tasks = await asyncio.gather(
            _list_design_team(organization_id),
            db_client.list_all_records(
                collection="tasks",
                filter_query=(
                    f'organization_id = "{sanitize_param(organization_id)}" '
                    f'&& status != "{TaskStatus.CLIENT_APPROVED}" && ({_design_type_filter()})'
                ),
            ),
        )

        tasks_by_designer: dict[str, list[dict[str, Any]]] = {}
        for task in tasks:
            if task.get("assigned_designer"):
                tasks_by_designer.setdefault(task["assigned_designer"], []).append(task)

        entries = []
        for designer in designers:
            ratings = [
                TaskRating(
                    task_id=task["id"],
                    star_rating=task.get("star_rate") or Constants.DEFAULT_AGGREGATE_STAR_RATING,
                )
                for task in tasks_by_designer.get(designer["id"], [])
            ]
            score = sum(rating.star_rating for rating in ratings)
            entries.append(
                WorkloadEntry(
                    user_id=designer["id"],
                    full_name=designer.get("full_name", ""),
                    role=designer.get("role", ""),
                    ongoing_tasks=len(ratings),
                    workload_score=score,
                    capacity=capacity_for_score(score),
                    task_difficulties=ratings,
                )
            )

        entries.sort(key=lambda entry: entry.workload_score, reverse=True)
        logger.info("Computed designer workload for %d designers in org %s", len(entries), organization_id)
        return entries


def is_overdue(task: dict[str, Any], *, now: datetime | None = None) -> bool:
    """Whether a task's due date (and optional HH:MM due time) has passed."""
    due_date = task.get("due_date")
    if not due_date:
        return False
    try:
        due = datetime.fromisoformat(due_date)
    except ValueError:
        logger.warning("Unparseable due date on task %s: %s", task.get("id"), due_date)
        return False
    if due.tzinfo is None:
        due = due.replace(tzinfo=UTC)

    due_time = task.get("due_time")
    if due_time:
        try:
            parsed = time.fromisoformat(due_time)
            due = due.replace(hour=parsed.hour, minute=parsed.minute, second=0, microsecond=0)
        except ValueError:
            logger.warning("Unparseable due time on task %s: %s", task.get("id"), due_time)

    return due < (now or datetime.now(UTC))


async def _member_workload(member: dict[str, Any], organization_id: str, now: datetime) -> DesignTeamMember:
    excluded = " && ".join(f'status != "{status}"' for status in DESIGN_TEAM_INACTIVE_STATUSES)
    active_tasks = await db_client.list_all_records(
        collection="tasks",
        filter_query=(
            f'organization_id = "{sanitize_param(organization_id)}" '
            f'&& assigned_designer = "{sanitize_param(member["id"])}" '
            f"&& {excluded} && ({_design_type_filter()})"
        ),
    )
    return DesignTeamMember(
        user_id=member["id"],
        full_name=member.get("full_name", ""),
        email=member.get("email", ""),
        role=member.get("role", ""),
        status=member.get("status"),
        team=member.get("team"),
        workload_score=sum(
            task.get("star_rate") or Constants.DEFAULT_AGGREGATE_STAR_RATING for task in active_tasks
        ),
        overdue_tasks=sum(1 for task in active_tasks if is_overdue(task, now=now)),
    )


async def get_design_team_workload(*, actor: Actor) -> list[DesignTeamMember]:
    """Design team members with workload and overdue counts for the actor's organization.

    Work that has reached draft submission or later no longer counts as active here.
    """
    with span("workload_service.get_design_team_workload"):
        members = await _list_design_team(actor.organization_id)
        now = datetime.now(UTC)
        return list(
            await asyncio.gather(*(_member_workload(member, actor.organization_id, now) for member in members))
        )
