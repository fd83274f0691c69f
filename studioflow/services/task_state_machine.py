"""Pure transition rules for the task workflow.

Nothing in this module touches the document store: it resolves target
statuses and builds the :class:`AtomicUpdate` that the task service commits
in one write.
"""

import logging
from enum import StrEnum
from typing import Any

from studioflow.core.db_client import AtomicUpdate, utc_now
from studioflow.core.errors import InvalidTransitionError, ValidationFailedError
from studioflow.domain.task import ActivityType, TaskStatus


logger = logging.getLogger(__name__)


# Statuses accepted by the explicit status operation
SETTABLE_STATUSES: tuple[TaskStatus, ...] = (
    TaskStatus.BRIEF_SUBMITTED,
    TaskStatus.REWORK_REQUESTED,
    TaskStatus.DESIGNER_ASSIGNED,
    TaskStatus.PICKED_UP,
    TaskStatus.HOLD_BY_DESIGNER,
    TaskStatus.DRAFT_SUBMITTED,
    TaskStatus.INTERNAL_APPROVED,
    TaskStatus.SENT_TO_CLIENT,
    TaskStatus.CLIENT_APPROVED,
    TaskStatus.CLIENT_FEEDBACK,
)

# Activity type -> status it moves the task to; None records activity only.
# REACTIVATE depends on the task and is resolved in resolve_activity_status.
ACTIVITY_STATUS_TRANSITIONS: dict[ActivityType, TaskStatus | None] = {
    ActivityType.BRIEF_REWORK: TaskStatus.BRIEF_REWORK,
    ActivityType.CLIENT_FEEDBACK: TaskStatus.CLIENT_FEEDBACK,
    ActivityType.INTERNAL_FEEDBACK: TaskStatus.INTERNAL_FEEDBACK,
    ActivityType.ONHOLD: TaskStatus.HOLD_BY_DESIGNER,
    ActivityType.BRIEF_SUBMITTED: TaskStatus.BRIEF_SUBMITTED,
    ActivityType.PICKED_UP: TaskStatus.PICKED_UP,
    ActivityType.DRAFT_SUBMITTED: TaskStatus.DRAFT_SUBMITTED,
    ActivityType.INTERNAL_APPROVED: TaskStatus.INTERNAL_APPROVED,
    ActivityType.SENT_TO_CLIENT: TaskStatus.SENT_TO_CLIENT,
    ActivityType.CLIENT_APPROVED: TaskStatus.CLIENT_APPROVED,
    ActivityType.REWORK_REQUESTED: TaskStatus.REWORK_REQUESTED,
    ActivityType.AM_FEEDBACK: TaskStatus.INTERNAL_REVIEW,
    ActivityType.ACCEPT_FEEDBACK: TaskStatus.INTERNAL_FEEDBACK,
    ActivityType.REJECT_FEEDBACK: TaskStatus.INTERNAL_APPROVED,
    ActivityType.APPROVE_REWORK: TaskStatus.INTERNAL_FEEDBACK,
    ActivityType.REJECT_REWORK: TaskStatus.CLIENT_APPROVED,
    ActivityType.FEEDBACK_RESPONSE: None,
    ActivityType.NEED_CLARITY: None,
    ActivityType.CLARIFICATION: None,
    ActivityType.DESIGN_REWORK: None,
    ActivityType.DESIGNER_FEEDBACK: None,
    ActivityType.DESIGNER_ASSIGNED: None,
    ActivityType.DESIGNER_CHANGED: None,
    ActivityType.INTERNAL_DISCUSSION: None,
    ActivityType.INTERNAL_REVIEW: None,
    ActivityType.HOLD_BY_DESIGNER: None,
}


class WorkloadEffect(StrEnum):
    """Counter change a status transition implies for the assigned designer."""

    RELEASE = "release"
    RESTORE = "restore"


def parse_settable_status(raw_status: str | None) -> TaskStatus:
    """Validate a status for the explicit status operation.

    Raises:
        InvalidTransitionError: If the status is missing or not in the whitelist
    """
    if raw_status in SETTABLE_STATUSES:
        return TaskStatus(raw_status)
    msg = "Valid status is required: " + ", ".join(SETTABLE_STATUSES)
    raise InvalidTransitionError(msg)


def parse_activity_type(raw_type: str | None) -> ActivityType:
    """Validate an activity type.

    Raises:
        ValidationFailedError: If the type is missing or unknown
    """
    if not raw_type or not raw_type.strip():
        raise ValidationFailedError(["Comment type is required"])
    try:
        return ActivityType(raw_type.strip())
    except ValueError:
        raise ValidationFailedError([f"Invalid comment type: {raw_type}"]) from None


def validate_activity_content(*, comment: str | None, asset: str | None) -> tuple[str, str | None]:
    """Normalize comment text and asset reference, requiring at least one.

    Returns:
        Tuple of (trimmed comment, trimmed asset or None)
    """
    text = (comment or "").strip()
    asset_ref = (asset or "").strip() or None
    if not text and not asset_ref:
        raise ValidationFailedError(["Comment text or asset is required"])
    return text, asset_ref


def resolve_activity_status(activity_type: ActivityType, *, assigned_designer: str | None) -> TaskStatus | None:
    """Return the status an activity moves a task to, or None if it only records activity."""
    if activity_type == ActivityType.REACTIVATE:
        return TaskStatus.DESIGNER_ASSIGNED if assigned_designer else TaskStatus.BRIEF_SUBMITTED
    return ACTIVITY_STATUS_TRANSITIONS[activity_type]


def workload_effect(old_status: str | None, new_status: str) -> WorkloadEffect | None:
    """Counter change implied by moving between two statuses."""
    if new_status == TaskStatus.CLIENT_APPROVED and old_status != TaskStatus.CLIENT_APPROVED:
        return WorkloadEffect.RELEASE
    if old_status == TaskStatus.CLIENT_APPROVED and new_status != TaskStatus.CLIENT_APPROVED:
        return WorkloadEffect.RESTORE
    return None


def build_status_change(
    status: TaskStatus,
    *,
    changed_by: str,
    notes: str | None = None,
    changed_at: str | None = None,
) -> dict[str, Any]:
    """Build one status history entry."""
    entry: dict[str, Any] = {"status": status, "changed_at": changed_at or utc_now(), "changed_by": changed_by}
    if notes:
        entry["notes"] = notes
    return entry


def build_activity(
    activity_type: ActivityType,
    *,
    by_who: str,
    comment: str = "",
    asset: str | None = None,
    time: str | None = None,
) -> dict[str, Any]:
    """Build one activity and comment log entry."""
    entry: dict[str, Any] = {"by_who": by_who, "comment": comment, "time": time or utc_now(), "type": activity_type}
    if asset:
        entry["asset"] = asset
    return entry


def status_update(
    new_status: TaskStatus,
    *,
    changed_by: str,
    notes: str | None = None,
    activity: dict[str, Any] | None = None,
    old_status: str | None = None,
) -> AtomicUpdate:
    """Operators that apply a status, append its history entry, and keep completion in step.

    ``completed_at`` is set when the task reaches client approval and removed
    for every other status. Re-approving an approved task keeps the first
    completion time.
    """
    now = utc_now()
    update = AtomicUpdate(
        set_fields={"status": new_status},
        push={"status_history": [build_status_change(new_status, changed_by=changed_by, notes=notes, changed_at=now)]},
    )
    if new_status == TaskStatus.CLIENT_APPROVED:
        if old_status != TaskStatus.CLIENT_APPROVED:
            update.set_fields["completed_at"] = now
    else:
        update.unset_fields.append("completed_at")
    if activity is not None:
        update.push["activity_and_comments"] = [activity]
    return update


def activity_update(
    task: dict[str, Any],
    *,
    activity_type: ActivityType,
    by_who: str,
    comment: str,
    asset: str | None,
) -> tuple[AtomicUpdate, TaskStatus | None]:
    """Operators for appending an activity entry, plus the status it applies (if any).

    The target status is resolved against ``task`` as read inside the write
    transaction, so a concurrent reassignment is seen by ``reactivate``.
    """
    activity = build_activity(activity_type, by_who=by_who, comment=comment, asset=asset)
    target = resolve_activity_status(activity_type, assigned_designer=task.get("assigned_designer"))
    if target is None:
        return AtomicUpdate(push={"activity_and_comments": [activity]}), None

    logger.debug(
        "Activity %s moves task %s from %s to %s",
        activity_type,
        task.get("id"),
        task.get("status"),
        target,
    )
    update = status_update(
        target,
        changed_by=by_who,
        notes=f"Activity: {activity_type}",
        activity=activity,
        old_status=task.get("status"),
    )
    return update, target
