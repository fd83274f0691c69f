"""Notification routing, persistence, real-time push and inbox operations.

Task operations hand events to :func:`schedule`, which runs the dispatch in a
background task: the triggering mutation never waits on it and a dispatch
failure never undoes it. Each notification is persisted first and then pushed
best effort; push failures are only logged.
"""

import asyncio
import logging
from collections.abc import Coroutine
from datetime import UTC, datetime, timedelta
from typing import Any

from studioflow.core import db_client
from studioflow.core.config import Constants, settings
from studioflow.core.db_client import format_timestamp, sanitize_param, utc_now
from studioflow.core.errors import NotFoundError
from studioflow.core.logging import span
from studioflow.domain.actor import Actor, ActorRole
from studioflow.domain.notification import NotificationType
from studioflow.interface import realtime


logger = logging.getLogger(__name__)

_background_tasks: set[asyncio.Task[None]] = set()


# Background dispatch


async def _run_dispatch(coro: Coroutine[Any, Any, Any], name: str) -> None:
    try:
        await coro
    except Exception:
        logger.exception("Notification dispatch failed: %s", name)


def schedule(coro: Coroutine[Any, Any, Any], *, name: str = "notification") -> asyncio.Task[None]:
    """Run a notification coroutine in the background, logging any failure."""
    task = asyncio.create_task(_run_dispatch(coro, name), name=name)
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


async def drain() -> None:
    """Wait for every pending background dispatch on the running loop."""
    loop = asyncio.get_running_loop()
    while pending := [task for task in _background_tasks if task.get_loop() is loop and not task.done()]:
        await asyncio.gather(*pending, return_exceptions=True)


# Recipient routing


def recipients_for_actor(
    *,
    actor: Actor,
    assigned_designer: str | None,
    design_lead: str | None,
    assigned_am: str | None,
) -> list[str]:
    """Recipients of a status change or comment, chosen by the actor's role.

    Account managers notify the designer and the design lead; designers notify
    the account manager and the design lead; leads, heads and admins notify
    the account manager and the designer. The actor is never a recipient.
    """
    if actor.role == ActorRole.ACCOUNT_MANAGER:
        candidates = [assigned_designer, design_lead]
    elif actor.role == ActorRole.DESIGNER:
        candidates = [assigned_am, design_lead]
    elif actor.role in {ActorRole.DESIGN_LEAD, ActorRole.DESIGN_HEAD, ActorRole.ADMIN}:
        candidates = [assigned_am, assigned_designer]
    else:
        candidates = []

    recipients: list[str] = []
    for user_id in candidates:
        if user_id and user_id != actor.user_id and user_id not in recipients:
            recipients.append(user_id)
    return recipients


def _humanize_status(status: str) -> str:
    return status.replace("_", " ")


def comment_preview(text: str) -> str:
    """Truncate comment text for a notification message."""
    limit = Constants.COMMENT_PREVIEW_LENGTH
    return text[:limit] + ("..." if len(text) > limit else "")


async def _display_name(user_id: str | None, default: str = "Someone") -> str:
    if not user_id:
        return default
    try:
        user = await db_client.get_record(collection="users", record_id=user_id)
    except KeyError:
        return default
    return user.get("full_name") or default


# Persist + push


async def create_notification(
    *,
    user_id: str,
    organization_id: str,
    notification_type: NotificationType,
    title: str,
    message: str,
    task_id: str | None = None,
    project_id: str | None = None,
    action_by: str | None = None,
) -> dict[str, Any]:
    """Persist a notification with its retention expiry.

    Raises:
        RuntimeError: If the store write fails
    """
    expires_at = format_timestamp(datetime.now(UTC) + timedelta(days=settings.notification_retention_days))
    return await db_client.create_record(
        collection="notifications",
        data={
            "user_id": user_id,
            "organization_id": organization_id,
            "type": notification_type,
            "title": title,
            "message": message,
            "task_id": task_id,
            "project_id": project_id,
            "action_by": action_by,
            "is_read": False,
            "expires_at": expires_at,
        },
    )


async def _deliver(**fields: Any) -> dict[str, Any] | None:  # noqa: ANN401
    """Persist one notification, then push it. Returns None if persistence failed."""
    try:
        notification = await create_notification(**fields)
    except RuntimeError:
        logger.exception(
            "Failed to persist notification",
            extra={"user_id": fields.get("user_id"), "type": fields.get("notification_type")},
        )
        return None

    try:
        pushed = await realtime.push_channel.deliver(notification["user_id"], notification)
    except Exception:
        logger.warning("Push failed for notification %s", notification["id"], exc_info=True)
        pushed = False

    logger.debug("Delivered notification %s to %s (pushed=%s)", notification["id"], notification["user_id"], pushed)
    return notification


# Event notifications


async def notify_task_assigned(
    *,
    actor: Actor,
    task_id: str,
    task_name: str,
    project_name: str,
    assigned_designer: str,
    design_lead: str | None,
) -> list[dict[str, Any]]:
    """Notify the newly assigned designer and the design lead."""
    with span("notification_service.notify_task_assigned"):
        recipients = [assigned_designer]
        if design_lead and design_lead not in recipients:
            recipients.append(design_lead)

        assigner = await _display_name(actor.user_id)
        delivered = []
        for user_id in recipients:
            notification = await _deliver(
                user_id=user_id,
                organization_id=actor.organization_id,
                notification_type=NotificationType.TASK_ASSIGNED,
                title="New Task Assigned",
                message=f'{assigner} assigned you to "{task_name}" in project "{project_name}"',
                task_id=task_id,
                action_by=actor.user_id,
            )
            if notification:
                delivered.append(notification)
        return delivered


async def notify_status_change(
    *,
    actor: Actor,
    task_id: str,
    task_name: str,
    old_status: str,
    new_status: str,
    assigned_designer: str | None,
    design_lead: str | None,
    assigned_am: str | None,
) -> list[dict[str, Any]]:
    """Notify the counterpart roles of the actor about a status change."""
    with span("notification_service.notify_status_change"):
        recipients = recipients_for_actor(
            actor=actor,
            assigned_designer=assigned_designer,
            design_lead=design_lead,
            assigned_am=assigned_am,
        )
        if not recipients:
            return []

        changed_by = await _display_name(actor.user_id)
        message = (
            f'{changed_by} changed status of "{task_name}" '
            f"from {_humanize_status(old_status)} to {_humanize_status(new_status)}"
        )
        delivered = []
        for user_id in recipients:
            notification = await _deliver(
                user_id=user_id,
                organization_id=actor.organization_id,
                notification_type=NotificationType.TASK_STATUS_CHANGED,
                title="Task Status Updated",
                message=message,
                task_id=task_id,
                action_by=actor.user_id,
            )
            if notification:
                delivered.append(notification)
        return delivered


async def notify_designer_change(
    *,
    actor: Actor,
    task_id: str,
    task_name: str,
    old_designer: str,
    new_designer: str,
    design_lead: str | None,
) -> list[dict[str, Any]]:
    """Notify the old designer, the new designer and the design lead (unless the lead made the change)."""
    with span("notification_service.notify_designer_change"):
        changed_by, old_name, new_name = await asyncio.gather(
            _display_name(actor.user_id),
            _display_name(old_designer, "another designer"),
            _display_name(new_designer, "another designer"),
        )

        messages = [
            (old_designer, "Task Reassigned", f'{changed_by} reassigned "{task_name}" from you to {new_name}'),
            (new_designer, "Task Assigned to You", f'{changed_by} reassigned "{task_name}" from {old_name} to you'),
        ]
        if design_lead and design_lead != actor.user_id:
            lead_message = f'{changed_by} reassigned "{task_name}" from {old_name} to {new_name}'
            messages.append((design_lead, "Designer Changed", lead_message))

        delivered = []
        for user_id, title, message in messages:
            notification = await _deliver(
                user_id=user_id,
                organization_id=actor.organization_id,
                notification_type=NotificationType.DESIGNER_CHANGED,
                title=title,
                message=message,
                task_id=task_id,
                action_by=actor.user_id,
            )
            if notification:
                delivered.append(notification)
        return delivered


async def notify_comment_added(
    *,
    actor: Actor,
    task_id: str,
    task_name: str,
    comment: str,
    assigned_designer: str | None,
    design_lead: str | None,
    assigned_am: str | None,
) -> list[dict[str, Any]]:
    """Notify the actor's counterparts about a comment. Asset-only entries notify nobody."""
    with span("notification_service.notify_comment_added"):
        text = comment.strip()
        if not text:
            return []

        recipients = recipients_for_actor(
            actor=actor,
            assigned_designer=assigned_designer,
            design_lead=design_lead,
            assigned_am=assigned_am,
        )
        if not recipients:
            return []

        author = await _display_name(actor.user_id)
        delivered = []
        for user_id in recipients:
            notification = await _deliver(
                user_id=user_id,
                organization_id=actor.organization_id,
                notification_type=NotificationType.COMMENT_ADDED,
                title="New Comment",
                message=f'{author} commented on "{task_name}": {comment_preview(text)}',
                task_id=task_id,
                action_by=actor.user_id,
            )
            if notification:
                delivered.append(notification)
        return delivered


# Inbox


def _inbox_filter(actor: Actor) -> str:
    return (
        f'user_id = "{sanitize_param(actor.user_id)}" '
        f'&& organization_id = "{sanitize_param(actor.organization_id)}" '
        f'&& expires_at > "{utc_now()}"'
    )


async def list_notifications(
    *,
    actor: Actor,
    limit: int = Constants.DEFAULT_NOTIFICATION_LIMIT,
    unread_only: bool = False,
) -> list[dict[str, Any]]:
    """The actor's unexpired notifications, newest first."""
    with span("notification_service.list_notifications"):
        filter_query = _inbox_filter(actor)
        if unread_only:
            filter_query += " && is_read = false"
        return await db_client.list_records(
            collection="notifications",
            filter_query=filter_query,
            sort="-created",
            per_page=limit,
        )


async def count_unread(*, actor: Actor) -> int:
    """Number of the actor's unexpired, unread notifications."""
    return await db_client.count_records(
        collection="notifications",
        filter_query=f"{_inbox_filter(actor)} && is_read = false",
    )


async def _get_owned(actor: Actor, notification_id: str) -> dict[str, Any]:
    try:
        notification = await db_client.get_record(collection="notifications", record_id=notification_id)
    except KeyError:
        raise NotFoundError("Notification not found") from None
    if notification.get("user_id") != actor.user_id or notification.get("organization_id") != actor.organization_id:
        raise NotFoundError("Notification not found")
    return notification


async def mark_read(*, actor: Actor, notification_id: str) -> dict[str, Any]:
    """Mark one of the actor's notifications as read.

    Raises:
        NotFoundError: If it does not exist or belongs to someone else
    """
    with span("notification_service.mark_read"):
        await _get_owned(actor, notification_id)
        return await db_client.update_record(
            collection="notifications",
            record_id=notification_id,
            data={"is_read": True},
        )


async def mark_all_read(*, actor: Actor) -> int:
    """Mark every unread notification of the actor as read. Returns the count."""
    with span("notification_service.mark_all_read"):
        count = await db_client.update_records(
            collection="notifications",
            filter_query=(
                f'user_id = "{sanitize_param(actor.user_id)}" '
                f'&& organization_id = "{sanitize_param(actor.organization_id)}" && is_read = false'
            ),
            data={"is_read": True},
        )
        logger.info("Marked %d notifications read for user %s", count, actor.user_id)
        return count


async def delete_notification(*, actor: Actor, notification_id: str) -> None:
    """Delete one of the actor's notifications.

    Raises:
        NotFoundError: If it does not exist or belongs to someone else
    """
    with span("notification_service.delete_notification"):
        await _get_owned(actor, notification_id)
        await db_client.delete_record(collection="notifications", record_id=notification_id)


async def purge_expired(*, now: datetime | None = None) -> int:
    """Delete every notification past its expiry. Returns the count."""
    with span("notification_service.purge_expired"):
        cutoff = format_timestamp(now or datetime.now(UTC))
        count = await db_client.delete_records(
            collection="notifications",
            filter_query=f'expires_at <= "{cutoff}"',
        )
        logger.info("Purged %d expired notifications", count)
        return count
