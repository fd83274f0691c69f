"""HTTP routes for the notification inbox."""

from typing import Any

from fastapi import APIRouter, Depends, Query

from studioflow.core.config import Constants
from studioflow.domain.actor import Actor
from studioflow.interface.dependencies import get_actor, require_admin
from studioflow.services import notification_service


router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("")
async def list_notifications(
    actor: Actor = Depends(get_actor),
    limit: int = Query(default=Constants.DEFAULT_NOTIFICATION_LIMIT, ge=1, le=200),
    unread_only: bool = False,
) -> dict[str, Any]:
    notifications = await notification_service.list_notifications(actor=actor, limit=limit, unread_only=unread_only)
    return {"success": True, "data": notifications}


@router.get("/unread-count")
async def unread_count(actor: Actor = Depends(get_actor)) -> dict[str, Any]:
    return {"success": True, "data": {"count": await notification_service.count_unread(actor=actor)}}


@router.patch("/read-all")
async def mark_all_read(actor: Actor = Depends(get_actor)) -> dict[str, Any]:
    count = await notification_service.mark_all_read(actor=actor)
    return {"success": True, "data": {"updated": count}, "message": "All notifications marked as read"}


@router.post("/purge-expired")
async def purge_expired(_actor: Actor = Depends(require_admin)) -> dict[str, Any]:
    return {"success": True, "data": {"deleted": await notification_service.purge_expired()}}


@router.patch("/{notification_id}/read")
async def mark_read(notification_id: str, actor: Actor = Depends(get_actor)) -> dict[str, Any]:
    notification = await notification_service.mark_read(actor=actor, notification_id=notification_id)
    return {"success": True, "data": notification, "message": "Notification marked as read"}


@router.delete("/{notification_id}")
async def delete_notification(notification_id: str, actor: Actor = Depends(get_actor)) -> dict[str, Any]:
    await notification_service.delete_notification(actor=actor, notification_id=notification_id)
    return {"success": True, "message": "Notification deleted"}
