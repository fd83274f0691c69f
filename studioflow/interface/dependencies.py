"""FastAPI dependencies resolving the acting user from upstream auth headers."""

import logging

from fastapi import Depends, Header, HTTPException, status

from studioflow.core.errors import AccessDeniedError
from studioflow.domain.actor import Actor


logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes"}


async def get_actor(
    x_organization_id: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
    x_admin: str | None = Header(default=None),
) -> Actor:
    """Build the actor from headers set by the authenticating gateway.

    The gateway verifies credentials; this service trusts the headers and only
    classifies the free-text role once.
    """
    if not x_organization_id or not x_user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Authentication required")

    return Actor.from_context(
        organization_id=x_organization_id,
        user_id=x_user_id,
        role_text=x_user_role,
        is_admin=(x_admin or "").strip().lower() in _TRUTHY,
    )


async def require_supervisor(actor: Actor = Depends(get_actor)) -> Actor:
    """Admins, design heads and design leads only."""
    if not actor.is_supervisor:
        raise AccessDeniedError("Only Design Head, Design Lead or an administrator can do this")
    return actor


async def require_admin(actor: Actor = Depends(get_actor)) -> Actor:
    """Administrators only."""
    if not actor.is_admin:
        raise AccessDeniedError("Administrator access required")
    return actor
