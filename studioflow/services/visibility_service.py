"""Task visibility predicates derived from the actor's role."""

import logging

from studioflow.core.config import settings
from studioflow.core.db_client import join_filters, sanitize_param
from studioflow.core.errors import AccessDeniedError
from studioflow.domain.actor import Actor, ActorRole


logger = logging.getLogger(__name__)


def organization_filter(actor: Actor) -> str:
    """Tenant predicate every task query starts from."""
    return f'organization_id = "{sanitize_param(actor.organization_id)}"'


def task_visibility_filter(actor: Actor) -> str:
    """Filter expression selecting the tasks an actor may list or act on.

    - Admins and design heads see every task of the organization.
    - Design leads see the same, unless ``design_lead_scoped_visibility`` is
      enabled, in which case they see tasks they lead, tasks they are
      assigned to, and unassigned tasks.
    - Everyone else sees tasks where they are the assigned designer or the
      design lead.
    """
    user = sanitize_param(actor.user_id)
    tenant = organization_filter(actor)

    if actor.role in {ActorRole.ADMIN, ActorRole.DESIGN_HEAD}:
        return tenant

    if actor.role == ActorRole.DESIGN_LEAD:
        if not settings.design_lead_scoped_visibility:
            return tenant
        return join_filters(
            tenant,
            f'design_lead = "{user}" || assigned_designer = "{user}" || assigned_designer = null',
        )

    return join_filters(tenant, f'assigned_designer = "{user}" || design_lead = "{user}"')


def unassigned_tasks_filter(actor: Actor) -> str:
    """Filter expression for tasks awaiting a designer.

    Raises:
        AccessDeniedError: If the actor is not an admin, design head or design lead
    """
    if not actor.is_supervisor:
        logger.info("Unassigned task view denied for user %s with role %s", actor.user_id, actor.role)
        msg = "Only Design Head or Design Lead can view unassigned tasks"
        raise AccessDeniedError(msg)
    return join_filters(organization_filter(actor), "assigned_designer = null")
