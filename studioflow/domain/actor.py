"""Actor descriptor and role classification."""

import re
from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class ActorRole(StrEnum):
    """Closed set of roles that drive visibility and notification routing."""

    ADMIN = "admin"
    DESIGN_HEAD = "design_head"
    DESIGN_LEAD = "design_lead"
    DESIGNER = "designer"
    ACCOUNT_MANAGER = "account_manager"
    GENERAL_MANAGER = "general_manager"
    MEMBER = "member"


SUPERVISOR_ROLES = frozenset({ActorRole.ADMIN, ActorRole.DESIGN_HEAD, ActorRole.DESIGN_LEAD})


def normalize_role_text(role_text: str | None) -> str:
    """Lowercase a free-text role and collapse separators into single spaces."""
    return " ".join(re.split(r"[\s_\-/]+", (role_text or "").lower())).strip()


def classify_role(role_text: str | None, *, is_admin: bool = False) -> ActorRole:
    """Map a free-text organization role name onto an :class:`ActorRole`.

    Examples:
        "Design Head" -> DESIGN_HEAD, "senior_design_lead" -> DESIGN_LEAD,
        "Senior AM" -> ACCOUNT_MANAGER, "Graphic Designer" -> DESIGNER,
        "GM" -> GENERAL_MANAGER, "" -> MEMBER
    """
    if is_admin:
        return ActorRole.ADMIN

    text = normalize_role_text(role_text)
    words = text.split()

    if "design head" in text:
        return ActorRole.DESIGN_HEAD
    if "design lead" in text:
        return ActorRole.DESIGN_LEAD
    if "am" in words or "account manager" in text:
        return ActorRole.ACCOUNT_MANAGER
    if "design" in text:
        return ActorRole.DESIGNER
    if "gm" in words or "general manager" in text:
        return ActorRole.GENERAL_MANAGER
    return ActorRole.MEMBER


class Actor(BaseModel):
    """Already-authenticated caller of a task operation."""

    model_config = ConfigDict(frozen=True)

    organization_id: str
    user_id: str
    role: ActorRole = ActorRole.MEMBER

    @classmethod
    def from_context(
        cls,
        *,
        organization_id: str,
        user_id: str,
        role_text: str | None = None,
        is_admin: bool = False,
    ) -> "Actor":
        """Build an actor from upstream auth context, classifying the role once."""
        return cls(
            organization_id=organization_id,
            user_id=user_id,
            role=classify_role(role_text, is_admin=is_admin),
        )

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN

    @property
    def is_supervisor(self) -> bool:
        """Admins, design heads and design leads."""
        return self.role in SUPERVISOR_ROLES
