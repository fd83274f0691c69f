"""Unit tests for role classification and the actor descriptor."""

import pytest
from pydantic import ValidationError

from studioflow.domain.actor import Actor, ActorRole, classify_role, normalize_role_text


@pytest.mark.unit
@pytest.mark.parametrize(
    ("role_text", "expected"),
    [
        ("Design Head", ActorRole.DESIGN_HEAD),
        ("Senior_Design_Lead", ActorRole.DESIGN_LEAD),
        ("design-lead", ActorRole.DESIGN_LEAD),
        ("AM", ActorRole.ACCOUNT_MANAGER),
        ("Senior AM", ActorRole.ACCOUNT_MANAGER),
        ("Account Manager", ActorRole.ACCOUNT_MANAGER),
        ("Graphic Designer", ActorRole.DESIGNER),
        ("3D Designer", ActorRole.DESIGNER),
        ("GM", ActorRole.GENERAL_MANAGER),
        ("General Manager", ActorRole.GENERAL_MANAGER),
        ("Copywriter", ActorRole.MEMBER),
        ("Program Manager", ActorRole.MEMBER),
        ("", ActorRole.MEMBER),
        (None, ActorRole.MEMBER),
    ],
)
def test_classify_role(role_text, expected):
    """Test that free-text role labels map to the expected actor role."""
    assert classify_role(role_text) == expected


@pytest.mark.unit
def test_admin_flag_wins():
    """Test that the admin flag overrides the role text."""
    assert classify_role("Graphic Designer", is_admin=True) == ActorRole.ADMIN


@pytest.mark.unit
def test_normalize_role_text():
    """Test that separators and punctuation collapse to single spaces."""
    assert normalize_role_text("  Senior_Design-Lead / NYC ") == "senior design lead nyc"


@pytest.mark.unit
class TestActor:
    def test_from_context_classifies_once(self):
        """Test that from_context classifies the role text into the actor."""
        actor = Actor.from_context(organization_id="org1", user_id="u1", role_text="Design Lead")

        assert actor.role == ActorRole.DESIGN_LEAD
        assert actor.is_supervisor
        assert not actor.is_admin

    @pytest.mark.parametrize(
        ("role", "supervisor"),
        [
            (ActorRole.ADMIN, True),
            (ActorRole.DESIGN_HEAD, True),
            (ActorRole.DESIGN_LEAD, True),
            (ActorRole.DESIGNER, False),
            (ActorRole.ACCOUNT_MANAGER, False),
            (ActorRole.GENERAL_MANAGER, False),
            (ActorRole.MEMBER, False),
        ],
    )
    def test_supervisor_roles(self, role, supervisor):
        """Test that only admins, design heads and design leads are supervisors."""
        assert Actor(organization_id="org1", user_id="u1", role=role).is_supervisor is supervisor

    def test_actor_is_immutable(self):
        """Test that an actor cannot be changed after creation."""
        actor = Actor(organization_id="org1", user_id="u1")

        with pytest.raises(ValidationError):
            actor.role = ActorRole.ADMIN
