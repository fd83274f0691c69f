"""Pytest configuration and fixtures for unit tests."""

import pytest

from studioflow.domain.actor import Actor, ActorRole
from studioflow.services import task_service
from tests.unit import seed


@pytest.fixture
async def seeded(test_db, push_channel):
    """Document store populated with two organizations; returns the push recorder."""
    await seed.seed_organizations()
    return push_channel


def _actor(user_id: str, role: ActorRole, organization_id: str = seed.ORG) -> Actor:
    return Actor(organization_id=organization_id, user_id=user_id, role=role)


@pytest.fixture
def admin_actor() -> Actor:
    return _actor(seed.ADMIN, ActorRole.ADMIN)


@pytest.fixture
def head_actor() -> Actor:
    return _actor(seed.HEAD, ActorRole.DESIGN_HEAD)


@pytest.fixture
def lead_actor() -> Actor:
    return _actor(seed.LEAD, ActorRole.DESIGN_LEAD)


@pytest.fixture
def designer_actor() -> Actor:
    return _actor(seed.DESIGNER, ActorRole.DESIGNER)


@pytest.fixture
def designer2_actor() -> Actor:
    return _actor(seed.DESIGNER_2, ActorRole.DESIGNER)


@pytest.fixture
def am_actor() -> Actor:
    return _actor(seed.AM, ActorRole.ACCOUNT_MANAGER)


@pytest.fixture
def gm_actor() -> Actor:
    return _actor(seed.GM, ActorRole.GENERAL_MANAGER)


@pytest.fixture
def outsider_actor() -> Actor:
    return _actor(seed.OUTSIDER, ActorRole.DESIGNER, organization_id=seed.OTHER_ORG)


@pytest.fixture
def make_task(seeded, am_actor):
    """Factory creating a task in the seed project as the account manager."""

    async def _make(actor: Actor | None = None, project_id: str = seed.PROJECT, **overrides) -> dict:
        return await task_service.create_task(
            actor=actor or am_actor,
            project_id=project_id,
            payload=seed.task_payload(**overrides),
        )

    return _make
