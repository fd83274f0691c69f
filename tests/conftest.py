"""Pytest configuration and shared fixtures."""

import logfire
import pytest

from studioflow.core import db_client
from studioflow.core.config import settings
from studioflow.interface import realtime
from studioflow.services import notification_service
from tests.unit.mocks import RecordingPushChannel


# Keep spans local during tests
logfire.configure(send_to_logfire=False, console=False)


@pytest.fixture
async def test_db(tmp_path, monkeypatch):
    """Fresh SQLite document store in a temporary directory."""
    monkeypatch.setattr(settings, "sqlite_db_path", str(tmp_path / "studioflow_test.db"))
    await db_client.init_db()
    yield
    # Background notification dispatches still use the connection
    await notification_service.drain()
    await db_client.close_connection()


@pytest.fixture
def push_channel(monkeypatch):
    """Replaces the Redis-backed push channel with a recorder."""
    channel = RecordingPushChannel()
    monkeypatch.setattr(realtime, "push_channel", channel)
    return channel
