"""Unit tests for notification_service module."""

import json
from datetime import UTC, datetime, timedelta

import pytest

from studioflow.core import db_client
from studioflow.core.db_client import format_timestamp
from studioflow.core.errors import NotFoundError
from studioflow.domain.actor import Actor, ActorRole
from studioflow.domain.notification import Notification, NotificationType
from studioflow.interface import realtime
from studioflow.interface.realtime import RedisPushChannel
from studioflow.services import notification_service
from tests.unit import seed
from tests.unit.mocks import FailingPushChannel, FakeRedisClient


def _actor(role: ActorRole, user_id: str) -> Actor:
    return Actor(organization_id=seed.ORG, user_id=user_id, role=role)


ROUTING = {"assigned_designer": seed.DESIGNER, "design_lead": seed.LEAD, "assigned_am": seed.AM}


@pytest.mark.unit
class TestRecipientsForActor:
    def test_account_manager_notifies_designer_and_lead(self):
        """Test that an account manager's change notifies designer and lead."""
        recipients = notification_service.recipients_for_actor(
            actor=_actor(ActorRole.ACCOUNT_MANAGER, seed.AM), **ROUTING
        )

        assert recipients == [seed.DESIGNER, seed.LEAD]

    def test_designer_notifies_am_and_lead(self):
        """Test that a designer's change notifies account manager and lead."""
        recipients = notification_service.recipients_for_actor(
            actor=_actor(ActorRole.DESIGNER, seed.DESIGNER), **ROUTING
        )

        assert recipients == [seed.AM, seed.LEAD]

    @pytest.mark.parametrize("role", [ActorRole.DESIGN_LEAD, ActorRole.DESIGN_HEAD, ActorRole.ADMIN])
    def test_supervisors_notify_am_and_designer(self, role):
        """Test that supervisors notify account manager and designer."""
        recipients = notification_service.recipients_for_actor(actor=_actor(role, seed.HEAD), **ROUTING)

        assert recipients == [seed.AM, seed.DESIGNER]

    @pytest.mark.parametrize("role", [ActorRole.GENERAL_MANAGER, ActorRole.MEMBER])
    def test_other_roles_notify_nobody(self, role):
        """Test that other roles notify nobody."""
        assert notification_service.recipients_for_actor(actor=_actor(role, seed.GM), **ROUTING) == []

    def test_actor_is_never_a_recipient(self):
        """Test that the actor is excluded from recipients."""
        recipients = notification_service.recipients_for_actor(
            actor=_actor(ActorRole.DESIGN_LEAD, seed.LEAD),
            assigned_designer=seed.LEAD,
            design_lead=seed.LEAD,
            assigned_am=seed.AM,
        )

        assert recipients == [seed.AM]

    def test_missing_and_duplicate_recipients(self):
        """Test that missing and duplicate recipients are dropped."""
        recipients = notification_service.recipients_for_actor(
            actor=_actor(ActorRole.ACCOUNT_MANAGER, seed.AM),
            assigned_designer=seed.LEAD,
            design_lead=seed.LEAD,
            assigned_am=None,
        )

        assert recipients == [seed.LEAD]


@pytest.mark.unit
def test_comment_preview_truncates():
    """Test that comment previews are cut at 100 characters."""
    assert notification_service.comment_preview("short") == "short"
    assert notification_service.comment_preview("x" * 100) == "x" * 100
    assert notification_service.comment_preview("x" * 101) == "x" * 100 + "..."


@pytest.mark.unit
class TestEventNotifications:
    async def test_status_change(self, seeded):
        """Test that a status change is persisted and pushed to each recipient."""
        delivered = await notification_service.notify_status_change(
            actor=_actor(ActorRole.ACCOUNT_MANAGER, seed.AM),
            task_id="t1",
            task_name="Poster",
            old_status="sent_to_client",
            new_status="client_feedback",
            **ROUTING,
        )

        assert [n["user_id"] for n in delivered] == [seed.DESIGNER, seed.LEAD]
        assert delivered[0]["message"] == (
            'Amy Account changed status of "Poster" from sent to client to client feedback'
        )
        assert delivered[0]["type"] == NotificationType.TASK_STATUS_CHANGED
        assert seeded.recipients() == [seed.DESIGNER, seed.LEAD]

    async def test_status_change_without_recipients(self, seeded):
        """Test that nothing is stored when there are no recipients."""
        delivered = await notification_service.notify_status_change(
            actor=_actor(ActorRole.GENERAL_MANAGER, seed.GM),
            task_id="t1",
            task_name="Poster",
            old_status="picked_up",
            new_status="draft_submitted",
            **ROUTING,
        )

        assert delivered == []
        assert await db_client.count_records(collection="notifications") == 0

    async def test_long_comment_is_previewed(self, seeded):
        """Test that long comments are previewed in the message."""
        delivered = await notification_service.notify_comment_added(
            actor=_actor(ActorRole.DESIGNER, seed.DESIGNER),
            task_id="t1",
            task_name="Poster",
            comment="a" * 150,
            **ROUTING,
        )

        assert len(delivered) == 2
        assert delivered[0]["title"] == "New Comment"
        assert delivered[0]["message"] == 'Dana Designer commented on "Poster": ' + "a" * 100 + "..."

    async def test_blank_comment_notifies_nobody(self, seeded):
        """Test that blank comments send no notification."""
        delivered = await notification_service.notify_comment_added(
            actor=_actor(ActorRole.DESIGNER, seed.DESIGNER),
            task_id="t1",
            task_name="Poster",
            comment="   ",
            **ROUTING,
        )

        assert delivered == []

    async def test_task_assigned_without_lead(self, seeded):
        """Test that an assignment without a lead notifies only the designer."""
        delivered = await notification_service.notify_task_assigned(
            actor=_actor(ActorRole.DESIGN_LEAD, seed.LEAD),
            task_id="t1",
            task_name="Poster",
            project_name="Spring Campaign",
            assigned_designer=seed.DESIGNER,
            design_lead=None,
        )

        assert [n["user_id"] for n in delivered] == [seed.DESIGNER]
        assert delivered[0]["message"] == 'Leo Lead assigned you to "Poster" in project "Spring Campaign"'

    async def test_designer_change_by_lead_skips_lead(self, seeded):
        """Test that a lead reassigning a task is not notified."""
        delivered = await notification_service.notify_designer_change(
            actor=_actor(ActorRole.DESIGN_LEAD, seed.LEAD),
            task_id="t1",
            task_name="Poster",
            old_designer=seed.DESIGNER,
            new_designer=seed.DESIGNER_2,
            design_lead=seed.LEAD,
        )

        assert [n["user_id"] for n in delivered] == [seed.DESIGNER, seed.DESIGNER_2]

    async def test_notification_record_shape(self, seeded):
        """Test that stored notifications carry owner, author and expiry."""
        delivered = await notification_service.notify_task_assigned(
            actor=_actor(ActorRole.DESIGN_LEAD, seed.LEAD),
            task_id="t1",
            task_name="Poster",
            project_name="Spring Campaign",
            assigned_designer=seed.DESIGNER,
            design_lead=None,
        )

        notification = Notification.model_validate(delivered[0])
        assert notification.organization_id == seed.ORG
        assert notification.action_by == seed.LEAD
        assert notification.is_read is False
        expires = datetime.fromisoformat(notification.expires_at.replace("Z", "+00:00"))
        assert timedelta(days=29) < expires - datetime.now(UTC) <= timedelta(days=30)

    async def test_push_failure_keeps_persisted_notification(self, seeded, monkeypatch):
        """Test that a push failure keeps the stored notification."""
        channel = FailingPushChannel()
        monkeypatch.setattr(realtime, "push_channel", channel)

        delivered = await notification_service.notify_task_assigned(
            actor=_actor(ActorRole.DESIGN_LEAD, seed.LEAD),
            task_id="t1",
            task_name="Poster",
            project_name="Spring Campaign",
            assigned_designer=seed.DESIGNER,
            design_lead=None,
        )

        assert channel.attempts == 1
        assert len(delivered) == 1
        assert await db_client.count_records(collection="notifications") == 1

    async def test_persist_failure_is_skipped(self, seeded, monkeypatch):
        """Test that a recipient whose notification cannot be stored is skipped."""
        async def broken_create(**_kwargs):
            raise RuntimeError("store offline")

        monkeypatch.setattr(notification_service, "create_notification", broken_create)

        delivered = await notification_service.notify_status_change(
            actor=_actor(ActorRole.ACCOUNT_MANAGER, seed.AM),
            task_id="t1",
            task_name="Poster",
            old_status="picked_up",
            new_status="draft_submitted",
            **ROUTING,
        )

        assert delivered == []
        assert seeded.deliveries == []


@pytest.mark.unit
class TestBackgroundDispatch:
    async def test_failures_are_logged_not_raised(self, caplog):
        """Test that background dispatch failures are logged, not raised."""
        async def explode():
            raise RuntimeError("boom")

        task = notification_service.schedule(explode(), name="explode")
        await notification_service.drain()

        assert task.done()
        assert task.exception() is None
        assert "Notification dispatch failed: explode" in caplog.text

    async def test_drain_waits_for_pending_dispatches(self):
        """Test that drain waits for scheduled dispatches."""
        finished = []

        async def slow():
            finished.append(True)

        notification_service.schedule(slow())
        await notification_service.drain()

        assert finished == [True]


@pytest.mark.unit
class TestInbox:
    async def _seed_inbox(self, user_id=seed.DESIGNER):
        created = []
        for index in range(3):
            created.append(
                await notification_service.create_notification(
                    user_id=user_id,
                    organization_id=seed.ORG,
                    notification_type=NotificationType.COMMENT_ADDED,
                    title="New Comment",
                    message=f"Comment {index}",
                    task_id="t1",
                )
            )
        return created

    async def test_list_newest_first_and_unread_count(self, seeded, designer_actor):
        """Test that the inbox lists newest first and counts unread."""
        created = await self._seed_inbox()
        await self._seed_inbox(user_id=seed.DESIGNER_2)

        listed = await notification_service.list_notifications(actor=designer_actor)

        assert [n["id"] for n in listed] == [n["id"] for n in reversed(created)]
        assert await notification_service.count_unread(actor=designer_actor) == 3
        assert len(await notification_service.list_notifications(actor=designer_actor, limit=2)) == 2

    async def test_expired_notifications_are_hidden(self, seeded, designer_actor):
        """Test that expired notifications are not listed."""
        created = await self._seed_inbox()
        past = format_timestamp(datetime.now(UTC) - timedelta(days=1))
        await db_client.update_record(collection="notifications", record_id=created[0]["id"], data={"expires_at": past})

        listed = await notification_service.list_notifications(actor=designer_actor)

        assert created[0]["id"] not in {n["id"] for n in listed}
        assert await notification_service.count_unread(actor=designer_actor) == 2

    async def test_mark_read_and_unread_only(self, seeded, designer_actor):
        """Test that read notifications drop out of the unread listing."""
        created = await self._seed_inbox()

        marked = await notification_service.mark_read(actor=designer_actor, notification_id=created[1]["id"])

        assert marked["is_read"] is True
        unread = await notification_service.list_notifications(actor=designer_actor, unread_only=True)
        assert {n["id"] for n in unread} == {created[0]["id"], created[2]["id"]}

    async def test_mark_all_read(self, seeded, designer_actor, designer2_actor):
        """Test that mark_all_read marks only the actor's notifications."""
        await self._seed_inbox()
        await self._seed_inbox(user_id=seed.DESIGNER_2)

        assert await notification_service.mark_all_read(actor=designer_actor) == 3
        assert await notification_service.mark_all_read(actor=designer_actor) == 0
        assert await notification_service.count_unread(actor=designer2_actor) == 3

    async def test_other_users_notification_is_not_found(self, seeded, designer2_actor):
        """Test that another user's notification reads as not found."""
        created = await self._seed_inbox()

        with pytest.raises(NotFoundError, match="Notification not found"):
            await notification_service.mark_read(actor=designer2_actor, notification_id=created[0]["id"])
        with pytest.raises(NotFoundError, match="Notification not found"):
            await notification_service.delete_notification(actor=designer2_actor, notification_id=created[0]["id"])

    async def test_delete_notification(self, seeded, designer_actor):
        """Test that owners can delete their notifications."""
        created = await self._seed_inbox()

        await notification_service.delete_notification(actor=designer_actor, notification_id=created[0]["id"])

        assert await notification_service.count_unread(actor=designer_actor) == 2
        with pytest.raises(NotFoundError):
            await notification_service.delete_notification(actor=designer_actor, notification_id=created[0]["id"])

    async def test_purge_expired(self, seeded):
        """Test that purge removes only expired notifications."""
        created = await self._seed_inbox()

        assert await notification_service.purge_expired() == 0
        purged = await notification_service.purge_expired(now=datetime.now(UTC) + timedelta(days=31))

        assert purged == len(created)
        assert await db_client.count_records(collection="notifications") == 0


@pytest.mark.unit
class TestRedisPushChannel:
    async def test_publishes_event_on_user_channel(self):
        """Test that the Redis channel publishes on the user's channel."""
        client = FakeRedisClient()
        channel = RedisPushChannel(client)

        assert await channel.deliver("u1", {"id": "n1", "title": "New Comment"})

        [(name, message)] = client.published
        assert name == "notifications:user:u1"
        assert json.loads(message) == {"event": "new_notification", "data": {"id": "n1", "title": "New Comment"}}

    async def test_skips_when_redis_disabled(self):
        """Test that delivery is skipped without Redis."""
        client = FakeRedisClient(available=False)

        assert not await RedisPushChannel(client).deliver("u1", {"id": "n1"})
        assert client.published == []

    async def test_failed_publish_reports_false(self):
        """Test that a failed publish reports False."""
        client = FakeRedisClient(receivers=None)

        assert not await RedisPushChannel(client).deliver("u1", {"id": "n1"})
