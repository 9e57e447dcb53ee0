import asyncio

import pytest
from sqlalchemy import select

from edubus.core.exceptions import NotFoundError
from edubus.core.security import Role
from edubus.models.notification import Notification, NotificationType
from edubus.services.notification_hub import NotificationHub
from edubus.services.notifications import (
    create_notification,
    list_notifications_for,
    mark_notification_read,
    notification_to_event_payload,
)


class FakeSocket:
    def __init__(self, *, fail: bool = False):
        self.fail = fail
        self.accepted = False
        self.sent: list[dict] = []

    async def accept(self):
        self.accepted = True

    async def send_json(self, payload):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(payload)


def test_hub_delivers_by_audience_and_drops_stale_sockets():
    hub = NotificationHub()
    healthy = FakeSocket()
    stale = FakeSocket(fail=True)
    other = FakeSocket()

    async def scenario():
        await hub.connect("admin", healthy)
        await hub.connect("admin", stale)
        await hub.connect("driver", other)
        await hub.publish("admin", {"event": "notification.created"})

    asyncio.run(scenario())

    assert healthy.accepted is True
    assert healthy.sent == [{"event": "notification.created"}]
    assert other.sent == []
    assert hub.connection_count("admin") == 1


def test_create_notification_persists_and_serializes(db):
    record = create_notification(
        db,
        audience_role=Role.scheduler,
        title="Trips generated",
        message="14 trips created",
        notification_type=NotificationType.trip,
        related_entity_type="Schedule",
        related_entity_id="schedule-1",
        details={"generated": 14},
    )
    db.commit()

    stored = db.execute(select(Notification)).scalar_one()
    assert stored.id == record.id
    payload = notification_to_event_payload(stored)
    assert payload["event"] == "notification.created"
    assert payload["notification"]["audience_role"] == "scheduler"
    assert payload["notification"]["details"] == {"generated": 14}


def test_read_state_is_tracked_per_reader(db):
    record = create_notification(
        db,
        audience_role=Role.admin,
        title="Schedule updated",
        message="Morning Pickup now starts at 06:30",
        deliver_realtime=False,
    )
    db.commit()

    notification, read_at = mark_notification_read(db, record.id, principal_id="admin-1", audience_role=Role.admin)
    assert notification.id == record.id
    _, again = mark_notification_read(db, record.id, principal_id="admin-1", audience_role=Role.admin)
    assert again == read_at

    [(_, first_reader)] = list_notifications_for(db, principal_id="admin-1", audience_role=Role.admin)
    [(_, second_reader)] = list_notifications_for(db, principal_id="admin-2", audience_role=Role.admin)
    assert first_reader is not None
    assert second_reader is None
    assert list_notifications_for(db, principal_id="admin-2", audience_role=Role.admin, is_read=True) == []
    assert list_notifications_for(db, principal_id="admin-1", audience_role=Role.admin, is_read=False) == []


def test_marking_another_roles_notification_is_not_found(db):
    record = create_notification(
        db, audience_role=Role.admin, title="Cascade", message="3 trips cancelled", deliver_realtime=False
    )
    db.commit()

    with pytest.raises(NotFoundError):
        mark_notification_read(db, record.id, principal_id="driver-1", audience_role=Role.driver)
