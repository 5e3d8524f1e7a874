from datetime import datetime, timedelta

import pytest

from dms.models import Notification, NotificationPreference, NotificationStatus, PinnedMessage, UserPermission
from dms.services.notification_events import (
    BASE_PREFERENCES,
    default_preferences_for_role,
    dispatch_event,
    preferences_allow,
    render_template,
    NOTIFICATION_REGISTRY,
    trigger_event,
)
from dms.services.realtime import hub
from dms.workers.maintenance_jobs import purge_old_notifications, unpin_expired_messages


def test_render_template_blanks_missing_keys():
    assert render_template("{username} sold '{registration}' - £{sale_price}",
                           {"username": "sally", "registration": None}) == "sally sold '' - £"


def test_role_defaults_layer_over_base_preferences():
    prefs = default_preferences_for_role("salesperson")

    assert prefs["vehicle_sold_enabled"] is True
    assert prefs["vehicle_added_enabled"] is False
    assert prefs["low_notifications"] is False
    assert default_preferences_for_role("marketing") == BASE_PREFERENCES


def test_preferences_allow_checks_every_flag():
    config = NOTIFICATION_REGISTRY["vehicle.sold"]
    prefs = default_preferences_for_role("manager")

    assert preferences_allow(prefs, "vehicle.sold", config)
    assert not preferences_allow({**prefs, "sales_notifications": False}, "vehicle.sold", config)
    assert not preferences_allow({**prefs, "high_notifications": False}, "vehicle.sold", config)
    assert not preferences_allow({**prefs, "vehicle_sold_enabled": False}, "vehicle.sold", config)
    assert preferences_allow({}, "vehicle.sold", config)


def test_trigger_event_targets_roles_and_skips_the_actor(db_session, admin_user, manager_user, sales_user,
                                                          user_factory):
    user_factory("marketer", "marketing")

    created = trigger_event(db_session, "vehicle.sold", {"registration": "AB12 CDE", "sale_price": "9,995.00"},
                            triggered_by=manager_user, entity_id=7)

    recipients = sorted(n.recipient_user_id for n in created)
    assert recipients == sorted([admin_user.id, sales_user.id])
    notification = created[0]
    assert notification.title == "Vehicle Sold"
    assert notification.body == "User manager marked 'AB12 CDE' as sold - £9,995.00"
    assert notification.related_entity_id == 7
    assert notification.status == NotificationStatus.pending


def test_trigger_event_respects_preferences_and_hidden_pages(db_session, admin_user, manager_user, sales_user):
    db_session.add(NotificationPreference(user_id=sales_user.id, **{
        **default_preferences_for_role("salesperson"), "sales_notifications": False,
    }))
    db_session.add(UserPermission(user_id=admin_user.id, page_key="vehicle-master", permission_level="hidden"))
    db_session.commit()

    created = trigger_event(db_session, "vehicle.sold", {"registration": "X"})

    assert [n.recipient_user_id for n in created] == [manager_user.id]


def test_trigger_event_marks_live_recipients_delivered(db_session, admin_user):
    connection = hub.register(admin_user.id, admin_user.username, admin_user.role)

    created = trigger_event(db_session, "vehicle.added", {"registration": "LIVE 1"})

    assert created[0].status == NotificationStatus.delivered
    assert created[0].delivered_at is not None
    assert connection.queue.get_nowait()["event"] == "notification:created"


def test_unknown_event_is_rejected(db_session):
    with pytest.raises(ValueError):
        trigger_event(db_session, "vehicle.exploded", {})


def test_dispatch_event_returns_count(db_session, admin_user, manager_user):
    assert dispatch_event(db_session, "vehicle.bought", {}, triggered_by=admin_user) == 1


def test_purge_old_notifications_keeps_unread(db_session, admin_user):
    now = datetime(2024, 6, 1)
    old = now - timedelta(days=120)
    for status in (NotificationStatus.read, NotificationStatus.dismissed, NotificationStatus.pending):
        db_session.add(Notification(
            recipient_user_id=admin_user.id, notification_type="system", title="t", body="b",
            status=status, created_at=old,
        ))
    db_session.add(Notification(
        recipient_user_id=admin_user.id, notification_type="system", title="t", body="b",
        status=NotificationStatus.read, created_at=now - timedelta(days=5),
    ))
    db_session.commit()

    assert purge_old_notifications(now=now, retention_days=90) == 2
    assert db_session.query(Notification).count() == 2


def test_unpin_expired_messages(db_session, admin_user):
    now = datetime(2024, 6, 1)
    db_session.add_all([
        PinnedMessage(title="old", content="c", author_id=admin_user.id, expires_at=now - timedelta(hours=1)),
        PinnedMessage(title="live", content="c", author_id=admin_user.id, expires_at=now + timedelta(hours=1)),
        PinnedMessage(title="forever", content="c", author_id=admin_user.id),
    ])
    db_session.commit()

    assert unpin_expired_messages(now=now) == 1
    db_session.expire_all()
    pinned = {m.title for m in db_session.query(PinnedMessage).filter_by(is_pinned=True)}
    assert pinned == {"live", "forever"}
