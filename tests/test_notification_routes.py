from datetime import datetime, timedelta

from dms.models import Notification, NotificationPreference, NotificationStatus
from dms.routes import notifications as notification_routes
from dms.services.realtime import hub, user_room


def _notify(session, user, status=NotificationStatus.pending, title="Hello", created_at=None, updated_at=None):
    created_at = created_at or datetime.utcnow()
    notification = Notification(
        recipient_user_id=user.id, notification_type="system", title=title, body="body",
        status=status, created_at=created_at, updated_at=updated_at or created_at,
    )
    session.add(notification)
    session.commit()
    return notification.id


async def test_list_hides_dismissed_and_other_users(client, db_session, sales_user, manager_user, sales_headers):
    _notify(db_session, sales_user, title="mine")
    _notify(db_session, sales_user, status=NotificationStatus.dismissed, title="gone")
    _notify(db_session, manager_user, title="theirs")

    listing = await (await client.get("/api/notifications", headers=sales_headers)).get_json()
    assert [n["title"] for n in listing] == ["mine"]

    unread = await (await client.get("/api/notifications?status=unread", headers=sales_headers)).get_json()
    assert len(unread) == 1

    bad = await client.get("/api/notifications?status=shouting", headers=sales_headers)
    assert bad.status_code == 400


async def test_mark_read_pushes_to_own_room(client, db_session, sales_user, manager_user, sales_headers):
    connection = hub.register(sales_user.id, sales_user.username, sales_user.role)
    mine = _notify(db_session, sales_user)
    theirs = _notify(db_session, manager_user)

    response = await client.put(f"/api/notifications/{mine}/read", headers=sales_headers)

    assert response.status_code == 200
    body = await response.get_json()
    assert body["status"] == "read"
    assert body["read_at"] is not None
    payload = connection.queue.get_nowait()
    assert (payload["event"], payload["room"]) == ("notification:read", user_room(sales_user.id))

    assert (await client.put(f"/api/notifications/{theirs}/read", headers=sales_headers)).status_code == 404


async def test_read_all_and_stats(client, db_session, sales_user, sales_headers):
    _notify(db_session, sales_user)
    _notify(db_session, sales_user, status=NotificationStatus.delivered)
    _notify(db_session, sales_user, status=NotificationStatus.dismissed)

    response = await client.post("/api/notifications/read-all", headers=sales_headers)
    assert (await response.get_json())["updated"] == 2

    stats = await (await client.get("/api/notifications/stats", headers=sales_headers)).get_json()
    assert stats["total_notifications"] == 3
    assert stats["unread_notifications"] == 0
    assert stats["read_notifications"] == 2
    assert stats["dismissed_notifications"] == 1


async def test_sync_marks_pending_delivered(client, db_session, sales_user, sales_headers):
    old = _notify(db_session, sales_user, title="old")
    _notify(db_session, sales_user, status=NotificationStatus.read, title="seen")

    response = await client.get("/api/notifications/sync", headers=sales_headers)

    body = await response.get_json()
    assert [n["title"] for n in body["notifications"]] == ["old"]
    assert body["notifications"][0]["status"] == "delivered"
    assert body["synced_at"].endswith("Z")
    db_session.expire_all()
    assert db_session.get(Notification, old).status == NotificationStatus.delivered

    since = (datetime.utcnow() + timedelta(hours=1)).isoformat()
    later = await (await client.get(f"/api/notifications/sync?since={since}", headers=sales_headers)).get_json()
    assert later["notifications"] == []

    assert (await client.get("/api/notifications/sync?since=yesterday", headers=sales_headers)).status_code == 400


async def test_sync_cursor_does_not_replay_delivered_rows(client, db_session, sales_user, sales_headers):
    _notify(db_session, sales_user)

    first = await (await client.get("/api/notifications/sync", headers=sales_headers)).get_json()
    assert len(first["notifications"]) == 1
    assert first["has_more"] is False

    second = await (await client.get("/api/notifications/sync", query_string={"since": first["synced_at"]},
                                     headers=sales_headers)).get_json()
    assert second["notifications"] == []
    assert second["synced_at"] == first["synced_at"]


async def test_sync_pages_through_a_cut_batch(client, db_session, sales_user, sales_headers, monkeypatch):
    monkeypatch.setattr(notification_routes, "SYNC_BATCH_SIZE", 2)
    start = datetime(2024, 6, 1, 9, 0)
    for minute in range(3):
        _notify(db_session, sales_user, title=f"n{minute}", created_at=start + timedelta(minutes=minute))

    first = await (await client.get("/api/notifications/sync", headers=sales_headers)).get_json()
    assert [n["title"] for n in first["notifications"]] == ["n0", "n1"]
    assert first["has_more"] is True
    assert first["synced_at"] == "2024-06-01T09:01:00Z"

    rest = await (await client.get("/api/notifications/sync", query_string={"since": first["synced_at"]},
                                   headers=sales_headers)).get_json()
    assert [n["title"] for n in rest["notifications"]] == ["n2"]
    assert rest["has_more"] is False


async def test_sync_converts_offset_timestamps_to_utc(client, db_session, sales_user, sales_headers):
    _notify(db_session, sales_user, status=NotificationStatus.read, created_at=datetime(2024, 6, 1, 10, 0))

    response = await client.get("/api/notifications/sync", query_string={"since": "2024-06-01T11:30:00+02:00"},
                                headers=sales_headers)

    assert len((await response.get_json())["notifications"]) == 1


async def test_delivered_acknowledges_pending_only(client, db_session, sales_user, sales_headers):
    pending = _notify(db_session, sales_user)
    read = _notify(db_session, sales_user, status=NotificationStatus.read)

    response = await client.post("/api/notifications/delivered",
                                 json={"notification_ids": [pending, read]}, headers=sales_headers)

    assert (await response.get_json())["updated"] == 1


async def test_preferences_default_then_update(client, db_session, sales_user, sales_headers):
    defaults = await (await client.get("/api/notifications/preferences", headers=sales_headers)).get_json()
    assert defaults["vehicle_sold_enabled"] is True
    assert defaults["vehicle_added_enabled"] is False

    response = await client.put("/api/notifications/preferences", json={"vehicle_added_enabled": True},
                                headers=sales_headers)
    assert response.status_code == 200
    assert (await response.get_json())["vehicle_added_enabled"] is True

    stored = db_session.query(NotificationPreference).filter_by(user_id=sales_user.id).one()
    assert stored.vehicle_added_enabled is True
    assert stored.vehicle_sold_enabled is True

    unknown = await client.put("/api/notifications/preferences", json={"telepathy": True}, headers=sales_headers)
    assert unknown.status_code == 400


async def test_admin_test_endpoint_includes_caller(client, admin_user, admin_headers, sales_headers):
    response = await client.post("/api/notifications/test", json={"event_type": "job.booked"},
                                 headers=admin_headers)

    body = await response.get_json()
    assert body["recipients"] == [admin_user.id]

    unknown = await client.post("/api/notifications/test", json={"event_type": "nope"}, headers=admin_headers)
    assert unknown.status_code == 400
    assert (await client.post("/api/notifications/test", json={"event_type": "job.booked"},
                              headers=sales_headers)).status_code == 403
