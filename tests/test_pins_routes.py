from datetime import datetime, timedelta

from dms.models import PinnedMessage
from dms.services.realtime import ALL_USERS, hub


async def _pin(client, headers, **values):
    body = {"title": "Notice", "content": "Staff meeting at 9", **values}
    response = await client.post("/api/pinned-messages", json=body, headers=headers)
    assert response.status_code == 201, await response.get_data(as_text=True)
    return await response.get_json()


async def test_private_pins_reach_targets_only(client, manager_headers, sales_user, sales_headers,
                                               user_factory, headers_for):
    outsider = user_factory("outsider", "salesperson")
    await _pin(client, manager_headers, title="Public")
    await _pin(client, manager_headers, title="Private", is_public=False, target_user_ids=[sales_user.id])

    seen_by_target = await (await client.get("/api/pinned-messages", headers=sales_headers)).get_json()
    assert {p["title"] for p in seen_by_target} == {"Public", "Private"}

    seen_by_outsider = await (await client.get("/api/pinned-messages",
                                               headers=headers_for(outsider))).get_json()
    assert [p["title"] for p in seen_by_outsider] == ["Public"]

    seen_by_author = await (await client.get("/api/pinned-messages", headers=manager_headers)).get_json()
    assert len(seen_by_author) == 2


async def test_pins_sort_by_priority_and_hide_expired(client, db_session, manager_user, sales_headers):
    now = datetime.utcnow()
    db_session.add_all([
        PinnedMessage(title="normal", content="c", author_id=manager_user.id, priority="normal"),
        PinnedMessage(title="urgent", content="c", author_id=manager_user.id, priority="urgent"),
        PinnedMessage(title="expired", content="c", author_id=manager_user.id, priority="urgent",
                      expires_at=now - timedelta(minutes=1)),
        PinnedMessage(title="unpinned", content="c", author_id=manager_user.id, is_pinned=False),
    ])
    db_session.commit()

    pins = await (await client.get("/api/pinned-messages", headers=sales_headers)).get_json()

    assert [p["title"] for p in pins] == ["urgent", "normal"]


async def test_only_author_or_admin_can_edit(client, manager_headers, sales_headers, admin_headers):
    pin = await _pin(client, manager_headers)

    denied = await client.put(f"/api/pinned-messages/{pin['id']}", json={"title": "Hijack"}, headers=sales_headers)
    assert denied.status_code == 403

    edited = await client.put(f"/api/pinned-messages/{pin['id']}", json={"priority": "high"},
                              headers=manager_headers)
    assert (await edited.get_json())["priority"] == "high"

    assert (await client.delete(f"/api/pinned-messages/{pin['id']}", headers=sales_headers)).status_code == 403
    assert (await client.delete(f"/api/pinned-messages/{pin['id']}", headers=admin_headers)).status_code == 200


async def test_create_pin_validates_targets_and_broadcasts(client, manager_user, manager_headers):
    connection = hub.register(manager_user.id, manager_user.username, manager_user.role)

    bad = await client.post("/api/pinned-messages", json={
        "title": "x", "content": "y", "is_public": False, "target_user_ids": [999],
    }, headers=manager_headers)
    assert bad.status_code == 400

    await _pin(client, manager_headers)
    payload = connection.queue.get_nowait()
    assert (payload["event"], payload["room"]) == ("pinned_message_created", ALL_USERS)
    assert payload["username"] == manager_user.username


async def test_admin_sees_every_target_but_not_retired_pins(client, db_session, manager_user, sales_user,
                                                             admin_headers, sales_headers):
    now = datetime.utcnow()
    db_session.add_all([
        PinnedMessage(title="private", content="c", author_id=manager_user.id, is_public=False,
                      target_user_ids=[sales_user.id]),
        PinnedMessage(title="off", content="c", author_id=manager_user.id, is_pinned=False),
        PinnedMessage(title="old", content="c", author_id=manager_user.id, expires_at=now - timedelta(hours=1)),
    ])
    db_session.commit()

    board = await (await client.get("/api/pinned-messages", headers=admin_headers)).get_json()
    assert [p["title"] for p in board] == ["private"]

    everything = await (await client.get("/api/pinned-messages/all", headers=admin_headers)).get_json()
    assert [p["title"] for p in everything] == ["private"]
    assert (await client.get("/api/pinned-messages/all", headers=sales_headers)).status_code == 403
