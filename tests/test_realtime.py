from dms.services.realtime import (
    ALL_USERS,
    DASHBOARD_UPDATES,
    VEHICLE_UPDATES,
    Connection,
    RealtimeHub,
    broadcast_change,
    handle_client_message,
    hub,
    user_room,
)


def test_register_joins_default_rooms():
    local_hub = RealtimeHub()
    connection = local_hub.register(5, "sally", "salesperson")

    assert {ALL_USERS, user_room(5), VEHICLE_UPDATES, "sales_users"} <= connection.rooms
    assert local_hub.is_online(5)
    assert local_hub.status()["connections"] == 1

    local_hub.unregister(connection)
    assert not local_hub.is_online(5)


def test_publish_only_reaches_room_members():
    local_hub = RealtimeHub()
    first = local_hub.register(1, "a", "admin")
    second = local_hub.register(2, "b", "manager")
    local_hub.leave(second, VEHICLE_UPDATES)

    delivered = local_hub.publish("vehicle:created", {"id": 9}, room=VEHICLE_UPDATES)

    assert delivered == 1
    payload = first.queue.get_nowait()
    assert payload["event"] == "vehicle:created"
    assert payload["data"] == {"id": 9}
    assert payload["timestamp"].endswith("Z")
    assert second.queue.empty()


def test_full_queue_drops_oldest_payload():
    connection = Connection(1, "a", "admin", queue_size=2)
    for n in range(3):
        connection.push({"n": n})

    assert connection.dropped == 1
    assert [connection.queue.get_nowait()["n"] for _ in range(2)] == [1, 2]


def test_private_room_cannot_be_left():
    local_hub = RealtimeHub()
    connection = local_hub.register(3, "c", "office_staff")

    assert not local_hub.leave(connection, user_room(3))
    assert not local_hub.join(connection, user_room(4))
    assert user_room(3) in connection.rooms


def test_handle_client_message_join_leave_ping():
    connection = hub.register(8, "h", "manager")

    assert handle_client_message(connection, {"type": "leave", "room": DASHBOARD_UPDATES})["event"] == "room_left"
    assert DASHBOARD_UPDATES not in connection.rooms
    assert handle_client_message(connection, {"type": "join", "room": DASHBOARD_UPDATES})["event"] == "room_joined"
    assert handle_client_message(connection, {"type": "ping"})["event"] == "pong"
    assert handle_client_message(connection, {"type": "join", "room": "secret"})["event"] == "error"
    assert handle_client_message(connection, {"type": "join"})["event"] == "error"
    assert handle_client_message(connection, ["not", "an", "object"])["event"] == "error"


def test_broadcast_change_can_refresh_dashboards():
    connection = hub.register(1, "a", "admin")

    broadcast_change(VEHICLE_UPDATES, "vehicle:updated", {"id": 1}, refresh_dashboard=True)

    events = [connection.queue.get_nowait()["event"] for _ in range(2)]
    assert events == ["vehicle:updated", "dashboard:stats_updated"]


async def test_websocket_session_answers_pings(client, admin_user, admin_headers):
    token = admin_headers["Authorization"].split(" ", 1)[1]

    async with client.websocket("/ws", query_string={"token": token}) as ws:
        hello = await ws.receive_json()
        assert hello["event"] == "connected"
        assert user_room(admin_user.id) in hello["data"]["rooms"]
        assert hub.is_online(admin_user.id)

        await ws.send_json({"type": "ping"})
        assert (await ws.receive_json())["event"] == "pong"

        await ws.send("not json")
        assert (await ws.receive_json())["event"] == "error"


async def test_websocket_ignores_browser_origin_policy(client, sales_user, sales_headers):
    token = sales_headers["Authorization"].split(" ", 1)[1]

    async with client.websocket("/ws", query_string={"token": token},
                                headers={"Origin": "https://elsewhere.example"}) as ws:
        hello = await ws.receive_json()
        assert hello["data"]["user_id"] == sales_user.id
