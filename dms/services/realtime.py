"""
In-process publish/subscribe hub behind the ``/ws`` websocket.

Each websocket connection owns a bounded asyncio.Queue; publishers push
payloads onto the queues of connections in the target room and never block.
When a slow client's queue is full the oldest pending payload is dropped.
"""
import asyncio
from datetime import datetime
from typing import Dict, Iterable, Optional, Set

from dms.utils.logging_utils import logger

ALL_USERS = "all_users"
ADMIN_USERS = "admin_users"
MANAGER_USERS = "manager_users"
SALES_USERS = "sales_users"
VEHICLE_UPDATES = "vehicle_updates"
CUSTOMER_UPDATES = "customer_updates"
LEAD_UPDATES = "lead_updates"
JOB_UPDATES = "job_updates"
APPOINTMENT_UPDATES = "appointment_updates"
DASHBOARD_UPDATES = "dashboard_updates"
NOTIFICATION_UPDATES = "notification_updates"

UPDATE_ROOMS = [
    VEHICLE_UPDATES,
    CUSTOMER_UPDATES,
    LEAD_UPDATES,
    JOB_UPDATES,
    APPOINTMENT_UPDATES,
    DASHBOARD_UPDATES,
    NOTIFICATION_UPDATES,
]

ROLE_ROOMS = {
    "admin": ADMIN_USERS,
    "manager": MANAGER_USERS,
    "salesperson": SALES_USERS,
}

JOINABLE_ROOMS = set(UPDATE_ROOMS) | {ALL_USERS}

QUEUE_SIZE = 256


def user_room(user_id: int) -> str:
    return f"user_{user_id}"


class Connection:
    def __init__(self, user_id: int, username: str, role: str, queue_size: int = QUEUE_SIZE):
        self.user_id = user_id
        self.username = username
        self.role = role
        self.rooms: Set[str] = set()
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.connected_at = datetime.utcnow()
        self.dropped = 0

    def push(self, payload: dict):
        if self.queue.full():
            self.queue.get_nowait()
            self.dropped += 1
        self.queue.put_nowait(payload)


class RealtimeHub:
    def __init__(self):
        self._connections: Set[Connection] = set()

    def register(self, user_id: int, username: str, role: str) -> Connection:
        connection = Connection(user_id, username, role)
        connection.rooms.update([ALL_USERS, user_room(user_id), *UPDATE_ROOMS])
        if role in ROLE_ROOMS:
            connection.rooms.add(ROLE_ROOMS[role])
        self._connections.add(connection)
        logger.info(f"[Realtime] {username} ({user_id}) connected, {len(self._connections)} open")
        return connection

    def unregister(self, connection: Connection):
        self._connections.discard(connection)
        logger.info(
            f"[Realtime] {connection.username} ({connection.user_id}) disconnected, "
            f"{len(self._connections)} open, {connection.dropped} dropped"
        )

    def join(self, connection: Connection, room: str) -> bool:
        if room not in JOINABLE_ROOMS:
            return False
        connection.rooms.add(room)
        return True

    def leave(self, connection: Connection, room: str) -> bool:
        if room == user_room(connection.user_id):
            return False
        connection.rooms.discard(room)
        return True

    def publish(self, event: str, data, room: str = ALL_USERS,
                exclude_user_id: Optional[int] = None, user=None) -> int:
        """Queue an event for every connection in ``room``. Returns the number of recipients."""
        payload = {
            "event": event,
            "data": data,
            "room": room,
            "timestamp": datetime.utcnow().isoformat() + "Z",
        }
        if user is not None:
            payload["user_id"] = user.id
            payload["username"] = user.username

        delivered = 0
        for connection in list(self._connections):
            if room not in connection.rooms or connection.user_id == exclude_user_id:
                continue
            connection.push(payload)
            delivered += 1
        logger.debug(f"[Realtime] {event} -> {room}: {delivered} connection(s)")
        return delivered

    def send_to_users(self, user_ids: Iterable[int], event: str, data) -> Dict[int, int]:
        """Publish to each user's private room; maps user id to live connection count."""
        return {user_id: self.publish(event, data, room=user_room(user_id)) for user_id in user_ids}

    def is_online(self, user_id: int) -> bool:
        return any(c.user_id == user_id for c in self._connections)

    def status(self) -> dict:
        rooms: Dict[str, int] = {}
        for connection in self._connections:
            for room in connection.rooms:
                rooms[room] = rooms.get(room, 0) + 1
        return {
            "connections": len(self._connections),
            "users": len({c.user_id for c in self._connections}),
            "rooms": rooms,
        }

    def clear(self):
        self._connections.clear()


hub = RealtimeHub()


def broadcast_dashboard_update(reason: str, user=None):
    hub.publish("dashboard:stats_updated", {"reason": reason}, room=DASHBOARD_UPDATES, user=user)


def broadcast_change(room: str, event: str, data, user=None, refresh_dashboard: bool = False):
    """Publish an entity change and optionally nudge dashboards to refetch."""
    hub.publish(event, data, room=room, user=user)
    if refresh_dashboard:
        broadcast_dashboard_update(event, user=user)


def handle_client_message(connection: Connection, message) -> Optional[dict]:
    """Apply a join/leave/ping message from a client and return the reply payload."""
    if not isinstance(message, dict):
        return {"event": "error", "data": {"message": "Messages must be JSON objects"}}

    kind = message.get("type")
    room = message.get("room")
    if kind == "ping":
        return {"event": "pong", "data": {}, "timestamp": datetime.utcnow().isoformat() + "Z"}
    if kind in ("join", "leave"):
        if not isinstance(room, str) or not room:
            return {"event": "error", "data": {"message": f"{kind} requires a room"}}
        ok = hub.join(connection, room) if kind == "join" else hub.leave(connection, room)
        if not ok:
            return {"event": "error", "data": {"message": f"Cannot {kind} room {room}"}}
        event = "room_joined" if kind == "join" else "room_left"
        return {"event": event, "data": {"room": room}}
    return {"event": "error", "data": {"message": f"Unknown message type: {kind}"}}
