"""
Websocket endpoint for live updates.

Clients connect to ``/ws?token=<jwt>`` and are placed in their private room,
the all-users room and every update room. Incoming ``join``, ``leave`` and
``ping`` messages are answered on the same socket.

The socket is exempt from the browser Origin allow-list; the token is the
only credential, so native clients that send no Origin can connect.
"""
import asyncio
import json

from quart import Blueprint, websocket
from quart_cors import cors_exempt

from dms.services.realtime import handle_client_message, hub
from dms.utils.auth_utils import load_user_from_token
from dms.utils.logging_utils import logger

realtime_bp = Blueprint("realtime", __name__)

POLICY_VIOLATION = 1008


async def _pump(connection):
    while True:
        payload = await connection.queue.get()
        await websocket.send(json.dumps(payload, default=str))


@realtime_bp.websocket("/ws")
@cors_exempt
async def live_updates():
    token = websocket.args.get("token", "")
    user = load_user_from_token(token) if token else None
    if user is None:
        await websocket.close(POLICY_VIOLATION, "Invalid or expired token")
        return

    await websocket.accept()
    connection = hub.register(user.id, user.username, user.role)
    connection.push({"event": "connected", "data": {"user_id": user.id, "rooms": sorted(connection.rooms)}})
    sender = asyncio.ensure_future(_pump(connection))
    try:
        while True:
            raw = await websocket.receive()
            try:
                message = json.loads(raw)
            except (TypeError, ValueError):
                message = None
            reply = handle_client_message(connection, message)
            if reply:
                connection.push(reply)
    except asyncio.CancelledError:
        logger.debug(f"[Realtime] websocket for {user.username} closed")
        raise
    finally:
        sender.cancel()
        hub.unregister(connection)
