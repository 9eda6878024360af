"""WebSocket handler for live client notifications and admin pairing events."""

import asyncio
import json
import logging

from fastapi import WebSocket, WebSocketDisconnect

from homepair.errors import AuthenticationError
from homepair.services.auth_gate import AdminPrincipal
from homepair.services.container import Services

logger = logging.getLogger(__name__)

AUTH_FAILED_CLOSE_CODE = 4001
UNSUPPORTED_DATA_CLOSE_CODE = 1003


async def websocket_notify(ws: WebSocket, token: str | None = None):
    """Authenticate, register, then serve pings until the socket goes away."""
    services: Services = ws.app.state.services

    try:
        principal = await asyncio.to_thread(services.gate.authenticate, token)
    except AuthenticationError:
        await ws.close(code=AUTH_FAILED_CLOSE_CODE, reason="Authentication failed")
        return

    await ws.accept()
    registry = services.registry
    is_admin = isinstance(principal, AdminPrincipal)
    if is_admin:
        registry.register_admin(ws)
        logger.info("Admin %s connected for pairing events", principal.username)
    else:
        await registry.register(principal.client_id, ws)

    try:
        while True:
            message = await ws.receive()
            if message["type"] == "websocket.disconnect":
                break

            data = message.get("text")
            if data is None:
                logger.warning("Binary frame on notification socket, closing")
                await ws.close(code=UNSUPPORTED_DATA_CLOSE_CODE, reason="Text frames only")
                break

            try:
                msg = json.loads(data)
            except json.JSONDecodeError:
                await ws.send_json({"type": "error", "message": "Invalid JSON"})
                continue

            msg_type = msg.get("type", "") if isinstance(msg, dict) else ""
            if msg_type == "ping":
                await ws.send_json({"type": "pong"})
            else:
                await ws.send_json({"type": "error", "message": f"Unknown type: {msg_type}"})
    except WebSocketDisconnect:
        pass
    finally:
        if is_admin:
            registry.unregister_admin(ws)
        else:
            registry.unregister(principal.client_id, ws)
