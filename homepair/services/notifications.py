"""In-memory registry of live client connections and targeted event fan-out.

Delivery is best-effort: nothing is queued for clients that are not
connected, and send failures are logged rather than raised to the admin
action that triggered them. The registry is process-local and is rebuilt as
clients reconnect after a restart.
"""

import asyncio
import logging
from typing import Any, Protocol

from homepair.config import Settings, settings as default_settings
from homepair.services.client_store import ClientStore
from homepair.utils.dates import isoformat, utcnow

logger = logging.getLogger(__name__)

# Event types
CONNECTED = "connected"
PAIRING_VERIFIED = "pairing_verified"
PAIRING_COMPLETED = "pairing_completed"
AREA_ADDED = "area_added"
AREA_REMOVED = "area_removed"
AREA_UPDATED = "area_updated"
AREA_ENABLED = "area_enabled"
AREA_DISABLED = "area_disabled"
TOKEN_REVOKED = "token_revoked"

REVOKED_CLOSE_CODE = 4003


class ConnectionHandle(Protocol):
    """What the registry needs from a live connection (a Starlette WebSocket fits)."""

    async def send_json(self, data: Any) -> None: ...

    async def close(self, code: int = 1000, reason: str | None = None) -> None: ...


class NotificationRegistry:
    """Maps client_id -> its current connection. At most one handle per client."""

    def __init__(self, store: ClientStore, settings: Settings = default_settings):
        self._store = store
        self._settings = settings
        self._clients: dict[str, ConnectionHandle] = {}
        self._admins: set[ConnectionHandle] = set()
        self._pending: set[asyncio.Task] = set()

    # --- Registration ---

    async def register(self, client_id: str, handle: ConnectionHandle) -> None:
        """Track ``handle`` for ``client_id``, replacing any earlier one."""
        previous = self._clients.get(client_id)
        self._clients[client_id] = handle
        if previous is not None and previous is not handle:
            logger.info("Client %s re-registered, replacing previous connection", client_id)
        else:
            logger.info("Client %s registered for notifications", client_id)

        await self.notify(client_id, CONNECTED, {
            "client_id": client_id,
            "message": "Connected successfully",
            "features": ["area_updates", "token_management", "real_time_sync"],
        })

    def unregister(self, client_id: str, handle: ConnectionHandle | None = None) -> None:
        """Drop the association. With ``handle``, only if it is still the current one."""
        current = self._clients.get(client_id)
        if current is None:
            return
        if handle is not None and current is not handle:
            return
        del self._clients[client_id]
        logger.info("Client %s unregistered from notifications", client_id)

    def register_admin(self, handle: ConnectionHandle) -> None:
        self._admins.add(handle)

    def unregister_admin(self, handle: ConnectionHandle) -> None:
        self._admins.discard(handle)

    def is_connected(self, client_id: str) -> bool:
        return client_id in self._clients

    @property
    def connected_count(self) -> int:
        return len(self._clients)

    @property
    def admin_count(self) -> int:
        return len(self._admins)

    # --- Delivery ---

    @staticmethod
    def _envelope(event_type: str, payload: dict) -> dict:
        return {
            "type": event_type,
            "data": {**payload, "timestamp": isoformat(utcnow())},
        }

    async def _send(self, handle: ConnectionHandle, message: dict, target: str) -> bool:
        try:
            await asyncio.wait_for(
                handle.send_json(message),
                timeout=self._settings.notify_send_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning("Timed out sending '%s' to %s", message["type"], target)
            return False
        except Exception as e:
            logger.warning("Failed to send '%s' to %s: %s", message["type"], target, e)
            return False
        return True

    async def notify(self, client_id: str, event_type: str, payload: dict) -> bool:
        """Push an event to one client. No-op (False) when it is not connected."""
        handle = self._clients.get(client_id)
        if handle is None:
            logger.debug("Client %s not connected, dropping '%s'", client_id, event_type)
            return False
        logger.info("Emitting '%s' to client %s", event_type, client_id)
        return await self._send(handle, self._envelope(event_type, payload), f"client {client_id}")

    async def notify_by_area(self, area_id: str, event_type: str, payload: dict) -> int:
        """Notify every active client whose assigned areas contain ``area_id``.

        Returns the number of clients the event was delivered to.
        """
        try:
            clients = await asyncio.to_thread(self._store.list_active_clients_with_area, area_id)
        except Exception as e:
            logger.error("Could not resolve clients for area %s: %s", area_id, e)
            return 0

        logger.info("Notifying %d client(s) with area %s of '%s'", len(clients), area_id, event_type)
        delivered = 0
        for client in clients:
            if await self.notify(client.id, event_type, {**payload, "area_id": area_id}):
                delivered += 1
        return delivered

    async def notify_admins(self, event_type: str, payload: dict) -> int:
        message = self._envelope(event_type, payload)
        delivered = 0
        for handle in list(self._admins):
            if await self._send(handle, message, "admin connection"):
                delivered += 1
            else:
                self._admins.discard(handle)
        return delivered

    async def disconnect_client(self, client_id: str, reason: str) -> bool:
        """Send a final ``token_revoked`` event, then close after a short grace delay."""
        handle = self._clients.get(client_id)
        if handle is None:
            logger.debug("Client %s not connected, nothing to disconnect", client_id)
            return False

        logger.warning("Disconnecting client %s: %s", client_id, reason)
        await self._send(
            handle,
            self._envelope(TOKEN_REVOKED, {
                "reason": reason,
                "message": "Your access token has been revoked. Please re-pair your device.",
            }),
            f"client {client_id}",
        )

        task = asyncio.create_task(self._close_later(client_id, handle, reason))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return True

    async def _close_later(self, client_id: str, handle: ConnectionHandle, reason: str) -> None:
        await asyncio.sleep(self._settings.disconnect_grace_seconds)
        try:
            await handle.close(code=REVOKED_CLOSE_CODE, reason=reason[:120])
        except Exception as e:
            logger.warning("Error closing connection for %s: %s", client_id, e)
        finally:
            self.unregister(client_id, handle)
            logger.info("Client %s disconnected and removed from tracking", client_id)

    async def drain(self) -> None:
        """Wait for pending forced disconnects to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()
        self._clients.clear()
        self._admins.clear()
