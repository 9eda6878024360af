"""Pairing business logic: PIN sessions from creation to credential issuance.

    pending  --verify_pin-->        verified  --complete_pairing-->  completed
    pending  --sweep (expires_at)-> expired
    verified --sweep (verified ttl)-> expired

Sessions are single-use. Every transition is a conditional write in the
store, so a sweep racing a verify or complete call cannot corrupt state.
"""

import asyncio
import logging
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from homepair.config import Settings, settings as default_settings
from homepair.errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from homepair.models.client import DEVICE_TYPES, Client
from homepair.models.pairing import PAIRING_PENDING, PAIRING_VERIFIED, PairingSession
from homepair.services.client_store import ClientStore
from homepair.services import notifications
from homepair.services.notifications import NotificationRegistry
from homepair.services.token_service import TokenService, validate_areas
from homepair.utils.dates import utcnow
from homepair.utils.security import generate_pin

logger = logging.getLogger(__name__)

PIN_PATTERN = re.compile(r"^\d{6}$")
MAX_NAME_LENGTH = 100

# One message for every verify failure so callers cannot tell which check failed.
INVALID_PIN_MESSAGE = "Invalid or expired PIN"


@dataclass(frozen=True)
class CreatedSession:
    id: str
    pin: str
    expires_at: datetime


@dataclass(frozen=True)
class CompletedPairing:
    client: Client
    token_id: str
    credential: str  # plaintext; never retrievable again


@dataclass(frozen=True)
class SweepResult:
    expired: int
    purged: int


def _validate_name(value, field: str) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", field=field)
    value = value.strip()
    if not 1 <= len(value) <= MAX_NAME_LENGTH:
        raise ValidationError(f"{field} must be 1-{MAX_NAME_LENGTH} characters", field=field)
    return value


class PairingSessionManager:
    def __init__(
        self,
        store: ClientStore,
        tokens: TokenService,
        registry: NotificationRegistry,
        settings: Settings = default_settings,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._tokens = tokens
        self._registry = registry
        self._settings = settings
        self._clock = clock

    def _verified_cutoff(self, now: datetime) -> datetime:
        return now - timedelta(seconds=self._settings.pairing_verified_expire_seconds)

    # --- Admin: create ---

    def create_session(self, created_by: str | None = None) -> CreatedSession:
        """Start a pending session. The PIN is only ever returned from here."""
        now = self._clock()
        expires_at = now + timedelta(seconds=self._settings.pin_expire_seconds)
        record = self._store.create_pairing_session(generate_pin(), now, expires_at)
        logger.info("Pairing session %s created by %s", record.id, created_by or "admin")
        return CreatedSession(id=record.id, pin=record.pin, expires_at=record.expires_at)

    # --- Public: verify ---

    async def verify_pin(
        self,
        session_id: str,
        pin,
        device_name,
        device_type,
    ) -> PairingSession:
        if not isinstance(pin, str) or not PIN_PATTERN.match(pin):
            raise ValidationError("PIN must be 6 digits", field="pin")
        device_name = _validate_name(device_name, "device_name")
        if device_type not in DEVICE_TYPES:
            raise ValidationError(
                f"device_type must be one of: {', '.join(DEVICE_TYPES)}", field="device_type"
            )

        now = self._clock()
        record = await asyncio.to_thread(self._store.get_pairing_session, session_id)
        if record is None:
            logger.warning("Pairing verify for unknown session %s", session_id)
            raise AuthenticationError(INVALID_PIN_MESSAGE)

        if not secrets.compare_digest(record.pin, pin):
            logger.warning("Pairing verify with wrong PIN for session %s", session_id)
            raise AuthenticationError(INVALID_PIN_MESSAGE)

        verified = await asyncio.to_thread(
            self._store.mark_session_verified, session_id, device_name, device_type, now,
        )
        if not verified:
            expired = await asyncio.to_thread(
                self._store.expire_session_if_due, session_id, now, self._verified_cutoff(now),
            )
            if expired:
                logger.info("Pairing session %s expired before verification", session_id)
            else:
                logger.warning("Pairing verify for session %s in state %s", session_id, record.status)
            raise AuthenticationError(INVALID_PIN_MESSAGE)

        logger.info("Pairing session %s verified: %s (%s)", session_id, device_name, device_type)
        await self._registry.notify_admins(notifications.PAIRING_VERIFIED, {
            "session_id": session_id,
            "device_name": device_name,
            "device_type": device_type,
        })
        return await asyncio.to_thread(self._store.get_pairing_session, session_id)

    # --- Admin: complete ---

    async def complete_pairing(
        self,
        session_id: str,
        client_name,
        assigned_areas,
        completed_by: str | None = None,
    ) -> CompletedPairing:
        client_name = _validate_name(client_name, "client_name")
        areas = validate_areas(assigned_areas)

        record = await asyncio.to_thread(self._store.get_pairing_session, session_id)
        if record is None:
            raise NotFoundError("Pairing session")
        if record.status != PAIRING_VERIFIED:
            logger.warning("Complete requested for session %s in state %s", session_id, record.status)
            raise ConflictError("Pairing session must be verified before completion")

        now = self._clock()
        client = Client(
            name=client_name,
            device_type=record.device_type or "other",
            assigned_areas=areas,
            created_at=now,
        )
        issued = self._tokens.mint(client.id, areas)

        if not await asyncio.to_thread(self._store.complete_pairing, session_id, client, issued.token, now):
            logger.warning("Session %s left verified state before completion", session_id)
            raise ConflictError("Pairing session must be verified before completion")

        logger.info(
            "Pairing completed: %s -> client %s (%s) by %s",
            session_id, client.id, client_name, completed_by or "admin",
        )

        # Normally a no-op: the device only connects once it holds the credential.
        await self._registry.notify(client.id, notifications.PAIRING_COMPLETED, {
            "session_id": session_id,
            "client_id": client.id,
            "client_name": client.name,
            "token": issued.credential,
            "assigned_areas": areas,
            "message": "Pairing completed successfully",
        })
        return CompletedPairing(client=client, token_id=issued.token.id, credential=issued.credential)

    # --- Status / cancel ---

    def get_status(self, session_id: str) -> PairingSession:
        """Current session state, expiring it first if it is past due."""
        now = self._clock()
        record = self._store.get_pairing_session(session_id)
        if record is None:
            raise NotFoundError("Pairing session")
        if record.status in (PAIRING_PENDING, PAIRING_VERIFIED):
            if self._store.expire_session_if_due(session_id, now, self._verified_cutoff(now)):
                record = self._store.get_pairing_session(session_id)
        return record

    def cancel_session(self, session_id: str, cancelled_by: str | None = None) -> None:
        if not self._store.delete_pairing_session(session_id):
            raise NotFoundError("Pairing session")
        logger.info("Pairing session %s cancelled by %s", session_id, cancelled_by or "admin")

    # --- Sweep ---

    def sweep(self) -> SweepResult:
        """Expire due sessions and purge terminal ones past the retention window."""
        now = self._clock()
        expired = self._store.expire_due_sessions(now, self._verified_cutoff(now))
        purged = self._store.purge_terminal_sessions(
            now - timedelta(seconds=self._settings.pairing_retention_seconds)
        )
        if expired or purged:
            logger.info("Pairing sweep: %d expired, %d purged", expired, purged)
        return SweepResult(expired=expired, purged=purged)

