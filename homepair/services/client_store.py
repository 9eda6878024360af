"""Persistence for pairing sessions, clients, client tokens and areas.

Every method opens its own short session, so each call is one transaction.
State transitions that can race with the background sweep are written as
conditional UPDATEs; the returned row count decides who won.
"""

import logging
from datetime import datetime

from sqlalchemy import delete, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, col, func, select

from homepair.errors import ConflictError, InternalError
from homepair.models.area import Area
from homepair.models.client import Client, ClientToken
from homepair.models.pairing import (
    PAIRING_COMPLETED,
    PAIRING_EXPIRED,
    PAIRING_PENDING,
    PAIRING_TERMINAL_STATES,
    PAIRING_VERIFIED,
    PairingSession,
)

logger = logging.getLogger(__name__)


class ClientStore:
    """SQLModel-backed store. Safe to share across requests and the sweeper."""

    def __init__(self, engine: Engine):
        self._engine = engine

    def _session(self) -> Session:
        return Session(self._engine, expire_on_commit=False)

    def _write(self, session: Session, stmt) -> int:
        """Execute a conditional UPDATE/DELETE and return the affected row count."""
        try:
            result = session.connection().execute(stmt)
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("Store write failed: %s", e)
            raise InternalError("Storage failure") from e
        return result.rowcount or 0

    # --- Pairing sessions ---

    def create_pairing_session(self, pin: str, created_at: datetime, expires_at: datetime) -> PairingSession:
        record = PairingSession(pin=pin, created_at=created_at, expires_at=expires_at)
        with self._session() as session:
            session.add(record)
            session.commit()
        return record

    def get_pairing_session(self, session_id: str) -> PairingSession | None:
        with self._session() as session:
            return session.get(PairingSession, session_id)

    def mark_session_verified(
        self,
        session_id: str,
        device_name: str,
        device_type: str,
        now: datetime,
    ) -> bool:
        """pending -> verified, only while the session is still inside its window."""
        stmt = (
            update(PairingSession)
            .where(
                PairingSession.id == session_id,
                PairingSession.status == PAIRING_PENDING,
                PairingSession.expires_at > now,
            )
            .values(
                status=PAIRING_VERIFIED,
                device_name=device_name,
                device_type=device_type,
                verified_at=now,
            )
        )
        with self._session() as session:
            changed = self._write(session, stmt)
            session.commit()
        return changed == 1

    def complete_pairing(
        self,
        session_id: str,
        client: Client,
        token: ClientToken,
        now: datetime,
    ) -> bool:
        """verified -> completed, creating the client and its token in the same transaction.

        Returns False (and writes nothing) if the session left ``verified`` first.
        """
        stmt = (
            update(PairingSession)
            .where(
                PairingSession.id == session_id,
                PairingSession.status == PAIRING_VERIFIED,
            )
            .values(
                status=PAIRING_COMPLETED,
                assigned_areas=list(client.assigned_areas),
                client_id=client.id,
                completed_at=now,
            )
        )
        with self._session() as session:
            if self._write(session, stmt) != 1:
                session.rollback()
                return False
            session.add(client)
            session.flush()
            session.add(token)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                logger.error("Failed to persist paired client %s: %s", client.id, e)
                raise InternalError("Storage failure") from e
        return True

    def expire_session_if_due(
        self,
        session_id: str,
        now: datetime,
        verified_before: datetime | None = None,
    ) -> bool:
        with self._session() as session:
            changed = self._write(session, self._expire_stmt(now, verified_before, session_id))
            session.commit()
        return changed == 1

    def expire_due_sessions(self, now: datetime, verified_before: datetime | None = None) -> int:
        """Mark pending sessions past ``expires_at`` (and stale verified ones) expired."""
        with self._session() as session:
            changed = self._write(session, self._expire_stmt(now, verified_before))
            session.commit()
        return changed

    @staticmethod
    def _expire_stmt(now: datetime, verified_before: datetime | None, session_id: str | None = None):
        due = (PairingSession.status == PAIRING_PENDING) & (PairingSession.expires_at <= now)
        if verified_before is not None:
            due = due | (
                (PairingSession.status == PAIRING_VERIFIED)
                & (PairingSession.verified_at <= verified_before)
            )
        stmt = update(PairingSession).where(due)
        if session_id is not None:
            stmt = stmt.where(PairingSession.id == session_id)
        return stmt.values(status=PAIRING_EXPIRED)

    def purge_terminal_sessions(self, before: datetime) -> int:
        stmt = delete(PairingSession).where(
            col(PairingSession.status).in_(PAIRING_TERMINAL_STATES),
            PairingSession.created_at < before,
        )
        with self._session() as session:
            deleted = self._write(session, stmt)
            session.commit()
        return deleted

    def delete_pairing_session(self, session_id: str) -> bool:
        stmt = delete(PairingSession).where(PairingSession.id == session_id)
        with self._session() as session:
            deleted = self._write(session, stmt)
            session.commit()
        return deleted == 1

    # --- Clients ---

    def get_client(self, client_id: str, active_only: bool = False) -> Client | None:
        with self._session() as session:
            client = session.get(Client, client_id)
        if client is None or (active_only and not client.is_active):
            return None
        return client

    def list_clients(self, active_only: bool = True) -> list[Client]:
        query = select(Client)
        if active_only:
            query = query.where(Client.is_active == True)  # noqa: E712
        query = query.order_by(col(Client.created_at).desc())
        with self._session() as session:
            return list(session.exec(query).all())

    def list_active_clients_with_area(self, area_id: str) -> list[Client]:
        """Linear scan over active clients; fleets are tens to hundreds of devices."""
        return [c for c in self.list_clients(active_only=True) if area_id in (c.assigned_areas or [])]

    def update_client(
        self,
        client_id: str,
        name: str | None = None,
        assigned_areas: list[str] | None = None,
    ) -> Client | None:
        """Rename and/or reassign areas on an active client.

        A new area list is also written to the client's non-revoked tokens, which
        carry the scope used for live authorization.
        """
        with self._session() as session:
            client = session.get(Client, client_id)
            if client is None or not client.is_active:
                return None
            if name is not None:
                client.name = name
            if assigned_areas is not None:
                client.assigned_areas = list(assigned_areas)
                self._write(
                    session,
                    update(ClientToken)
                    .where(ClientToken.client_id == client_id, ClientToken.is_revoked == False)  # noqa: E712
                    .values(assigned_areas=list(assigned_areas)),
                )
            session.add(client)
            session.commit()
            session.refresh(client)
        return client

    def deactivate_client(self, client_id: str, reason: str, now: datetime) -> int | None:
        """Soft-delete a client and revoke every token it holds.

        Returns the number of tokens revoked, or None if the client was not active.
        """
        with self._session() as session:
            changed = self._write(
                session,
                update(Client)
                .where(Client.id == client_id, Client.is_active == True)  # noqa: E712
                .values(is_active=False),
            )
            if not changed:
                return None
            revoked = self._write(session, self._revoke_client_stmt(client_id, reason, now))
            session.commit()
        return revoked

    # --- Client tokens ---

    def add_token(self, token: ClientToken) -> ClientToken:
        with self._session() as session:
            session.add(token)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                logger.error("Failed to store token for client %s: %s", token.client_id, e)
                raise ConflictError("Token could not be stored") from e
        return token

    def get_token(self, token_id: str) -> ClientToken | None:
        with self._session() as session:
            return session.get(ClientToken, token_id)

    def list_tokens(self, client_id: str | None = None) -> list[ClientToken]:
        query = select(ClientToken)
        if client_id:
            query = query.where(ClientToken.client_id == client_id)
        query = query.order_by(col(ClientToken.created_at).desc())
        with self._session() as session:
            return list(session.exec(query).all())

    def list_active_tokens(self, client_id: str, now: datetime) -> list[ClientToken]:
        query = select(ClientToken).where(
            ClientToken.client_id == client_id,
            ClientToken.is_revoked == False,  # noqa: E712
            ClientToken.expires_at > now,
        )
        with self._session() as session:
            return list(session.exec(query).all())

    def find_usable_token(self, token_hash: str, now: datetime) -> tuple[ClientToken, Client] | None:
        """Non-revoked, non-expired token whose client is still active."""
        query = (
            select(ClientToken, Client)
            .join(Client, Client.id == ClientToken.client_id)
            .where(
                ClientToken.token_hash == token_hash,
                ClientToken.is_revoked == False,  # noqa: E712
                ClientToken.expires_at > now,
                Client.is_active == True,  # noqa: E712
            )
        )
        with self._session() as session:
            row = session.exec(query).first()
        if row is None:
            return None
        token, client = row
        return token, client

    def record_token_use(self, token_id: str, client_id: str, now: datetime) -> None:
        """Stamp ``last_used_at`` on the token and ``last_seen_at`` on its client."""
        with self._session() as session:
            self._write(session, update(ClientToken).where(ClientToken.id == token_id).values(last_used_at=now))
            self._write(session, update(Client).where(Client.id == client_id).values(last_seen_at=now))
            session.commit()

    def revoke_token_by_hash(self, token_hash: str, reason: str, now: datetime) -> bool:
        stmt = (
            update(ClientToken)
            .where(ClientToken.token_hash == token_hash, ClientToken.is_revoked == False)  # noqa: E712
            .values(is_revoked=True, revoked_at=now, revoked_reason=reason)
        )
        with self._session() as session:
            changed = self._write(session, stmt)
            session.commit()
        return changed == 1

    def revoke_client_tokens(self, client_id: str, reason: str, now: datetime) -> int:
        with self._session() as session:
            changed = self._write(session, self._revoke_client_stmt(client_id, reason, now))
            session.commit()
        return changed

    @staticmethod
    def _revoke_client_stmt(client_id: str, reason: str, now: datetime):
        return (
            update(ClientToken)
            .where(ClientToken.client_id == client_id, ClientToken.is_revoked == False)  # noqa: E712
            .values(is_revoked=True, revoked_at=now, revoked_reason=reason)
        )

    def update_token_areas(self, token_id: str, assigned_areas: list[str]) -> bool:
        stmt = (
            update(ClientToken)
            .where(ClientToken.id == token_id, ClientToken.is_revoked == False)  # noqa: E712
            .values(assigned_areas=list(assigned_areas))
        )
        with self._session() as session:
            changed = self._write(session, stmt)
            session.commit()
        return changed == 1

    def delete_expired_tokens(self, now: datetime) -> int:
        with self._session() as session:
            deleted = self._write(session, delete(ClientToken).where(ClientToken.expires_at <= now))
            session.commit()
        return deleted

    def token_stats(self, now: datetime, recent_since: datetime) -> dict[str, int]:
        def count(*conditions) -> int:
            query = select(func.count()).select_from(ClientToken)
            if conditions:
                query = query.where(*conditions)
            return session.exec(query).one()

        with self._session() as session:
            return {
                "total": count(),
                "active": count(ClientToken.is_revoked == False, ClientToken.expires_at > now),  # noqa: E712
                "revoked": count(ClientToken.is_revoked == True),  # noqa: E712
                "expired": count(ClientToken.expires_at <= now),
                "recently_used": count(ClientToken.last_used_at > recent_since),
            }

    # --- Areas ---

    def create_area(self, name: str, entity_ids: list[str], is_enabled: bool = True) -> Area:
        area = Area(name=name, entity_ids=list(entity_ids), is_enabled=is_enabled)
        with self._session() as session:
            session.add(area)
            session.commit()
        return area

    def get_area(self, area_id: str) -> Area | None:
        with self._session() as session:
            return session.get(Area, area_id)

    def list_areas(self, area_ids: list[str] | None = None) -> list[Area]:
        query = select(Area)
        if area_ids is not None:
            query = query.where(col(Area.id).in_(area_ids))
        query = query.order_by(col(Area.created_at))
        with self._session() as session:
            return list(session.exec(query).all())

    def update_area(
        self,
        area_id: str,
        name: str | None = None,
        entity_ids: list[str] | None = None,
        is_enabled: bool | None = None,
    ) -> Area | None:
        with self._session() as session:
            area = session.get(Area, area_id)
            if area is None:
                return None
            if name is not None:
                area.name = name
            if entity_ids is not None:
                area.entity_ids = list(entity_ids)
            if is_enabled is not None:
                area.is_enabled = is_enabled
            session.add(area)
            session.commit()
            session.refresh(area)
        return area

    def delete_area(self, area_id: str) -> bool:
        """Delete an area and drop it from every client and token scope."""
        with self._session() as session:
            area = session.get(Area, area_id)
            if area is None:
                return False
            for client in session.exec(select(Client)).all():
                if area_id in (client.assigned_areas or []):
                    client.assigned_areas = [a for a in client.assigned_areas if a != area_id]
                    session.add(client)
            for token in session.exec(select(ClientToken).where(ClientToken.is_revoked == False)).all():  # noqa: E712
                if area_id in (token.assigned_areas or []):
                    token.assigned_areas = [a for a in token.assigned_areas if a != area_id]
                    session.add(token)
            session.delete(area)
            session.commit()
        return True
