"""Client credential issuance, verification and revocation.

Credentials are HS256 JWTs signed with the process-wide ``jwt_secret``. Only
their SHA-256 digest is stored; the plaintext is handed out once.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

import jwt

from homepair.config import Settings, settings as default_settings
from homepair.errors import (
    AuthenticationError,
    ConflictError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from homepair.models.client import ClientToken
from homepair.services.client_store import ClientStore
from homepair.utils.dates import utcnow
from homepair.utils.security import ROLE_CLIENT, create_client_token, decode_token, hash_token

logger = logging.getLogger(__name__)

MAX_AREAS = 200


@dataclass(frozen=True)
class VerifiedClientToken:
    client_id: str
    assigned_areas: list[str]


@dataclass(frozen=True)
class IssuedToken:
    token: ClientToken
    credential: str  # plaintext, returned to the caller exactly once


def validate_areas(assigned_areas) -> list[str]:
    """Normalize an area list: strings only, no blanks, duplicates dropped in order."""
    if not isinstance(assigned_areas, (list, tuple)):
        raise ValidationError("assigned_areas must be a list of area ids", field="assigned_areas")
    if len(assigned_areas) > MAX_AREAS:
        raise ValidationError(f"at most {MAX_AREAS} areas may be assigned", field="assigned_areas")
    areas: list[str] = []
    for area_id in assigned_areas:
        if not isinstance(area_id, str) or not area_id.strip():
            raise ValidationError("area ids must be non-empty strings", field="assigned_areas")
        if area_id not in areas:
            areas.append(area_id)
    return areas


class TokenService:
    def __init__(
        self,
        store: ClientStore,
        settings: Settings = default_settings,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._settings = settings
        self._clock = clock

    # --- Credential primitives ---

    def issue(self, client_id: str, assigned_areas: list[str]) -> tuple[str, datetime]:
        """Sign a client credential. Returns (plaintext, expires_at)."""
        expires_at = self._clock() + timedelta(days=self._settings.client_token_expire_days)
        try:
            credential = create_client_token(client_id, assigned_areas, expires_at, settings=self._settings)
        except (jwt.PyJWTError, TypeError, ValueError) as e:
            logger.error("Failed to sign client token for %s: %s", client_id, e)
            raise InternalError("Token generation failed") from e
        logger.info("Issued client token for %s with %d area(s)", client_id, len(assigned_areas))
        return credential, expires_at

    @staticmethod
    def hash(credential: str) -> str:
        return hash_token(credential)

    def verify(self, credential: str) -> VerifiedClientToken:
        """Check signature, expiry, issuer/audience and role tags.

        Callers get one undifferentiated AuthenticationError; the cause is logged.
        """
        try:
            claims = decode_token(credential, settings=self._settings)
        except jwt.ExpiredSignatureError:
            logger.warning("Client token rejected: expired")
            raise AuthenticationError()
        except (jwt.InvalidAudienceError, jwt.InvalidIssuerError):
            logger.warning("Client token rejected: wrong issuer or audience")
            raise AuthenticationError()
        except jwt.PyJWTError as e:
            logger.warning("Client token rejected: malformed or bad signature (%s)", e)
            raise AuthenticationError()

        if claims.get("role") != ROLE_CLIENT or claims.get("type") != ROLE_CLIENT:
            logger.warning("Client token rejected: wrong role %r/%r", claims.get("role"), claims.get("type"))
            raise AuthenticationError()

        client_id = claims.get("client_id")
        areas = claims.get("assigned_areas")
        if not isinstance(client_id, str) or not client_id or not isinstance(areas, list):
            logger.warning("Client token rejected: missing client_id or assigned_areas")
            raise AuthenticationError()

        return VerifiedClientToken(client_id=client_id, assigned_areas=[str(a) for a in areas])

    def revoke(self, token_hash: str, reason: str) -> bool:
        """Idempotent: True on the first revocation, False if already revoked or unknown."""
        revoked = self._store.revoke_token_by_hash(token_hash, reason, self._clock())
        if revoked:
            logger.info("Token revoked: %s... (%s)", token_hash[:8], reason)
        else:
            logger.warning("Token not found or already revoked: %s...", token_hash[:8])
        return revoked

    def sweep_expired(self) -> int:
        deleted = self._store.delete_expired_tokens(self._clock())
        if deleted:
            logger.info("Cleaned up %d expired client token(s)", deleted)
        return deleted

    # --- Store-backed operations ---

    def mint(self, client_id: str, assigned_areas: list[str]) -> IssuedToken:
        """Sign a credential and build (but do not persist) its token record."""
        credential, expires_at = self.issue(client_id, assigned_areas)
        token = ClientToken(
            client_id=client_id,
            token_hash=self.hash(credential),
            assigned_areas=list(assigned_areas),
            created_at=self._clock(),
            expires_at=expires_at,
        )
        return IssuedToken(token=token, credential=credential)

    def issue_for_client(
        self,
        client_id: str,
        assigned_areas,
        revoke_existing: bool = False,
        issued_by: str | None = None,
    ) -> IssuedToken:
        """Issue a credential for an existing client outside the pairing flow."""
        areas = validate_areas(assigned_areas)
        if self._store.get_client(client_id, active_only=True) is None:
            raise NotFoundError("Client")

        if revoke_existing:
            reason = f"Replaced by new token from {issued_by}" if issued_by else "Replaced by new token"
            count = self._store.revoke_client_tokens(client_id, reason, self._clock())
            if count:
                logger.info("Revoked %d existing token(s) for %s", count, client_id)

        issued = self.mint(client_id, areas)
        self._store.add_token(issued.token)
        return issued

    def list_tokens(self, client_id: str | None = None) -> list[ClientToken]:
        return self._store.list_tokens(client_id)

    def get_token(self, token_id: str) -> ClientToken:
        token = self._store.get_token(token_id)
        if token is None:
            raise NotFoundError("Token")
        return token

    def revoke_token(self, token_id: str, reason: str) -> ClientToken:
        token = self.get_token(token_id)
        if token.is_revoked:
            raise ConflictError("Token already revoked")
        if not self.revoke(token.token_hash, reason):
            # Lost a race with a concurrent revocation
            raise ConflictError("Token already revoked")
        return self.get_token(token_id)

    def update_scope(self, token_id: str, assigned_areas) -> ClientToken:
        areas = validate_areas(assigned_areas)
        self.get_token(token_id)
        if not self._store.update_token_areas(token_id, areas):
            raise ConflictError("Cannot update a revoked token")
        logger.info("Token %s scope set to %d area(s)", token_id, len(areas))
        return self.get_token(token_id)

    def stats(self) -> dict[str, int]:
        now = self._clock()
        recent_since = now - timedelta(seconds=self._settings.recently_used_window_seconds)
        return self._store.token_stats(now, recent_since)
