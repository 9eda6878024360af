"""Bearer credential -> authenticated principal, for both HTTP and WebSocket callers.

Two steps, kept apart on purpose:

1. ``peek_role`` reads the unverified ``role`` claim to pick a verification
   path. It proves nothing about the caller.
2. The chosen path verifies the signature (and, for clients, the token row in
   the store) before any principal is returned.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Union

import jwt

from homepair.config import Settings, settings as default_settings
from homepair.errors import AuthenticationError, HomePairError
from homepair.services.client_store import ClientStore
from homepair.services.token_service import TokenService
from homepair.utils.dates import utcnow
from homepair.utils.security import (
    ROLE_ADMIN,
    ROLE_CLIENT,
    create_admin_token,
    decode_token,
    hash_password,
    peek_role,
    verify_password,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AdminPrincipal:
    username: str


@dataclass(frozen=True)
class ClientPrincipal:
    client_id: str
    assigned_areas: list[str] = field(default_factory=list)
    token_id: str | None = None


Principal = Union[AdminPrincipal, ClientPrincipal]


def route_for(credential: str | None) -> str | None:
    """Pick the verification path for a credential: 'admin', 'client' or None."""
    if not credential:
        return None
    role = peek_role(credential)
    if role in (ROLE_ADMIN, ROLE_CLIENT):
        return role
    return None


class UnifiedAuthGate:
    def __init__(
        self,
        tokens: TokenService,
        store: ClientStore,
        settings: Settings = default_settings,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._tokens = tokens
        self._store = store
        self._settings = settings
        self._clock = clock
        self._admin_password_hash = hash_password(settings.admin_password)

    def authenticate(self, credential: str | None) -> Principal:
        """Resolve a bearer credential. Every failure is the same AuthenticationError."""
        if not credential:
            logger.debug("Authentication rejected: no credential")
            raise AuthenticationError()

        role = route_for(credential)
        try:
            if role == ROLE_ADMIN:
                return self._authenticate_admin(credential)
            if role == ROLE_CLIENT:
                return self._authenticate_client(credential)
        except AuthenticationError:
            raise
        except HomePairError as e:
            logger.error("Authentication failed on %s path: %s", role, e.message)
            raise AuthenticationError() from e

        logger.warning("Authentication rejected: unknown or missing role")
        raise AuthenticationError()

    def _authenticate_admin(self, credential: str) -> AdminPrincipal:
        try:
            claims = decode_token(credential, settings=self._settings)
        except jwt.ExpiredSignatureError:
            logger.warning("Admin token rejected: expired")
            raise AuthenticationError()
        except jwt.PyJWTError as e:
            logger.warning("Admin token rejected: %s", e)
            raise AuthenticationError()

        username = claims.get("sub")
        if claims.get("role") != ROLE_ADMIN or not isinstance(username, str) or not username:
            logger.warning("Admin token rejected: bad claims")
            raise AuthenticationError()
        return AdminPrincipal(username=username)

    def _authenticate_client(self, credential: str) -> ClientPrincipal:
        verified = self._tokens.verify(credential)

        now = self._clock()
        found = self._store.find_usable_token(self._tokens.hash(credential), now)
        if found is None:
            logger.warning("Client token for %s not found, revoked, expired or client inactive", verified.client_id)
            raise AuthenticationError()

        token, client = found
        if token.client_id != verified.client_id:
            logger.warning("Client token row belongs to %s, claims say %s", token.client_id, verified.client_id)
            raise AuthenticationError()

        self._store.record_token_use(token.id, client.id, now)
        logger.debug("Client authenticated: %s (%d areas)", client.id, len(token.assigned_areas))
        return ClientPrincipal(
            client_id=client.id,
            assigned_areas=list(token.assigned_areas),
            token_id=token.id,
        )

    # --- Admin login ---

    def login(self, username: str, password: str) -> str:
        """Check the configured admin account and return a fresh admin token."""
        user_ok = username == self._settings.admin_username
        password_ok = verify_password(password, self._admin_password_hash)
        if not (user_ok and password_ok):
            logger.warning("Failed login attempt for user: %s", username)
            raise AuthenticationError("Invalid credentials")
        logger.info("Admin logged in: %s", username)
        return create_admin_token(username, settings=self._settings)
