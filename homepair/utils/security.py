"""Security utilities: JWT signing, credential hashing, PIN generation."""

import hashlib
import secrets
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt

from homepair.config import Settings, settings as default_settings

ROLE_ADMIN = "admin"
ROLE_CLIENT = "client"


# --- Password Hashing ---

def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, hashed: str) -> bool:
    return bcrypt.checkpw(password.encode(), hashed.encode())


# --- JWT Tokens ---

def create_admin_token(
    username: str,
    expires_minutes: int | None = None,
    settings: Settings = default_settings,
) -> str:
    """Short-lived admin session token. Stateless: nothing is stored."""
    now = datetime.now(timezone.utc)
    minutes = settings.admin_token_expire_minutes if expires_minutes is None else expires_minutes
    payload = {
        "sub": username,
        "role": ROLE_ADMIN,
        "iat": now,
        "exp": now + timedelta(minutes=minutes),
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_client_token(
    client_id: str,
    assigned_areas: list[str],
    expires_at: datetime,
    settings: Settings = default_settings,
) -> str:
    """Long-lived client credential. ``jti`` keeps two credentials for one client distinct."""
    payload = {
        "client_id": client_id,
        "role": ROLE_CLIENT,
        "type": ROLE_CLIENT,
        "assigned_areas": list(assigned_areas),
        "iat": datetime.now(timezone.utc),
        "exp": expires_at,
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Settings = default_settings) -> dict:
    """Decode and validate a JWT. Raises jwt.PyJWTError on failure."""
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
        issuer=settings.jwt_issuer,
        audience=settings.jwt_audience,
        options={"require": ["exp", "iss", "aud"]},
    )


def peek_role(token: str) -> str | None:
    """Read the ``role`` claim WITHOUT verifying the signature.

    Only used to choose a verification path; the result establishes no trust.
    Returns None for anything that is not a decodable JWT with a string role.
    """
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return None
    role = claims.get("role")
    return role if isinstance(role, str) else None


# --- PIN ---

def generate_pin() -> str:
    """Generate a random 6-digit PIN, uniform over [100000, 999999]."""
    num = secrets.randbelow(900000) + 100000
    return str(num)


# --- Token Hash ---

def hash_token(token: str) -> str:
    """One-way fingerprint of a credential, used as its storage key."""
    return hashlib.sha256(token.encode()).hexdigest()
