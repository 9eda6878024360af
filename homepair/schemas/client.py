"""Client and client token schemas."""

from typing import Optional

from pydantic import BaseModel


# --- Clients ---

class ClientResponse(BaseModel):
    id: str
    name: str
    device_type: str
    assigned_areas: list[str]
    is_active: bool
    connected: bool
    created_at: str
    last_seen_at: Optional[str]


class ClientUpdateRequest(BaseModel):
    name: Optional[str] = None
    assigned_areas: Optional[list[str]] = None


class ClientRevokeResponse(BaseModel):
    client_id: str
    revoked_tokens: int
    disconnected: bool
    message: str


# --- Tokens ---

class TokenCreateRequest(BaseModel):
    client_id: str
    assigned_areas: list[str] = []
    revoke_existing: bool = False


class TokenCreateResponse(BaseModel):
    token_id: str
    token: str  # only returned on creation
    client_id: str
    assigned_areas: list[str]
    expires_at: str


class TokenResponse(BaseModel):
    id: str
    client_id: str
    assigned_areas: list[str]
    created_at: str
    expires_at: str
    last_used_at: Optional[str]
    is_revoked: bool
    revoked_at: Optional[str]
    revoked_reason: Optional[str]


class TokenListResponse(BaseModel):
    tokens: list[TokenResponse]
    count: int


class TokenRevokeRequest(BaseModel):
    reason: Optional[str] = None


class TokenRevokeResponse(BaseModel):
    token_id: str
    client_id: str
    revoked_at: Optional[str]
    reason: Optional[str]
    disconnected: bool


class TokenScopeRequest(BaseModel):
    assigned_areas: list[str]


class TokenStatsResponse(BaseModel):
    total_tokens: int
    active_tokens: int
    revoked_tokens: int
    expired_tokens: int
    recently_used_tokens: int


class TokenCleanupResponse(BaseModel):
    cleaned_count: int
    message: str
