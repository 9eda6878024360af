"""Client token management endpoints (admin only)."""

import asyncio
import logging

from fastapi import APIRouter, Depends, status

from homepair.api.deps import get_services, require_admin
from homepair.models.client import ClientToken
from homepair.schemas.client import (
    TokenCleanupResponse,
    TokenCreateRequest,
    TokenCreateResponse,
    TokenListResponse,
    TokenResponse,
    TokenRevokeRequest,
    TokenRevokeResponse,
    TokenScopeRequest,
    TokenStatsResponse,
)
from homepair.services.auth_gate import AdminPrincipal
from homepair.services.container import Services
from homepair.utils.dates import isoformat

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/client-tokens", tags=["client-tokens"])


def _token_to_response(token: ClientToken) -> TokenResponse:
    return TokenResponse(
        id=token.id,
        client_id=token.client_id,
        assigned_areas=token.assigned_areas or [],
        created_at=isoformat(token.created_at),
        expires_at=isoformat(token.expires_at),
        last_used_at=isoformat(token.last_used_at),
        is_revoked=token.is_revoked,
        revoked_at=isoformat(token.revoked_at),
        revoked_reason=token.revoked_reason,
    )


@router.post("", response_model=TokenCreateResponse, status_code=status.HTTP_201_CREATED)
def create_token(
    request: TokenCreateRequest,
    admin: AdminPrincipal = Depends(require_admin),
    services: Services = Depends(get_services),
):
    """Issue a credential for an existing client. The plaintext is returned once."""
    issued = services.tokens.issue_for_client(
        request.client_id,
        request.assigned_areas,
        revoke_existing=request.revoke_existing,
        issued_by=admin.username,
    )
    return TokenCreateResponse(
        token_id=issued.token.id,
        token=issued.credential,
        client_id=issued.token.client_id,
        assigned_areas=issued.token.assigned_areas,
        expires_at=isoformat(issued.token.expires_at),
    )


@router.get("", response_model=TokenListResponse)
def list_tokens(
    client_id: str | None = None,
    admin: AdminPrincipal = Depends(require_admin),
    services: Services = Depends(get_services),
):
    tokens = services.tokens.list_tokens(client_id)
    return TokenListResponse(tokens=[_token_to_response(t) for t in tokens], count=len(tokens))


@router.get("/stats", response_model=TokenStatsResponse)
def token_stats(
    admin: AdminPrincipal = Depends(require_admin),
    services: Services = Depends(get_services),
):
    stats = services.tokens.stats()
    return TokenStatsResponse(
        total_tokens=stats["total"],
        active_tokens=stats["active"],
        revoked_tokens=stats["revoked"],
        expired_tokens=stats["expired"],
        recently_used_tokens=stats["recently_used"],
    )


@router.post("/cleanup", response_model=TokenCleanupResponse)
def cleanup_expired_tokens(
    admin: AdminPrincipal = Depends(require_admin),
    services: Services = Depends(get_services),
):
    """Delete expired token records now instead of waiting for the sweeper."""
    count = services.tokens.sweep_expired()
    return TokenCleanupResponse(cleaned_count=count, message=f"Cleaned up {count} expired token(s)")


@router.get("/{token_id}", response_model=TokenResponse)
def get_token(
    token_id: str,
    admin: AdminPrincipal = Depends(require_admin),
    services: Services = Depends(get_services),
):
    return _token_to_response(services.tokens.get_token(token_id))


@router.post("/{token_id}/revoke", response_model=TokenRevokeResponse)
async def revoke_token(
    token_id: str,
    request: TokenRevokeRequest | None = None,
    admin: AdminPrincipal = Depends(require_admin),
    services: Services = Depends(get_services),
):
    """Revoke a token and force its client's live connection closed."""
    reason = (request.reason if request else None) or f"Revoked by {admin.username}"
    token = await asyncio.to_thread(services.tokens.revoke_token, token_id, reason)
    logger.info("Token %s of client %s revoked by %s", token.id, token.client_id, admin.username)

    disconnected = await services.registry.disconnect_client(token.client_id, reason)
    return TokenRevokeResponse(
        token_id=token.id,
        client_id=token.client_id,
        revoked_at=isoformat(token.revoked_at),
        reason=token.revoked_reason,
        disconnected=disconnected,
    )


@router.patch("/{token_id}", response_model=TokenResponse)
def update_token_scope(
    token_id: str,
    request: TokenScopeRequest,
    admin: AdminPrincipal = Depends(require_admin),
    services: Services = Depends(get_services),
):
    return _token_to_response(services.tokens.update_scope(token_id, request.assigned_areas))
