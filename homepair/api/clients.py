"""Paired client management endpoints."""

import asyncio
import logging

from fastapi import APIRouter, Depends

from homepair.api.deps import get_services, require_admin, require_client
from homepair.errors import NotFoundError, ValidationError
from homepair.models.client import Client
from homepair.schemas.client import ClientResponse, ClientRevokeResponse, ClientUpdateRequest
from homepair.services import notifications
from homepair.services.auth_gate import AdminPrincipal, ClientPrincipal
from homepair.services.container import Services
from homepair.services.pairing_service import MAX_NAME_LENGTH
from homepair.services.token_service import validate_areas
from homepair.utils.dates import isoformat, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/clients", tags=["clients"])


def _client_to_response(client: Client, services: Services) -> ClientResponse:
    return ClientResponse(
        id=client.id,
        name=client.name,
        device_type=client.device_type,
        assigned_areas=client.assigned_areas or [],
        is_active=client.is_active,
        connected=services.registry.is_connected(client.id),
        created_at=isoformat(client.created_at),
        last_seen_at=isoformat(client.last_seen_at),
    )


async def _revoke_client(client_id: str, reason: str, services: Services) -> ClientRevokeResponse:
    revoked = await asyncio.to_thread(services.store.deactivate_client, client_id, reason, utcnow())
    if revoked is None:
        raise NotFoundError("Client")

    disconnected = await services.registry.disconnect_client(client_id, reason)
    logger.info("Client %s revoked (%d token(s)): %s", client_id, revoked, reason)
    return ClientRevokeResponse(
        client_id=client_id,
        revoked_tokens=revoked,
        disconnected=disconnected,
        message="Client access revoked",
    )


@router.get("", response_model=list[ClientResponse])
def list_clients(
    include_inactive: bool = False,
    admin: AdminPrincipal = Depends(require_admin),
    services: Services = Depends(get_services),
):
    clients = services.store.list_clients(active_only=not include_inactive)
    return [_client_to_response(c, services) for c in clients]


@router.get("/me", response_model=ClientResponse)
def get_own_client(
    principal: ClientPrincipal = Depends(require_client),
    services: Services = Depends(get_services),
):
    """The calling device's own record."""
    client = services.store.get_client(principal.client_id, active_only=True)
    if client is None:
        raise NotFoundError("Client")
    return _client_to_response(client, services)


@router.get("/{client_id}", response_model=ClientResponse)
def get_client(
    client_id: str,
    admin: AdminPrincipal = Depends(require_admin),
    services: Services = Depends(get_services),
):
    client = services.store.get_client(client_id)
    if client is None:
        raise NotFoundError("Client")
    return _client_to_response(client, services)


@router.patch("/{client_id}", response_model=ClientResponse)
async def update_client(
    client_id: str,
    request: ClientUpdateRequest,
    admin: AdminPrincipal = Depends(require_admin),
    services: Services = Depends(get_services),
):
    """Rename a client or change its areas. Area changes are pushed to the device."""
    name = None
    if request.name is not None:
        name = request.name.strip()
        if not 1 <= len(name) <= MAX_NAME_LENGTH:
            raise ValidationError(f"name must be 1-{MAX_NAME_LENGTH} characters", field="name")
    areas = validate_areas(request.assigned_areas) if request.assigned_areas is not None else None

    before = await asyncio.to_thread(services.store.get_client, client_id, active_only=True)
    if before is None:
        raise NotFoundError("Client")

    client = await asyncio.to_thread(services.store.update_client, client_id, name=name, assigned_areas=areas)
    if client is None:
        raise NotFoundError("Client")

    if areas is not None:
        previous = set(before.assigned_areas or [])
        for area_id in areas:
            if area_id not in previous:
                await services.registry.notify(client_id, notifications.AREA_ADDED, {
                    "area_id": area_id,
                    "assigned_areas": areas,
                })
        for area_id in before.assigned_areas or []:
            if area_id not in areas:
                await services.registry.notify(client_id, notifications.AREA_REMOVED, {
                    "area_id": area_id,
                    "assigned_areas": areas,
                })

    logger.info("Client %s updated by %s", client_id, admin.username)
    return _client_to_response(client, services)


@router.delete("/{client_id}", response_model=ClientRevokeResponse)
async def delete_client(
    client_id: str,
    admin: AdminPrincipal = Depends(require_admin),
    services: Services = Depends(get_services),
):
    """Soft-delete a client: deactivate, revoke every token, drop its connection."""
    return await _revoke_client(client_id, f"Client deleted by {admin.username}", services)


@router.post("/{client_id}/revoke", response_model=ClientRevokeResponse)
async def revoke_client(
    client_id: str,
    admin: AdminPrincipal = Depends(require_admin),
    services: Services = Depends(get_services),
):
    return await _revoke_client(client_id, f"Access revoked by {admin.username}", services)
