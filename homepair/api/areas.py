"""Area endpoints. Changes are pushed to every client assigned the area."""

import asyncio
import logging

from fastapi import APIRouter, Depends, status

from homepair.api.deps import get_principal, get_services, require_admin
from homepair.errors import NotFoundError, ValidationError
from homepair.models.area import Area
from homepair.schemas.area import AreaCreateRequest, AreaResponse, AreaToggleRequest, AreaUpdateRequest
from homepair.services import notifications
from homepair.services.auth_gate import AdminPrincipal, ClientPrincipal, Principal
from homepair.services.container import Services
from homepair.services.pairing_service import MAX_NAME_LENGTH
from homepair.utils.dates import isoformat

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/areas", tags=["areas"])


def _area_to_response(area: Area) -> AreaResponse:
    return AreaResponse(
        id=area.id,
        name=area.name,
        entity_ids=area.entity_ids or [],
        is_enabled=area.is_enabled,
        created_at=isoformat(area.created_at),
    )


def _area_payload(area: Area) -> dict:
    return {
        "area_name": area.name,
        "entity_ids": area.entity_ids or [],
        "is_enabled": area.is_enabled,
    }


def _clean_name(name: str) -> str:
    name = name.strip()
    if not 1 <= len(name) <= MAX_NAME_LENGTH:
        raise ValidationError(f"name must be 1-{MAX_NAME_LENGTH} characters", field="name")
    return name


def _clean_entities(entity_ids: list[str]) -> list[str]:
    cleaned: list[str] = []
    for entity_id in entity_ids:
        entity_id = entity_id.strip()
        if not entity_id:
            raise ValidationError("entity ids must be non-empty strings", field="entity_ids")
        if entity_id not in cleaned:
            cleaned.append(entity_id)
    return cleaned


@router.get("", response_model=list[AreaResponse])
def list_areas(
    principal: Principal = Depends(get_principal),
    services: Services = Depends(get_services),
):
    """All areas for admins; a client only sees the areas it is assigned."""
    if isinstance(principal, ClientPrincipal):
        areas = services.store.list_areas(principal.assigned_areas)
    else:
        areas = services.store.list_areas()
    return [_area_to_response(a) for a in areas]


@router.post("", response_model=AreaResponse, status_code=status.HTTP_201_CREATED)
def create_area(
    request: AreaCreateRequest,
    admin: AdminPrincipal = Depends(require_admin),
    services: Services = Depends(get_services),
):
    area = services.store.create_area(
        _clean_name(request.name), _clean_entities(request.entity_ids), request.is_enabled,
    )
    logger.info("Area %s (%s) created by %s", area.id, area.name, admin.username)
    return _area_to_response(area)


@router.get("/{area_id}", response_model=AreaResponse)
def get_area(
    area_id: str,
    principal: Principal = Depends(get_principal),
    services: Services = Depends(get_services),
):
    # Unassigned areas look missing to clients
    if isinstance(principal, ClientPrincipal) and area_id not in principal.assigned_areas:
        raise NotFoundError("Area")
    area = services.store.get_area(area_id)
    if area is None:
        raise NotFoundError("Area")
    return _area_to_response(area)


@router.patch("/{area_id}", response_model=AreaResponse)
async def update_area(
    area_id: str,
    request: AreaUpdateRequest,
    admin: AdminPrincipal = Depends(require_admin),
    services: Services = Depends(get_services),
):
    name = _clean_name(request.name) if request.name is not None else None
    entity_ids = _clean_entities(request.entity_ids) if request.entity_ids is not None else None

    area = await asyncio.to_thread(services.store.update_area, area_id, name=name, entity_ids=entity_ids)
    if area is None:
        raise NotFoundError("Area")

    await services.registry.notify_by_area(area_id, notifications.AREA_UPDATED, _area_payload(area))
    return _area_to_response(area)


@router.patch("/{area_id}/toggle", response_model=AreaResponse)
async def toggle_area(
    area_id: str,
    request: AreaToggleRequest,
    admin: AdminPrincipal = Depends(require_admin),
    services: Services = Depends(get_services),
):
    """Enable or disable an area without changing client assignments."""
    area = await asyncio.to_thread(services.store.update_area, area_id, is_enabled=request.is_enabled)
    if area is None:
        raise NotFoundError("Area")

    event = notifications.AREA_ENABLED if area.is_enabled else notifications.AREA_DISABLED
    logger.info("Area %s %s by %s", area_id, event.split("_")[1], admin.username)
    await services.registry.notify_by_area(area_id, event, _area_payload(area))
    return _area_to_response(area)


@router.delete("/{area_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_area(
    area_id: str,
    admin: AdminPrincipal = Depends(require_admin),
    services: Services = Depends(get_services),
):
    """Delete an area and remove it from every client's scope."""
    area = await asyncio.to_thread(services.store.get_area, area_id)
    if area is None:
        raise NotFoundError("Area")

    # Assignments are stripped by the delete, so resolve recipients first
    await services.registry.notify_by_area(area_id, notifications.AREA_REMOVED, {
        "area_name": area.name,
        "message": "Area was deleted",
    })
    if not await asyncio.to_thread(services.store.delete_area, area_id):
        raise NotFoundError("Area")
    logger.info("Area %s deleted by %s", area_id, admin.username)
