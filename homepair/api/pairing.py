"""Pairing API endpoints.

Flow: admin creates a session and reads the PIN off the screen -> the device
submits the PIN -> admin approves with a name and areas -> device credential.
"""

from fastapi import APIRouter, Depends, status

from homepair.api.deps import client_source, get_services, require_admin
from homepair.config import settings
from homepair.models.pairing import PAIRING_PENDING
from homepair.schemas.pairing import (
    PairingCompleteRequest,
    PairingCompleteResponse,
    PairingCreateResponse,
    PairingStatusResponse,
    PairingVerifyRequest,
    PairingVerifyResponse,
)
from homepair.services.auth_gate import AdminPrincipal
from homepair.services.container import Services
from homepair.utils.dates import isoformat

router = APIRouter(prefix="/pairing", tags=["pairing"])


@router.post("", response_model=PairingCreateResponse, status_code=status.HTTP_201_CREATED)
def create_pairing_session(
    admin: AdminPrincipal = Depends(require_admin),
    services: Services = Depends(get_services),
):
    """Generate a PIN for a new pairing session (admin only)."""
    created = services.pairing.create_session(created_by=admin.username)
    return PairingCreateResponse(
        id=created.id,
        pin=created.pin,
        expires_at=isoformat(created.expires_at),
        expires_in=settings.pin_expire_seconds,
        status=PAIRING_PENDING,
    )


@router.post("/{session_id}/verify", response_model=PairingVerifyResponse)
async def verify_pairing_pin(
    session_id: str,
    request: PairingVerifyRequest,
    source: str = Depends(client_source),
    services: Services = Depends(get_services),
):
    """Submit the PIN from the pairing device. Public, rate-limited per source."""
    services.pin_limiter.check(source)
    record = await services.pairing.verify_pin(
        session_id,
        pin=request.pin,
        device_name=request.device_name,
        device_type=request.device_type,
    )
    services.pin_limiter.reset(source)
    return PairingVerifyResponse(
        session_id=record.id,
        status=record.status,
        message="PIN verified. Waiting for admin approval.",
    )


@router.post("/{session_id}/complete", response_model=PairingCompleteResponse)
async def complete_pairing(
    session_id: str,
    request: PairingCompleteRequest,
    admin: AdminPrincipal = Depends(require_admin),
    services: Services = Depends(get_services),
):
    """Approve a verified device. The credential in the response is shown only once."""
    result = await services.pairing.complete_pairing(
        session_id,
        client_name=request.client_name,
        assigned_areas=request.assigned_areas,
        completed_by=admin.username,
    )
    return PairingCompleteResponse(
        session_id=session_id,
        client_id=result.client.id,
        client_token=result.credential,
        token_id=result.token_id,
        assigned_areas=result.client.assigned_areas,
        message="Pairing completed successfully",
    )


@router.get("/{session_id}", response_model=PairingStatusResponse)
def get_pairing_status(session_id: str, services: Services = Depends(get_services)):
    """Session status for the waiting device. Never includes the PIN."""
    record = services.pairing.get_status(session_id)
    return PairingStatusResponse(
        id=record.id,
        status=record.status,
        device_name=record.device_name,
        device_type=record.device_type,
        created_at=isoformat(record.created_at),
        expires_at=isoformat(record.expires_at),
        verified_at=isoformat(record.verified_at),
    )


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def cancel_pairing_session(
    session_id: str,
    admin: AdminPrincipal = Depends(require_admin),
    services: Services = Depends(get_services),
):
    """Cancel (delete) a pairing session."""
    services.pairing.cancel_session(session_id, cancelled_by=admin.username)
