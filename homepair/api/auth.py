"""Admin login and principal introspection endpoints."""

from fastapi import APIRouter, Depends

from homepair.api.deps import get_principal, get_services
from homepair.config import settings
from homepair.schemas.auth import LoginRequest, LoginResponse, PrincipalResponse
from homepair.services.auth_gate import AdminPrincipal, Principal
from homepair.services.container import Services
from homepair.utils.security import ROLE_ADMIN, ROLE_CLIENT

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=LoginResponse)
def login(
    request: LoginRequest,
    services: Services = Depends(get_services),
):
    """Exchange the configured admin credentials for a short-lived admin token."""
    token = services.gate.login(request.username, request.password)
    return LoginResponse(
        token=token,
        username=request.username,
        role=ROLE_ADMIN,
        expires_in=settings.admin_token_expire_minutes * 60,
    )


@router.get("/me", response_model=PrincipalResponse)
def whoami(principal: Principal = Depends(get_principal)):
    """Describe the authenticated principal."""
    if isinstance(principal, AdminPrincipal):
        return PrincipalResponse(role=ROLE_ADMIN, username=principal.username)
    return PrincipalResponse(
        role=ROLE_CLIENT,
        client_id=principal.client_id,
        assigned_areas=principal.assigned_areas,
    )
