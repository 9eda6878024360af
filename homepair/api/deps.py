"""Common API dependencies: service lookup, principal extraction, role checks."""

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from homepair.errors import ForbiddenError
from homepair.services.auth_gate import AdminPrincipal, ClientPrincipal, Principal
from homepair.services.container import Services

bearer_scheme = HTTPBearer(auto_error=False)


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    services: Services = Depends(get_services),
) -> Principal:
    """Authenticate the bearer credential (admin or client)."""
    return services.gate.authenticate(credentials.credentials if credentials else None)


def require_admin(principal: Principal = Depends(get_principal)) -> AdminPrincipal:
    """Require an admin principal."""
    if not isinstance(principal, AdminPrincipal):
        raise ForbiddenError("Admin access required")
    return principal


def require_client(principal: Principal = Depends(get_principal)) -> ClientPrincipal:
    """Require a paired client principal."""
    if not isinstance(principal, ClientPrincipal):
        raise ForbiddenError("Client token required")
    return principal


def client_source(request: Request) -> str:
    """Remote address used to key per-source limits."""
    return request.client.host if request.client else "unknown"
