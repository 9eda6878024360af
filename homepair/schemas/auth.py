"""Auth request/response schemas."""

from typing import Optional

from pydantic import BaseModel


class LoginRequest(BaseModel):
    username: str
    password: str


class LoginResponse(BaseModel):
    token: str
    username: str
    role: str
    expires_in: int  # seconds


class PrincipalResponse(BaseModel):
    role: str  # 'admin' | 'client'
    username: Optional[str] = None
    client_id: Optional[str] = None
    assigned_areas: Optional[list[str]] = None
