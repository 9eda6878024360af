"""Pairing request/response schemas."""

from typing import Optional

from pydantic import BaseModel


class PairingCreateResponse(BaseModel):
    id: str
    pin: str  # shown to the admin once, never returned again
    expires_at: str
    expires_in: int
    status: str


class PairingVerifyRequest(BaseModel):
    pin: str
    device_name: str
    device_type: str  # 'mobile' | 'tablet' | 'desktop' | 'other'


class PairingVerifyResponse(BaseModel):
    session_id: str
    status: str
    message: str


class PairingCompleteRequest(BaseModel):
    client_name: str
    assigned_areas: list[str] = []


class PairingCompleteResponse(BaseModel):
    session_id: str
    client_id: str
    client_token: str
    token_id: str
    assigned_areas: list[str]
    message: str


class PairingStatusResponse(BaseModel):
    id: str
    status: str
    device_name: Optional[str]
    device_type: Optional[str]
    created_at: str
    expires_at: str
    verified_at: Optional[str]
