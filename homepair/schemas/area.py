"""Area schemas."""

from typing import Optional

from pydantic import BaseModel


class AreaCreateRequest(BaseModel):
    name: str
    entity_ids: list[str] = []
    is_enabled: bool = True


class AreaUpdateRequest(BaseModel):
    name: Optional[str] = None
    entity_ids: Optional[list[str]] = None


class AreaToggleRequest(BaseModel):
    is_enabled: bool


class AreaResponse(BaseModel):
    id: str
    name: str
    entity_ids: list[str]
    is_enabled: bool
    created_at: str
