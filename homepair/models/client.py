"""Client and client token models."""

import secrets
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from homepair.utils.dates import utcnow

DEVICE_TYPES = ("mobile", "tablet", "desktop", "other")


class Client(SQLModel, table=True):
    __tablename__ = "clients"

    id: str = Field(default_factory=lambda: f"cli_{secrets.token_hex(6)}", primary_key=True)
    name: str
    device_type: str
    assigned_areas: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    is_active: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    last_seen_at: Optional[datetime] = None


class ClientToken(SQLModel, table=True):
    __tablename__ = "client_tokens"

    id: str = Field(default_factory=lambda: f"tok_{secrets.token_hex(6)}", primary_key=True)
    client_id: str = Field(foreign_key="clients.id", index=True)
    token_hash: str = Field(unique=True, index=True)  # sha256 of the issued credential
    assigned_areas: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime = Field(index=True)
    last_used_at: Optional[datetime] = None
    is_revoked: bool = Field(default=False, index=True)
    revoked_at: Optional[datetime] = None
    revoked_reason: Optional[str] = None
