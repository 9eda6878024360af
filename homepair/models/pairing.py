"""Pairing session model."""

import secrets
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, CheckConstraint, Column
from sqlmodel import Field, SQLModel

from homepair.utils.dates import utcnow

PAIRING_PENDING = "pending"
PAIRING_VERIFIED = "verified"
PAIRING_COMPLETED = "completed"
PAIRING_EXPIRED = "expired"

PAIRING_TERMINAL_STATES = (PAIRING_COMPLETED, PAIRING_EXPIRED)


class PairingSession(SQLModel, table=True):
    __tablename__ = "pairing_sessions"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'verified', 'completed', 'expired')",
            name="ck_pairing_status",
        ),
        CheckConstraint("expires_at > created_at", name="ck_pairing_expiry"),
        CheckConstraint("length(pin) = 6", name="ck_pairing_pin_length"),
    )

    id: str = Field(default_factory=lambda: f"pair_{secrets.token_hex(8)}", primary_key=True)
    pin: str
    status: str = Field(default=PAIRING_PENDING, index=True)
    device_name: Optional[str] = None
    device_type: Optional[str] = None  # 'mobile' | 'tablet' | 'desktop' | 'other'
    assigned_areas: Optional[list[str]] = Field(default=None, sa_column=Column(JSON))
    client_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime = Field(index=True)
    verified_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
