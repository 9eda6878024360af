"""Area model."""

import secrets
from datetime import datetime

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from homepair.utils.dates import utcnow


class Area(SQLModel, table=True):
    __tablename__ = "areas"

    id: str = Field(default_factory=lambda: f"area_{secrets.token_hex(4)}", primary_key=True)
    name: str
    entity_ids: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    is_enabled: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow)
