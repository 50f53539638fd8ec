"""Inbound email model delivered by the email source."""

from datetime import datetime, timezone
from email.utils import parseaddr
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EmailDirection(str, Enum):
    RECEIVED = "received"
    SENT = "sent"


class Email(BaseModel):
    """Single email event. ``id`` is provider-assigned and stable across redeliveries."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    from_: str = Field(alias="from")
    subject: str = ""
    body: str = ""
    date: datetime
    direction: EmailDirection = EmailDirection.RECEIVED
    sender_name: Optional[str] = None

    @field_validator("date")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @property
    def sender_address(self) -> str:
        """Bare, lowercased address from ``from`` (``"Ann <ann@x.com>"`` -> ``ann@x.com``)."""
        _, addr = parseaddr(self.from_)
        return (addr or self.from_).strip().lower()
