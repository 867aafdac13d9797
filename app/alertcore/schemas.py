from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import Alert, AlertStatus, Contact, Event
from .utils.time import to_naive_utc


class EventIn(BaseModel):
    """Inbound event as accepted by the ingest command."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1, max_length=64)
    user_id: str = Field(..., min_length=1, max_length=64)
    category: str = Field(..., min_length=1, max_length=32)
    type: str = Field(..., min_length=1, max_length=64)
    occurred_at: datetime
    source: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("category")
    @classmethod
    def _upper_category(cls, value: str) -> str:
        return value.strip().upper()

    def to_event(self) -> Event:
        return Event(
            id=self.id,
            user_id=self.user_id,
            category=self.category,
            type=self.type,
            occurred_at=to_naive_utc(self.occurred_at),
            source=self.source,
            payload=dict(self.payload),
        )


class ContactIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    user_id: str = Field(..., min_length=1, max_length=64)
    email: Optional[str] = None
    phone: Optional[str] = None
    timezone: Optional[str] = None
    display_name: Optional[str] = None

    def to_contact(self) -> Contact:
        return Contact(
            user_id=self.user_id,
            email=self.email,
            phone=self.phone,
            timezone=self.timezone,
            display_name=self.display_name,
        )


class AlertOut(BaseModel):
    id: int
    event_id: str
    category: str
    alert_type: str
    channel: str
    tier: Optional[str] = None
    status: AlertStatus
    terminal: bool = False
    scheduled_at: datetime
    claimed_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    status_reason: Optional[str] = None

    @classmethod
    def from_alert(cls, alert: Alert) -> "AlertOut":
        return cls(
            id=alert.id,
            event_id=alert.event_id,
            category=alert.category,
            alert_type=alert.alert_type,
            channel=alert.channel,
            tier=alert.tier,
            status=alert.status,
            terminal=alert.status.is_terminal,
            scheduled_at=alert.scheduled_at,
            claimed_at=alert.claimed_at,
            delivered_at=alert.delivered_at,
            status_reason=alert.status_reason,
        )


class UserAlertsResponse(BaseModel):
    user_id: str
    limit: int = Field(..., ge=1)
    offset: int = Field(..., ge=0)
    alerts: List[AlertOut]


class StaleClaimsResponse(BaseModel):
    """SENDING alerts whose outcome was never recorded."""

    claimed_before: datetime
    alerts: List[AlertOut]
