from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from .utils.time import to_naive_utc


class AlertStatus(str, Enum):
    PENDING = "PENDING"
    SENDING = "SENDING"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (AlertStatus.DELIVERED, AlertStatus.CANCELLED, AlertStatus.FAILED)


@dataclass(frozen=True, slots=True)
class Event:
    """An immutable fact about something that happens at ``occurred_at``."""

    id: str
    user_id: str
    category: str
    type: str
    occurred_at: datetime
    source: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Stored and compared as naive UTC.
        object.__setattr__(self, "occurred_at", to_naive_utc(self.occurred_at))

    @property
    def title(self) -> Optional[str]:
        value = self.payload.get("title") if isinstance(self.payload, dict) else None
        return str(value) if value else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "category": self.category,
            "type": self.type,
            "occurred_at": self.occurred_at,
            "source": self.source,
            "payload": self.payload,
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Event":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            category=row["category"],
            type=row["type"],
            occurred_at=row["occurred_at"],
            source=row.get("source"),
            payload=dict(row.get("payload") or {}),
        )


@dataclass(frozen=True, slots=True)
class AlertSpec:
    """Rule engine output: which alert to schedule and how long before the event."""

    alert_type: str
    offset_before_event: timedelta
    channel: str
    tier: Optional[str] = None
    rule_name: Optional[str] = None

    def scheduled_for(self, occurred_at: datetime) -> datetime:
        return occurred_at - self.offset_before_event


@dataclass(frozen=True, slots=True)
class Alert:
    id: int
    user_id: str
    event_id: str
    category: str
    alert_type: str
    channel: str
    status: AlertStatus
    scheduled_at: datetime
    created_at: datetime
    tier: Optional[str] = None
    delivered_at: Optional[datetime] = None
    claimed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    provider_reference: Optional[str] = None
    status_reason: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Alert":
        return cls(
            id=int(row["id"]),
            user_id=row["user_id"],
            event_id=row["event_id"],
            category=row["category"],
            alert_type=row["alert_type"],
            channel=row["channel"],
            status=AlertStatus(row["status"]),
            scheduled_at=row["scheduled_at"],
            created_at=row["created_at"],
            tier=row.get("tier"),
            delivered_at=row.get("delivered_at"),
            claimed_at=row.get("claimed_at"),
            updated_at=row.get("updated_at"),
            provider_reference=row.get("provider_reference"),
            status_reason=row.get("status_reason"),
        )

    def urgency_key(self) -> tuple:
        """Ascending key: later entries are more urgent."""
        return (self.scheduled_at, self.created_at, self.id)


@dataclass(frozen=True, slots=True)
class Contact:
    user_id: str
    email: Optional[str] = None
    phone: Optional[str] = None
    timezone: Optional[str] = None
    display_name: Optional[str] = None

    def target_for(self, channel: str) -> Optional[str]:
        if channel == "email":
            return self.email
        if channel in ("sms", "voice"):
            return self.phone
        return None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Contact":
        return cls(
            user_id=row["user_id"],
            email=row.get("email"),
            phone=row.get("phone"),
            timezone=row.get("timezone"),
            display_name=row.get("display_name"),
        )
