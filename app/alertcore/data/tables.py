from __future__ import annotations

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Enum,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
)

from alertcore.models import AlertStatus
from alertcore.utils.time import utcnow


metadata = MetaData()


alert_status_enum = Enum(
    *(status.value for status in AlertStatus),
    name="alert_status_enum",
)

events = Table(
    "events",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("user_id", String(64), nullable=False),
    Column("category", String(32), nullable=False),
    Column("type", String(64), nullable=False),
    Column("occurred_at", DateTime, nullable=False),
    Column("source", String(64)),
    Column("payload", JSON, default=dict),
    Column("created_at", DateTime, default=utcnow, nullable=False),
)

alerts = Table(
    "alerts",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(64), nullable=False),
    Column("event_id", String(64), nullable=False),
    Column("category", String(32), nullable=False),
    Column("alert_type", String(64), nullable=False),
    Column("channel", String(32), nullable=False),
    Column("tier", String(32)),
    Column("status", alert_status_enum, nullable=False, default=AlertStatus.PENDING.value),
    Column("scheduled_at", DateTime, nullable=False),
    Column("claimed_at", DateTime),
    Column("delivered_at", DateTime),
    Column("provider_reference", String(128)),
    Column("status_reason", Text),
    Column("created_at", DateTime, default=utcnow, nullable=False),
    Column("updated_at", DateTime, default=utcnow, onupdate=utcnow),
    UniqueConstraint("event_id", "alert_type", name="uq_alerts_event_alert_type"),
)

Index("ix_alerts_status_scheduled_at", alerts.c.status, alerts.c.scheduled_at)
Index("ix_alerts_user_id", alerts.c.user_id)

schema_migrations = Table(
    "schema_migrations",
    metadata,
    Column("version", String(64), primary_key=True),
    Column("applied_at", DateTime, default=utcnow, nullable=False),
)

contacts = Table(
    "contacts",
    metadata,
    Column("user_id", String(64), primary_key=True),
    Column("email", String(255)),
    Column("phone", String(32)),
    Column("timezone", String(64)),
    Column("display_name", String(255)),
)
