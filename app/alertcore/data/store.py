from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import Engine, and_, func, insert, select, update
from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError

from alertcore.models import Alert, AlertStatus, Contact, Event
from alertcore.utils.time import utcnow

from .tables import alerts, contacts, events


logger = logging.getLogger("alertcore.store")

PENDING = AlertStatus.PENDING.value
SENDING = AlertStatus.SENDING.value


class AlertStore:
    """
    Persisted alerts and the events they belong to.

    Every status change is a single conditional UPDATE guarded by the status
    the caller expects to replace, so concurrent writers (threads or whole
    processes) can only ever move a row forward once.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    @property
    def engine(self) -> Engine:
        return self._engine

    # -- events -----------------------------------------------------------

    def save_event(self, event: Event) -> bool:
        """Insert ``event``; an existing row with the same id is left untouched."""
        try:
            with self._engine.begin() as connection:
                connection.execute(insert(events).values(**event.to_dict(), created_at=utcnow()))
        except IntegrityError:
            logger.debug("Event %s already stored", event.id)
            return False
        return True

    def get_event(self, event_id: str) -> Optional[Event]:
        with self._engine.connect() as connection:
            row = connection.execute(
                select(events).where(events.c.id == event_id)
            ).mappings().first()
        return Event.from_row(row) if row is not None else None

    # -- alert creation ---------------------------------------------------

    def create_if_absent(
        self,
        event_id: str,
        alert_type: str,
        scheduled_at: datetime,
        *,
        user_id: str,
        category: str,
        channel: str,
        tier: Optional[str] = None,
    ) -> Tuple[Alert, bool]:
        """
        Insert a PENDING alert unless ``(event_id, alert_type)`` already exists.

        There is deliberately no existence check before the INSERT: the unique
        constraint decides, and a conflict is reported as ``created=False``
        together with the row that won.
        """
        now = utcnow()
        try:
            with self._engine.begin() as connection:
                result = connection.execute(
                    insert(alerts).values(
                        user_id=user_id,
                        event_id=event_id,
                        category=category,
                        alert_type=alert_type,
                        channel=channel,
                        tier=tier,
                        status=PENDING,
                        scheduled_at=scheduled_at,
                        created_at=now,
                        updated_at=now,
                    )
                )
                alert_id = result.inserted_primary_key[0]
                row = self._fetch_alert(connection, alert_id)
        except IntegrityError:
            existing = self.find_alert(event_id, alert_type)
            if existing is None:
                raise
            logger.debug(
                "alert.exists",
                extra={"event_id": event_id, "alert_type": alert_type, "alert_id": existing.id},
            )
            return existing, False
        return Alert.from_row(row), True

    # -- queries ----------------------------------------------------------

    def due_alerts(self, now: datetime, limit: Optional[int] = None) -> List[Alert]:
        """
        PENDING alerts with ``scheduled_at <= now``, grouped by event.

        ``limit`` caps the number of events, not rows, so an event's due
        alerts always arrive together.
        """
        due_clause = and_(alerts.c.status == PENDING, alerts.c.scheduled_at <= now)
        with self._engine.connect() as connection:
            event_ids_query = (
                select(alerts.c.event_id)
                .where(due_clause)
                .group_by(alerts.c.event_id)
                .order_by(func.min(alerts.c.scheduled_at), alerts.c.event_id)
            )
            if limit is not None:
                event_ids_query = event_ids_query.limit(limit)
            event_ids = [row[0] for row in connection.execute(event_ids_query)]
            if not event_ids:
                return []
            rows = connection.execute(
                select(alerts)
                .where(due_clause, alerts.c.event_id.in_(event_ids))
                .order_by(alerts.c.event_id, alerts.c.scheduled_at, alerts.c.id)
            ).mappings().all()
        return [Alert.from_row(row) for row in rows]

    def get_alert(self, alert_id: int) -> Optional[Alert]:
        with self._engine.connect() as connection:
            row = self._fetch_alert(connection, alert_id)
        return Alert.from_row(row) if row is not None else None

    def find_alert(self, event_id: str, alert_type: str) -> Optional[Alert]:
        with self._engine.connect() as connection:
            row = connection.execute(
                select(alerts).where(
                    alerts.c.event_id == event_id,
                    alerts.c.alert_type == alert_type,
                )
            ).mappings().first()
        return Alert.from_row(row) if row is not None else None

    def alerts_for_event(self, event_id: str) -> List[Alert]:
        with self._engine.connect() as connection:
            rows = connection.execute(
                select(alerts)
                .where(alerts.c.event_id == event_id)
                .order_by(alerts.c.scheduled_at, alerts.c.id)
            ).mappings().all()
        return [Alert.from_row(row) for row in rows]

    def user_alerts(
        self,
        user_id: str,
        *,
        status: Optional[AlertStatus] = None,
        category: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Alert]:
        query = select(alerts).where(alerts.c.user_id == user_id)
        if status is not None:
            query = query.where(alerts.c.status == AlertStatus(status).value)
        if category:
            query = query.where(alerts.c.category == category)
        query = query.order_by(alerts.c.scheduled_at.desc(), alerts.c.id.desc()).limit(limit).offset(offset)
        with self._engine.connect() as connection:
            rows = connection.execute(query).mappings().all()
        return [Alert.from_row(row) for row in rows]

    def stale_claims(self, older_than: datetime) -> List[Alert]:
        """SENDING rows claimed before ``older_than``; left for an operator, never re-sent."""
        with self._engine.connect() as connection:
            rows = connection.execute(
                select(alerts)
                .where(alerts.c.status == SENDING, alerts.c.claimed_at < older_than)
                .order_by(alerts.c.claimed_at)
            ).mappings().all()
        return [Alert.from_row(row) for row in rows]

    def count_by_status(self, event_id: Optional[str] = None) -> Dict[str, int]:
        query = select(alerts.c.status, func.count()).group_by(alerts.c.status)
        if event_id is not None:
            query = query.where(alerts.c.event_id == event_id)
        with self._engine.connect() as connection:
            return {status: int(count) for status, count in connection.execute(query)}

    # -- transitions ------------------------------------------------------

    def claim(self, alert_id: int, now: Optional[datetime] = None) -> bool:
        """PENDING -> SENDING. True only for the single caller whose UPDATE changed the row."""
        now = now or utcnow()
        changed = self._transition(
            alert_id,
            expected=PENDING,
            values={"status": SENDING, "claimed_at": now, "updated_at": now},
        )
        return changed == 1

    def cancel(self, alert_id: int, reason: Optional[str] = None) -> bool:
        """PENDING -> CANCELLED; a row that already moved on is left alone."""
        changed = self._transition(
            alert_id,
            expected=PENDING,
            values={
                "status": AlertStatus.CANCELLED.value,
                "status_reason": reason,
                "updated_at": utcnow(),
            },
        )
        return changed == 1

    def mark_delivered(
        self,
        alert_id: int,
        provider_reference: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        now = now or utcnow()
        changed = self._transition(
            alert_id,
            expected=SENDING,
            values={
                "status": AlertStatus.DELIVERED.value,
                "delivered_at": now,
                "provider_reference": provider_reference,
                "updated_at": now,
            },
        )
        return changed == 1

    def mark_failed(self, alert_id: int, reason: str) -> bool:
        changed = self._transition(
            alert_id,
            expected=SENDING,
            values={
                "status": AlertStatus.FAILED.value,
                "status_reason": reason,
                "updated_at": utcnow(),
            },
        )
        return changed == 1

    def _transition(self, alert_id: int, *, expected: str, values: Dict[str, Any]) -> int:
        with self._engine.begin() as connection:
            result = connection.execute(
                update(alerts)
                .where(alerts.c.id == alert_id, alerts.c.status == expected)
                .values(**values)
            )
        return int(result.rowcount or 0)

    # -- contacts ---------------------------------------------------------

    def upsert_contact(self, contact: Contact) -> None:
        payload = {
            "email": contact.email,
            "phone": contact.phone,
            "timezone": contact.timezone,
            "display_name": contact.display_name,
        }
        sanitized = {key: value for key, value in payload.items() if value is not None}
        with self._engine.begin() as connection:
            existing = connection.execute(
                select(contacts.c.user_id).where(contacts.c.user_id == contact.user_id)
            ).first()
            if existing:
                if sanitized:
                    connection.execute(
                        update(contacts)
                        .where(contacts.c.user_id == contact.user_id)
                        .values(**sanitized)
                    )
            else:
                connection.execute(insert(contacts).values(user_id=contact.user_id, **sanitized))

    def get_contact(self, user_id: str) -> Optional[Contact]:
        with self._engine.connect() as connection:
            row = connection.execute(
                select(contacts).where(contacts.c.user_id == user_id)
            ).mappings().first()
        return Contact.from_row(row) if row is not None else None

    @staticmethod
    def _fetch_alert(connection: Connection, alert_id: int):
        return connection.execute(
            select(alerts).where(alerts.c.id == alert_id)
        ).mappings().first()
