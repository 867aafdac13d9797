from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable, List, Optional

from sqlalchemy.exc import OperationalError

from alertcore.data.store import AlertStore
from alertcore.models import Alert, AlertSpec, Event
from alertcore.utils.retry import with_retry
from alertcore.utils.time import utcnow

from .engine import RuleEngine


logger = logging.getLogger("alertcore.alerts")

MIN_ACTIONABLE = timedelta(seconds=30)


@dataclass(slots=True)
class ScheduleDecision:
    spec: AlertSpec
    scheduled: bool
    reason: str
    alert: Optional[Alert] = None


@dataclass(slots=True)
class ScheduleReport:
    event_id: str
    decisions: List[ScheduleDecision] = field(default_factory=list)

    @property
    def created(self) -> List[Alert]:
        return [d.alert for d in self.decisions if d.scheduled and d.alert is not None]


class AlertScheduler:
    """Turns an incoming event into stored PENDING alerts."""

    def __init__(
        self,
        store: AlertStore,
        engine: RuleEngine,
        *,
        clock: Callable = utcnow,
        write_attempts: int = 3,
    ) -> None:
        self._store = store
        self._engine = engine
        self._clock = clock
        self._write_attempts = write_attempts

    def schedule(self, event: Event) -> ScheduleReport:
        """
        Evaluate ``event`` and create its alerts.

        Safe to call any number of times for the same event: creation relies on
        the ``(event_id, alert_type)`` uniqueness constraint.
        """
        report = ScheduleReport(event_id=event.id)
        self._write(lambda: self._store.save_event(event), f"save event {event.id}")

        now = self._clock()
        specs = self._engine.evaluate(event)
        if not specs and event.category not in self._engine.categories:
            logger.info("alerts.no_rules", extra={"event_id": event.id, "category": event.category})
        for spec in specs:
            reason = self._not_actionable(event, spec, now)
            if reason:
                report.decisions.append(ScheduleDecision(spec=spec, scheduled=False, reason=reason))
                continue

            scheduled_at = spec.scheduled_for(event.occurred_at)
            alert, created = self._write(
                lambda spec=spec, scheduled_at=scheduled_at: self._store.create_if_absent(
                    event.id,
                    spec.alert_type,
                    scheduled_at,
                    user_id=event.user_id,
                    category=event.category,
                    channel=spec.channel,
                    tier=spec.tier,
                ),
                f"create {spec.alert_type} for {event.id}",
            )
            reason = "scheduled" if created else f"already scheduled (alert {alert.id})"
            report.decisions.append(
                ScheduleDecision(spec=spec, scheduled=created, reason=reason, alert=alert)
            )

        logger.info(
            "alerts.scheduled",
            extra={
                "event_id": event.id,
                "category": event.category,
                "created": len(report.created),
                "evaluated": len(report.decisions),
            },
        )
        return report

    @staticmethod
    def _not_actionable(event: Event, spec: AlertSpec, now) -> Optional[str]:
        # Offset-0 alerts are immediate and exempt.
        if spec.offset_before_event <= timedelta(0):
            return None
        remaining = event.occurred_at - now
        if remaining < MIN_ACTIONABLE:
            return f"event too close to start to be actionable ({remaining.total_seconds():.0f}s away)"
        return None

    def _write(self, operation, description: str):
        return with_retry(
            operation,
            attempts=self._write_attempts,
            exceptions=(OperationalError,),
            logger=logger,
            description=description,
        )
