from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import OperationalError

from alertcore.alerts import AlertScheduler, RuleEngine
from alertcore.data import AlertStore
from alertcore.models import AlertStatus

from conftest import NOW, make_event


def _scheduler(store):
    return AlertScheduler(store, RuleEngine(), clock=lambda: NOW)


def test_schedule_creates_pending_alerts_at_offsets(store):
    event = make_event(starts_in=timedelta(hours=1))

    report = _scheduler(store).schedule(event)

    scheduled = {alert.alert_type: alert.scheduled_at for alert in report.created}
    assert scheduled == {
        "MEETING_UPCOMING_EMAIL": event.occurred_at - timedelta(minutes=12),
        "MEETING_URGENT_MESSAGE": event.occurred_at - timedelta(minutes=5),
        "MEETING_CRITICAL_CALL": event.occurred_at - timedelta(minutes=2),
    }
    assert all(alert.status is AlertStatus.PENDING for alert in report.created)
    assert store.get_event(event.id) is not None


def test_rescheduling_same_event_creates_nothing(store):
    scheduler = _scheduler(store)
    event = make_event(starts_in=timedelta(hours=1))

    scheduler.schedule(event)
    again = scheduler.schedule(event)

    assert again.created == []
    assert all(decision.reason.startswith("already scheduled") for decision in again.decisions)
    assert len(store.alerts_for_event(event.id)) == 3


def test_event_too_close_skips_pre_event_reminders(store):
    event = make_event(starts_in=timedelta(seconds=20))

    report = _scheduler(store).schedule(event)

    assert report.created == []
    assert len(report.decisions) == 3
    assert all("too close" in decision.reason for decision in report.decisions)
    assert store.alerts_for_event(event.id) == []


def test_immediate_alerts_ignore_actionability_window(store):
    event = make_event(status="MISSED", starts_in=timedelta(minutes=-10))

    report = _scheduler(store).schedule(event)

    assert [alert.alert_type for alert in report.created] == ["MEETING_MISSED"]


class _FlakyStore(AlertStore):
    def __init__(self, engine, failures):
        super().__init__(engine)
        self.failures = failures

    def save_event(self, event):
        if self.failures:
            self.failures -= 1
            raise OperationalError("INSERT", {}, Exception("database is locked"))
        return super().save_event(event)


def test_transient_storage_errors_are_retried(store):
    flaky = _FlakyStore(store.engine, failures=1)
    scheduler = AlertScheduler(flaky, RuleEngine(), clock=lambda: NOW)

    report = scheduler.schedule(make_event(starts_in=timedelta(hours=1)))

    assert flaky.failures == 0
    assert len(report.created) == 3


def test_offset_aware_event_times_are_converted_to_utc(store):
    local_now = datetime(2026, 3, 2, 10, 0, 0, tzinfo=timezone(timedelta(hours=-5)))
    event = make_event(starts_in=timedelta(hours=1), now=local_now)

    report = _scheduler(store).schedule(event)

    assert event.occurred_at == NOW + timedelta(hours=1)
    assert event.occurred_at.tzinfo is None
    scheduled = {alert.alert_type: alert.scheduled_at for alert in report.created}
    assert scheduled["MEETING_CRITICAL_CALL"] == NOW + timedelta(minutes=58)


def test_category_without_rules_schedules_nothing(store):
    report = _scheduler(store).schedule(make_event(category="GARDENING"))

    assert report.decisions == []
    assert store.get_event("evt-1") is not None
