from __future__ import annotations

import threading
from datetime import timedelta

from alertcore.data.db import run_migrations
from alertcore.models import AlertStatus, Contact

from conftest import NOW, make_event


def _create(store, event_id="evt-1", alert_type="MEETING_CRITICAL_CALL", scheduled_at=NOW, channel="voice"):
    return store.create_if_absent(
        event_id,
        alert_type,
        scheduled_at,
        user_id="user-1",
        category="MEETING",
        channel=channel,
        tier="critical",
    )


def test_create_if_absent_is_idempotent(store):
    first, created_first = _create(store)
    second, created_second = _create(store, scheduled_at=NOW + timedelta(minutes=5))

    assert created_first is True
    assert created_second is False
    assert second.id == first.id
    assert second.scheduled_at == NOW
    assert len(store.alerts_for_event("evt-1")) == 1


def test_concurrent_creation_yields_single_row(store):
    results = []
    barrier = threading.Barrier(6)

    def worker():
        barrier.wait(timeout=5)
        results.append(_create(store))

    threads = [threading.Thread(target=worker) for _ in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sum(1 for _, created in results if created) == 1
    assert len({alert.id for alert, _ in results}) == 1
    assert len(store.alerts_for_event("evt-1")) == 1


def test_status_only_moves_forward(store):
    alert, _ = _create(store)

    assert store.claim(alert.id, NOW) is True
    assert store.claim(alert.id, NOW) is False
    assert store.cancel(alert.id, "too late") is False
    assert store.mark_delivered(alert.id, "CA123", NOW) is True
    assert store.mark_failed(alert.id, "nope") is False
    assert store.mark_delivered(alert.id, "CA999", NOW) is False

    stored = store.get_alert(alert.id)
    assert stored.status is AlertStatus.DELIVERED
    assert stored.status.is_terminal
    assert stored.delivered_at == NOW
    assert stored.provider_reference == "CA123"


def test_cancel_is_noop_once_terminal(store):
    alert, _ = _create(store)

    assert store.cancel(alert.id, "collapsed") is True
    assert store.cancel(alert.id, "collapsed again") is False
    assert store.claim(alert.id, NOW) is False

    stored = store.get_alert(alert.id)
    assert stored.status is AlertStatus.CANCELLED
    assert stored.status.is_terminal
    assert stored.status_reason == "collapsed"
    assert stored.delivered_at is None


def test_mark_delivered_requires_a_claim(store):
    alert, _ = _create(store)

    assert store.mark_delivered(alert.id, "x", NOW) is False
    assert store.get_alert(alert.id).status is AlertStatus.PENDING
    assert not AlertStatus.PENDING.is_terminal
    assert not AlertStatus.SENDING.is_terminal


def test_due_alerts_returns_pending_rows_grouped_by_event(store):
    _create(store, "evt-b", "EARLY", NOW - timedelta(minutes=10), "email")
    _create(store, "evt-a", "EARLY", NOW - timedelta(minutes=5), "email")
    _create(store, "evt-a", "LATE", NOW - timedelta(minutes=1), "voice")
    _create(store, "evt-a", "FUTURE", NOW + timedelta(minutes=1), "voice")
    done, _ = _create(store, "evt-c", "EARLY", NOW - timedelta(minutes=1), "email")
    store.cancel(done.id)

    due = store.due_alerts(NOW)

    assert [(alert.event_id, alert.alert_type) for alert in due] == [
        ("evt-a", "EARLY"),
        ("evt-a", "LATE"),
        ("evt-b", "EARLY"),
    ]


def test_due_alerts_limit_counts_events_not_rows(store):
    _create(store, "evt-a", "EARLY", NOW - timedelta(minutes=10), "email")
    _create(store, "evt-a", "LATE", NOW - timedelta(minutes=1), "voice")
    _create(store, "evt-b", "EARLY", NOW - timedelta(minutes=5), "email")

    due = store.due_alerts(NOW, limit=1)

    assert {alert.event_id for alert in due} == {"evt-a"}
    assert len(due) == 2


def test_user_alerts_filters_and_paginates(store):
    for index in range(5):
        _create(store, f"evt-{index}", "EARLY", NOW + timedelta(minutes=index), "email")
    cancelled, _ = _create(store, "evt-x", "EARLY", NOW, "email")
    store.cancel(cancelled.id)

    page = store.user_alerts("user-1", status=AlertStatus.PENDING, limit=2, offset=1)
    cancelled_rows = store.user_alerts("user-1", status="CANCELLED")

    assert [alert.event_id for alert in page] == ["evt-3", "evt-2"]
    assert [alert.id for alert in cancelled_rows] == [cancelled.id]
    assert store.user_alerts("someone-else") == []


def test_stale_claims_and_counts(store):
    stuck, _ = _create(store, "evt-a", "EARLY")
    fresh, _ = _create(store, "evt-b", "EARLY")
    store.claim(stuck.id, NOW - timedelta(minutes=30))
    store.claim(fresh.id, NOW)

    stale = store.stale_claims(NOW - timedelta(minutes=10))

    assert [alert.id for alert in stale] == [stuck.id]
    assert store.count_by_status() == {"SENDING": 2}
    assert store.count_by_status("evt-a") == {"SENDING": 1}


def test_events_are_saved_once(store):
    event = make_event()

    assert store.save_event(event) is True
    assert store.save_event(event) is False
    assert store.get_event(event.id).payload["title"] == "Quarterly review"


def test_upsert_contact_keeps_existing_fields(store):
    store.upsert_contact(Contact(user_id="u", email="a@example.com", phone="+15550000000"))
    store.upsert_contact(Contact(user_id="u", phone="+15551111111"))

    contact = store.get_contact("u")

    assert contact.email == "a@example.com"
    assert contact.phone == "+15551111111"
    assert contact.target_for("voice") == "+15551111111"
    assert contact.target_for("pager") is None


def test_migrations_are_recorded_once(store):
    assert run_migrations(store.engine) == []
