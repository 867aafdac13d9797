from __future__ import annotations

import sys
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional, Tuple

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
APP_DIR = PROJECT_ROOT / "app"

for path in (PROJECT_ROOT, APP_DIR):
    path_str = str(path)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)


from alertcore.config import DatabaseConfig  # noqa: E402
from alertcore.data import AlertStore, create_db_engine  # noqa: E402
from alertcore.errors import ChannelError  # noqa: E402
from alertcore.models import Contact, Event  # noqa: E402
from alertcore.notifications.models import SendResult  # noqa: E402


NOW = datetime(2026, 3, 2, 15, 0, 0)


class StubChannel:
    """Records every send; optionally raises or blocks."""

    def __init__(
        self,
        name: str,
        *,
        error: Optional[ChannelError] = None,
        block: bool = False,
    ) -> None:
        self.name = name
        self.sent: List[Tuple[str, object]] = []
        self._error = error
        self._lock = threading.Lock()
        self.started = threading.Event()
        self.release = threading.Event()
        if not block:
            self.release.set()
        self.closed = False

    def send(self, target, payload) -> SendResult:
        self.started.set()
        self.release.wait(timeout=5)
        if self._error is not None:
            raise self._error
        with self._lock:
            self.sent.append((target, payload))
            count = len(self.sent)
        return SendResult(success=True, provider_reference=f"{self.name}-{count}")

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def store(tmp_path) -> AlertStore:
    engine = create_db_engine(DatabaseConfig(engine="sqlite", name="alerts.db", path=tmp_path / "db"))
    yield AlertStore(engine)
    engine.dispose()


@pytest.fixture
def contact(store) -> Contact:
    contact = Contact(user_id="user-1", email="ada@example.com", phone="+15551234567", timezone="UTC")
    store.upsert_contact(contact)
    return contact


def make_event(
    event_id: str = "evt-1",
    *,
    category: str = "MEETING",
    starts_in: timedelta = timedelta(seconds=90),
    status: str = "SCHEDULED",
    user_id: str = "user-1",
    now: datetime = NOW,
    **payload,
) -> Event:
    body = {"title": "Quarterly review", "status": status}
    body.update(payload)
    return Event(
        id=event_id,
        user_id=user_id,
        category=category,
        type="CALENDAR_EVENT",
        occurred_at=now + starts_in,
        source="calendar",
        payload=body,
    )
