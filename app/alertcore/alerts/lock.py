from __future__ import annotations

import logging
from typing import Callable, Optional

from alertcore.data.store import AlertStore
from alertcore.models import Alert
from alertcore.utils.time import utcnow


logger = logging.getLogger("alertcore.delivery.lock")


class DeliveryLock:
    """
    Claim-and-commit around the store's conditional updates.

    ``claim`` is the only gate to a channel send: whichever caller's
    ``PENDING -> SENDING`` update changes the row owns delivery, in this
    process or any other. ``confirm``/``fail`` then close the claim.
    """

    def __init__(self, store: AlertStore, *, clock: Callable = utcnow) -> None:
        self._store = store
        self._clock = clock

    def claim(self, alert: Alert) -> bool:
        if self._store.claim(alert.id, self._clock()):
            logger.debug("delivery.claimed", extra={"alert_id": alert.id, "event_id": alert.event_id})
            return True
        logger.info(
            "delivery.duplicate_prevented",
            extra={
                "alert_id": alert.id,
                "event_id": alert.event_id,
                "alert_type": alert.alert_type,
            },
        )
        return False

    def confirm(self, alert: Alert, provider_reference: Optional[str] = None) -> bool:
        confirmed = self._store.mark_delivered(alert.id, provider_reference, self._clock())
        if not confirmed:
            logger.warning("delivery.confirm_skipped", extra={"alert_id": alert.id})
        return confirmed

    def fail(self, alert: Alert, reason: str) -> bool:
        failed = self._store.mark_failed(alert.id, reason)
        if not failed:
            logger.warning("delivery.fail_skipped", extra={"alert_id": alert.id, "reason": reason})
        return failed
