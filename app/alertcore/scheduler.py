from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Set

from sqlalchemy.exc import SQLAlchemyError

from alertcore.alerts.collapse import CollapsePolicy
from alertcore.config import PollConfig
from alertcore.data.store import AlertStore
from alertcore.models import Alert
from alertcore.notifications.service import DeliveryOutcome, DeliveryResult, DeliveryService
from alertcore.utils.time import utcnow


logger = logging.getLogger("alertcore.scheduler.poll")


@dataclass(slots=True)
class TickReport:
    started_at: datetime
    due: int = 0
    delivered: int = 0
    cancelled: int = 0
    failed: int = 0
    duplicates_prevented: int = 0
    timed_out: int = 0
    stale: int = 0
    aborted: bool = False
    results: List[DeliveryResult] = field(default_factory=list)


@dataclass(slots=True)
class PollState:
    """Per-loop reentrancy guard and counters."""

    running: bool = False
    ticks: int = 0
    skipped: int = 0
    last_report: Optional[TickReport] = None


class PollLoop:
    """
    Periodic driver: fetch due alerts, collapse, cancel, deliver.

    Ticks fire every ``interval_seconds`` whether or not the previous one has
    finished; a tick that finds the guard set is skipped. The guard only
    saves redundant work inside this process. Cross-process safety comes
    from the store's uniqueness constraint and conditional claim.
    """

    def __init__(
        self,
        store: AlertStore,
        delivery: DeliveryService,
        *,
        collapse: Optional[CollapsePolicy] = None,
        interval_seconds: float = 5.0,
        max_workers: int = 8,
        batch_limit: Optional[int] = 100,
        storage_timeout: float = 10.0,
        send_timeout: float = 45.0,
        stale_after: float = 300.0,
        stale_check_interval: float = 60.0,
        clock: Callable[[], datetime] = utcnow,
        state: Optional[PollState] = None,
    ) -> None:
        self._store = store
        self._delivery = delivery
        self._collapse = collapse or CollapsePolicy()
        self._interval = max(0.01, interval_seconds)
        self._max_workers = max(1, max_workers)
        self._batch_limit = batch_limit
        self._storage_timeout = storage_timeout
        self._send_timeout = send_timeout
        self._stale_after = timedelta(seconds=stale_after)
        self._stale_check_interval = timedelta(seconds=stale_check_interval)
        self._last_stale_check: Optional[datetime] = None
        self._clock = clock
        self.state = state or PollState()
        self._task: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()
        self._stop_event: Optional[asyncio.Event] = None

    @classmethod
    def from_config(
        cls,
        store: AlertStore,
        delivery: DeliveryService,
        config: PollConfig,
        **kwargs,
    ) -> "PollLoop":
        return cls(
            store,
            delivery,
            interval_seconds=config.interval_seconds,
            max_workers=config.max_workers,
            batch_limit=config.batch_limit,
            storage_timeout=config.storage_timeout_seconds,
            send_timeout=config.send_timeout_seconds,
            stale_after=config.stale_after_seconds,
            stale_check_interval=config.stale_check_seconds,
            **kwargs,
        )

    @property
    def is_started(self) -> bool:
        return self._task is not None

    def start(self) -> None:
        if self._task is not None:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run_loop())
        logger.info(
            "Alert poll loop started (interval=%ss, max_workers=%s)",
            self._interval,
            self._max_workers,
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self._stop_event = None
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)
        logger.info("Alert poll loop stopped")

    async def _run_loop(self) -> None:
        stop_event = self._stop_event
        while not stop_event.is_set():
            task = asyncio.create_task(self._tick_logged())
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                continue

    async def _tick_logged(self) -> None:
        try:
            await self.tick()
        except Exception:  # noqa: BLE001
            logger.exception("poll.tick_failed")

    async def tick(self) -> Optional[TickReport]:
        """Run one pass. Returns None when skipped because a pass is in flight."""
        if self.state.running:
            self.state.skipped += 1
            logger.info("poll.tick_skipped", extra={"skipped": self.state.skipped})
            return None

        self.state.running = True
        try:
            report = await self._execute_tick()
        finally:
            self.state.running = False
        self.state.ticks += 1
        self.state.last_report = report
        return report

    async def _execute_tick(self) -> TickReport:
        now = self._clock()
        report = TickReport(started_at=now)

        try:
            due = await asyncio.wait_for(
                asyncio.to_thread(self._store.due_alerts, now, self._batch_limit),
                timeout=self._storage_timeout,
            )
        except (SQLAlchemyError, asyncio.TimeoutError) as exc:
            report.aborted = True
            logger.error("poll.tick_aborted", extra={"error": repr(exc)})
            return report

        report.due = len(due)
        await self._check_stale(now, report)
        if not due:
            return report

        decision = self._collapse.partition(due)

        for cancellation in decision.cancel:
            if await self._cancel(cancellation.alert, cancellation.reason):
                report.cancelled += 1

        semaphore = asyncio.Semaphore(self._max_workers)
        outcomes = await asyncio.gather(
            *(self._deliver_one(alert, semaphore) for alert in decision.deliver)
        )
        for result in outcomes:
            if result is None:
                report.timed_out += 1
                continue
            report.results.append(result)
            if result.outcome is DeliveryOutcome.DELIVERED:
                report.delivered += 1
            elif result.outcome is DeliveryOutcome.DUPLICATE:
                report.duplicates_prevented += 1
            else:
                report.failed += 1

        logger.info(
            "poll.tick_complete",
            extra={
                "due": report.due,
                "delivered": report.delivered,
                "cancelled": report.cancelled,
                "failed": report.failed,
                "duplicates_prevented": report.duplicates_prevented,
                "timed_out": report.timed_out,
                "stale": report.stale,
            },
        )
        return report

    async def _cancel(self, alert: Alert, reason: str) -> bool:
        try:
            cancelled = await asyncio.wait_for(
                asyncio.to_thread(self._store.cancel, alert.id, reason),
                timeout=self._storage_timeout,
            )
        except (SQLAlchemyError, asyncio.TimeoutError) as exc:
            logger.error("collapse.cancel_failed", extra={"alert_id": alert.id, "error": repr(exc)})
            return False
        if cancelled:
            logger.info(
                "collapse.cancelled",
                extra={"alert_id": alert.id, "event_id": alert.event_id, "alert_type": alert.alert_type},
            )
        else:
            logger.debug("collapse.already_terminal", extra={"alert_id": alert.id})
        return cancelled

    async def _deliver_one(self, alert: Alert, semaphore: asyncio.Semaphore) -> Optional[DeliveryResult]:
        async with semaphore:
            try:
                return await asyncio.wait_for(
                    asyncio.to_thread(self._delivery.deliver, alert),
                    timeout=self._send_timeout,
                )
            except asyncio.TimeoutError:
                # The worker thread keeps running and records the outcome itself.
                logger.warning(
                    "delivery.timed_out",
                    extra={"alert_id": alert.id, "event_id": alert.event_id, "channel": alert.channel},
                )
                return None
            except SQLAlchemyError as exc:
                logger.error("delivery.storage_error", extra={"alert_id": alert.id, "error": repr(exc)})
                return DeliveryResult(alert.id, DeliveryOutcome.FAILED, reason=f"storage: {exc}")

    async def _check_stale(self, now: datetime, report: TickReport) -> None:
        """Warn about SENDING rows whose worker never recorded an outcome."""
        last = self._last_stale_check
        if last is not None and now - last < self._stale_check_interval:
            return
        self._last_stale_check = now
        try:
            stale = await asyncio.wait_for(
                asyncio.to_thread(self._store.stale_claims, now - self._stale_after),
                timeout=self._storage_timeout,
            )
        except (SQLAlchemyError, asyncio.TimeoutError) as exc:
            logger.error("poll.stale_check_failed", extra={"error": repr(exc)})
            return
        report.stale = len(stale)
        if stale:
            logger.warning(
                "poll.stale_claims",
                extra={
                    "count": len(stale),
                    "alert_ids": [alert.id for alert in stale],
                    "oldest_claimed_at": stale[0].claimed_at,
                },
            )
