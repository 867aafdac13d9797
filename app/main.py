from __future__ import annotations

import argparse
import asyncio
import json
import logging
import time
from datetime import timedelta
from pathlib import Path
from typing import Any, List, Optional

import yaml
from pydantic import ValidationError

from alertcore.alerts import AlertScheduler, RuleEngine
from alertcore.config import AppConfig, load_config, resolve_config_path
from alertcore.data import AlertStore, init_engine
from alertcore.data.db import dispose_engine
from alertcore.logging_utils import setup_console_logging, setup_debug_logging
from alertcore.models import AlertStatus
from alertcore.notifications import DeliveryService
from alertcore.scheduler import PollLoop
from alertcore.schemas import AlertOut, ContactIn, EventIn, StaleClaimsResponse, UserAlertsResponse
from alertcore.utils.time import utcnow


PROJECT_ROOT = Path(__file__).resolve().parent
CONFIG_PATH = resolve_config_path(PROJECT_ROOT / "config.yaml")
DEBUG_LOGGER = setup_debug_logging(PROJECT_ROOT)


def load_configuration() -> AppConfig:
    return load_config(CONFIG_PATH)


def _open_store(app_config: AppConfig) -> AlertStore:
    return AlertStore(init_engine(app_config.alertcore.database))


async def run_poll_loop(
    max_runtime: Optional[float] = None,
    interval: Optional[float] = None,
    once: bool = False,
) -> None:
    """
    Drive delivery until interrupted.

    ``max_runtime`` stops the loop after that many seconds; ``once`` runs a
    single tick and exits.
    """
    app_config = load_configuration()
    settings = app_config.alertcore
    if interval is not None:
        settings.poll.interval_seconds = interval
    store = _open_store(app_config)
    delivery = DeliveryService.from_config(store, settings)
    loop = PollLoop.from_config(store, delivery, settings.poll)

    DEBUG_LOGGER.info(
        "poll_loop.start",
        extra={
            "max_runtime": max_runtime,
            "interval": settings.poll.interval_seconds,
            "channels": sorted(delivery.channels),
        },
    )
    try:
        if once:
            report = await loop.tick()
            if report is not None:
                print(
                    f"due={report.due} delivered={report.delivered} cancelled={report.cancelled} "
                    f"failed={report.failed} duplicates_prevented={report.duplicates_prevented} stale={report.stale}"
                )
            return

        loop.start()
        start_time = time.monotonic()
        try:
            while True:
                await asyncio.sleep(min(1.0, settings.poll.interval_seconds))
                if max_runtime is not None and time.monotonic() - start_time >= max_runtime:
                    print(f"Reached max runtime ({max_runtime}s). Stopping poll loop.")
                    DEBUG_LOGGER.info("poll_loop.stop", extra={"reason": "max_runtime"})
                    break
        finally:
            await loop.stop()
    finally:
        delivery.close()
        dispose_engine()


def _load_documents(path: Path) -> List[Any]:
    with open(path, "r", encoding="utf-8") as handle:
        if path.suffix.lower() == ".json":
            data = json.load(handle)
        else:
            data = yaml.safe_load(handle)
    if data is None:
        return []
    if isinstance(data, dict):
        return [data]
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain an event mapping or a list of them")
    return data


def ingest_events(path: Path) -> int:
    """Schedule alerts for every event in ``path``; returns the number of alerts created."""
    app_config = load_configuration()
    store = _open_store(app_config)
    scheduler = AlertScheduler(store, RuleEngine(app_config.alertcore.rules_config()))
    created = 0
    try:
        for index, raw in enumerate(_load_documents(path)):
            try:
                event = EventIn.model_validate(raw).to_event()
            except ValidationError as exc:
                print(f"[{index}] Skipped invalid event: {exc.error_count()} error(s)")
                DEBUG_LOGGER.warning("ingest.invalid_event", extra={"index": index, "errors": exc.errors()})
                continue
            report = scheduler.schedule(event)
            created += len(report.created)
            for decision in report.decisions:
                print(f"[{event.id}] {decision.spec.alert_type}: {decision.reason}")
    finally:
        dispose_engine()
    return created


def import_contacts(path: Path) -> int:
    app_config = load_configuration()
    store = _open_store(app_config)
    imported = 0
    try:
        for raw in _load_documents(path):
            store.upsert_contact(ContactIn.model_validate(raw).to_contact())
            imported += 1
    finally:
        dispose_engine()
    return imported


def list_user_alerts(
    user_id: str,
    *,
    status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> UserAlertsResponse:
    app_config = load_configuration()
    store = _open_store(app_config)
    try:
        alerts = store.user_alerts(
            user_id,
            status=AlertStatus(status) if status else None,
            limit=limit,
            offset=offset,
        )
    finally:
        dispose_engine()
    return UserAlertsResponse(
        user_id=user_id,
        limit=limit,
        offset=offset,
        alerts=[AlertOut.from_alert(alert) for alert in alerts],
    )


def list_stale_claims(older_than: Optional[float] = None) -> StaleClaimsResponse:
    """SENDING alerts claimed more than ``older_than`` seconds ago (default: poll.stale_after_seconds)."""
    app_config = load_configuration()
    if older_than is None:
        older_than = app_config.alertcore.poll.stale_after_seconds
    cutoff = utcnow() - timedelta(seconds=older_than)
    store = _open_store(app_config)
    try:
        stale = store.stale_claims(cutoff)
        counts = store.count_by_status()
    finally:
        dispose_engine()
    DEBUG_LOGGER.info("stale_claims.listed", extra={"count": len(stale), "by_status": counts})
    return StaleClaimsResponse(claimed_before=cutoff, alerts=[AlertOut.from_alert(alert) for alert in stale])


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Alert scheduling and delivery controller.")
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level to stderr.")
    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Run the delivery poll loop.")
    run_parser.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Optional maximum runtime in seconds before exiting the loop.",
    )
    run_parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between poll ticks (overrides poll.interval_seconds).",
    )
    run_parser.add_argument("--once", action="store_true", help="Run a single tick and exit.")

    ingest_parser = subparsers.add_parser("ingest", help="Schedule alerts for events in a JSON/YAML file.")
    ingest_parser.add_argument("path", type=Path)

    contacts_parser = subparsers.add_parser("contacts", help="Import contacts from a JSON/YAML file.")
    contacts_parser.add_argument("path", type=Path)

    alerts_parser = subparsers.add_parser("alerts", help="List alerts for a user.")
    alerts_parser.add_argument("user_id")
    alerts_parser.add_argument(
        "--status",
        type=str.upper,
        choices=[status.value for status in AlertStatus],
        default=None,
    )
    alerts_parser.add_argument("--limit", type=int, default=50)
    alerts_parser.add_argument("--offset", type=int, default=0)

    stale_parser = subparsers.add_parser("stale", help="List alerts stuck in SENDING.")
    stale_parser.add_argument(
        "--older-than",
        type=float,
        default=None,
        help="Seconds since claim (defaults to poll.stale_after_seconds).",
    )

    return parser.parse_args()


def main() -> None:
    args = parse_args()
    setup_console_logging(logging.DEBUG if args.verbose else logging.INFO)

    if args.command == "ingest":
        print(f"Created {ingest_events(args.path)} alert(s).")
    elif args.command == "contacts":
        print(f"Imported {import_contacts(args.path)} contact(s).")
    elif args.command == "alerts":
        response = list_user_alerts(
            args.user_id,
            status=args.status,
            limit=args.limit,
            offset=args.offset,
        )
        print(response.model_dump_json(indent=2))
    elif args.command == "stale":
        print(list_stale_claims(args.older_than).model_dump_json(indent=2))
    else:
        asyncio.run(
            run_poll_loop(
                max_runtime=getattr(args, "duration", None),
                interval=getattr(args, "interval", None),
                once=getattr(args, "once", False),
            )
        )


if __name__ == "__main__":
    main()
