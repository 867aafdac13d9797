from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Optional

import httpx

from alertcore.alerts.lock import DeliveryLock
from alertcore.config import AlertCoreConfig
from alertcore.data.store import AlertStore
from alertcore.errors import ChannelError, ConfigError, PermanentChannelError
from alertcore.models import Alert
from alertcore.utils.time import utcnow

from .channels.base import NotificationChannel
from .channels.email import EmailChannel
from .channels.sms import SmsChannel
from .channels.voice import VoiceChannel
from .renderer import MessageRenderer


logger = logging.getLogger("alertcore.delivery")


class DeliveryOutcome(str, Enum):
    DELIVERED = "delivered"
    FAILED = "failed"
    DUPLICATE = "duplicate"


@dataclass(frozen=True, slots=True)
class DeliveryResult:
    alert_id: int
    outcome: DeliveryOutcome
    reason: Optional[str] = None
    provider_reference: Optional[str] = None


def _require(conf: Dict[str, Any], key: str, channel: str) -> Any:
    value = conf.get(key)
    if value in (None, ""):
        raise ConfigError(f"channels.{channel}.{key} is required")
    return value


def build_channels(
    config: AlertCoreConfig,
    *,
    transport: Optional[httpx.BaseTransport] = None,
) -> Dict[str, NotificationChannel]:
    """Instantiate every enabled channel; disabled ones are simply absent."""
    channels: Dict[str, NotificationChannel] = {}
    send_timeout = config.poll.send_timeout_seconds

    email_conf = config.channels.get("email")
    if email_conf is not None and config.channel_enabled("email"):
        test_mode = bool(email_conf.get("test_mode", False))
        from_address = email_conf.get("from_address")
        if not from_address and not test_mode:
            raise ConfigError("channels.email.from_address is required")
        channels["email"] = EmailChannel(
            host=str(email_conf.get("smtp_host", "localhost")),
            port=int(email_conf.get("smtp_port", 587)),
            username=str(email_conf.get("username", "")),
            password=str(email_conf.get("password", "")),
            from_address=str(from_address or "alerts@localhost"),
            use_tls=bool(email_conf.get("use_tls", True)),
            timeout=min(float(email_conf.get("timeout", 10.0)), send_timeout),
            test_mode=test_mode,
        )

    for name, factory in (("sms", SmsChannel), ("voice", VoiceChannel)):
        conf = config.channels.get(name)
        if conf is None or not config.channel_enabled(name):
            continue
        test_mode = bool(conf.get("test_mode", False))
        kwargs: Dict[str, Any] = {
            "timeout": min(float(conf.get("timeout", 15.0)), send_timeout),
            "transport": transport,
            "test_mode": test_mode,
        }
        if conf.get("base_url"):
            kwargs["base_url"] = str(conf["base_url"])
        if name == "voice":
            kwargs["ring_timeout"] = int(conf.get("ring_timeout", 45))
            kwargs["status_callback"] = conf.get("status_callback")
        if test_mode:
            credentials = (
                str(conf.get("account_sid", "")),
                str(conf.get("auth_token", "")),
                str(conf.get("from_number", "")),
            )
        else:
            credentials = (
                str(_require(conf, "account_sid", name)),
                str(_require(conf, "auth_token", name)),
                str(_require(conf, "from_number", name)),
            )
        channels[name] = factory(*credentials, **kwargs)

    return channels


class DeliveryService:
    """
    Delivers one alert: claim, render, send, record.

    Only the caller that wins the claim reaches a channel. After a claim the
    alert always ends DELIVERED or FAILED; failures are recorded, never
    retried here.
    """

    def __init__(
        self,
        store: AlertStore,
        channels: Dict[str, NotificationChannel] | Iterable[NotificationChannel],
        renderer: Optional[MessageRenderer] = None,
        *,
        clock: Callable = utcnow,
    ) -> None:
        if not isinstance(channels, dict):
            channels = {channel.name: channel for channel in channels}
        self._store = store
        self._channels: Dict[str, NotificationChannel] = dict(channels)
        self._renderer = renderer or MessageRenderer()
        self._clock = clock
        self._lock = DeliveryLock(store, clock=clock)

    @classmethod
    def from_config(
        cls,
        store: AlertStore,
        config: AlertCoreConfig,
        *,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> "DeliveryService":
        renderer = MessageRenderer(
            timezone_name=config.renderer.timezone,
            brand=config.renderer.brand,
        )
        return cls(store, build_channels(config, transport=transport), renderer)

    @property
    def store(self) -> AlertStore:
        return self._store

    @property
    def channels(self) -> Dict[str, NotificationChannel]:
        return dict(self._channels)

    def close(self) -> None:
        for channel in self._channels.values():
            close_fn = getattr(channel, "close", None)
            if callable(close_fn):
                close_fn()

    def deliver(self, alert: Alert) -> DeliveryResult:
        if not self._lock.claim(alert):
            return DeliveryResult(alert.id, DeliveryOutcome.DUPLICATE, reason="claimed elsewhere")

        try:
            provider_reference = self._send(alert)
        except ChannelError as exc:
            reason = f"{exc.kind}: {exc}"
            log = logger.warning if exc.retryable else logger.error
            log(
                "delivery.failed",
                extra={
                    "alert_id": alert.id,
                    "event_id": alert.event_id,
                    "channel": alert.channel,
                    "failure_kind": exc.kind,
                    "reason": str(exc),
                },
            )
            self._lock.fail(alert, reason)
            return DeliveryResult(alert.id, DeliveryOutcome.FAILED, reason=reason)
        except Exception as exc:  # noqa: BLE001 - a claimed alert must still reach a terminal state
            logger.exception(
                "delivery.error",
                extra={"alert_id": alert.id, "event_id": alert.event_id, "channel": alert.channel},
            )
            reason = f"error: {exc}"
            self._lock.fail(alert, reason)
            return DeliveryResult(alert.id, DeliveryOutcome.FAILED, reason=reason)

        self._lock.confirm(alert, provider_reference)
        logger.info(
            "delivery.delivered",
            extra={
                "alert_id": alert.id,
                "event_id": alert.event_id,
                "alert_type": alert.alert_type,
                "channel": alert.channel,
                "provider_reference": provider_reference,
            },
        )
        return DeliveryResult(alert.id, DeliveryOutcome.DELIVERED, provider_reference=provider_reference)

    def _send(self, alert: Alert) -> Optional[str]:
        channel = self._channels.get(alert.channel)
        if channel is None:
            raise PermanentChannelError(f"channel '{alert.channel}' is not enabled")

        contact = self._store.get_contact(alert.user_id)
        target = contact.target_for(alert.channel) if contact is not None else None
        if not target:
            raise PermanentChannelError(f"no {alert.channel} target for user {alert.user_id}")

        event = self._store.get_event(alert.event_id)
        payload = self._renderer.render(alert, event, self._clock(), contact)
        result = channel.send(target, payload)
        if not result.success:
            raise PermanentChannelError("provider reported an unsuccessful send")
        return result.provider_reference
