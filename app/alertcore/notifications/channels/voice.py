from __future__ import annotations

import logging
import time
from typing import Optional

import httpx

from alertcore.errors import PermanentChannelError

from ..models import RenderedMessage, SendResult, VoiceScript
from .base import NotificationChannel
from .twilio import DEFAULT_TWILIO_BASE_URL, TwilioClient, mask_phone, validate_e164


logger = logging.getLogger("alertcore.channels.voice")


class VoiceChannel(NotificationChannel):
    """Places an outbound call that reads the rendered VoiceScript."""

    name = "voice"

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        *,
        ring_timeout: int = 45,
        status_callback: Optional[str] = None,
        base_url: str = DEFAULT_TWILIO_BASE_URL,
        timeout: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None,
        test_mode: bool = False,
    ) -> None:
        self._from_number = from_number
        self._ring_timeout = ring_timeout
        self._status_callback = status_callback
        self.test_mode = test_mode
        self._client: Optional[TwilioClient] = None
        if not test_mode:
            self._client = TwilioClient(
                account_sid,
                auth_token,
                base_url=base_url,
                timeout=timeout,
                transport=transport,
            )

    def close(self) -> None:
        if self._client is not None:
            self._client.close()

    def send(self, target: str, payload: RenderedMessage) -> SendResult:
        to = validate_e164(target)
        if not isinstance(payload, VoiceScript):
            raise PermanentChannelError(f"Voice cannot carry {type(payload).__name__}")

        if self._client is None:
            logger.info("voice.test_mode", extra={"to": mask_phone(to), "script": payload.text[:50]})
            return SendResult(success=True, provider_reference=f"TEST-{int(time.time() * 1000)}")

        data = {
            "To": to,
            "From": self._from_number,
            "Twiml": payload.to_twiml(),
            "Timeout": str(self._ring_timeout),
        }
        if self._status_callback:
            data["StatusCallback"] = self._status_callback
        result = self._client.create("Calls", data)
        logger.info(
            "voice.call_initiated",
            extra={"to": mask_phone(to), "sid": result.get("sid"), "call_status": result.get("status")},
        )
        return SendResult(success=True, provider_reference=result.get("sid"))
