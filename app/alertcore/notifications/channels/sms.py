from __future__ import annotations

import logging
import time
from typing import Optional

import httpx

from alertcore.errors import PermanentChannelError

from ..models import EmailPayload, RenderedMessage, SendResult, TextPayload
from .base import NotificationChannel
from .twilio import DEFAULT_TWILIO_BASE_URL, TwilioClient, mask_phone, validate_e164


logger = logging.getLogger("alertcore.channels.sms")


class SmsChannel(NotificationChannel):
    name = "sms"

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        *,
        base_url: str = DEFAULT_TWILIO_BASE_URL,
        timeout: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None,
        test_mode: bool = False,
    ) -> None:
        self._from_number = from_number
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
        if isinstance(payload, TextPayload):
            body = payload.body
        elif isinstance(payload, EmailPayload):
            body = f"{payload.subject}\n{payload.body}"
        else:
            raise PermanentChannelError(f"SMS cannot carry {type(payload).__name__}")

        if self._client is None:
            logger.info("sms.test_mode", extra={"to": mask_phone(to)})
            return SendResult(success=True, provider_reference=f"TEST-{int(time.time() * 1000)}")

        result = self._client.create("Messages", {"To": to, "From": self._from_number, "Body": body})
        logger.info("sms.sent", extra={"to": mask_phone(to), "sid": result.get("sid")})
        return SendResult(success=True, provider_reference=result.get("sid"))
