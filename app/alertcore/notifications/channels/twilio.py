from __future__ import annotations

import logging
import re
from typing import Any, Dict, Optional

import httpx

from alertcore.errors import PermanentChannelError, TransientChannelError


logger = logging.getLogger("alertcore.channels.twilio")

DEFAULT_TWILIO_BASE_URL = "https://api.twilio.com/2010-04-01"
E164_PATTERN = re.compile(r"^\+[1-9]\d{9,14}$")


def validate_e164(phone: Optional[str]) -> str:
    if not phone or not isinstance(phone, str):
        raise PermanentChannelError("Phone must be a non-empty string")
    trimmed = phone.strip()
    if not E164_PATTERN.match(trimmed):
        raise PermanentChannelError(f"Invalid E.164 phone number: {mask_phone(trimmed)}")
    return trimmed


def mask_phone(phone: Optional[str]) -> str:
    if not phone:
        return "<none>"
    if len(phone) <= 4:
        return "*" * len(phone)
    return f"{'*' * (len(phone) - 4)}{phone[-4:]}"


class TwilioClient:
    """Minimal Twilio REST wrapper shared by the SMS and voice channels."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        *,
        base_url: str = DEFAULT_TWILIO_BASE_URL,
        timeout: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        if not account_sid or not auth_token:
            raise ValueError("Twilio credentials not configured (account_sid, auth_token)")
        self._account_sid = account_sid
        self._client = httpx.Client(
            base_url=base_url,
            auth=(account_sid, auth_token),
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def create(self, resource: str, data: Dict[str, Any]) -> Dict[str, Any]:
        path = f"/Accounts/{self._account_sid}/{resource}.json"
        try:
            response = self._client.post(path, data=data)
        except httpx.TimeoutException as exc:
            raise TransientChannelError(f"Twilio {resource} request timed out") from exc
        except httpx.TransportError as exc:
            raise TransientChannelError(f"Twilio {resource} transport error: {exc}") from exc

        status = response.status_code
        if status == 429 or status >= 500:
            raise TransientChannelError(f"Twilio {resource} returned {status}")
        if status >= 400:
            raise PermanentChannelError(f"Twilio {resource} rejected ({status}): {self._error_message(response)}")

        payload = response.json()
        logger.info(
            "twilio.created",
            extra={"resource": resource, "status": status, "sid": payload.get("sid")},
        )
        return payload

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:200]
        code = body.get("code")
        message = body.get("message") or ""
        return f"{code} {message}".strip()
