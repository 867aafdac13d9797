from __future__ import annotations

import logging
import smtplib
import socket
import time
from email.message import EmailMessage
from email.utils import make_msgid

from alertcore.errors import PermanentChannelError, TransientChannelError

from ..models import EmailPayload, RenderedMessage, SendResult, TextPayload
from .base import NotificationChannel


logger = logging.getLogger("alertcore.channels.email")


class EmailChannel(NotificationChannel):
    name = "email"

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        from_address: str,
        use_tls: bool = True,
        timeout: float = 10.0,
        test_mode: bool = False,
    ) -> None:
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._from_address = from_address
        self._use_tls = use_tls
        self._timeout = timeout
        self.test_mode = test_mode

    def close(self) -> None:
        return

    def send(self, target: str, payload: RenderedMessage) -> SendResult:
        if not target or "@" not in target:
            raise PermanentChannelError(f"Invalid email address: {target!r}")
        if isinstance(payload, EmailPayload):
            subject, body = payload.subject, payload.body
        elif isinstance(payload, TextPayload):
            subject, body = "Reminder", payload.body
        else:
            raise PermanentChannelError(f"Email cannot carry {type(payload).__name__}")

        message = EmailMessage()
        message["From"] = self._from_address
        message["To"] = target
        message["Subject"] = subject
        message["Message-ID"] = make_msgid()
        message.set_content(body)

        if self.test_mode:
            logger.info("email.test_mode", extra={"to": target, "subject": subject})
            return SendResult(success=True, provider_reference=f"TEST-{int(time.time() * 1000)}")

        try:
            with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as server:
                if self._use_tls:
                    server.starttls()
                if self._username:
                    server.login(self._username, self._password)
                refused = server.send_message(message)
        except smtplib.SMTPRecipientsRefused as exc:
            raise PermanentChannelError(f"Recipient refused: {target}") from exc
        except smtplib.SMTPAuthenticationError as exc:
            raise PermanentChannelError(f"SMTP authentication failed ({exc.smtp_code})") from exc
        except smtplib.SMTPResponseException as exc:
            error = f"SMTP error {exc.smtp_code}: {exc.smtp_error!r}"
            if 400 <= exc.smtp_code < 500:
                raise TransientChannelError(error) from exc
            raise PermanentChannelError(error) from exc
        except (smtplib.SMTPException, socket.timeout, OSError) as exc:
            raise TransientChannelError(f"SMTP delivery failed: {exc}") from exc

        if refused:
            raise PermanentChannelError(f"Recipient refused: {target}")
        return SendResult(success=True, provider_reference=message["Message-ID"])
