from __future__ import annotations

import smtplib
from urllib.parse import parse_qs

import httpx
import pytest

from alertcore.errors import PermanentChannelError, TransientChannelError
from alertcore.notifications.channels import EmailChannel, SmsChannel, VoiceChannel
from alertcore.notifications.channels.twilio import mask_phone, validate_e164
from alertcore.notifications.models import EmailPayload, TextPayload, VoiceScript


def _transport(status_code, body=None, captured=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if captured is not None:
            captured.append(request)
        return httpx.Response(status_code, json=body if body is not None else {})

    return httpx.MockTransport(handler)


def _sms(transport):
    return SmsChannel("AC123", "secret", "+15550001111", transport=transport)


def test_sms_posts_message_and_returns_sid():
    captured = []
    channel = _sms(_transport(201, {"sid": "SM42", "status": "queued"}, captured))

    result = channel.send("+15551234567", TextPayload(body="hello"))

    assert result.success is True
    assert result.provider_reference == "SM42"
    request = captured[0]
    assert request.url.path.endswith("/Accounts/AC123/Messages.json")
    form = parse_qs(request.content.decode())
    assert form["To"] == ["+15551234567"]
    assert form["Body"] == ["hello"]


@pytest.mark.parametrize("status_code", [429, 500, 503])
def test_rate_limits_and_server_errors_are_transient(status_code):
    channel = _sms(_transport(status_code))

    with pytest.raises(TransientChannelError):
        channel.send("+15551234567", TextPayload(body="hello"))


def test_client_errors_are_permanent_with_provider_message():
    channel = _sms(_transport(400, {"code": 21211, "message": "Invalid 'To' Phone Number"}))

    with pytest.raises(PermanentChannelError) as excinfo:
        channel.send("+15551234567", TextPayload(body="hello"))

    assert "21211" in str(excinfo.value)


def test_transport_timeout_is_transient():
    def handler(request):
        raise httpx.ConnectTimeout("slow", request=request)

    channel = _sms(httpx.MockTransport(handler))

    with pytest.raises(TransientChannelError):
        channel.send("+15551234567", TextPayload(body="hello"))


def test_invalid_phone_is_rejected_before_any_request():
    captured = []
    channel = _sms(_transport(201, {"sid": "SM1"}, captured))

    with pytest.raises(PermanentChannelError):
        channel.send("555-1234", TextPayload(body="hello"))
    assert captured == []


def test_voice_sends_inline_twiml():
    captured = []
    channel = VoiceChannel(
        "AC123",
        "secret",
        "+15550001111",
        ring_timeout=30,
        transport=_transport(201, {"sid": "CA7", "status": "queued"}, captured),
    )

    result = channel.send("+15551234567", VoiceScript(segments=("Hello.", "Join now.")))

    assert result.provider_reference == "CA7"
    form = parse_qs(captured[0].content.decode())
    assert captured[0].url.path.endswith("/Calls.json")
    assert "<Say" in form["Twiml"][0]
    assert form["Timeout"] == ["30"]


def test_voice_refuses_text_payload():
    channel = VoiceChannel("AC123", "secret", "+15550001111", test_mode=True)

    with pytest.raises(PermanentChannelError):
        channel.send("+15551234567", TextPayload(body="hi"))


def test_test_mode_never_touches_the_network():
    channel = SmsChannel("", "", "+15550001111", test_mode=True)

    result = channel.send("+15551234567", TextPayload(body="hello"))

    assert result.success is True
    assert result.provider_reference.startswith("TEST-")


def test_missing_credentials_raise():
    with pytest.raises(ValueError):
        SmsChannel("", "", "+15550001111")


def test_phone_helpers():
    assert validate_e164(" +442071838750 ") == "+442071838750"
    assert mask_phone("+15551234567") == "********4567"
    assert mask_phone(None) == "<none>"


class _FakeSMTP:
    instances = []

    def __init__(self, host, port, timeout=None):
        self.sent = []
        _FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        return None

    def login(self, username, password):
        return None

    def send_message(self, message):
        self.sent.append(message)
        return {}


class _RefusingSMTP(_FakeSMTP):
    def send_message(self, message):
        raise smtplib.SMTPRecipientsRefused({message["To"]: (550, b"no such user")})


class _BusySMTP(_FakeSMTP):
    def send_message(self, message):
        raise smtplib.SMTPDataError(451, b"try again later")


def _email_channel():
    return EmailChannel("smtp.example.com", 587, "user", "pw", "alerts@example.com")


def test_email_sends_message_with_message_id(monkeypatch):
    _FakeSMTP.instances = []
    monkeypatch.setattr(smtplib, "SMTP", _FakeSMTP)

    result = _email_channel().send("ada@example.com", EmailPayload(subject="Hi", body="Body"))

    message = _FakeSMTP.instances[0].sent[0]
    assert message["Subject"] == "Hi"
    assert result.provider_reference == message["Message-ID"]


def test_email_refused_recipient_is_permanent(monkeypatch):
    monkeypatch.setattr(smtplib, "SMTP", _RefusingSMTP)

    with pytest.raises(PermanentChannelError):
        _email_channel().send("ada@example.com", EmailPayload(subject="Hi", body="Body"))


def test_email_4xx_reply_is_transient(monkeypatch):
    monkeypatch.setattr(smtplib, "SMTP", _BusySMTP)

    with pytest.raises(TransientChannelError):
        _email_channel().send("ada@example.com", EmailPayload(subject="Hi", body="Body"))


def test_email_invalid_address_is_permanent():
    with pytest.raises(PermanentChannelError):
        _email_channel().send("not-an-address", EmailPayload(subject="Hi", body="Body"))
