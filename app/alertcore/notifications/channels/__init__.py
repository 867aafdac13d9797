from .base import NotificationChannel
from .email import EmailChannel
from .sms import SmsChannel
from .voice import VoiceChannel

__all__ = [
    "EmailChannel",
    "NotificationChannel",
    "SmsChannel",
    "VoiceChannel",
]
