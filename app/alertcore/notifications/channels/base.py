from __future__ import annotations

from typing import Protocol

from ..models import RenderedMessage, SendResult


class NotificationChannel(Protocol):
    """
    A delivery transport. ``send`` either returns a successful SendResult or
    raises TransientChannelError / PermanentChannelError. It never retries.
    """

    name: str

    def send(self, target: str, payload: RenderedMessage) -> SendResult:
        ...

    def close(self) -> None:
        ...
