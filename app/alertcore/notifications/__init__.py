"""Notification package exposing delivery channels, rendering and the delivery service."""

from .renderer import MessageRenderer
from .service import DeliveryOutcome, DeliveryResult, DeliveryService, build_channels

__all__ = [
    "DeliveryOutcome",
    "DeliveryResult",
    "DeliveryService",
    "MessageRenderer",
    "build_channels",
]
