from __future__ import annotations


class AlertCoreError(RuntimeError):
    """Base class for errors raised by the alert engine."""


class ConfigError(AlertCoreError):
    """Raised when the configuration file is missing or malformed."""


class ChannelError(AlertCoreError):
    """Raised by a channel when a send does not reach the provider successfully."""

    def __init__(self, message: str, *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable

    @property
    def kind(self) -> str:
        return "transient" if self.retryable else "permanent"


class TransientChannelError(ChannelError):
    """Timeouts, rate limits and provider-side outages."""

    def __init__(self, message: str) -> None:
        super().__init__(message, retryable=True)


class PermanentChannelError(ChannelError):
    """Invalid targets and rejected payloads; never worth another attempt."""

    def __init__(self, message: str) -> None:
        super().__init__(message, retryable=False)
