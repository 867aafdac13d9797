"""Alert scheduling and at-most-once multi-channel delivery engine."""

__version__ = "0.1.0"
