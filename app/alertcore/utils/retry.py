from __future__ import annotations

import logging
import random
import time
from typing import Callable, Optional, Tuple, Type, TypeVar

T = TypeVar("T")


def with_retry(
    operation: Callable[[], T],
    *,
    attempts: int = 3,
    base_delay: float = 0.2,
    max_delay: float = 2.0,
    exceptions: Tuple[Type[BaseException], ...] = (Exception,),
    is_retryable: Optional[Callable[[BaseException], bool]] = None,
    logger: Optional[logging.Logger] = None,
    description: Optional[str] = None,
    jitter: float = 0.2,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run ``operation`` with exponential backoff.

    Only idempotent operations belong here. Channel sends are never wrapped:
    a failed send is recorded, not repeated.

    Args:
        operation: Callable to execute.
        attempts: Maximum number of attempts.
        base_delay: Delay before the second attempt (seconds), doubled each time.
        max_delay: Upper bound for a single delay (seconds).
        exceptions: Exception types that are considered for a retry.
        is_retryable: Predicate narrowing ``exceptions``; defaults to the
            exception's ``retryable`` attribute when it has one.
        logger: Logger receiving a warning per retry.
        description: Human-readable label for log lines.
        jitter: Fractional jitter applied to each delay (0.2 => ±20%).
        sleep: Sleep function, replaceable in tests.
    """
    delay = base_delay
    desc = description or getattr(operation, "__name__", "operation")
    attempts = max(1, attempts)

    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except exceptions as exc:  # type: ignore[misc]
            if is_retryable is not None:
                retryable = bool(is_retryable(exc))
            else:
                retryable = bool(getattr(exc, "retryable", True))

            if not retryable or attempt == attempts:
                raise

            if logger is not None:
                logger.warning(
                    "Retrying %s after %s (attempt %s/%s)",
                    desc,
                    exc,
                    attempt,
                    attempts,
                )

            factor = random.uniform(1 - jitter, 1 + jitter) if jitter > 0 else 1.0
            sleep(delay * factor)
            delay = min(max_delay, delay * 2)

    raise RuntimeError(f"Retry loop for {desc} exited unexpectedly")
