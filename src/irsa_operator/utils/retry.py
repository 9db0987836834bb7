"""Bounded retry with backoff for eventually consistent AWS operations."""

from __future__ import annotations

import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from .errors import ErrorKind, IRSAError, classify_error, sanitize_exception

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry policy: ``max_retries`` retries after the first attempt.

    The delay before retry ``n`` (0-based) is ``interval * multiplier ** n``,
    capped at ``max_interval``.
    """

    max_retries: int
    interval: float
    multiplier: float = 1.5
    max_interval: float = 60.0

    def delay(self, attempt: int) -> float:
        return min(self.interval * (self.multiplier ** attempt), self.max_interval)


# Bucket creation, object upload, policy and provider registration
DEFAULT_POLICY = RetryPolicy(max_retries=3, interval=5.0)


def distribution_delete_policy() -> RetryPolicy:
    """Policy for deleting a just-disabled distribution."""
    return RetryPolicy(
        max_retries=int(os.getenv("DISTRIBUTION_DELETE_MAX_RETRIES", "4")),
        interval=float(os.getenv("DISTRIBUTION_DELETE_INTERVAL_SECONDS", "30")),
        multiplier=1.0,
        max_interval=300.0,
    )


def check_cancelled(cancel_event: threading.Event | None, operation: str) -> None:
    """Raise a retryable error if the operator is shutting down.

    Raises:
        IRSAError: If the cancellation event is set
    """
    if cancel_event is not None and cancel_event.is_set():
        raise IRSAError("cancelled", kind=ErrorKind.RETRYABLE, operation=operation)


def retry_with_backoff(
    operation: str,
    fn: Callable[[], _T],
    policy: RetryPolicy = DEFAULT_POLICY,
    cancel_event: threading.Event | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> _T:
    """Call ``fn`` until it succeeds or the policy is exhausted.

    Fatal ``IRSAError``s are not retried. Exhaustion surfaces as a RETRYABLE
    ``IRSAError`` unless the last error was NotYetReady, which is kept.

    Args:
        operation: Operation name used in logs and errors
        fn: Callable performing the operation
        policy: Retry policy
        cancel_event: Checked before every attempt
        sleep: Sleep function

    Returns:
        The result of ``fn``

    Raises:
        IRSAError: If retries are exhausted, the error is fatal, or cancelled
    """
    attempt = 0
    while True:
        check_cancelled(cancel_event, operation)
        try:
            return fn()
        except Exception as e:
            if isinstance(e, IRSAError) and e.kind is ErrorKind.FATAL:
                raise
            if attempt >= policy.max_retries:
                kind = ErrorKind.NOT_YET_READY if classify_error(e) is ErrorKind.NOT_YET_READY else ErrorKind.RETRYABLE
                raise IRSAError(
                    f"giving up after {attempt + 1} attempts: {sanitize_exception(e)}",
                    kind=kind,
                    operation=operation,
                    requeue_after=getattr(e, "requeue_after", None),
                    reason=getattr(e, "reason", None),
                ) from e
            delay = policy.delay(attempt)
            logger.warning(f"{operation} failed (attempt {attempt + 1}), retrying in {delay:.1f}s: {sanitize_exception(e)}")
            attempt += 1
            sleep(delay)
