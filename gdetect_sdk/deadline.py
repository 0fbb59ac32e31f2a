"""Total-wait budget shared by every step of one synchronous operation."""

from __future__ import annotations

import threading
import time

from gdetect_sdk.exceptions import GDetectCancelledError, GDetectTimeoutError


class Deadline:
    """Monotonic deadline with optional cooperative cancellation.

    Args:
        timeout: Budget in seconds, or ``None`` for no deadline.
        cancel: Event that aborts the operation once set.

    :meth:`sleep` races the interval against the deadline and the cancel
    event, so a wait is interrupted as soon as either fires.
    """

    def __init__(self, timeout: float | None = None, cancel: threading.Event | None = None) -> None:
        self._expires = None if timeout is None else time.monotonic() + timeout
        self._cancel = cancel or threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def remaining(self) -> float | None:
        if self._expires is None:
            return None
        return max(self._expires - time.monotonic(), 0.0)

    def check(self) -> None:
        """Raise if the operation was cancelled or the budget is spent."""
        if self._cancel.is_set():
            raise GDetectCancelledError("operation cancelled")
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            raise GDetectTimeoutError("timeout")

    def bound(self, timeout: float) -> float:
        """Clamp a per-request *timeout* to what is left of the budget."""
        self.check()
        remaining = self.remaining()
        return timeout if remaining is None else min(timeout, remaining)

    def sleep(self, interval: float) -> None:
        """Wait *interval* seconds unless cancelled or expired first."""
        self.check()
        remaining = self.remaining()
        wait = interval if remaining is None else min(interval, remaining)
        if self._cancel.wait(wait):
            raise GDetectCancelledError("operation cancelled")
        if remaining is not None and wait < interval:
            raise GDetectTimeoutError("timeout")
