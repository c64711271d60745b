"""
Cooperative cancellation for a single search.

A `CancelToken` is checked at every suspension point of the pipeline: before each
HTTP request, inside every backoff or politeness sleep, and between strategies,
pages and candidates. It is set either explicitly through `cancel()` or implicitly
once its deadline passes.
"""

import threading
import time
from typing import Callable, Optional

from ..core.errors import SearchCancelled


class CancelToken:
    def __init__(
            self,
            timeout: Optional[float] = None,
            clock: Callable[[], float] = time.monotonic
            ) -> None:
        self._event = threading.Event()
        self._clock = clock
        self.deadline: Optional[float] = clock() + timeout if timeout is not None else None

    def cancel(self) -> None:
        self._event.set()

    def limit(self, timeout: float) -> None:
        """Bring the deadline forward to `timeout` seconds from now; never extends it."""
        deadline = self._clock() + timeout
        if self.deadline is None or deadline < self.deadline:
            self.deadline = deadline

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None when there is no deadline."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - self._clock())

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self.deadline is not None and self._clock() >= self.deadline

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise SearchCancelled("search cancelled")

    def sleep(self, seconds: float) -> None:
        """Wait up to `seconds`, waking immediately when cancelled."""
        self.raise_if_cancelled()
        if seconds <= 0:
            return
        remaining = self.remaining()
        wait = seconds if remaining is None else min(seconds, remaining)
        if self._event.wait(wait):
            raise SearchCancelled("search cancelled")
        self.raise_if_cancelled()

    def clamp(self, timeout: float) -> float:
        """Shrink a request timeout so it never outlives the deadline."""
        remaining = self.remaining()
        if remaining is None:
            return timeout
        return max(0.001, min(timeout, remaining))
