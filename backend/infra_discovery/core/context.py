"""Cancellation context passed through every discovery call."""

import threading
import time
from typing import Optional

from infra_discovery.core.errors import DiscoveryCancelledError


class DiscoveryContext:
    """
    Cooperative cancellation token with an optional deadline.

    Extractors call ``check()`` at unit boundaries (before each file, each
    API page and each scan kind). Cancelling a parent also cancels children
    created with ``with_timeout``.
    """

    def __init__(self, deadline: Optional[float] = None, parent: Optional["DiscoveryContext"] = None):
        self._event = threading.Event()
        self._deadline = deadline
        self._parent = parent
        self._reason = "operation cancelled"

    @classmethod
    def background(cls) -> "DiscoveryContext":
        """A context that is never cancelled unless ``cancel()`` is called."""
        return cls()

    def with_timeout(self, seconds: float) -> "DiscoveryContext":
        deadline = time.monotonic() + seconds
        if self._deadline is not None:
            deadline = min(deadline, self._deadline)
        return DiscoveryContext(deadline=deadline, parent=self)

    def cancel(self, reason: str = "operation cancelled") -> None:
        self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._reason = "deadline exceeded"
            return True
        return self._parent is not None and self._parent.cancelled

    def remaining(self) -> Optional[float]:
        """Seconds until the deadline, or None when there is none."""
        if self._deadline is None:
            return self._parent.remaining() if self._parent else None
        return max(0.0, self._deadline - time.monotonic())

    def check(self) -> None:
        if self.cancelled:
            raise DiscoveryCancelledError(self._reason)


def ensure_context(ctx: Optional[DiscoveryContext]) -> DiscoveryContext:
    return ctx if ctx is not None else DiscoveryContext.background()
