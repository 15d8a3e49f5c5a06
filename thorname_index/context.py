"""Cancellation and deadline handling for index queries."""

from __future__ import annotations

import threading
import time
from typing import Optional


class QueryCancelled(RuntimeError):
    """Raised when a query is cancelled by its caller or runs past its deadline."""


class QueryContext:
    """Caller-owned signal shared by every data-source call of one query.

    A context may be cancelled from any thread. Once cancelled or expired it
    stays that way, so a context should not be reused across queries.
    """

    def __init__(self, deadline: Optional[float] = None) -> None:
        self.deadline = deadline
        self._cancelled = threading.Event()

    @classmethod
    def with_timeout(cls, seconds: Optional[float]) -> "QueryContext":
        if seconds is None:
            return cls()
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set() or self.expired

    @property
    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or ``None`` without one."""

        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def check(self) -> None:
        if self._cancelled.is_set():
            raise QueryCancelled("Query cancelled by caller")
        if self.expired:
            raise QueryCancelled("Query deadline exceeded")


def ensure_context(ctx: Optional[QueryContext]) -> QueryContext:
    return ctx if ctx is not None else QueryContext()
