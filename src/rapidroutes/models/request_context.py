"""Request-scoped deadline and cancellation carried through catalog calls."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Optional

from ..errors import CatalogTimeout, CrawlCancelled


@dataclass(slots=True)
class RequestContext:
    deadline: Optional[float] = None
    cancel_event: threading.Event = field(default_factory=threading.Event)
    catalog_errors: int = 0

    @classmethod
    def with_timeout(
        cls,
        timeout_seconds: Optional[float],
        cancel_event: Optional[threading.Event] = None,
    ) -> "RequestContext":
        deadline = time.monotonic() + timeout_seconds if timeout_seconds is not None else None
        return cls(deadline=deadline, cancel_event=cancel_event or threading.Event())

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        self.cancel_event.set()

    def remaining(self) -> Optional[float]:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def check(self, operation: str) -> None:
        """Raise before starting `operation` if the request was cancelled or timed out."""

        if self.cancelled:
            raise CrawlCancelled(f"Request cancelled before {operation}")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise CatalogTimeout(f"Request deadline expired before {operation}")

    def record_catalog_error(self) -> None:
        self.catalog_errors += 1

    @property
    def degraded(self) -> bool:
        return self.catalog_errors > 0
