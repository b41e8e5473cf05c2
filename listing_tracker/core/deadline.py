# listing_tracker/core/deadline.py

"""Cancellation and deadline signal shared by the fetcher, extractor and store."""

import threading
import time
from dataclasses import dataclass, field

from listing_tracker.core.exceptions import OperationCancelled


@dataclass
class Deadline:
    """A monotonic expiry time that can also be cancelled explicitly.

    ``expires_at`` is a :func:`time.monotonic` timestamp; ``None`` means
    the deadline only fires through :meth:`cancel`.
    """

    expires_at: float | None = None
    _cancelled: threading.Event = field(
        default_factory=threading.Event, repr=False,
    )

    @classmethod
    def after(cls, seconds: float) -> "Deadline":
        """Return a deadline that expires *seconds* from now."""
        return cls(expires_at=time.monotonic() + seconds)

    def cancel(self) -> None:
        """Fire the deadline immediately."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def expired(self) -> bool:
        """True once cancelled or past the expiry time."""
        if self._cancelled.is_set():
            return True
        return (
            self.expires_at is not None
            and time.monotonic() >= self.expires_at
        )

    def remaining(self) -> float | None:
        """Seconds left, 0.0 when expired, ``None`` when unbounded."""
        if self._cancelled.is_set():
            return 0.0
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - time.monotonic())

    def check(self, operation: str = "operation") -> None:
        """Raise :class:`OperationCancelled` if the deadline has fired."""
        if self.expired:
            raise OperationCancelled(operation)
