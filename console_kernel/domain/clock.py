"""
Clock -- Injectable wall-clock abstraction.

Responsibility:
    Provides the clock used for every timestamp the console writes:
    ``approved_at``/``payment_confirmed_at``/``delivery_confirmed_at`` on
    entities, ``created_at``/``started_at``/``completed_at`` on bulk
    operations, and license expiry dates computed by operation handlers.

Architecture position:
    Kernel > Domain -- pure, zero I/O (except SystemClock, which is the
    one sanctioned boundary for wall-clock time).

Non-goals:
    Durations and deadlines (gateway timeouts, batch soft timeouts) use
    ``time.monotonic()`` and are not routed through this class.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Guarantees:
        ``now()`` returns a timezone-aware UTC ``datetime``.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current UTC time."""
        ...


class SystemClock(Clock):
    """Production clock that returns actual system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    ``now()`` returns the same value on repeated calls until ``advance()``
    or ``set_time()`` is called.  Safe to share between worker threads.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime(
            2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc
        )
        self._advance_seconds = 0

    def now(self) -> datetime:
        return self._fixed_time + timedelta(seconds=self._advance_seconds)

    def set_time(self, time: datetime) -> None:
        """Set the clock to a specific time."""
        self._fixed_time = time
        self._advance_seconds = 0

    def advance(self, seconds: int = 1) -> None:
        """Advance the clock by the specified seconds."""
        self._advance_seconds += seconds

    def tick(self) -> datetime:
        """Advance by 1 second and return new time."""
        self.advance(1)
        return self.now()
