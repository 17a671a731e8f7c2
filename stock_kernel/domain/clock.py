"""
Clock -- injectable time source for movement timestamps.

Responsibility:
    InventoryLedger and ProductService stamp ``created_at`` from a Clock they
    receive at construction.  Nothing in the kernel reads the wall clock
    directly, so replay order in tests is fully controlled.

Architecture position:
    Kernel > Domain.  SystemClock is the only place that touches real time.

Failure modes:
    - DeterministicClock rejects naive datetimes (ValueError); movement
      timestamps are always timezone-aware.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

DEFAULT_TEST_EPOCH = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """Source of timezone-aware ``datetime`` values."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


def _require_aware(value: datetime) -> datetime:
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        raise ValueError(f"clock time must be timezone-aware, got {value!r}")
    return value


class DeterministicClock(Clock):
    """
    Manually driven clock for tests.

    ``now()`` is stable until ``advance()``, ``tick()`` or ``set_time()``
    moves it; it never goes backwards unless ``set_time()`` says so.
    """

    def __init__(self, start: datetime | None = None):
        self._current = _require_aware(start or DEFAULT_TEST_EPOCH)

    def now(self) -> datetime:
        return self._current

    def set_time(self, value: datetime) -> None:
        self._current = _require_aware(value)

    def advance(self, seconds: int | float | timedelta = 1) -> datetime:
        step = seconds if isinstance(seconds, timedelta) else timedelta(seconds=seconds)
        if step < timedelta(0):
            raise ValueError("advance() cannot move the clock backwards")
        self._current += step
        return self._current

    def tick(self) -> datetime:
        """One second forward."""
        return self.advance(1)
