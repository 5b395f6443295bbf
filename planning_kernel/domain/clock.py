"""
Edit-stamp time source.

CellStore stamps ``updated_at`` from an injected Clock, so every write in one
edit pipeline stage can be pinned in tests and in the seed script.
"""

from abc import ABC, abstractmethod
from datetime import UTC, datetime

_SEED_INSTANT = datetime(2025, 1, 1, 12, 0, 0, tzinfo=UTC)


class Clock(ABC):

    @abstractmethod
    def now(self) -> datetime:
        """Current instant, always timezone-aware."""


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(UTC)


class DeterministicClock(Clock):
    """Always reports the same instant. Naive datetimes are rejected."""

    def __init__(self, instant: datetime | None = None):
        instant = instant or _SEED_INSTANT
        if instant.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware datetime")
        self._instant = instant

    def now(self) -> datetime:
        return self._instant
