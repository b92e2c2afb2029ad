"""Deadline shared, read-only, by every activity of one wait."""

import asyncio
import time
from typing import Optional


class Deadline:
    """
    A point in monotonic time after which waiting must stop.

    ``Deadline(None)`` never expires. Sleeps are clipped to the remaining time
    so nothing outlives the deadline by more than one poll interval.
    """

    def __init__(self, timeout: Optional[float]) -> None:
        self.timeout = timeout
        self._expires_at = None if timeout is None else time.monotonic() + timeout

    @classmethod
    def never(cls) -> "Deadline":
        return cls(None)

    def remaining(self) -> Optional[float]:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    def expired(self) -> bool:
        return self._expires_at is not None and time.monotonic() >= self._expires_at

    def clip(self, seconds: float) -> float:
        remaining = self.remaining()
        if remaining is None:
            return seconds
        return min(seconds, remaining)

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(self.clip(seconds))

    def __repr__(self) -> str:
        return f"Deadline(timeout={self.timeout}, remaining={self.remaining()})"
