"""Clock abstraction shared by the debounce and countdown timers."""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> float:
        """Monotonic reading in seconds."""

    async def sleep(self, seconds: float) -> None:
        ...


class SystemClock:
    """Clock backed by ``time.monotonic`` and ``asyncio.sleep``."""

    def now(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


def utc_now() -> datetime:
    """Return current UTC time with tzinfo."""

    return datetime.now(timezone.utc)


__all__ = ["Clock", "SystemClock", "utc_now"]
