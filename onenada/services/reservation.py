"""Time-boxed soft lock on a member number while the purchase completes."""

from __future__ import annotations

import asyncio
import math
from typing import Callable

from onenada.config import ReservationSettings
from onenada.domain.models import Reservation, ReservationPhase
from onenada.logging import logger
from onenada.services.availability import AvailabilityChecker
from onenada.services.exceptions import ReservationError
from onenada.utils.clock import Clock, SystemClock


class ReservationController:
    """Single writer of the client-side reservation.

    The hold is advisory: it drives the countdown shown next to the paywall,
    while the server decides the permanent assignment when the purchase lands.
    """

    def __init__(
        self,
        checker: AvailabilityChecker,
        *,
        settings: ReservationSettings | None = None,
        clock: Clock | None = None,
        on_tick: Callable[[int], None] | None = None,
        on_expired: Callable[[int], None] | None = None,
    ) -> None:
        self._checker = checker
        self._settings = settings or ReservationSettings()
        self._clock = clock or SystemClock()
        self.on_tick = on_tick
        self.on_expired = on_expired
        self._phase = ReservationPhase.NONE
        self._reservation: Reservation | None = None
        self._ticker: asyncio.Task[None] | None = None

    @property
    def phase(self) -> ReservationPhase:
        return self._phase

    @property
    def reservation(self) -> Reservation | None:
        return self._reservation

    @property
    def is_ticking(self) -> bool:
        return self._ticker is not None and not self._ticker.done()

    @property
    def remaining(self) -> int:
        if self._reservation is None:
            return 0
        elapsed = self._clock.now() - self._reservation.started_at
        return max(0, math.ceil(self._settings.hold_seconds - elapsed))

    def reserve(self, number: int) -> Reservation:
        if self._phase is ReservationPhase.HELD:
            raise ReservationError(f"Number #{self._reservation.number} is already held.")
        check = self._checker.check
        if not check.is_available or check.candidate != number:
            raise ReservationError(f"Number #{number} has not been confirmed as available.")

        self._reservation = Reservation(number=number, started_at=self._clock.now())
        self._phase = ReservationPhase.HELD
        self._ticker = asyncio.get_running_loop().create_task(self._run_countdown())
        logger.info("reservation_held", number=number, hold_seconds=self._settings.hold_seconds)
        return self._reservation

    def commit(self) -> bool:
        if self._phase is not ReservationPhase.HELD:
            return False
        number = self._reservation.number
        self._finish(ReservationPhase.COMMITTED)
        logger.info("reservation_committed", number=number)
        return True

    def clear(self) -> None:
        if self._phase is not ReservationPhase.HELD:
            self._reservation = None
            return
        number = self._reservation.number
        self._finish(ReservationPhase.CLEARED)
        logger.info("reservation_cleared", number=number)

    def refresh(self) -> int:
        """Re-evaluate the hold immediately, e.g. when the app returns to the foreground."""

        if self._phase is not ReservationPhase.HELD:
            return 0
        remaining = self.remaining
        if remaining <= 0:
            self._expire()
        return remaining

    async def aclose(self) -> None:
        ticker = self._ticker
        self.clear()
        if ticker is not None and ticker is not asyncio.current_task():
            try:
                await ticker
            except asyncio.CancelledError:
                pass

    async def _run_countdown(self) -> None:
        while self._phase is ReservationPhase.HELD:
            await self._clock.sleep(self._settings.tick_seconds)
            if self._phase is not ReservationPhase.HELD:
                return
            remaining = self.remaining
            if self.on_tick is not None:
                self.on_tick(remaining)
            if remaining <= 0:
                self._expire()
                return

    def _expire(self) -> None:
        number = self._reservation.number
        self._finish(ReservationPhase.EXPIRED)
        logger.info("reservation_expired", number=number)
        if self.on_expired is not None:
            self.on_expired(number)

    def _finish(self, phase: ReservationPhase) -> None:
        self._phase = phase
        self._reservation = None
        ticker, self._ticker = self._ticker, None
        if ticker is not None and ticker is not asyncio.current_task() and not ticker.done():
            ticker.cancel()


__all__ = ["ReservationController"]
