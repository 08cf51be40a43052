"""Debounced availability lookups for a candidate member number."""

from __future__ import annotations

import asyncio
from typing import Callable, Protocol

from onenada.config import PoolSettings, ReservationSettings
from onenada.domain.models import AvailabilityCheck, AvailabilityStatus, PoolEntry
from onenada.i18n import I18nService
from onenada.logging import logger
from onenada.services.exceptions import DataIntegrityError, TransientError
from onenada.utils.clock import Clock, SystemClock


class PoolLookup(Protocol):
    async def lookup(self, number: int) -> PoolEntry | None:
        ...


def sanitize_input(raw_text: str, max_digits: int) -> str:
    digits = "".join(ch for ch in raw_text or "" if "0" <= ch <= "9")
    return digits[:max_digits]


class AvailabilityChecker:
    """Turns keystrokes into at most one live lookup.

    Each new input cancels the pending debounce/lookup task before starting
    another, and a generation counter keeps a late result from an older task
    from touching ``check``.
    """

    def __init__(
        self,
        pool: PoolLookup,
        *,
        pool_settings: PoolSettings | None = None,
        reservation_settings: ReservationSettings | None = None,
        clock: Clock | None = None,
        i18n: I18nService | None = None,
        on_change: Callable[[AvailabilityCheck], None] | None = None,
    ) -> None:
        self._pool = pool
        self._pool_settings = pool_settings or PoolSettings()
        self._debounce = (reservation_settings or ReservationSettings()).debounce_seconds
        self._clock = clock or SystemClock()
        self._i18n = i18n or I18nService()
        self._on_change = on_change
        self._generation = 0
        self._task: asyncio.Task[None] | None = None
        self._text = ""
        self._check = AvailabilityCheck()

    @property
    def check(self) -> AvailabilityCheck:
        return self._check

    @property
    def text(self) -> str:
        return self._text

    @property
    def pending(self) -> asyncio.Task[None] | None:
        if self._task is not None and not self._task.done():
            return self._task
        return None

    def on_input_changed(self, raw_text: str) -> str:
        text = sanitize_input(raw_text, self._pool_settings.max_input_digits)
        self._text = text
        self._cancel_pending()
        self._generation += 1
        self._set(self._generation, AvailabilityCheck())
        self._task = asyncio.get_running_loop().create_task(
            self._debounced_check(text, self._generation)
        )
        return text

    async def aclose(self) -> None:
        task = self._task
        self._cancel_pending()
        self._generation += 1
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    def _cancel_pending(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _debounced_check(self, text: str, generation: int) -> None:
        await self._clock.sleep(self._debounce)
        if not text:
            return

        number = int(text)
        low, high = self._pool_settings.min_number, self._pool_settings.max_number
        if not low <= number <= high:
            self._set(
                generation,
                AvailabilityCheck(
                    candidate=number,
                    status=AvailabilityStatus.INVALID_RANGE,
                    message=self._i18n.gettext(
                        "availability.out_of_range", min_number=low, max_number=high
                    ),
                ),
            )
            return

        self._set(
            generation,
            AvailabilityCheck(
                candidate=number,
                status=AvailabilityStatus.CHECKING,
                message=self._i18n.gettext("availability.checking"),
            ),
        )
        try:
            entry = await self._pool.lookup(number)
        except TransientError as exc:
            logger.warning("availability_lookup_failed", number=number, error=str(exc))
            self._set(
                generation,
                AvailabilityCheck(
                    candidate=number,
                    status=AvailabilityStatus.UNAVAILABLE,
                    message=self._i18n.gettext("availability.check_failed"),
                ),
            )
            return
        except DataIntegrityError as exc:
            logger.error("pool_integrity_error", number=number, error=str(exc))
            self._set(generation, self._invalid_number(number))
            return

        self._set(generation, self._classify(number, entry))

    def _classify(self, number: int, entry: PoolEntry | None) -> AvailabilityCheck:
        if entry is None:
            # Pool is seeded with every number in range; a gap is a data bug.
            logger.error("pool_entry_missing", number=number)
            return self._invalid_number(number)
        if entry.is_available:
            return AvailabilityCheck(
                candidate=number,
                status=AvailabilityStatus.AVAILABLE,
                message=self._i18n.gettext("availability.available"),
            )
        return AvailabilityCheck(
            candidate=number,
            status=AvailabilityStatus.UNAVAILABLE,
            message=self._i18n.gettext("availability.taken"),
        )

    def _invalid_number(self, number: int) -> AvailabilityCheck:
        return AvailabilityCheck(
            candidate=number,
            status=AvailabilityStatus.INVALID_RANGE,
            message=self._i18n.gettext("availability.invalid_number"),
        )

    def _set(self, generation: int, check: AvailabilityCheck) -> None:
        if generation != self._generation:
            return
        if check == self._check:
            return
        self._check = check
        if self._on_change is not None:
            self._on_change(check)


__all__ = ["AvailabilityChecker", "PoolLookup", "sanitize_input"]
