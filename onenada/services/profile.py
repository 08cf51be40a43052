"""Profile rows and the membership progress derived from them."""

from __future__ import annotations

import calendar
from datetime import datetime

from onenada.config import ProfileSettings
from onenada.domain.models import MembershipProgress, NewProfile, Profile
from onenada.logging import logger
from onenada.services.pool import RemotePoolClient
from onenada.utils.clock import Clock, SystemClock, utc_now

LEVEL_THRESHOLDS_DAYS = (0, 30, 90, 180, 365, 730)
LEVEL_NAMES = ("Newcomer", "Explorer", "Dedicated", "Committed", "Veteran", "Legend")


class ProfileService:
    def __init__(
        self,
        pool: RemotePoolClient,
        settings: ProfileSettings | None = None,
        *,
        clock: Clock | None = None,
    ) -> None:
        self.pool = pool
        self.settings = settings or ProfileSettings()
        self._clock = clock or SystemClock()

    async def fetch_profile(self, user_id: str) -> Profile | None:
        """Fetch the profile, retrying once since a database trigger creates it."""

        profile = await self.pool.fetch_profile(user_id)
        if profile is not None:
            return profile

        logger.info("profile_missing_retrying", user_id=user_id)
        await self._clock.sleep(self.settings.missing_profile_retry_delay)
        profile = await self.pool.fetch_profile(user_id)
        if profile is None:
            logger.warning("profile_not_found", user_id=user_id)
        return profile

    async def ensure_profile(self, new_profile: NewProfile) -> Profile | None:
        existing = await self.pool.fetch_profile(new_profile.id)
        if existing is not None:
            return existing
        await self.pool.insert_profile(new_profile)
        logger.info("profile_created", user_id=new_profile.id)
        return await self.pool.fetch_profile(new_profile.id)

    async def record_subscription_start(self, user_id: str, *, now: datetime | None = None) -> bool:
        profile = await self.pool.fetch_profile(user_id)
        if profile is not None and profile.subscription_started_at is not None:
            return False
        started_at = now or utc_now()
        await self.pool.update_profile_subscription_start(user_id, started_at)
        logger.info("subscription_start_recorded", user_id=user_id, started_at=started_at.isoformat())
        return True


def _elapsed_components(start: datetime, now: datetime) -> tuple[int, int, int, int, int]:
    if now < start:
        return 0, 0, 0, 0, 0

    months = (now.year - start.year) * 12 + (now.month - start.month)
    anchor = _add_months(start, months)
    if anchor > now:
        months -= 1
        anchor = _add_months(start, months)

    remainder = now - anchor
    days = remainder.days
    hours, rest = divmod(remainder.seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    return months, days, hours, minutes, seconds


def _add_months(value: datetime, months: int) -> datetime:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def format_elapsed(start: datetime, now: datetime | None = None) -> str:
    """Render time since ``start`` as ``MM:DD:HH:MM:SS``."""

    months, days, hours, minutes, seconds = _elapsed_components(start, now or utc_now())
    return f"{months:02d}:{days:02d}:{hours:02d}:{minutes:02d}:{seconds:02d}"


def membership_progress(start: datetime, now: datetime | None = None) -> MembershipProgress:
    now = now or utc_now()
    days = max(0, (now - start).days)

    level = 1
    for index, threshold in enumerate(LEVEL_THRESHOLDS_DAYS):
        if days >= threshold:
            level = index + 1

    is_max = level >= len(LEVEL_THRESHOLDS_DAYS)
    current_threshold = LEVEL_THRESHOLDS_DAYS[level - 1]
    next_threshold = LEVEL_THRESHOLDS_DAYS[-1] if is_max else LEVEL_THRESHOLDS_DAYS[level]
    if is_max:
        progress = 1.0
    else:
        progress = min(1.0, (days - current_threshold) / (next_threshold - current_threshold))

    return MembershipProgress(
        elapsed=format_elapsed(start, now),
        days_subscribed=days,
        level=level,
        level_name=LEVEL_NAMES[min(level, len(LEVEL_NAMES)) - 1],
        next_level_threshold_days=next_threshold,
        days_until_next_level=max(0, next_threshold - days),
        progress=progress,
        is_max_level=is_max,
    )


__all__ = [
    "LEVEL_NAMES",
    "LEVEL_THRESHOLDS_DAYS",
    "ProfileService",
    "format_elapsed",
    "membership_progress",
]
