"""REST client for the member-number pool and profile tables."""

from __future__ import annotations

from datetime import datetime
from typing import Any

import httpx
from pydantic import ValidationError

from onenada.domain.models import NewProfile, PoolEntry, Profile
from onenada.logging import logger
from onenada.services.exceptions import DataIntegrityError, TransientError
from onenada.services.supabase import BaseSupabaseService

POOL_TABLE = "member_number_pool"
PROFILES_TABLE = "profiles"


class RemotePoolClient(BaseSupabaseService):
    """Stateless access to the pool and profile rows.

    Every call is a fresh round trip; nothing is cached because availability
    changes underneath us.
    """

    async def lookup(self, number: int) -> PoolEntry | None:
        response = await self._request(
            "GET",
            self._settings.rest_url(POOL_TABLE),
            operation="pool_lookup",
            params={"member_number": f"eq.{number}", "select": "*"},
        )
        rows = _json_rows(response, operation="pool_lookup")
        if not rows:
            return None
        if len(rows) > 1:
            raise DataIntegrityError(f"Pool holds {len(rows)} rows for member number {number}.")
        try:
            return PoolEntry.model_validate(rows[0])
        except ValidationError as exc:
            raise DataIntegrityError(f"Malformed pool row for member number {number}.") from exc

    async def count_available(self) -> int:
        response = await self._request(
            "POST",
            self._settings.rest_url("rpc/get_available_spots_count"),
            operation="count_available",
            json={},
        )
        try:
            return int(response.json())
        except (TypeError, ValueError) as exc:
            raise TransientError("count_available returned a non-integer payload") from exc

    async def fetch_profile(self, user_id: str) -> Profile | None:
        response = await self._request(
            "GET",
            self._settings.rest_url(PROFILES_TABLE),
            operation="fetch_profile",
            params={"id": f"eq.{user_id}", "select": "*"},
        )
        rows = _json_rows(response, operation="fetch_profile")
        if not rows:
            return None
        try:
            return Profile.model_validate(rows[0])
        except ValidationError as exc:
            raise DataIntegrityError(f"Malformed profile row for user {user_id}.") from exc

    async def insert_profile(self, profile: NewProfile) -> None:
        await self._request(
            "POST",
            self._settings.rest_url(PROFILES_TABLE),
            operation="insert_profile",
            json=profile.model_dump(exclude_none=True),
            headers={"Prefer": "return=minimal"},
        )

    async def update_profile_subscription_start(self, user_id: str, started_at: datetime) -> None:
        await self._request(
            "PATCH",
            self._settings.rest_url(PROFILES_TABLE),
            operation="update_profile_subscription_start",
            params={"id": f"eq.{user_id}"},
            json={"subscription_started_at": started_at.isoformat()},
            headers={"Prefer": "return=minimal"},
        )

    async def delete_user_cascade(self) -> None:
        """Delete the caller's account; dependent rows go with it server-side."""

        await self._request(
            "POST",
            self._settings.rest_url("rpc/delete_user"),
            operation="delete_user",
            json={},
        )


async def spots_remaining(client: RemotePoolClient, pool_max: int) -> int:
    """Available spot count, falling back to the full pool size on failure."""

    try:
        return await client.count_available()
    except TransientError as exc:
        logger.warning("spots_remaining_fallback", error=str(exc), fallback=pool_max)
        return pool_max


def _json_rows(response: httpx.Response, *, operation: str) -> list[dict[str, Any]]:
    try:
        payload = response.json()
    except ValueError as exc:
        raise TransientError(f"{operation} returned invalid JSON") from exc
    if not isinstance(payload, list):
        raise TransientError(f"{operation} returned an unexpected payload")
    return payload


__all__ = ["RemotePoolClient", "spots_remaining"]
