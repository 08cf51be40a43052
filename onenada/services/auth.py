"""Identity provider seam: who is signed in, and signing them out."""

from __future__ import annotations

from typing import Protocol

import httpx

from onenada.logging import logger
from onenada.services.exceptions import AuthError, TransientError
from onenada.services.supabase import BaseSupabaseService

UNAUTHENTICATED_STATUSES = {401, 403}


class AuthProvider(Protocol):
    async def current_user_id(self) -> str | None:
        ...

    async def sign_out(self) -> None:
        ...


class SupabaseAuthProvider(BaseSupabaseService):
    """Resolves the session user through the backend's auth endpoint."""

    async def current_user_id(self) -> str | None:
        if not self._access_token:
            return None
        try:
            response = await self._request(
                "GET", self._settings.auth_url("user"), operation="auth_user"
            )
        except TransientError as exc:
            cause = exc.__cause__
            if (
                isinstance(cause, httpx.HTTPStatusError)
                and cause.response is not None
                and cause.response.status_code in UNAUTHENTICATED_STATUSES
            ):
                logger.info("auth_session_missing")
                return None
            raise AuthError(str(exc)) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise AuthError("Auth user endpoint returned invalid JSON.") from exc
        if not isinstance(payload, dict):
            raise AuthError("Auth user endpoint returned an unexpected payload.")
        user_id = payload.get("id")
        if not user_id:
            raise AuthError("Auth user payload is missing an id.")
        return str(user_id)

    async def sign_out(self) -> None:
        if not self._access_token:
            return
        try:
            await self._request("POST", self._settings.auth_url("logout"), operation="auth_logout")
        finally:
            self._access_token = None


__all__ = ["AuthProvider", "SupabaseAuthProvider"]
