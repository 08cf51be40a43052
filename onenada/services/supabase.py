"""Shared plumbing for calls into the managed backend's REST surface."""

from __future__ import annotations

from typing import Any

import httpx

from onenada.config import SupabaseSettings
from onenada.logging import logger
from onenada.services.exceptions import TransientError


class BaseSupabaseService:
    def __init__(
        self,
        http_client: httpx.AsyncClient,
        settings: SupabaseSettings | None = None,
        *,
        access_token: str | None = None,
    ) -> None:
        self._client = http_client
        self._settings = settings or SupabaseSettings()
        self._access_token = access_token

    @staticmethod
    def _read_secret(secret: Any) -> str | None:
        if not secret:
            return None
        try:
            return secret.get_secret_value()
        except AttributeError:
            return str(secret)

    def set_access_token(self, token: str | None) -> None:
        self._access_token = token

    def _headers(self) -> dict[str, str]:
        api_key = self._read_secret(self._settings.anon_key)
        headers = {"Accept": "application/json"}
        if api_key:
            headers["apikey"] = api_key
        bearer = self._access_token or api_key
        if bearer:
            headers["Authorization"] = f"Bearer {bearer}"
        return headers

    async def _request(
        self,
        method: str,
        url: str,
        *,
        operation: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        request_headers = self._headers()
        if headers:
            request_headers.update(headers)
        try:
            response = await self._client.request(
                method,
                url,
                params=params,
                json=json,
                headers=request_headers,
                timeout=self._settings.request_timeout_seconds,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code if exc.response is not None else "unknown"
            detail = exc.response.text[:300] if exc.response is not None else str(exc)
            logger.warning("remote_call_failed", operation=operation, status=status_code)
            raise TransientError(f"{operation} failed ({status_code}): {detail}") from exc
        except httpx.RequestError as exc:
            logger.warning("remote_call_failed", operation=operation, error=str(exc))
            raise TransientError(f"{operation} failed: {exc}") from exc
        return response


__all__ = ["BaseSupabaseService"]
