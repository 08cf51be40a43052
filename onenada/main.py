"""Application composition root."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Callable

import httpx

from onenada.config import AppSettings, get_settings
from onenada.i18n import I18nService
from onenada.logging import configure_logging, logger
from onenada.services.auth import AuthProvider, SupabaseAuthProvider
from onenada.services.entitlements import EntitlementProvider, EntitlementService
from onenada.services.events import EventBus, SignedIn, SignedOut
from onenada.services.gate import SubscriptionGate
from onenada.services.pool import RemotePoolClient, spots_remaining
from onenada.services.profile import ProfileService
from onenada.utils.clock import Clock, SystemClock


@dataclass(slots=True)
class Application:
    settings: AppSettings
    events: EventBus
    pool: RemotePoolClient
    auth: AuthProvider
    profiles: ProfileService
    entitlements: EntitlementService
    gate: SubscriptionGate
    _unsubscribers: list[Callable[[], None]] = field(default_factory=list)

    async def spots_remaining(self) -> int:
        return await spots_remaining(self.pool, self.settings.pool.max_number)

    def set_session_token(self, token: str | None) -> None:
        """Use ``token`` as the bearer for every backend client, or fall back to the anon key."""

        self.pool.set_access_token(token)
        setter = getattr(self.auth, "set_access_token", None)
        if setter is not None:
            setter(token)

    def bind_session_events(self) -> None:
        # Registered before the gate starts so the token is in place when it reacts.
        if not self._unsubscribers:
            self._unsubscribers = [
                self.events.subscribe(SignedIn, self._on_signed_in),
                self.events.subscribe(SignedOut, self._on_signed_out),
            ]

    async def close(self) -> None:
        await self.gate.close()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def _on_signed_in(self, event: SignedIn) -> None:
        if event.access_token is not None:
            self.set_session_token(event.access_token)

    def _on_signed_out(self, event: SignedOut) -> None:
        self.set_session_token(None)


def build_application(
    *,
    http_client: httpx.AsyncClient,
    entitlement_provider: EntitlementProvider,
    settings: AppSettings | None = None,
    auth_provider: AuthProvider | None = None,
    access_token: str | None = None,
    clock: Clock | None = None,
) -> Application:
    settings = settings or get_settings()
    clock = clock or SystemClock()
    events = EventBus()
    pool = RemotePoolClient(http_client, settings.supabase, access_token=access_token)
    auth = auth_provider or SupabaseAuthProvider(
        http_client, settings.supabase, access_token=access_token
    )
    profiles = ProfileService(pool, settings.profile, clock=clock)
    entitlements = EntitlementService(entitlement_provider, settings.entitlements)
    gate = SubscriptionGate(
        auth=auth,
        entitlements=entitlements,
        pool=pool,
        events=events,
        settings=settings,
        clock=clock,
        i18n=I18nService(default_locale=settings.default_language),
        profiles=profiles,
    )
    app = Application(
        settings=settings,
        events=events,
        pool=pool,
        auth=auth,
        profiles=profiles,
        entitlements=entitlements,
        gate=gate,
    )
    app.bind_session_events()
    return app


@asynccontextmanager
async def run_application(
    entitlement_provider: EntitlementProvider,
    *,
    settings: AppSettings | None = None,
    auth_provider: AuthProvider | None = None,
    access_token: str | None = None,
) -> AsyncIterator[Application]:
    """Start the gate for the lifetime of the block and release timers on exit."""

    configure_logging()
    settings = settings or get_settings()
    async with httpx.AsyncClient() as http_client:
        app = build_application(
            http_client=http_client,
            entitlement_provider=entitlement_provider,
            settings=settings,
            auth_provider=auth_provider,
            access_token=access_token,
        )
        logger.info("app_starting", environment=settings.environment)
        await app.gate.start()
        try:
            yield app
        finally:
            await app.close()
            logger.info("app_stopped")


__all__ = ["Application", "build_application", "run_application"]
