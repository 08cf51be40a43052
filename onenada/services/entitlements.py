"""Wrapper over the billing SDK's entitlement surface."""

from __future__ import annotations

from typing import Protocol

from onenada.config import EntitlementSettings
from onenada.domain.models import Catalog, EntitlementSnapshot, Package, PurchaseResult
from onenada.logging import logger
from onenada.services.exceptions import AuthError, TransientError


class EntitlementProvider(Protocol):
    """Calls the billing SDK exposes; implemented by the platform bridge."""

    async def login(self, user_id: str) -> EntitlementSnapshot:
        ...

    async def logout(self) -> None:
        ...

    async def customer_info(self) -> EntitlementSnapshot:
        ...

    async def offerings(self) -> Catalog:
        ...

    async def purchase(self, package: Package) -> PurchaseResult:
        ...

    async def restore(self) -> EntitlementSnapshot:
        ...


class EntitlementService:
    """Fail-closed view of the SDK: any error means "not subscribed"."""

    def __init__(
        self,
        provider: EntitlementProvider,
        settings: EntitlementSettings | None = None,
    ) -> None:
        self._provider = provider
        self._settings = settings or EntitlementSettings()
        self.snapshot: EntitlementSnapshot | None = None
        self.catalog: Catalog | None = None

    @property
    def entitlement_id(self) -> str:
        return self._settings.entitlement_id

    @property
    def is_subscribed(self) -> bool:
        return self.snapshot is not None and self.snapshot.is_active(self.entitlement_id)

    async def login(self, user_id: str) -> bool:
        try:
            snapshot = await self._call("login", self._provider.login(user_id))
        except (AuthError, TransientError):
            self.snapshot = None
            raise
        return self._apply(snapshot, user_id=user_id)

    async def check_status(self) -> bool:
        try:
            snapshot = await self._call("customer_info", self._provider.customer_info())
        except (AuthError, TransientError):
            self.snapshot = None
            raise
        return self._apply(snapshot)

    async def restore(self) -> bool:
        snapshot = await self._call("restore", self._provider.restore())
        return self._apply(snapshot)

    async def load_catalog(self) -> Catalog:
        self.catalog = await self._call("offerings", self._provider.offerings())
        current = self.catalog.current
        logger.info(
            "entitlement_catalog_loaded",
            offerings=len(self.catalog.all),
            current=current.identifier if current else None,
        )
        return self.catalog

    async def purchase(self, package: Package) -> bool:
        """Buy ``package``; returns ``True`` only when the entitlement is confirmed."""

        result = await self._call("purchase", self._provider.purchase(package))
        if result.cancelled:
            logger.info("entitlement_purchase_cancelled", package=package.identifier)
            return False
        return await self.check_status()

    async def logout(self) -> None:
        self.snapshot = None
        self.catalog = None
        await self._call("logout", self._provider.logout())

    async def _call(self, operation: str, awaitable):
        try:
            return await awaitable
        except (AuthError, TransientError):
            raise
        except Exception as exc:
            logger.warning("entitlement_call_failed", operation=operation, error=str(exc))
            raise AuthError(f"Entitlement {operation} failed: {exc}") from exc

    def _apply(self, snapshot: EntitlementSnapshot, *, user_id: str | None = None) -> bool:
        self.snapshot = snapshot
        subscribed = self.is_subscribed
        logger.info(
            "entitlement_status",
            user_id=user_id or snapshot.user_id,
            entitlement=self.entitlement_id,
            subscribed=subscribed,
        )
        return subscribed


__all__ = ["EntitlementProvider", "EntitlementService"]
