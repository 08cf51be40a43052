"""Shared pytest fixtures: a controllable clock and in-memory collaborators."""

from __future__ import annotations

import asyncio
import heapq

import pytest
import pytest_asyncio

from onenada.config import AppSettings, EntitlementSettings
from onenada.domain.models import (
    Catalog,
    EntitlementSnapshot,
    Offering,
    Package,
    PoolEntry,
    PurchaseResult,
)
from onenada.services.entitlements import EntitlementService
from onenada.services.events import EventBus
from onenada.services.gate import SubscriptionGate


async def settle(rounds: int = 10) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeClock:
    """Virtual time; sleepers wake only when the test advances the clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self._now = start
        self._sleepers: list[tuple[float, int, asyncio.Future]] = []
        self._seq = 0

    def now(self) -> float:
        return self._now

    async def sleep(self, seconds: float) -> None:
        future = asyncio.get_running_loop().create_future()
        heapq.heappush(self._sleepers, (self._now + seconds, self._seq, future))
        self._seq += 1
        await future

    def jump(self, seconds: float) -> None:
        """Move time without waking sleepers, like an app suspended in the background."""

        self._now += seconds

    async def advance(self, seconds: float) -> None:
        target = self._now + seconds
        await settle()
        while self._sleepers and self._sleepers[0][0] <= target:
            deadline, _, future = heapq.heappop(self._sleepers)
            self._now = max(self._now, deadline)
            if not future.done():
                future.set_result(None)
            await settle()
        self._now = target
        await settle()


class FakePool:
    def __init__(self, taken: set[int] | None = None, missing: set[int] | None = None) -> None:
        self.taken = taken or set()
        self.missing = missing or set()
        self.lookups: list[int] = []
        self.fail_with: Exception | None = None
        self.deleted = 0
        self.gates: dict[int, asyncio.Event] = {}

    async def lookup(self, number: int) -> PoolEntry | None:
        self.lookups.append(number)
        gate = self.gates.get(number)
        if gate is not None:
            await gate.wait()
        if self.fail_with is not None:
            raise self.fail_with
        if number in self.missing:
            return None
        return PoolEntry(member_number=number, is_available=number not in self.taken)

    async def delete_user_cascade(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.deleted += 1


class FakeAuth:
    def __init__(self, user_id: str | None = None) -> None:
        self.user_id = user_id
        self.sign_out_calls = 0
        self.sign_out_error: Exception | None = None

    async def current_user_id(self) -> str | None:
        return self.user_id

    async def sign_out(self) -> None:
        self.sign_out_calls += 1
        if self.sign_out_error is not None:
            raise self.sign_out_error
        self.user_id = None


class FakeBilling:
    """In-memory stand-in for the billing SDK."""

    def __init__(self, subscribed: bool = False) -> None:
        self.subscribed = subscribed
        self.login_errors: list[Exception] = []
        self.status_error: Exception | None = None
        self.logout_error: Exception | None = None
        self.cancel_purchase = False
        self.calls: list[str] = []
        self.package = Package(identifier="$rc_monthly", product_id="onenada.monthly")

    def _snapshot(self, user_id: str | None = None) -> EntitlementSnapshot:
        active = frozenset({"plus"}) if self.subscribed else frozenset()
        return EntitlementSnapshot(user_id=user_id, active_entitlements=active)

    async def login(self, user_id: str) -> EntitlementSnapshot:
        self.calls.append("login")
        if self.login_errors:
            raise self.login_errors.pop(0)
        return self._snapshot(user_id)

    async def logout(self) -> None:
        self.calls.append("logout")
        if self.logout_error is not None:
            raise self.logout_error

    async def customer_info(self) -> EntitlementSnapshot:
        self.calls.append("customer_info")
        if self.status_error is not None:
            raise self.status_error
        return self._snapshot()

    async def offerings(self) -> Catalog:
        self.calls.append("offerings")
        offering = Offering(identifier="default", packages=[self.package])
        return Catalog(current=offering, all={"default": offering})

    async def purchase(self, package: Package) -> PurchaseResult:
        self.calls.append("purchase")
        if self.cancel_purchase:
            return PurchaseResult(cancelled=True)
        self.subscribed = True
        return PurchaseResult(cancelled=False, snapshot=self._snapshot())

    async def restore(self) -> EntitlementSnapshot:
        self.calls.append("restore")
        return self._snapshot()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def pool() -> FakePool:
    return FakePool()


@pytest.fixture
def auth() -> FakeAuth:
    return FakeAuth()


@pytest.fixture
def billing() -> FakeBilling:
    return FakeBilling()


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(
        entitlements=EntitlementSettings(provisioning_attempts=2, retry_base_delay=0.0)
    )


@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def entitlements(billing, settings) -> EntitlementService:
    return EntitlementService(billing, settings.entitlements)


@pytest_asyncio.fixture
async def gate(auth, clock, pool, events, entitlements, settings):
    gate = SubscriptionGate(
        auth=auth,
        entitlements=entitlements,
        pool=pool,
        events=events,
        settings=settings,
        clock=clock,
    )
    yield gate
    await gate.close()
