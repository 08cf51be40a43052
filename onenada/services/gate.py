"""Application-level auth/subscription state machine."""

from __future__ import annotations

from typing import Callable, List

from onenada.config import AppSettings, get_settings
from onenada.domain.models import (
    Catalog,
    CheckingAuth,
    Entitled,
    Gated,
    GateState,
    Package,
    ProvisioningEntitlements,
    Reservation,
    Unauthenticated,
    UserSession,
)
from onenada.i18n import I18nService
from onenada.logging import logger
from onenada.services.auth import AuthProvider
from onenada.services.availability import AvailabilityChecker
from onenada.services.entitlements import EntitlementService
from onenada.services.events import EventBus, SignedIn, SignedOut, SubscriptionCompleted
from onenada.services.exceptions import (
    AuthError,
    ReservationError,
    ServiceError,
    TransientError,
)
from onenada.services.pool import RemotePoolClient
from onenada.services.profile import ProfileService
from onenada.services.reservation import ReservationController
from onenada.utils.clock import Clock, SystemClock
from onenada.utils.retry import retry_async

StateListener = Callable[[GateState], None]


class SubscriptionGate:
    """Decides which screen the user sees.

    One instance lives for the whole application and is handed to the screens
    that drive it. While the user is signed in but not subscribed the gate
    hosts an :class:`AvailabilityChecker` and a :class:`ReservationController`;
    both are torn down as soon as the gate leaves ``Gated``.
    """

    def __init__(
        self,
        *,
        auth: AuthProvider,
        entitlements: EntitlementService,
        pool: RemotePoolClient,
        events: EventBus,
        settings: AppSettings | None = None,
        clock: Clock | None = None,
        i18n: I18nService | None = None,
        profiles: ProfileService | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._auth = auth
        self._entitlements = entitlements
        self._pool = pool
        self._events = events
        self._clock = clock or SystemClock()
        self._i18n = i18n or I18nService(default_locale=self.settings.default_language)
        self._profiles = profiles

        self._state: GateState = CheckingAuth()
        self._listeners: List[StateListener] = []
        self._unsubscribers: List[Callable[[], None]] = []
        self.session: UserSession | None = None
        self.entitlements_provisioned = False
        self.last_error: ServiceError | None = None
        self.checker: AvailabilityChecker | None = None
        self.reservation_controller: ReservationController | None = None

    # Public API -------------------------------------------------------

    @property
    def state(self) -> GateState:
        return self._state

    @property
    def catalog(self) -> Catalog | None:
        return self._entitlements.catalog

    @property
    def error_message(self) -> str | None:
        """User-facing text for the last failure, if any."""

        if self.last_error is None:
            return None
        if isinstance(self._state, ProvisioningEntitlements):
            return self._i18n.gettext("entitlements.setup_failed")
        return str(self.last_error)

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    async def start(self) -> GateState:
        if not self._unsubscribers:
            self._unsubscribers = [
                self._events.subscribe(SignedIn, self._handle_signed_in),
                self._events.subscribe(SignedOut, self._handle_signed_out),
                self._events.subscribe(SubscriptionCompleted, self._handle_subscription_completed),
            ]
        if not isinstance(self._state, CheckingAuth):
            self._transition(CheckingAuth())

        try:
            user_id = await self._auth.current_user_id()
        except ServiceError as exc:
            logger.info("auth_check_failed", error=str(exc))
            user_id = None

        if user_id:
            await self._begin_session(user_id)
        else:
            self._transition(Unauthenticated())
        return self._state

    async def retry_provisioning(self) -> GateState:
        if not isinstance(self._state, ProvisioningEntitlements):
            return self._state
        await self._provision(self._state.user_id)
        return self._state

    def reserve(self, number: int) -> Reservation:
        state = self._state
        if not isinstance(state, Gated) or self.reservation_controller is None:
            raise ReservationError("Numbers can only be reserved from the paywall.")
        reservation = self.reservation_controller.reserve(number)
        self._transition(Gated(state.user_id, reservation))
        return reservation

    def dismiss_paywall(self) -> None:
        if self.reservation_controller is not None:
            self.reservation_controller.clear()
        state = self._state
        if isinstance(state, Gated) and state.reservation is not None:
            self._transition(Gated(state.user_id, None))

    async def load_catalog(self) -> Catalog:
        return await self._entitlements.load_catalog()

    async def purchase(self, package: Package) -> bool:
        state = self._state
        if not isinstance(state, Gated):
            raise ReservationError("Nothing to purchase outside the paywall.")

        subscribed = await self._entitlements.purchase(package)
        if not subscribed:
            return False

        if self._profiles is not None:
            try:
                await self._profiles.record_subscription_start(state.user_id)
            except ServiceError as exc:
                logger.warning("subscription_start_not_recorded", user_id=state.user_id, error=str(exc))
        await self._events.publish(SubscriptionCompleted())
        return True

    async def restore(self) -> bool:
        state = self._state
        if not isinstance(state, Gated):
            return isinstance(state, Entitled)
        subscribed = await self._entitlements.restore()
        if subscribed and self._state == state:
            await self._complete_subscription(state.user_id)
        return subscribed

    async def sign_out(self) -> None:
        await self._release_remote_sessions()
        await self._events.publish(SignedOut())

    async def delete_account(self) -> None:
        """Delete the account remotely, then sign out locally.

        Failure of the remote deletion propagates and leaves the gate as it
        was; failures while releasing the SDK sessions afterwards are logged.
        """

        if self.session is None:
            raise AuthError("No signed-in user to delete.")
        user_id = self.session.user_id
        await self._pool.delete_user_cascade()
        logger.info("account_deleted", user_id=user_id)
        await self._release_remote_sessions()
        await self._events.publish(SignedOut())

    def refresh(self) -> None:
        if self.reservation_controller is not None:
            self.reservation_controller.refresh()

    async def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        await self._teardown_reservation()

    # Event handlers ---------------------------------------------------

    async def _handle_signed_in(self, event: SignedIn) -> None:
        if not isinstance(self._state, Unauthenticated):
            logger.info("signed_in_ignored", state=self._state.name, user_id=event.user_id)
            return
        await self._begin_session(event.user_id)

    async def _handle_signed_out(self, event: SignedOut) -> None:
        await self._teardown_reservation()
        self.session = None
        self.entitlements_provisioned = False
        self.last_error = None
        self._transition(Unauthenticated())

    async def _handle_subscription_completed(self, event: SubscriptionCompleted) -> None:
        state = self._state
        if not isinstance(state, Gated):
            return
        try:
            subscribed = await self._entitlements.check_status()
        except ServiceError as exc:
            self.last_error = exc
            logger.warning("subscription_recheck_failed", user_id=state.user_id, error=str(exc))
            return
        if not subscribed:
            logger.warning("subscription_not_confirmed", user_id=state.user_id)
            return
        if self._state == state:
            await self._complete_subscription(state.user_id)

    # Internal helpers -------------------------------------------------

    async def _begin_session(self, user_id: str) -> None:
        self.session = UserSession(user_id=user_id)
        self.entitlements_provisioned = False
        self._transition(ProvisioningEntitlements(user_id))
        await self._provision(user_id)

    async def _provision(self, user_id: str) -> None:
        cfg = self.settings.entitlements
        try:
            subscribed = await retry_async(
                lambda: self._entitlements.login(user_id),
                max_attempts=cfg.provisioning_attempts,
                base_delay=cfg.retry_base_delay,
                retry_on=(AuthError, TransientError),
                logger=logger,
                operation_name="entitlement_login",
            )
        except (AuthError, TransientError) as exc:
            self.last_error = exc
            logger.warning("entitlement_provisioning_failed", user_id=user_id, error=str(exc))
            return

        if self._state != ProvisioningEntitlements(user_id):
            logger.info("entitlement_provisioning_stale", user_id=user_id, state=self._state.name)
            return

        self.entitlements_provisioned = True
        self.last_error = None
        if subscribed:
            self._transition(Entitled(user_id))
            return

        try:
            await self._entitlements.load_catalog()
        except ServiceError as exc:
            logger.warning("entitlement_catalog_failed", user_id=user_id, error=str(exc))
        if self._state == ProvisioningEntitlements(user_id):
            self._enter_gated(user_id)

    def _enter_gated(self, user_id: str) -> None:
        self.checker = AvailabilityChecker(
            self._pool,
            pool_settings=self.settings.pool,
            reservation_settings=self.settings.reservation,
            clock=self._clock,
            i18n=self._i18n,
        )
        self.reservation_controller = ReservationController(
            self.checker,
            settings=self.settings.reservation,
            clock=self._clock,
            on_expired=self._on_reservation_expired,
        )
        self._transition(Gated(user_id, None))

    def _on_reservation_expired(self, number: int) -> None:
        state = self._state
        if isinstance(state, Gated):
            self._transition(Gated(state.user_id, None))

    async def _complete_subscription(self, user_id: str) -> None:
        if self.reservation_controller is not None:
            self.reservation_controller.commit()
        await self._teardown_reservation()
        self._transition(Entitled(user_id))

    async def _teardown_reservation(self) -> None:
        controller, self.reservation_controller = self.reservation_controller, None
        checker, self.checker = self.checker, None
        if controller is not None:
            await controller.aclose()
        if checker is not None:
            await checker.aclose()

    async def _release_remote_sessions(self) -> None:
        try:
            await self._auth.sign_out()
        except Exception:
            logger.exception("auth_sign_out_failed")
        try:
            await self._entitlements.logout()
        except Exception:
            logger.exception("entitlement_logout_failed")

    def _transition(self, new_state: GateState) -> None:
        old_state = self._state
        self._state = new_state
        logger.info("gate_transition", from_state=old_state.name, to_state=new_state.name)
        for listener in list(self._listeners):
            listener(new_state)


__all__ = ["SubscriptionGate"]
