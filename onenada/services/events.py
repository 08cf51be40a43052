"""Process-local publish/subscribe channel between the gate and the screens."""

from __future__ import annotations

import inspect
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Type, Union

from onenada.logging import logger


@dataclass(frozen=True, slots=True)
class SignedIn:
    user_id: str
    access_token: str | None = field(default=None, repr=False)


@dataclass(frozen=True, slots=True)
class SignedOut:
    pass


@dataclass(frozen=True, slots=True)
class SubscriptionCompleted:
    pass


Event = Union[SignedIn, SignedOut, SubscriptionCompleted]
EVENT_TYPES: tuple[type, ...] = (SignedIn, SignedOut, SubscriptionCompleted)

Handler = Callable[[Any], Union[Awaitable[None], None]]


class EventBus:
    """Closed-set event bus owned by the application root.

    Handlers run in subscription order and are awaited one at a time. A
    failing handler is logged and does not stop delivery to the others.
    """

    def __init__(self) -> None:
        self._handlers: Dict[type, List[Handler]] = defaultdict(list)

    def subscribe(self, event_type: Type[Event], handler: Handler) -> Callable[[], None]:
        if event_type not in EVENT_TYPES:
            raise TypeError(f"Unsupported event type: {event_type!r}")
        self._handlers[event_type].append(handler)

        def _unsubscribe() -> None:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

        return _unsubscribe

    async def publish(self, event: Event) -> None:
        event_type = type(event)
        if event_type not in EVENT_TYPES:
            raise TypeError(f"Unsupported event: {event!r}")
        handlers = list(self._handlers.get(event_type, ()))
        logger.info("event_published", event_type=event_type.__name__, handlers=len(handlers))
        for handler in handlers:
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "event_handler_failed",
                    event_type=event_type.__name__,
                    handler=getattr(handler, "__qualname__", repr(handler)),
                )

    def handler_count(self, event_type: Type[Event]) -> int:
        return len(self._handlers.get(event_type, ()))


__all__ = [
    "Event",
    "EventBus",
    "SignedIn",
    "SignedOut",
    "SubscriptionCompleted",
]
