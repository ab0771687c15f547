"""In-process lifecycle event bus.

Subscribers register per event class and are awaited in registration order
when an event of that class (or a subclass) is published. A subscriber that
raises is logged and skipped; the publisher never sees the failure.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog

from src.tenancy.events.schemas import LifecycleEvent

logger = structlog.get_logger(__name__)

E = TypeVar("E", bound=LifecycleEvent)
Handler = Callable[[E], Awaitable[None]]


class LifecycleEventBus:
    """Publish/subscribe for tenant lifecycle events within one process."""

    def __init__(self) -> None:
        self._handlers: dict[type[LifecycleEvent], list[Handler]] = defaultdict(list)

    def subscribe(self, event_class: type[E], handler: Handler) -> None:
        """Register an async handler for an event class."""
        self._handlers[event_class].append(handler)

    def unsubscribe(self, event_class: type[E], handler: Handler) -> None:
        handlers = self._handlers.get(event_class, [])
        if handler in handlers:
            handlers.remove(handler)

    async def publish(self, event: LifecycleEvent) -> None:
        """Deliver an event to every matching subscriber.

        Args:
            event: The lifecycle event to deliver.
        """
        delivered = 0
        for event_class, handlers in list(self._handlers.items()):
            if not isinstance(event, event_class):
                continue
            for handler in list(handlers):
                try:
                    await handler(event)
                    delivered += 1
                except Exception:
                    logger.exception(
                        "event_bus.handler_failed",
                        event_type=event.event_type.value,
                        event_id=event.event_id,
                        handler=getattr(handler, "__qualname__", repr(handler)),
                    )

        logger.debug(
            "event_bus.published",
            event_type=event.event_type.value,
            event_id=event.event_id,
            tenant_slug=event.tenant_slug,
            delivered=delivered,
        )
