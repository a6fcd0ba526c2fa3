"""
Event Bus Infrastructure

Architectural Intent:
- In-memory event bus for publishing domain events within one process
- Async subscription handlers, dispatched in subscription order
- A subscriber registered for DomainEvent receives every event
"""

import logging
from typing import Callable, Awaitable
from strata.domain.events.event_base import DomainEvent

logger = logging.getLogger(__name__)


class EventBus:
    def __init__(self) -> None:
        self._handlers: dict[type, list[Callable[[DomainEvent], Awaitable[None]]]] = {}

    async def publish(self, events: list[DomainEvent]) -> None:
        for event in events:
            for event_type in type(event).__mro__:
                for handler in self._handlers.get(event_type, []):
                    await handler(event)

    def subscribe(
        self, event_type: type, handler: Callable[[DomainEvent], Awaitable[None]]
    ) -> None:
        self._handlers.setdefault(event_type, []).append(handler)
        logger.debug("Subscribed %s to %s", getattr(handler, "__name__", handler), event_type.__name__)
