"""
Event Bus Infrastructure

Architectural Intent:
- In-memory event bus for deployment domain events
- Handlers are awaited in subscription order; a failing handler is logged
  and never aborts a deployment
"""

import logging
from typing import Callable, Awaitable
from hoist.domain.events.event_base import DomainEvent

logger = logging.getLogger(__name__)


class EventBus:
    def __init__(self) -> None:
        self._handlers: dict[type, list[Callable[[DomainEvent], Awaitable[None]]]] = {}

    async def publish(self, events: list[DomainEvent]) -> None:
        for event in events:
            for event_type, handlers in self._handlers.items():
                if not isinstance(event, event_type):
                    continue
                for handler in handlers:
                    try:
                        await handler(event)
                    except Exception:
                        logger.exception("Event handler failed for %s", event.event_type)

    def subscribe(
        self, event_type: type, handler: Callable[[DomainEvent], Awaitable[None]]
    ) -> None:
        self._handlers.setdefault(event_type, []).append(handler)
