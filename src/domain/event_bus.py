"""
In-process Event Bus.

The event bus delivers domain events to subscribed handlers after a unit of
work commits. Handler failures are logged and never reach the publisher: a
broken subscriber must not undo a committed field update.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Type

from .events import DomainEvent


logger = logging.getLogger(__name__)


class EventBus:
    """
    Simple in-process event bus for publishing domain events.

    Supports both sync and async event handlers.
    Events are delivered to all registered handlers for their type.
    """

    def __init__(self):
        self._handlers: Dict[Type[DomainEvent], List[Callable]] = {}
        self._async_handlers: Dict[Type[DomainEvent], List[Callable]] = {}
        self._global_handlers: List[Callable] = []
        self._async_global_handlers: List[Callable] = []

    def subscribe(
        self,
        event_type: Type[DomainEvent],
        handler: Callable[[DomainEvent], None]
    ) -> None:
        """
        Subscribe to events of a specific type.

        Args:
            event_type: Type of event to subscribe to
            handler: Callback function to invoke
        """
        self._handlers.setdefault(event_type, []).append(handler)
        logger.debug(f"Subscribed handler to {event_type.__name__}")

    def subscribe_async(
        self,
        event_type: Type[DomainEvent],
        handler: Callable[[DomainEvent], Any]
    ) -> None:
        """Subscribe an async handler to events of a specific type."""
        self._async_handlers.setdefault(event_type, []).append(handler)
        logger.debug(f"Subscribed async handler to {event_type.__name__}")

    def subscribe_all(self, handler: Callable[[DomainEvent], None]) -> None:
        """Subscribe to all events."""
        self._global_handlers.append(handler)

    def subscribe_all_async(self, handler: Callable[[DomainEvent], Any]) -> None:
        self._async_global_handlers.append(handler)

    def unsubscribe(self, event_type: Type[DomainEvent], handler: Callable) -> bool:
        """
        Unsubscribe a handler from an event type.

        Returns:
            True if handler was removed
        """
        for registry in (self._handlers, self._async_handlers):
            handlers = registry.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)
                return True
        return False

    def publish(self, event: DomainEvent) -> None:
        """Publish an event to sync handlers."""
        handlers = self._handlers.get(type(event), []) + self._global_handlers

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Error in event handler: {e}", exc_info=True)

    async def publish_async(self, event: DomainEvent) -> None:
        """
        Publish an event to sync handlers, then to async handlers concurrently.

        Args:
            event: Event to publish
        """
        self.publish(event)

        async_handlers = self._async_handlers.get(type(event), []) + self._async_global_handlers
        if async_handlers:
            await asyncio.gather(
                *[self._safe_async_call(handler, event) for handler in async_handlers],
                return_exceptions=True
            )

    async def _safe_async_call(self, handler: Callable, event: DomainEvent) -> None:
        try:
            await handler(event)
        except Exception as e:
            logger.error(f"Error in async event handler: {e}", exc_info=True)

    def clear(self) -> None:
        """Clear all subscriptions."""
        self._handlers.clear()
        self._async_handlers.clear()
        self._global_handlers.clear()
        self._async_global_handlers.clear()


# =============================================================================
# GLOBAL BUS
# =============================================================================

_event_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    """Get the process-wide event bus."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus


def reset_event_bus() -> None:
    """Drop the process-wide bus (used by tests)."""
    global _event_bus
    _event_bus = None


async def publish_events(events: List[DomainEvent], bus: Optional[EventBus] = None) -> None:
    """Publish a batch of events in order."""
    bus = bus or get_event_bus()
    for event in events:
        try:
            await bus.publish_async(event)
        except Exception as e:
            logger.error(f"Failed to publish event {event.__class__.__name__}: {e}")
