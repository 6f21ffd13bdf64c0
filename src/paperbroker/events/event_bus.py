"""Event bus for managing and dispatching domain events."""

import asyncio
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Type

from ..config.logging import get_logger
from .events import DomainEvent

logger = get_logger(__name__)


class EventBus:
    """Event bus for publishing and subscribing to domain events."""

    def __init__(self, name: str = "default"):
        self.name = name
        self.logger = logger.bind(event_bus=name)

        # Event handlers registry: event_type -> list of handlers
        self._handlers: Dict[Type[DomainEvent], List[Callable]] = defaultdict(list)

        self._event_history: List[Dict[str, Any]] = []
        self._max_history_size = 1000

        self._stats = {
            "events_published": 0,
            "handlers_executed": 0,
            "errors_count": 0,
            "last_event_time": None,
        }

    def subscribe(self, event_type: Type[DomainEvent], handler: Callable) -> None:
        """
        Subscribe a handler to an event type.

        Args:
            event_type: Type of event to subscribe to
            handler: Handler function (sync or async)
        """
        if handler in self._handlers[event_type]:
            return

        self._handlers[event_type].append(handler)

        self.logger.debug(
            "Event handler subscribed",
            event_type=event_type.__name__,
            handler=getattr(handler, "__name__", repr(handler)),
        )

    def unsubscribe(self, event_type: Type[DomainEvent], handler: Callable) -> bool:
        """
        Unsubscribe a handler from an event type.

        Returns:
            True if handler was found and removed
        """
        if handler in self._handlers.get(event_type, []):
            self._handlers[event_type].remove(handler)
            return True
        return False

    async def publish(self, event: DomainEvent) -> Dict[str, Any]:
        """
        Publish an event to all subscribed handlers and wait for them.

        Handler failures are logged and counted; they never propagate to
        the publisher, whose own work is already committed.

        Args:
            event: Domain event to publish

        Returns:
            Dictionary with publication results
        """
        event_type = type(event)
        self._stats["events_published"] += 1
        self._stats["last_event_time"] = datetime.now(timezone.utc)
        self._add_to_history(event)

        handlers = list(self._handlers.get(event_type, []))
        successful_handlers = 0
        failed_handlers = 0

        for handler in handlers:
            try:
                if asyncio.iscoroutinefunction(handler):
                    await handler(event)
                else:
                    handler(event)
                successful_handlers += 1
            except Exception as e:
                failed_handlers += 1
                self._stats["errors_count"] += 1
                self.logger.error(
                    "Handler execution failed",
                    event_type=event_type.__name__,
                    handler=getattr(handler, "__name__", repr(handler)),
                    error=str(e),
                    exc_info=True,
                )

        self._stats["handlers_executed"] += len(handlers)

        return {
            "event_id": event.event_id,
            "handlers_executed": len(handlers),
            "successful_handlers": successful_handlers,
            "failed_handlers": failed_handlers,
        }

    def _add_to_history(self, event: DomainEvent) -> None:
        self._event_history.append(
            {
                "event_type": type(event).__name__,
                "event_id": event.event_id,
                "timestamp": event.timestamp.isoformat(),
            }
        )

        if len(self._event_history) > self._max_history_size:
            self._event_history = self._event_history[-self._max_history_size :]

    def get_statistics(self) -> Dict[str, Any]:
        """Get event bus statistics."""
        return {
            **self._stats,
            "registered_event_types": len(self._handlers),
            "total_handlers": sum(len(h) for h in self._handlers.values()),
            "history_size": len(self._event_history),
        }

    def get_event_history(self, limit: int = 100) -> List[Dict[str, Any]]:
        """Get recent event history."""
        return self._event_history[-limit:]


# Global event bus instance
_global_event_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    """Get or create the global event bus instance."""
    global _global_event_bus

    if _global_event_bus is None:
        _global_event_bus = EventBus("global")

    return _global_event_bus


def set_event_bus(event_bus: EventBus) -> None:
    """Set the global event bus instance."""
    global _global_event_bus
    _global_event_bus = event_bus
