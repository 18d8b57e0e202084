# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""In-memory event bus.

Repositories publish write events here after their transaction commits.
Subscribers are matched by exact event type or by wildcard pattern.

Example:
    from src.infrastructure.events import get_event_bus, EventTypes

    event_bus = get_event_bus()

    async def on_campaign_written(event):
        print(event.payload["campaign_id"])

    event_bus.subscribe(EventTypes.Campaign.WRITTEN, on_campaign_written)

    await event_bus.publish(
        EventTypes.Campaign.WRITTEN,
        {"campaign_id": "c1", "before": None, "after": {...}},
    )
"""

import asyncio
import fnmatch
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable
from uuid import uuid4

logger = logging.getLogger(__name__)

# Type alias for event handlers
EventHandler = Callable[[Any], Awaitable[None]]


def _is_pattern(event_type: str) -> bool:
    return "*" in event_type or "?" in event_type


@dataclass
class EventData:
    """Container for event data with metadata.

    Attributes:
        event_type: The event type string.
        payload: The event payload data.
        event_id: Unique event identifier.
        timestamp: When the event was published.
    """

    event_type: str
    payload: dict[str, Any]
    event_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat(),
        }


class EventBus:
    """In-memory async event bus with pattern matching support.

    Designed for single-threaded async use. Durable delivery across
    processes is the job of the change feed bridge and the Dramatiq broker.

    A failing handler is logged and never fails the publisher: the write
    that produced the event has already committed.
    """

    def __init__(self) -> None:
        """Initialize the event bus."""
        self._handlers: dict[str, list[EventHandler]] = {}
        self._pattern_handlers: dict[str, list[EventHandler]] = {}
        self._event_count = 0
        logger.debug("EventBus initialized")

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """Subscribe a handler to an event type or pattern.

        Args:
            event_type: Event type string or pattern with wildcards.
            handler: Async function to call when event is published.
        """
        registry = self._pattern_handlers if _is_pattern(event_type) else self._handlers
        registry.setdefault(event_type, []).append(handler)
        logger.debug("Subscribed handler to: %s", event_type)

    def unsubscribe(self, event_type: str, handler: EventHandler) -> bool:
        """Unsubscribe a handler from an event type or pattern.

        Returns:
            True if handler was found and removed, False otherwise.
        """
        registry = self._pattern_handlers if _is_pattern(event_type) else self._handlers
        handlers = registry.get(event_type)
        if not handlers or handler not in handlers:
            return False

        handlers.remove(handler)
        if not handlers:
            del registry[event_type]
        return True

    def _matching_handlers(self, event_type: str) -> list[EventHandler]:
        matched = list(self._handlers.get(event_type, []))
        for pattern, pattern_handlers in self._pattern_handlers.items():
            if fnmatch.fnmatch(event_type, pattern):
                matched.extend(pattern_handlers)
        return matched

    async def publish(self, event_type: str, payload: dict[str, Any]) -> EventData:
        """Publish an event to all matching subscribers.

        Handlers are called concurrently using asyncio.gather. Errors in
        individual handlers are logged but don't stop other handlers.

        Args:
            event_type: The event type string.
            payload: Event data dictionary.

        Returns:
            EventData object with event metadata.
        """
        event = EventData(event_type=event_type, payload=payload)
        self._event_count += 1

        handlers_to_call = self._matching_handlers(event_type)
        if not handlers_to_call:
            logger.debug("No handlers for event: %s", event_type)
            return event

        logger.debug(
            "Publishing event %s to %d handlers",
            event_type,
            len(handlers_to_call),
        )

        async def safe_call(handler: EventHandler) -> None:
            try:
                await handler(event)
            except Exception as e:
                logger.error(
                    "Handler error for event %s: %s",
                    event_type,
                    str(e),
                    exc_info=True,
                )

        await asyncio.gather(*[safe_call(handler) for handler in handlers_to_call])
        return event

    def clear(self) -> None:
        """Remove all subscriptions."""
        self._handlers.clear()
        self._pattern_handlers.clear()

    def get_stats(self) -> dict[str, Any]:
        """Get event bus statistics."""
        exact_count = sum(len(h) for h in self._handlers.values())
        pattern_count = sum(len(h) for h in self._pattern_handlers.values())

        return {
            "total_handlers": exact_count + pattern_count,
            "events_published": self._event_count,
            "event_types": list(self._handlers.keys()),
            "patterns": list(self._pattern_handlers.keys()),
        }


# Singleton instance
_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Get the singleton event bus instance."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus


def reset_event_bus() -> None:
    """Reset the event bus singleton.

    Useful for testing to ensure clean state between tests.
    """
    global _event_bus
    if _event_bus is not None:
        _event_bus.clear()
    _event_bus = None
