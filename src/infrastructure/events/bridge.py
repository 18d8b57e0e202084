# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Change feed bridge from the EventBus to Dramatiq.

Architecture:
    Service → commit → EventBus.publish("*.written") → Bridge → Redis Queue
    → Dramatiq Worker → sync trigger handler → DB

The bridge gives every committed campaign and user write a durable,
retried second delivery to the sync trigger handlers. Those handlers are
idempotent with the synchronous request path, so the same change may be
applied by both without double counting.

Example:
    from src.infrastructure.events.bridge import start_event_bridge, stop_event_bridge

    # In app lifespan
    bridge = await start_event_bridge()
    yield
    await stop_event_bridge()
"""

import logging
from typing import Any

import dramatiq

from src.infrastructure.events.bus import EventData, get_event_bus
from src.infrastructure.events.types import EventRegistry

logger = logging.getLogger(__name__)


class ChangeFeedBridge:
    """Forwards write events to the Dramatiq actors registered for them.

    Attributes:
        _event_bus: EventBus instance for subscriptions.
        _running: Whether the bridge is active.
        _subscriptions: List of (event_type, handler) tuples for cleanup.
    """

    def __init__(self) -> None:
        """Initialize the bridge."""
        self._event_bus = get_event_bus()
        self._running = False
        self._subscriptions: list[tuple[str, Any]] = []
        self._events_forwarded = 0
        self._errors = 0

    @property
    def is_running(self) -> bool:
        """Check if bridge is running."""
        return self._running

    async def start(self) -> None:
        """Start the bridge and subscribe to write events.

        Should be called during app startup after the Dramatiq broker is
        initialized.
        """
        if self._running:
            logger.warning("Change feed bridge already running")
            return

        # Registers the sync actors on the current broker
        import src.infrastructure.background.tasks.sync  # noqa: F401

        for event_type in EventRegistry.forwarded_event_types():
            self._event_bus.subscribe(event_type, self._forward)
            self._subscriptions.append((event_type, self._forward))

        self._running = True
        logger.info(
            "Change feed bridge started with %d subscriptions",
            len(self._subscriptions),
        )

    async def stop(self) -> None:
        """Stop the bridge and unsubscribe from events."""
        if not self._running:
            return

        for event_type, handler in self._subscriptions:
            self._event_bus.unsubscribe(event_type, handler)

        self._subscriptions.clear()
        self._running = False

        logger.info(
            "Change feed bridge stopped (forwarded: %d, errors: %d)",
            self._events_forwarded,
            self._errors,
        )

    async def _forward(self, event: EventData) -> None:
        """Send one write event to its actor.

        Forwarding failures are counted and logged. The write itself is
        already committed and the synchronous path has applied it.
        """
        actor_name = EventRegistry.get_actor_name(event.event_type)
        if actor_name is None:
            return

        try:
            actor = dramatiq.get_broker().get_actor(actor_name)
            actor.send(**event.payload)
            self._events_forwarded += 1
            logger.debug(
                "Event forwarded to %s: %s (%s)",
                actor_name,
                event.event_type,
                event.event_id,
            )
        except Exception as e:
            self._errors += 1
            logger.error(
                "Failed to forward event %s to %s: %s",
                event.event_type,
                actor_name,
                str(e),
                exc_info=True,
            )

    def get_stats(self) -> dict[str, Any]:
        """Get bridge statistics."""
        return {
            "is_running": self._running,
            "subscriptions": len(self._subscriptions),
            "events_forwarded": self._events_forwarded,
            "errors": self._errors,
        }


# Singleton instance
_bridge_instance: ChangeFeedBridge | None = None


def get_event_bridge() -> ChangeFeedBridge:
    """Get the singleton bridge instance."""
    global _bridge_instance
    if _bridge_instance is None:
        _bridge_instance = ChangeFeedBridge()
    return _bridge_instance


async def start_event_bridge() -> ChangeFeedBridge:
    """Start the change feed bridge.

    Should be called AFTER setup_dramatiq() to ensure the broker is initialized.
    """
    bridge = get_event_bridge()
    await bridge.start()
    return bridge


async def stop_event_bridge() -> None:
    """Stop the change feed bridge."""
    global _bridge_instance
    if _bridge_instance is not None:
        await _bridge_instance.stop()
        _bridge_instance = None
