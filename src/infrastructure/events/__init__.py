# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Event infrastructure.

Components:
- EventBus: In-memory pub/sub with pattern matching
- EventTypes: Centralized event type constants
- ChangeFeedBridge: Forwards write events to Dramatiq workers

Architecture:
    Service → commit → EventBus.publish() → Bridge → Dramatiq → sync triggers
"""

from src.infrastructure.events.bridge import (
    ChangeFeedBridge,
    get_event_bridge,
    start_event_bridge,
    stop_event_bridge,
)
from src.infrastructure.events.bus import (
    EventBus,
    EventData,
    EventHandler,
    get_event_bus,
    reset_event_bus,
)
from src.infrastructure.events.types import (
    ChangeKind,
    EventPatterns,
    EventRegistry,
    EventTypes,
)

__all__ = [
    # Event Bus
    "EventBus",
    "EventData",
    "EventHandler",
    "get_event_bus",
    "reset_event_bus",
    # Event Types
    "ChangeKind",
    "EventTypes",
    "EventPatterns",
    "EventRegistry",
    # Bridge
    "ChangeFeedBridge",
    "get_event_bridge",
    "start_event_bridge",
    "stop_event_bridge",
]
