# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Centralized event type definitions.

Write events are the change feed of the store: every committed write to a
campaign, user or org unit record is published once with a before/after
snapshot pair. Consumers derive their work from the pair alone.

Adding a new event:
1. Add constant to appropriate class here
2. If it must reach a worker, register it in EventRegistry
"""


class EventTypes:
    """All event types organized by domain."""

    class Campaign:
        """Campaign record events."""

        WRITTEN = "campaign.written"
        SYNC_FAILED = "campaign.sync.failed"

    class User:
        """User record events."""

        WRITTEN = "user.written"

    class Org:
        """Org unit events."""

        WRITTEN = "org.written"


class EventPatterns:
    """Wildcard patterns for subscribing to groups of events."""

    ALL_CAMPAIGN = "campaign.*"
    ALL_USER = "user.*"
    ALL_WRITES = "*.written"


class ChangeKind:
    """Classification of a before/after snapshot pair."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    NOOP = "noop"

    @staticmethod
    def classify(before: object | None, after: object | None) -> str:
        """Classify a write from the presence of its snapshots.

        Args:
            before: Record image before the write, or None.
            after: Record image after the write, or None.

        Returns:
            One of CREATE, UPDATE, DELETE or NOOP.
        """
        if before is None and after is not None:
            return ChangeKind.CREATE
        if before is not None and after is None:
            return ChangeKind.DELETE
        if before is not None and after is not None:
            return ChangeKind.UPDATE
        return ChangeKind.NOOP


class EventRegistry:
    """Registry of events forwarded to background workers."""

    # Event type -> Dramatiq actor name
    _actor_map: dict[str, str] = {
        EventTypes.Campaign.WRITTEN: "sync_campaign_write",
        EventTypes.User.WRITTEN: "sync_user_write",
    }

    @classmethod
    def get_actor_name(cls, event_type: str) -> str | None:
        """Get the actor that consumes an event type, if any."""
        return cls._actor_map.get(event_type)

    @classmethod
    def forwarded_event_types(cls) -> list[str]:
        """Event types the change feed bridge subscribes to."""
        return list(cls._actor_map)
