# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background task actors.

Usage:
    from src.infrastructure.background.tasks import sync_campaign_write

    sync_campaign_write.send(campaign_id, before=None, after=snapshot)

Running Workers:
    dramatiq src.infrastructure.background.tasks --processes 2 --threads 4
"""

from src.infrastructure.background.tasks.sync import (
    get_sync_actors,
    sync_campaign_write,
    sync_user_write,
)

# Re-export run_async for convenience
from src.infrastructure.background.tasks.base import run_async

__all__ = [
    "sync_campaign_write",
    "sync_user_write",
    "run_async",
    "get_all_actors",
]


def get_all_actors() -> list:
    """Get list of all defined actors."""
    return list(get_sync_actors())
