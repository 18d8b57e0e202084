# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Change-triggered sync tasks.

Actors receive the before/after snapshot pairs forwarded by the change
feed bridge and run the sync trigger handlers. A failing handler raises
so Dramatiq retries the message; every handler is idempotent.
"""

import logging
from typing import Any

import dramatiq

from src.core.config import get_settings
from src.infrastructure.background.broker import Priority, Queues, setup_dramatiq
from src.infrastructure.background.tasks.base import get_worker_sessionmaker, run_async
from src.utils.logging import bind_context, clear_context

# Setup broker before defining actors
setup_dramatiq()

logger = logging.getLogger(__name__)

_worker = get_settings().worker


@dramatiq.actor(
    queue_name=Queues.SYNC,
    max_retries=_worker.max_retries,
    time_limit=_worker.time_limit_ms,
    priority=Priority.HIGH,
)
def sync_campaign_write(
    campaign_id: str,
    before: dict[str, Any] | None = None,
    after: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Apply one campaign write to assignments.

    Args:
        campaign_id: Id of the written campaign.
        before: Campaign snapshot before the write, or None on creation.
        after: Campaign snapshot after the write, or None on deletion.

    Returns:
        Summary of the applied work.
    """

    async def _process() -> dict[str, Any]:
        from src.domains.sync.triggers import SyncTriggers
        from src.models.campaign import CampaignSnapshot

        triggers = SyncTriggers(get_worker_sessionmaker(), get_settings().sync)
        outcome = await triggers.handle_campaign_written(
            campaign_id,
            CampaignSnapshot.model_validate(before) if before else None,
            CampaignSnapshot.model_validate(after) if after else None,
        )
        if outcome is None:
            return {"campaign_id": campaign_id, "processed": False}
        return {
            "campaign_id": campaign_id,
            "processed": True,
            "created": len(outcome.created_user_ids),
            "removed": len(outcome.removed_user_ids),
        }

    bind_context(campaign_id=campaign_id)
    try:
        result = run_async(_process())
    finally:
        clear_context()
    logger.info("Campaign write %s processed: %s", campaign_id, result)
    return result


@dramatiq.actor(
    queue_name=Queues.SYNC,
    max_retries=_worker.max_retries,
    time_limit=_worker.time_limit_ms,
    priority=Priority.NORMAL,
)
def sync_user_write(
    user_id: str,
    before: dict[str, Any] | None = None,
    after: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Apply one user membership change to assignments."""

    async def _process() -> dict[str, Any]:
        from src.domains.sync.triggers import SyncTriggers
        from src.models.user import UserSnapshot

        triggers = SyncTriggers(get_worker_sessionmaker(), get_settings().sync)
        outcome = await triggers.handle_user_written(
            user_id,
            UserSnapshot.model_validate(before) if before else None,
            UserSnapshot.model_validate(after) if after else None,
        )
        if outcome is None:
            return {"user_id": user_id, "processed": False}
        return {
            "user_id": user_id,
            "processed": True,
            "created": len(outcome.created_user_ids),
            "removed": len(outcome.removed_user_ids),
        }

    bind_context(user_id=user_id)
    try:
        result = run_async(_process())
    finally:
        clear_context()
    logger.debug("User write %s processed: %s", user_id, result)
    return result


def get_sync_actors() -> list:
    """Get all sync actors."""
    return [sync_campaign_write, sync_user_write]
