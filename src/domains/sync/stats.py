# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Campaign statistics.

Counters are only ever moved by atomic ``SET col = col + :delta`` updates
issued inside the transaction that caused the change. They are never
recomputed by counting assignments.
"""

import logging

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.infrastructure.database.models import CampaignStats

logger = logging.getLogger(__name__)


class StatsAggregator:
    """Atomic counter updates for one session.

    Attributes:
        db: Async database session.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def create(self, campaign_id: str) -> None:
        """Create a zeroed stats row if none exists."""
        existing = await self.db.get(CampaignStats, campaign_id)
        if existing is None:
            self.db.add(CampaignStats(campaign_id=campaign_id, assigned=0, started=0, completed=0))
            await self.db.flush()

    async def increment_assigned(self, campaign_id: str, delta: int) -> None:
        """Move the assigned counter by ``delta``. Negative deltas compensate."""
        await self._increment(campaign_id, "assigned", delta)

    async def increment_started(self, campaign_id: str, delta: int = 1) -> None:
        """Move the started counter by ``delta``."""
        await self._increment(campaign_id, "started", delta)

    async def increment_completed(self, campaign_id: str, delta: int = 1) -> None:
        """Move the completed counter by ``delta``."""
        await self._increment(campaign_id, "completed", delta)

    async def get(self, campaign_id: str) -> CampaignStats | None:
        """Read the current counters."""
        result = await self.db.execute(
            select(CampaignStats)
            .where(CampaignStats.campaign_id == campaign_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def delete(self, campaign_id: str) -> None:
        """Drop the stats row of a removed campaign."""
        await self.db.execute(
            delete(CampaignStats).where(CampaignStats.campaign_id == campaign_id)
        )

    async def _increment(self, campaign_id: str, column: str, delta: int) -> None:
        if delta == 0:
            return

        counter = getattr(CampaignStats, column)
        result = await self.db.execute(
            update(CampaignStats)
            .where(CampaignStats.campaign_id == campaign_id)
            .values({column: counter + delta})
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.debug(
                "No stats row for campaign %s; %s change of %d dropped",
                campaign_id,
                column,
                delta,
            )
